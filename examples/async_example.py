#!/usr/bin/env python3
"""
Example: Using the mgmt_api ApiClient

Clones a host object: reads the source host, creates a copy with a new name
and address, lists every host and publishes the change.

Usage:
    python async_example.py --server 192.0.2.10 --user admin --password secret \
        --source web-01 --name web-02 --ip 192.0.2.21
"""

import argparse
import asyncio
import logging

from mgmt_api import ApiClient, ClientArgs

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
log = logging.getLogger(__name__)

# Fields of show-host that add-host accepts as-is
CLONED_FIELDS = ("color", "comments", "nat-settings", "tags")


async def clone_host(client: ApiClient, source: str, name: str, ip: str) -> bool:
    original = await client.call("show-host", {"name": source})
    if not original.success:
        log.error(f"Cannot read host {source}: {original.error_message}")
        return False

    payload = {"name": name, "ip-address": ip}
    for field in CLONED_FIELDS:
        if field in original.payload:
            payload[field] = original.payload[field]
    if "tags" in payload:
        payload["tags"] = [tag["name"] for tag in payload["tags"] if isinstance(tag, dict)]

    added = await client.call("add-host", payload)
    if not added.success:
        log.error(f"add-host failed: {added.error_message}")
        for error in added.errors or []:
            log.error(f"  - {error.get('message')}")
        await client.call("discard", {})
        return False
    log.info(f"Created host {name} ({added.payload.get('uid')})")
    return True


async def main(server: str, user: str, password: str, source: str, name: str, ip: str):
    args = ClientArgs(fingerprint_file="fingerprints.txt", debug_file="api_calls.json")

    async with ApiClient(args) as client:
        # Ask before trusting a new or changed server certificate
        await client.verify_server_fingerprint(server)

        login = await client.login(server, {"user": user, "password": password})
        if not login.success:
            log.error(f"Login failed: {login.error_message}")
            return
        log.info(f"Logged in, api version {login.api_version}")

        if not await clone_host(client, source, name, ip):
            return

        # query() collects every page of show-hosts
        hosts = await client.query("show-hosts", "objects")
        log.info(f"The server now has {len(hosts.payload.get('objects', []))} hosts")

        # publish answers with a task-id; call() waits for the task to finish
        publish = await client.call("publish", {})
        if publish.success:
            log.info("Published")
        else:
            log.error(f"Publish failed: {publish.payload.get('tasks')}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Clone a host object on the management server")
    parser.add_argument("--server", required=True, help="Management server address")
    parser.add_argument("--user", required=True, help="Administrator name")
    parser.add_argument("--password", required=True, help="Administrator password")
    parser.add_argument("--source", required=True, help="Name of the host to clone")
    parser.add_argument("--name", required=True, help="Name of the new host")
    parser.add_argument("--ip", required=True, help="IPv4 address of the new host")

    args = parser.parse_args()
    asyncio.run(main(args.server, args.user, args.password, args.source, args.name, args.ip))
