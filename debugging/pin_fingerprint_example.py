"""
Quick TLS test for ApiClient with fingerprint pinning or without certificate checks.

Security note:
- Avoid passing passwords on the command line (they can end up in history). This script supports env vars
    and secure prompt input so you can omit --password.

Usage (PowerShell):
    # 1) Set env vars (recommended)
    $env:MGMT_USERNAME = "<USER>"
    $env:MGMT_PASSWORD = "<PASSWORD>"

    # 2) Pin the server fingerprint (asks before trusting a new or changed one) and log in
    python debugging/pin_fingerprint_example.py --server 192.0.2.10 --fingerprint-file fingerprints.txt

    # 3) Or skip fingerprint checks (development only)
    python debugging/pin_fingerprint_example.py --server 192.0.2.10 --insecure
"""

from __future__ import annotations

import argparse
import asyncio
import getpass
import os

from mgmt_api import ApiClient, ApiClientException, ClientArgs, ProxySettings


async def run(server: str, port: int, user: str, password: str, fingerprint_file: str,
              insecure: bool, proxy: ProxySettings | None) -> int:
    args = ClientArgs(
        port=port,
        fingerprint_file=fingerprint_file,
        check_fingerprint=not insecure,
        proxy=proxy,
    )
    try:
        async with ApiClient(args) as client:
            if not insecure:
                saved = await client.verify_server_fingerprint(server)
                print("Fingerprint saved" if saved else "Fingerprint already trusted")
            login = await client.login(server, {"user": user, "password": password})
            if not login.success:
                print("TLS OK; login failed:", login.error_message)
                return 1
            print("TLS OK; auth OK; api version:", login.api_version)
            return 0
    except ApiClientException as e:
        print("Failed:", e)
        return 2


def main() -> int:
    p = argparse.ArgumentParser(description="ApiClient TLS/fingerprint pinning test")
    p.add_argument("--server", required=True, help="Management server address")
    p.add_argument("--port", type=int, default=443, help="Management server port")
    p.add_argument("--user", help="Administrator name (or set MGMT_USERNAME env var)")
    p.add_argument("--password", help="Password (or set MGMT_PASSWORD env var, or omit to be prompted)")
    p.add_argument("--fingerprint-file", default="fingerprints.txt", help="Fingerprint file to read and update")
    p.add_argument("--proxy", help="Proxy host to tunnel through")
    p.add_argument("--proxy-port", type=int, help="Proxy port")
    p.add_argument("--insecure", action="store_true", help="Disable fingerprint validation (development only)")
    args = p.parse_args()

    if args.proxy_port and not args.proxy:
        p.error("--proxy-port needs --proxy")

    user = args.user or os.environ.get("MGMT_USERNAME")
    if not user:
        user = input("User: ")

    password = args.password or os.environ.get("MGMT_PASSWORD")
    if not password:
        password = getpass.getpass("Password: ")

    proxy = ProxySettings(args.proxy, args.proxy_port) if args.proxy else None
    return asyncio.run(run(args.server, args.port, user, password, args.fingerprint_file, args.insecure, proxy))


if __name__ == "__main__":
    raise SystemExit(main())
