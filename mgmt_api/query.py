"""Collects every page of a paginated ``show-*`` command into one response."""
import logging
from typing import Any, List, Mapping, Optional

from .exceptions import ConfigurationError
from .models import ApiResponse, Session

log = logging.getLogger(__name__)


def _count(data: Mapping[str, Any], field: str) -> int:
    try:
        return int(data[field])
    except (TypeError, ValueError) as e:
        raise ConfigurationError(
            f"Error: '{field}' is not a number ({data[field]!r}), check your key value"
        ) from e


class QueryAggregator:
    """Pages through a collection with increasing ``offset``.

    Args:
        transport: Object with an ``async send(session, command, payload)``
        limit: Page size sent as ``limit``
        max_pages: Safety bound on the number of pages requested
    """

    def __init__(self, transport, limit: int = 50, max_pages: int = 10000):
        self.transport = transport
        self.limit = limit
        self.max_pages = max_pages

    async def aggregate(self, session: Session, command: str, item_key: str,
                        payload: Mapping[str, Any], limit: Optional[int] = None) -> ApiResponse:
        """Return all items of ``command`` in a single response.

        The result is the last page's response with ``from``/``to`` removed
        and ``item_key`` holding every item, in server order. A failed page
        is returned as-is.

        Raises:
            ConfigurationError: If a page lacks ``item_key``, a numeric ``total`` or
                ``to``, or the collection does not finish within ``max_pages``
        """
        limit = limit or self.limit
        items: List[Any] = []
        response: Optional[ApiResponse] = None

        for page in range(self.max_pages):
            page_payload = dict(payload)
            page_payload["limit"] = limit
            page_payload["offset"] = page * limit
            response = await self.transport.send(session, command, page_payload)
            if not response.success:
                return response

            data = response.payload
            if item_key not in data or "total" not in data:
                raise ConfigurationError("Error: No items to collect, check your key value")
            total = _count(data, "total")
            if total == 0:
                return response
            if "to" not in data:
                raise ConfigurationError(f"Error: '{command}' page has no 'to' field")

            items.extend(data[item_key] or [])
            received = _count(data, "to")
            log.debug(f"{command}: received {received} of {total} objects")
            if received == total:
                break
        else:
            raise ConfigurationError(
                f"Error: '{command}' did not return all {item_key} within {self.max_pages} pages"
            )

        data.pop("from", None)
        data.pop("to", None)
        data[item_key] = items
        log.info(f"{command}: collected {len(items)} {item_key}")
        return response
