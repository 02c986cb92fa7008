from typing import Any

import httpx
import structlog

from costtop.errors import DecodeError, TransportError

logger = structlog.get_logger()

# hard cap on pages per resource, guards against a server that
# keeps answering has_more=true
MAX_PAGES = 30


async def fetch_pages(
    client: "httpx.AsyncClient",
    url: "str",
    params: "list[tuple[str, str]]",
    *,
    cursor_param: "str" = "page",
    cursor_field: "str" = "next_page",
    max_pages: "int" = MAX_PAGES,
) -> "list[dict[str, Any]]":
    """
    fetches every page of a cursor-paginated resource, in cursor order.

    Pages are requested sequentially since each cursor is only valid
    for the request that follows the page that produced it. The loop
    stops on has_more=false, on a missing cursor, or after max_pages
    requests. Any failing page aborts the whole resource: no partial
    pages are returned.
    """
    pages: "list[dict[str, Any]]" = []
    cursor: "str | None" = None

    for _ in range(max_pages):
        query = list(params)
        if cursor:
            query.append((cursor_param, cursor))

        logger.debug("fetch_page", url=url, cursor=cursor)
        try:
            resp = await client.get(url, params=query)
        except httpx.HTTPError as e:
            raise TransportError(f"Request to {url} failed: {e}") from e

        if not resp.is_success:
            raise TransportError("API error", resp.status_code, resp.text)

        page = decode_page(resp)
        pages.append(page)

        if not page.get("has_more"):
            break

        cursor = page.get(cursor_field)
        # has_more without a cursor cannot be followed
        if not cursor:
            logger.warning("pagination_cursor_missing", url=url)
            break
    else:
        logger.warning("pagination_cap_reached", url=url, max_pages=max_pages)

    return pages


def decode_page(resp: "httpx.Response") -> "dict[str, Any]":
    """
    decodes a page body and checks the common envelope shape.
    """
    try:
        page = resp.json()
    except ValueError as e:
        raise DecodeError("Failed to parse response", resp.text) from e

    if not isinstance(page, dict) or not isinstance(page.get("data"), list):
        raise DecodeError("Unexpected response shape", resp.text)

    return page


def iter_results(pages: "list[dict[str, Any]]") -> "list[tuple[dict, dict]]":
    """
    flattens report pages into (bucket, result) pairs.
    """
    pairs: "list[tuple[dict, dict]]" = []
    for page in pages:
        for bucket in page["data"]:
            if not isinstance(bucket, dict):
                raise DecodeError("Unexpected bucket shape", str(bucket))
            for result in bucket.get("results") or []:
                pairs.append((bucket, result))
    return pairs
