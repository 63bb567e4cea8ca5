"""
Pagination crawler for recording upstream APIs.

Drains every page of a paginated endpoint, whatever convention the
upstream uses, and writes each page plus a combined response to disk:

    START -> FETCH_PAGE -> DETECT_FORMAT -> CONTINUE -> FETCH_PAGE
                                         -> DONE

Supported conventions, detected in this order:
    standard      {"page": 1, "totalPages": 3, "items": [...]}
    odata         {"@odata.count": 42, "@odata.nextLink": "...", "value": [...]}
    cursor        {"cursor"|"nextCursor": "...", "hasMore"|"hasMoreItems": true}
    link-header   Link: <https://api.example.com/items?page=2>; rel="next"

Output files for operation id "listPets":
    listpets_page_1.json, listpets_page_2.json, ...
    listpets_all_pages.json

Invariants:
    - Fetches are strictly sequential
    - The page ceiling always terminates the crawl
    - An upstream failure stops the crawl; fetched pages are still combined
    - Truncation keeps the leading items in order

How to change safely:
    - Add a convention by adding a detector to _DETECTORS and a branch in
      _next_url; detectors are tried in order and the first match wins
    - Never remove the page ceiling
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import re
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx

from ..config import CrawlerConfig
from ..store.resource_store import utc_timestamp

logger = logging.getLogger(__name__)

_LINK_RE = re.compile(r"<([^>]+)>\s*;(.*)")
_REL_RE = re.compile(r"""rel\s*=\s*"?([^";]+)"?""")


class PaginationFormat(str, Enum):
    """Pagination conventions understood by the crawler."""

    STANDARD = "standard"
    ODATA = "odata"
    CURSOR = "cursor"
    LINK_HEADER = "link-header"
    NONE = "none"


@dataclass
class PaginationInfo:
    """Pagination state detected on one page.

    Attributes:
        format: Detected convention
        next_pointer: Next page number, cursor or link (None when done)
        has_more: Whether another page should be fetched
        current_page: Page number reported by a standard envelope
        total_pages: Page count reported by a standard envelope
        page_size: Page size reported by the upstream
        total_items: Total item count reported by the upstream
    """

    format: PaginationFormat = PaginationFormat.NONE
    next_pointer: str | int | None = None
    has_more: bool = False
    current_page: int | None = None
    total_pages: int | None = None
    page_size: int | None = None
    total_items: int | None = None


@dataclass(frozen=True)
class EndpointDescriptor:
    """An upstream endpoint to crawl.

    Attributes:
        path: Request path, optionally with a query string
        operation_id: Operation name used for output file names
        is_odata: Start with $top instead of page=1
    """

    path: str
    operation_id: str
    is_odata: bool = False


@dataclass
class PageResult:
    """Outcome of one page request."""

    success: bool
    page_number: int
    url: str
    status_code: int | None = None
    pagination: PaginationInfo | None = None
    error: str | None = None


@dataclass
class CrawlResult:
    """Outcome of a crawl.

    Attributes:
        pages: One result per request, the last one failed if the crawl broke
        combined: Combined response (None when no page could be combined)
        summary: {originalPageCount, combinedItemCount, timestamp}
    """

    pages: list[PageResult] = field(default_factory=list)
    combined: dict[str, Any] | list[Any] | None = None
    summary: dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        """True when every request succeeded."""
        return bool(self.pages) and all(page.success for page in self.pages)


# =============================================================================
# Format detection
# =============================================================================


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value)
    return None


def _first_present(body: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = body.get(key)
        if value is not None:
            return value
    return None


def _detect_standard(body: Any, headers: Mapping[str, str]) -> PaginationInfo | None:
    if not isinstance(body, dict) or "page" not in body or "totalPages" not in body:
        return None
    current = _as_int(body["page"])
    total = _as_int(body["totalPages"])
    has_more = current is not None and total is not None and current < total
    return PaginationInfo(
        format=PaginationFormat.STANDARD,
        next_pointer=current + 1 if has_more else None,
        has_more=has_more,
        current_page=current,
        total_pages=total,
        page_size=_as_int(_first_present(body, "pageSize", "limit", "perPage")),
        total_items=_as_int(_first_present(body, "totalItems", "total", "count")),
    )


def _detect_odata(body: Any, headers: Mapping[str, str]) -> PaginationInfo | None:
    if not isinstance(body, dict):
        return None
    if "@odata.count" not in body and "@odata.nextLink" not in body:
        return None
    next_link = body.get("@odata.nextLink") or None
    return PaginationInfo(
        format=PaginationFormat.ODATA,
        next_pointer=next_link,
        has_more=next_link is not None,
        total_items=_as_int(body.get("@odata.count")),
    )


def _detect_cursor(body: Any, headers: Mapping[str, str]) -> PaginationInfo | None:
    if not isinstance(body, dict):
        return None
    if "cursor" not in body and "nextCursor" not in body:
        return None
    if "hasMoreItems" not in body and "hasMore" not in body:
        return None
    cursor = body.get("cursor") or body.get("nextCursor") or body.get("nextPageToken")
    has_more = bool(body.get("hasMoreItems") or body.get("hasMore") or body.get("moreResults") is True)
    return PaginationInfo(
        format=PaginationFormat.CURSOR,
        next_pointer=cursor,
        has_more=has_more and bool(cursor),
    )


def _detect_link_header(body: Any, headers: Mapping[str, str]) -> PaginationInfo | None:
    next_link = parse_link_header(headers.get("link")).get("next")
    if not next_link:
        return None
    return PaginationInfo(format=PaginationFormat.LINK_HEADER, next_pointer=next_link, has_more=True)


_DETECTORS: tuple[Callable[[Any, Mapping[str, str]], PaginationInfo | None], ...] = (
    _detect_standard,
    _detect_odata,
    _detect_cursor,
    _detect_link_header,
)


def parse_link_header(value: str | None) -> dict[str, str]:
    """Parse an RFC 8288 Link header into {rel: url}."""
    links: dict[str, str] = {}
    if not value:
        return links
    for part in value.split(","):
        match = _LINK_RE.search(part.strip())
        if not match:
            continue
        rel = _REL_RE.search(match.group(2))
        if rel:
            for name in rel.group(1).split():
                links.setdefault(name.lower(), match.group(1))
    return links


def detect_pagination_format(body: Any, headers: Mapping[str, str] | None = None) -> PaginationInfo:
    """Detect the pagination convention of a response.

    Args:
        body: Decoded JSON body
        headers: Response headers (case-insensitive mappings such as
            httpx.Headers are looked up as-is, plain dicts by lower-cased key)

    Returns:
        PaginationInfo, with format NONE when nothing matched
    """
    if headers is None:
        headers = {}
    elif not isinstance(headers, httpx.Headers):
        headers = {key.lower(): value for key, value in headers.items()}

    for detector in _DETECTORS:
        info = detector(body, headers)
        if info is not None:
            return info
    return PaginationInfo()


# =============================================================================
# Truncation
# =============================================================================


def truncate_large_response(payload: Any, max_items: int = 100) -> Any:
    """Cap the item list of a response, keeping the leading items.

    A top-level array longer than max_items is wrapped as
    {"_truncated", "_originalSize", "_note", "items"}; "items" and "value"
    envelopes are capped in place and annotated with the same markers.
    The input is never modified.

    Args:
        payload: Decoded JSON response
        max_items: Maximum number of items to keep

    Returns:
        Deep copy of the payload, truncated when it was too large
    """
    result = copy.deepcopy(payload)
    note = f"Response truncated to {max_items} items"

    if isinstance(result, list):
        if len(result) <= max_items:
            return result
        return {
            "_truncated": True,
            "_originalSize": len(result),
            "_note": note,
            "items": result[:max_items],
        }

    if isinstance(result, dict):
        for key in ("items", "value"):
            items = result.get(key)
            if isinstance(items, list):
                if len(items) > max_items:
                    result[key] = items[:max_items]
                    result["_truncated"] = True
                    result["_originalSize"] = len(items)
                    result["_note"] = note
                return result

    return result


# =============================================================================
# URL helpers
# =============================================================================


def set_query_param(url: str, name: str, value: Any) -> str:
    """Return the URL with one query parameter set (replaced or appended)."""
    parts = urlsplit(url)
    params = [(key, val) for key, val in parse_qsl(parts.query, keep_blank_values=True) if key != name]
    params.append((name, str(value)))
    return urlunsplit(parts._replace(query=urlencode(params, safe="$,()'")))


def relative_url(url: str) -> str:
    """Reduce an absolute URL to its path and query."""
    parts = urlsplit(url)
    if not parts.scheme and not parts.netloc:
        return url
    path = parts.path or "/"
    return f"{path}?{parts.query}" if parts.query else path


def output_basename(operation_id: str) -> str:
    """File name stem for an operation: non-alphanumerics to "_", lower-cased."""
    return re.sub(r"[^a-zA-Z0-9]", "_", operation_id).lower()


def _page_items(body: Any) -> list[Any]:
    if isinstance(body, list):
        return body
    if isinstance(body, dict):
        for key in ("items", "value"):
            if isinstance(body.get(key), list):
                return body[key]
    return []


def _envelope_key(body: Any) -> str | None:
    """Envelope key of a first page: "" for a top-level array, None if not combinable."""
    if isinstance(body, list):
        return ""
    if isinstance(body, dict):
        for key in ("items", "value"):
            if isinstance(body.get(key), list):
                return key
    return None


# =============================================================================
# Crawler
# =============================================================================


class PaginationCrawler:
    """Drains paginated endpoints into page files and a combined response.

    Example:
        >>> crawler = PaginationCrawler(CrawlerConfig(max_pages=5))
        >>> async with httpx.AsyncClient(base_url="https://api.example.com") as client:
        ...     result = await crawler.crawl(client, EndpointDescriptor("/pets", "listPets"), "./out")
    """

    def __init__(self, config: CrawlerConfig | None = None) -> None:
        self.config = config or CrawlerConfig()

    def initial_url(self, endpoint: EndpointDescriptor) -> str:
        """First request URL: $top for OData endpoints, page=1 otherwise."""
        if endpoint.is_odata:
            return set_query_param(endpoint.path, "$top", self.config.page_size)
        return set_query_param(endpoint.path, "page", 1)

    def truncate(self, payload: Any, max_items: int | None = None) -> Any:
        """truncate_large_response capped at max_items, or config.max_items when omitted."""
        if max_items is None:
            max_items = self.config.max_items
        return truncate_large_response(payload, max_items)

    def _next_url(self, current_url: str, info: PaginationInfo) -> str | None:
        if not info.has_more or info.next_pointer is None:
            return None
        if info.format == PaginationFormat.STANDARD:
            return set_query_param(current_url, "page", info.next_pointer)
        if info.format == PaginationFormat.CURSOR:
            return set_query_param(current_url, "cursor", info.next_pointer)
        if info.format in (PaginationFormat.ODATA, PaginationFormat.LINK_HEADER):
            return relative_url(str(info.next_pointer))
        return None

    async def crawl(
        self,
        client: httpx.AsyncClient,
        endpoint: EndpointDescriptor,
        output_dir: str | Path,
        stop_event: asyncio.Event | None = None,
    ) -> CrawlResult:
        """Fetch every page of an endpoint.

        Args:
            client: HTTP client (usually with base_url set to the upstream)
            endpoint: Endpoint to crawl
            output_dir: Directory receiving the page and combined files
            stop_event: When set, the crawl stops before the next page

        Returns:
            CrawlResult with one PageResult per request
        """
        output = Path(output_dir)
        output.mkdir(parents=True, exist_ok=True)
        basename = output_basename(endpoint.operation_id)

        result = CrawlResult()
        all_items: list[Any] = []
        first_body: Any = None
        started = time.monotonic()
        page_number = 1
        url: str | None = self.initial_url(endpoint)

        logger.info(f"Recording paginated responses for: {endpoint.path}")

        while url is not None:
            logger.info(f"Fetching page {page_number}: {url}")
            response: httpx.Response | None = None
            try:
                response = await client.get(url, timeout=self.config.timeout_seconds)
                response.raise_for_status()
                body = response.json()
            except (httpx.HTTPError, ValueError) as e:
                logger.error(
                    f"Failed to record page {page_number} of {endpoint.operation_id}: {e}",
                    extra={"url": url, "page": page_number},
                )
                result.pages.append(
                    PageResult(
                        success=False,
                        page_number=page_number,
                        url=url,
                        status_code=response.status_code if response is not None else None,
                        error=str(e),
                    )
                )
                break

            info = detect_pagination_format(body, response.headers)
            recorded = body
            if self.config.max_items_per_page is not None:
                recorded = self.truncate(body, self.config.max_items_per_page)
            self._write_json(output / f"{basename}_page_{page_number}.json", recorded)

            result.pages.append(
                PageResult(
                    success=True,
                    page_number=page_number,
                    url=url,
                    status_code=response.status_code,
                    pagination=info,
                )
            )
            if page_number == 1:
                first_body = body
            all_items.extend(_page_items(recorded))

            url = self._next_url(url, info)
            if url is None:
                break
            if page_number >= self.config.max_pages:
                logger.info(
                    f"Reached maximum page limit ({self.config.max_pages}). Stopping pagination."
                )
                break
            if (
                self.config.deadline_seconds is not None
                and time.monotonic() - started >= self.config.deadline_seconds
            ):
                logger.info(f"Crawl deadline of {self.config.deadline_seconds}s reached. Stopping pagination.")
                break
            if stop_event is not None and stop_event.is_set():
                logger.info("Crawl stopped on request")
                break
            page_number += 1

        page_count = sum(1 for page in result.pages if page.success)
        result.summary = {
            "originalPageCount": page_count,
            "combinedItemCount": len(all_items),
            "timestamp": utc_timestamp(),
        }
        result.combined = self._combine(first_body, all_items, result.summary)
        if result.combined is not None:
            self._write_json(output / f"{basename}_all_pages.json", result.combined)
            logger.info(
                f"Saved combined response with {len(all_items)} items from {page_count} pages",
                extra={"operation_id": endpoint.operation_id},
            )
        return result

    def _combine(
        self,
        first_body: Any,
        items: list[Any],
        summary: dict[str, Any],
    ) -> dict[str, Any] | list[Any] | None:
        key = _envelope_key(first_body)
        if key is None:
            return None
        if key == "":
            # arrays carry no annotation; the summary lives on CrawlResult
            return list(items)

        combined = dict(first_body)
        combined[key] = items
        if key == "items":
            if "page" in combined:
                combined["page"] = 1
            if "totalPages" in combined:
                combined["totalPages"] = 1
            if "pageSize" in combined:
                combined["pageSize"] = len(items)
        else:
            combined.pop("@odata.nextLink", None)
            if "@odata.count" in combined:
                combined["@odata.count"] = len(items)
        combined["_paginationInfo"] = dict(summary)
        return combined

    @staticmethod
    def _write_json(path: Path, payload: Any) -> None:
        with path.open("w", encoding="utf-8") as fh:
            json.dump(payload, fh, indent=2)


async def record_all_pages(
    base_url: str,
    endpoint: EndpointDescriptor,
    output_dir: str | Path,
    config: CrawlerConfig | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> CrawlResult:
    """Crawl one endpoint with a client owned by this call.

    Args:
        base_url: Upstream base URL
        endpoint: Endpoint to crawl
        output_dir: Directory receiving the page files
        config: Crawler configuration (defaults to CrawlerConfig())
        transport: Optional httpx transport (tests pass a MockTransport)

    Returns:
        CrawlResult of the crawl
    """
    crawler = PaginationCrawler(config)
    async with httpx.AsyncClient(
        base_url=base_url,
        timeout=crawler.config.timeout_seconds,
        transport=transport,
    ) as client:
        return await crawler.crawl(client, endpoint, output_dir)
