"""Auto-pagination over cursor-linked JSON:API collections.

Agents should not have to page by hand: `fetch_all_pages` follows
`links.next` until the collection is exhausted or a result cap is hit,
then optionally compacts the items.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, Union
from urllib.parse import parse_qs, urlsplit

from core.cache import ResourceType
from core.client import ApiRequest, KlaviyoClient
from core.compaction import compact_items, compaction_active

logger = logging.getLogger(__name__)

CURSOR_PARAM = "page[cursor]"
DEFAULT_MAX_RESULTS = 500


def extract_cursor(next_link: Optional[str]) -> Optional[str]:
    """Cursor value of a next-page link, or None if the link is missing or unparseable."""
    if not next_link or not isinstance(next_link, str):
        return None
    try:
        query = urlsplit(next_link).query
        values = parse_qs(query).get(CURSOR_PARAM)
    except ValueError:
        logger.warning("Ignoring malformed next-page link: %s", next_link)
        return None
    return values[0] if values else None


@dataclass(frozen=True)
class Page:
    items: Tuple[Any, ...] = ()
    next_link: Optional[str] = None
    included: Tuple[Any, ...] = ()

    @property
    def next_cursor(self) -> Optional[str]:
        return extract_cursor(self.next_link)

    @classmethod
    def from_document(cls, document: Any) -> "Page":
        """Read `data`, `links.next` and `included` out of a JSON:API collection document."""
        if not isinstance(document, dict):
            return cls()
        data = document.get("data") or []
        if isinstance(data, dict):
            data = [data]
        links = document.get("links") or {}
        next_link = links.get("next") if isinstance(links, dict) else None
        return cls(
            items=tuple(data),
            next_link=next_link,
            included=tuple(document.get("included") or ()),
        )


@dataclass(frozen=True)
class PaginationOptions:
    fetch_all: Optional[bool] = True
    max_results: Optional[int] = DEFAULT_MAX_RESULTS
    compact: Optional[bool] = True
    compact_fields: Sequence[str] = ()
    detail_hint: Optional[str] = None
    default_max_results: int = DEFAULT_MAX_RESULTS

    @property
    def limit(self) -> int:
        if self.max_results is None or self.max_results <= 0:
            return self.default_max_results if self.default_max_results > 0 else DEFAULT_MAX_RESULTS
        return int(self.max_results)


@dataclass(frozen=True)
class AutoPaginatedResult:
    items: List[Any] = field(default_factory=list)
    included: Optional[List[Any]] = None
    total: int = 0
    fetched: int = 0
    truncated: bool = False
    compacted: bool = False
    detail_hint: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"data": list(self.items)}
        if self.included:
            out["included"] = list(self.included)
        out["meta"] = {
            "total": self.total,
            "fetched": self.fetched,
            "truncated": self.truncated,
            "compacted": self.compacted,
        }
        if self.detail_hint:
            out["hint"] = self.detail_hint
        return out


PageFetcher = Callable[[Optional[str]], Awaitable[Union[Page, Dict[str, Any]]]]


async def _fetch(fetch_page: PageFetcher, cursor: Optional[str]) -> Page:
    page = await fetch_page(cursor)
    return page if isinstance(page, Page) else Page.from_document(page)


def _finish(
    items: List[Any],
    included: List[Any],
    truncated: bool,
    options: PaginationOptions,
) -> AutoPaginatedResult:
    fields = tuple(options.compact_fields or ())
    compact = options.compact is not False
    if compaction_active(compact, fields):
        return AutoPaginatedResult(
            items=compact_items(items, fields),
            included=None,
            total=len(items),
            fetched=len(items),
            truncated=truncated,
            compacted=True,
            detail_hint=options.detail_hint,
        )
    return AutoPaginatedResult(
        items=items,
        included=included or None,
        total=len(items),
        fetched=len(items),
        truncated=truncated,
        compacted=False,
    )


async def fetch_all_pages(
    fetch_page: PageFetcher,
    options: Optional[PaginationOptions] = None,
    cancel_event: Optional[asyncio.Event] = None,
) -> AutoPaginatedResult:
    """Collect a cursor-paginated collection.

    `fetch_page(cursor)` performs one request and returns a `Page` (or the raw
    JSON:API document). Pages are fetched one after another. Errors raised by
    `fetch_page` propagate unchanged.

    If `cancel_event` is set between two page fetches, collection stops and
    the result is marked truncated.
    """
    options = options or PaginationOptions()
    limit = options.limit

    first = await _fetch(fetch_page, None)
    items: List[Any] = list(first.items)
    included: List[Any] = list(first.included)

    cursor = first.next_cursor
    if options.fetch_all is False or cursor is None:
        return _finish(items, included, False, options)

    pages = 1
    while cursor is not None and len(items) < limit:
        if cancel_event is not None and cancel_event.is_set():
            logger.info("Pagination cancelled after %d pages (%d items)", pages, len(items))
            break
        page = await _fetch(fetch_page, cursor)
        pages += 1
        items.extend(page.items)
        included.extend(page.included)
        cursor = page.next_cursor

    truncated = False
    if len(items) > limit:
        truncated = True
        del items[limit:]
    elif cursor is not None:
        truncated = True

    logger.debug("Fetched %d items over %d pages (truncated=%s)", len(items), pages, truncated)
    return _finish(items, included, truncated, options)


def client_page_fetcher(
    client: KlaviyoClient,
    path: str,
    params=None,
    resource_type: Optional[ResourceType] = None,
) -> PageFetcher:
    """Page fetcher that GETs `path` through the client, adding `page[cursor]` per call."""
    base = ApiRequest.build("GET", path, params, resource_type=resource_type)

    async def fetch(cursor: Optional[str]) -> Page:
        request = base.with_param(CURSOR_PARAM, cursor) if cursor else base
        document = (await client.execute(request)).unwrap()
        return Page.from_document(document)

    return fetch
