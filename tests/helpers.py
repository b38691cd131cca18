"""Test helpers: a manual clock, a mock-transport client and JSON:API page builders."""

from collections.abc import Callable

import httpx

from core.cache import ResponseCache
from core.client import KlaviyoClient
from core.config import PaginationSettings

TEST_API_KEY = "pk_test1234567890"  # noqa: S105
BASE = "https://a.klaviyo.com"


class FakeClock:
    """Manually advanced monotonic clock for TTL tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_client(
    handler: Callable,
    cache: ResponseCache | None = None,
    timeout_ms: int = 30000,
    pagination: PaginationSettings | None = None,
) -> KlaviyoClient:
    """Client whose HTTP traffic goes to `handler` instead of the network."""
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return KlaviyoClient(
        TEST_API_KEY, cache=cache, http_client=http_client, timeout_ms=timeout_ms, pagination=pagination
    )


def next_link(path: str, cursor: str) -> str:
    return f"{BASE}{path}?page%5Bcursor%5D={cursor}"


def jsonapi_page(resource_type: str, ids: list[str], next_url: str | None = None) -> dict:
    """Build a JSON:API collection document."""
    return {
        "data": [
            {"type": resource_type, "id": i, "attributes": {"name": f"{resource_type} {i}", "status": "live", "extra": i}}
            for i in ids
        ],
        "links": {"self": f"{BASE}/api/{resource_type}s", "next": next_url},
    }


def three_page_documents(resource_type: str = "profile", path: str = "/api/profiles") -> dict[str | None, dict]:
    """Cursor -> document for a 10/10/5 item collection linked page1 -> page2 -> page3."""
    return {
        None: jsonapi_page(resource_type, [f"a{i}" for i in range(10)], next_link(path, "page2")),
        "page2": jsonapi_page(resource_type, [f"b{i}" for i in range(10)], next_link(path, "page3")),
        "page3": jsonapi_page(resource_type, [f"c{i}" for i in range(5)], None),
    }
