"""Unit tests for the auto-pagination engine."""

import asyncio

import httpx
import pytest

from core.errors import RateLimitError
from core.pagination import (
    AutoPaginatedResult,
    Page,
    PaginationOptions,
    client_page_fetcher,
    extract_cursor,
    fetch_all_pages,
)
from tests.helpers import jsonapi_page, make_client, next_link, three_page_documents


class RecordingFetcher:
    """Serves canned documents by cursor and records the cursors requested."""

    def __init__(self, documents: dict) -> None:
        self.documents = documents
        self.cursors: list = []

    async def __call__(self, cursor):
        self.cursors.append(cursor)
        return self.documents[cursor]


def run(fetcher, **options) -> AutoPaginatedResult:
    return asyncio.run(fetch_all_pages(fetcher, PaginationOptions(**options)))


class TestExtractCursor:
    """Tests for extract_cursor."""

    def test_encoded_and_plain_links(self) -> None:
        assert extract_cursor(next_link("/api/profiles", "abc")) == "abc"
        assert extract_cursor("https://a.klaviyo.com/api/profiles?page[cursor]=xyz&page[size]=10") == "xyz"

    def test_missing_or_malformed(self) -> None:
        assert extract_cursor(None) is None
        assert extract_cursor("") is None
        assert extract_cursor("https://a.klaviyo.com/api/profiles?page[size]=10") is None
        assert extract_cursor("http://[::1/api/profiles?page[cursor]=x") is None


class TestPage:
    """Tests for Page.from_document."""

    def test_reads_data_links_and_included(self) -> None:
        document = jsonapi_page("profile", ["1", "2"], next_link("/api/profiles", "n"))
        document["included"] = [{"type": "list", "id": "L"}]

        page = Page.from_document(document)

        assert [item["id"] for item in page.items] == ["1", "2"]
        assert page.next_cursor == "n"
        assert page.included == ({"type": "list", "id": "L"},)

    def test_non_collection_document(self) -> None:
        assert Page.from_document({}).items == ()
        assert Page.from_document(None).next_cursor is None


class TestFetchAllPages:
    """Tests for fetch_all_pages."""

    def test_fetches_every_page(self) -> None:
        """10/10/5 items over three pages are all collected in order."""
        fetcher = RecordingFetcher(three_page_documents())

        result = run(fetcher, fetch_all=True, max_results=500)

        assert fetcher.cursors == [None, "page2", "page3"]
        assert result.total == result.fetched == 25
        assert not result.truncated
        assert [item["id"] for item in result.items][:3] == ["a0", "a1", "a2"]
        assert result.items[-1]["id"] == "c4"

    def test_truncates_at_max_results(self) -> None:
        fetcher = RecordingFetcher(three_page_documents())

        result = run(fetcher, max_results=15)

        assert len(result.items) == 15
        assert result.total == 15
        assert result.truncated
        assert fetcher.cursors == [None, "page2"]

    def test_exact_cap_with_more_pages_is_truncated(self) -> None:
        fetcher = RecordingFetcher(three_page_documents())

        result = run(fetcher, max_results=20)

        assert len(result.items) == 20
        assert result.truncated

    def test_single_page_mode(self) -> None:
        """fetch_all=False returns the first page regardless of max_results."""
        fetcher = RecordingFetcher(three_page_documents())

        result = run(fetcher, fetch_all=False, max_results=3)

        assert len(result.items) == 10
        assert not result.truncated
        assert fetcher.cursors == [None]

    def test_empty_first_page(self) -> None:
        fetcher = RecordingFetcher({None: jsonapi_page("profile", [])})

        result = run(fetcher)

        assert result.items == []
        assert result.total == 0
        assert not result.truncated

    @pytest.mark.parametrize("max_results", [0, -5, None])
    def test_non_positive_cap_uses_default(self, max_results) -> None:
        fetcher = RecordingFetcher(three_page_documents())

        result = run(fetcher, max_results=max_results)

        assert result.total == 25
        assert not result.truncated

    def test_non_positive_cap_uses_configured_default(self) -> None:
        fetcher = RecordingFetcher(three_page_documents())

        result = run(fetcher, max_results=0, default_max_results=12)

        assert result.total == 12
        assert result.truncated

    def test_malformed_next_link_stops_without_error(self) -> None:
        documents = three_page_documents()
        documents["page2"]["links"]["next"] = "http://[::1/api/profiles?page[cursor]=page3"
        fetcher = RecordingFetcher(documents)

        result = run(fetcher)

        assert fetcher.cursors == [None, "page2"]
        assert result.total == 20
        assert not result.truncated

    def test_malformed_first_link_returns_first_page(self) -> None:
        documents = three_page_documents()
        documents[None]["links"]["next"] = "http://[broken"
        fetcher = RecordingFetcher(documents)

        result = run(fetcher)

        assert fetcher.cursors == [None]
        assert result.total == 10

    def test_included_accumulated_when_not_compacted(self) -> None:
        documents = three_page_documents()
        documents[None]["included"] = [{"type": "tag", "id": "t1"}]
        documents["page3"]["included"] = [{"type": "tag", "id": "t2"}]

        result = run(RecordingFetcher(documents), compact_fields=())

        assert [i["id"] for i in result.included] == ["t1", "t2"]
        assert not result.compacted
        assert result.to_dict()["included"] == result.included

    def test_compaction_applied_with_hint(self) -> None:
        documents = three_page_documents()
        documents[None]["included"] = [{"type": "tag", "id": "t1"}]

        result = run(
            RecordingFetcher(documents),
            compact=True,
            compact_fields=["name"],
            detail_hint="Use get_profile(profile_id) for details",
        )

        assert result.compacted
        assert result.included is None
        assert result.detail_hint == "Use get_profile(profile_id) for details"
        assert result.items[0] == {"type": "profile", "id": "a0", "attributes": {"name": "profile a0"}}
        rendered = result.to_dict()
        assert rendered["meta"] == {"total": 25, "fetched": 25, "truncated": False, "compacted": True}
        assert rendered["hint"] == "Use get_profile(profile_id) for details"

    def test_compact_disabled(self) -> None:
        result = run(RecordingFetcher(three_page_documents()), compact=False, compact_fields=["name"], detail_hint="hint")

        assert not result.compacted
        assert result.detail_hint is None
        assert "extra" in result.items[0]["attributes"]

    def test_errors_propagate(self) -> None:
        class FailingFetcher(RecordingFetcher):
            async def __call__(self, cursor):
                if cursor == "page2":
                    raise RateLimitError("slow down", retry_after=5)
                return await super().__call__(cursor)

        with pytest.raises(RateLimitError) as exc_info:
            run(FailingFetcher(three_page_documents()))

        assert exc_info.value.retry_after == 5

    def test_cancel_between_pages(self) -> None:
        documents = three_page_documents()
        cancel = asyncio.Event()

        async def fetcher(cursor):
            if cursor == "page2":
                cancel.set()
            return documents[cursor]

        result = asyncio.run(fetch_all_pages(fetcher, PaginationOptions(), cancel_event=cancel))

        assert result.total == 20
        assert result.truncated

    def test_accepts_page_objects(self) -> None:
        async def fetcher(cursor):
            return Page(items=({"id": "x"},))

        result = asyncio.run(fetch_all_pages(fetcher))

        assert result.items == [{"id": "x"}]


class TestClientPageFetcher:
    """Tests for fetching pages through the client."""

    def test_follows_cursor_parameter(self) -> None:
        documents = three_page_documents()
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            cursor = request.url.params.get("page[cursor]")
            seen.append((cursor, request.url.params.get("sort")))
            return httpx.Response(200, json=documents[cursor])

        client = make_client(handler)
        fetcher = client_page_fetcher(client, "/api/profiles", {"sort": "-created", "filter": None})

        result = asyncio.run(fetch_all_pages(fetcher))

        assert result.total == 25
        assert seen == [(None, "-created"), ("page2", "-created"), ("page3", "-created")]
