from datetime import datetime, timezone
from typing import Any

from core.cache import ResourceType
from core.client import KlaviyoClient
from core.pagination import PaginationOptions, client_page_fetcher, fetch_all_pages
from utils import filters, render_json


def get_tools(client: KlaviyoClient) -> dict[str, Any]:
    paging = client.pagination

    async def list_events(
        metric_id: str | None = None,
        profile_id: str | None = None,
        since: str | None = None,
        until: str | None = None,
        filter: str | None = None,
        sort: str = "-datetime",
        fetch_all: bool = True,
        max_results: int = paging.max_results,
    ) -> str:
        """List events, newest first by default."""
        params = {
            "filter": filters.combine(
                [
                    filters.equals("metric_id", metric_id) if metric_id else None,
                    filters.equals("profile_id", profile_id) if profile_id else None,
                    filters.greater_or_equal("datetime", since) if since else None,
                    filters.less_than("datetime", until) if until else None,
                ],
                raw=filter,
            ),
            "sort": sort,
        }
        result = await fetch_all_pages(
            client_page_fetcher(client, "/api/events", params, ResourceType.EVENTS),
            PaginationOptions(fetch_all=fetch_all, max_results=max_results, default_max_results=paging.max_results),
        )
        return render_json(result)

    async def get_event(event_id: str, include: list[str] | None = None) -> str:
        """Fetch one event by ID."""
        data = await client.get(f"/api/events/{event_id}", params={"include": include}, resource_type=ResourceType.EVENTS)
        return render_json(data)

    async def create_event(
        metric_name: str,
        email: str | None = None,
        phone_number: str | None = None,
        external_id: str | None = None,
        properties: dict[str, Any] | None = None,
        value: float | None = None,
        time: str | None = None,
        unique_id: str | None = None,
    ) -> str:
        """Track an event for a profile."""
        if not (email or phone_number or external_id):
            return "One of email, phone_number or external_id is required to identify the profile."
        profile_attributes = {k: v for k, v in {"email": email, "phone_number": phone_number, "external_id": external_id}.items() if v}
        attributes: dict[str, Any] = {
            "properties": properties or {},
            "time": time or datetime.now(timezone.utc).isoformat(),
            "metric": {"data": {"type": "metric", "attributes": {"name": metric_name}}},
            "profile": {"data": {"type": "profile", "attributes": profile_attributes}},
        }
        if value is not None:
            attributes["value"] = value
        if unique_id:
            attributes["unique_id"] = unique_id
        body = {"data": {"type": "event", "attributes": attributes}}
        data = await client.post("/api/events", body, resource_type=ResourceType.EVENTS)
        return render_json(data or {"created": True})

    return {
        "klaviyo_events_list": {"func": list_events, "title": "List events", "description": "List events filtered by metric, profile or datetime range. Fetches all pages automatically up to max_results."},
        "klaviyo_events_get": {"func": get_event, "title": "Get event", "description": "Get an event by ID, optionally including its metric and profile."},
        "klaviyo_events_create": {"func": create_event, "title": "Create event", "description": "Track a custom event (by metric name) for a profile identified by email, phone number or external ID."},
    }
