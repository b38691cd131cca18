from typing import Any

from core.cache import ResourceType
from core.client import KlaviyoClient
from core.pagination import PaginationOptions, client_page_fetcher, fetch_all_pages
from utils import filters, render_json

FLOW_COMPACT_FIELDS = ("name", "status", "trigger_type", "archived")


def get_tools(client: KlaviyoClient) -> dict[str, Any]:
    paging = client.pagination

    async def list_flows(
        name_contains: str | None = None,
        status: str | None = None,
        archived: bool | None = None,
        filter: str | None = None,
        sort: str | None = None,
        fetch_all: bool = True,
        max_results: int = paging.max_results,
        compact: bool = True,
    ) -> str:
        """List automation flows."""
        params = {
            "filter": filters.combine(
                [
                    filters.contains("name", name_contains) if name_contains else None,
                    filters.equals("status", status) if status else None,
                    f"equals(archived,{str(archived).lower()})" if archived is not None else None,
                ],
                raw=filter,
            ),
            "sort": sort,
        }
        result = await fetch_all_pages(
            client_page_fetcher(client, "/api/flows", params, ResourceType.FLOWS),
            PaginationOptions(
                fetch_all=fetch_all,
                max_results=max_results,
                default_max_results=paging.max_results,
                compact=compact,
                compact_fields=FLOW_COMPACT_FIELDS,
                detail_hint="Use klaviyo_flows_get(flow_id) for full flow details including actions and messages",
            ),
        )
        return render_json(result)

    async def get_flow(flow_id: str, include: list[str] | None = None) -> str:
        """Fetch one flow by ID."""
        data = await client.get(f"/api/flows/{flow_id}", params={"include": include}, resource_type=ResourceType.FLOWS)
        return render_json(data)

    return {
        "klaviyo_flows_list": {
            "func": list_flows,
            "title": "List flows",
            "description": "List all automation flows (compact: id, name, status, trigger_type). For full details including actions/messages, use klaviyo_flows_get(flow_id). Fetches ALL flows automatically.",
        },
        "klaviyo_flows_get": {
            "func": get_flow,
            "title": "Get flow",
            "description": "Get a flow by ID. include may contain flow-actions and tags.",
        },
    }
