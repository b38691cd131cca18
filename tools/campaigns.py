from typing import Any

from core.cache import ResourceType
from core.client import KlaviyoClient
from core.pagination import PaginationOptions, client_page_fetcher, fetch_all_pages
from utils import filters, render_json

CAMPAIGN_COMPACT_FIELDS = ("name", "status", "archived", "created_at", "scheduled_at", "send_time")
CAMPAIGN_DETAIL_HINT = "Use klaviyo_campaigns_get(campaign_id) for full campaign details including messages and audiences"


def get_tools(client: KlaviyoClient) -> dict[str, Any]:
    paging = client.pagination

    async def list_campaigns(
        channel: str = "email",
        name: str | None = None,
        name_contains: str | None = None,
        status: str | None = None,
        archived: bool | None = None,
        created_after: str | None = None,
        filter: str | None = None,
        sort: str | None = None,
        fetch_all: bool = True,
        max_results: int = paging.max_results,
        compact: bool = True,
    ) -> str:
        """List campaigns for one channel (email, sms or push)."""
        # the campaigns endpoint rejects requests without a channel filter
        params = {
            "filter": filters.combine(
                [
                    filters.equals("messages.channel", channel),
                    filters.equals("name", name) if name else None,
                    filters.contains("name", name_contains) if name_contains else None,
                    filters.equals("status", status) if status else None,
                    f"equals(archived,{str(archived).lower()})" if archived is not None else None,
                    filters.greater_than("created_at", created_after) if created_after else None,
                ],
                raw=filter,
            ),
            "sort": sort,
        }
        result = await fetch_all_pages(
            client_page_fetcher(client, "/api/campaigns", params, ResourceType.CAMPAIGNS),
            PaginationOptions(
                fetch_all=fetch_all,
                max_results=max_results,
                default_max_results=paging.max_results,
                compact=compact,
                compact_fields=CAMPAIGN_COMPACT_FIELDS,
                detail_hint=CAMPAIGN_DETAIL_HINT,
            ),
        )
        return render_json(result)

    async def get_campaign(campaign_id: str, include: list[str] | None = None) -> str:
        """Fetch one campaign by ID."""
        data = await client.get(
            f"/api/campaigns/{campaign_id}",
            params={"include": include},
            resource_type=ResourceType.CAMPAIGNS,
        )
        return render_json(data)

    async def get_campaign_messages(campaign_id: str) -> str:
        """Fetch the messages of a campaign."""
        data = await client.get(f"/api/campaigns/{campaign_id}/campaign-messages", resource_type=ResourceType.CAMPAIGNS)
        return render_json(data)

    return {
        "klaviyo_campaigns_list": {
            "func": list_campaigns,
            "title": "List campaigns",
            "description": "List all campaigns (compact: id, name, status, timestamps). For full campaign details, use klaviyo_campaigns_get(campaign_id). Fetches ALL campaigns automatically.",
        },
        "klaviyo_campaigns_get": {
            "func": get_campaign,
            "title": "Get campaign",
            "description": "Get a campaign by ID. include may contain campaign-messages and tags.",
        },
        "klaviyo_campaigns_get_messages": {
            "func": get_campaign_messages,
            "title": "Get campaign messages",
            "description": "Get the messages (content, channel, send times) of a campaign.",
        },
    }
