from typing import Any

from core.cache import ResourceType
from core.client import KlaviyoClient
from core.pagination import PaginationOptions, client_page_fetcher, fetch_all_pages
from utils import filters, render_json

MEASUREMENTS = ("count", "sum_value", "unique")
INTERVALS = ("hour", "day", "week", "month")


def get_tools(client: KlaviyoClient) -> dict[str, Any]:
    paging = client.pagination

    async def list_metrics(
        integration_name: str | None = None,
        integration_category: str | None = None,
        filter: str | None = None,
        fetch_all: bool = True,
        max_results: int = paging.max_results,
    ) -> str:
        """List metrics (event types such as "Placed Order" or "Opened Email")."""
        params = {
            "filter": filters.combine(
                [
                    filters.equals("integration.name", integration_name) if integration_name else None,
                    filters.equals("integration.category", integration_category) if integration_category else None,
                ],
                raw=filter,
            ),
        }
        result = await fetch_all_pages(
            client_page_fetcher(client, "/api/metrics", params, ResourceType.METRICS),
            PaginationOptions(fetch_all=fetch_all, max_results=max_results, default_max_results=paging.max_results),
        )
        return render_json(result)

    async def get_metric(metric_id: str) -> str:
        """Fetch one metric by ID."""
        return render_json(await client.get(f"/api/metrics/{metric_id}", resource_type=ResourceType.METRICS))

    async def query_aggregate(
        metric_id: str,
        start_date: str,
        end_date: str,
        measurement: str = "count",
        interval: str = "day",
        by: list[str] | None = None,
        timezone: str = "UTC",
    ) -> str:
        """Aggregate a metric over a date range, optionally grouped by dimensions."""
        if measurement not in MEASUREMENTS:
            return f"measurement must be one of {', '.join(MEASUREMENTS)}"
        if interval not in INTERVALS:
            return f"interval must be one of {', '.join(INTERVALS)}"
        attributes: dict[str, Any] = {
            "metric_id": metric_id,
            "measurements": [measurement],
            "interval": interval,
            "timezone": timezone,
            "filter": [
                filters.greater_or_equal("datetime", f"{start_date}T00:00:00"),
                filters.less_than("datetime", f"{end_date}T23:59:59"),
            ],
        }
        if by:
            attributes["by"] = by
        body = {"data": {"type": "metric-aggregate", "attributes": attributes}}
        # aggregate queries only read
        data = await client.post(
            "/api/metric-aggregates", body, resource_type=ResourceType.METRICS, invalidates=False
        )
        return render_json(data)

    return {
        "klaviyo_metrics_list": {
            "func": list_metrics,
            "title": "List metrics",
            "description": "List all metrics (event types) in the account. Fetches ALL metrics automatically (no manual pagination needed).",
        },
        "klaviyo_metrics_get": {
            "func": get_metric,
            "title": "Get metric",
            "description": "Get a metric by ID, including its integration.",
        },
        "klaviyo_metrics_query_aggregate": {
            "func": query_aggregate,
            "title": "Query metric aggregate",
            "description": "Aggregate a metric (count, sum_value or unique) between two dates, bucketed by interval and optionally grouped by dimensions such as $flow or $attributed_channel.",
        },
    }
