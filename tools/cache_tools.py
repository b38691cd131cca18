from typing import Any

from core.cache import ResourceType
from core.client import KlaviyoClient
from utils import render_json


def get_tools(client: KlaviyoClient) -> dict[str, Any]:
    async def cache_stats() -> str:
        """Report response cache size and entries per resource type."""
        if client.cache is None:
            return render_json({"enabled": False, "size": 0})
        return render_json(client.cache.stats())

    async def cache_clear(resource_type: str | None = None) -> str:
        """Clear the whole cache, or only entries of one resource type."""
        cache = client.cache
        if cache is None:
            return render_json({"cleared": 0})
        if resource_type:
            try:
                rt = ResourceType(resource_type)
            except ValueError:
                valid = ", ".join(t.value for t in ResourceType)
                return f"Unknown resource type '{resource_type}'. Valid types: {valid}"
            return render_json({"cleared": cache.clear_type(rt), "resource_type": rt.value})
        size = len(cache)
        cache.clear()
        return render_json({"cleared": size})

    return {
        "klaviyo_cache_stats": {
            "func": cache_stats,
            "title": "Cache statistics",
            "description": "Show how many API responses are cached, per resource type.",
        },
        "klaviyo_cache_clear": {
            "func": cache_clear,
            "title": "Clear cache",
            "description": "Drop cached API responses so the next read goes to Klaviyo. Optionally limit to one resource type (profiles, lists, campaigns, flows, metrics, ...).",
        },
    }
