from typing import Any

from core.cache import ResourceType
from core.client import KlaviyoClient
from core.pagination import PaginationOptions, client_page_fetcher, fetch_all_pages
from utils import filters, render_json

LIST_COMPACT_FIELDS = ("name", "created", "updated", "opt_in_process")


def _profile_relationships(profile_ids: list[str]) -> dict[str, Any]:
    return {"data": [{"type": "profile", "id": pid} for pid in profile_ids]}


def get_tools(client: KlaviyoClient) -> dict[str, Any]:
    paging = client.pagination

    async def list_lists(
        name: str | None = None,
        created_after: str | None = None,
        filter: str | None = None,
        fetch_all: bool = True,
        max_results: int = paging.max_results,
        compact: bool = True,
    ) -> str:
        """List all lists in the account."""
        params = {
            "filter": filters.combine(
                [
                    filters.equals("name", name) if name else None,
                    filters.greater_than("created", created_after) if created_after else None,
                ],
                raw=filter,
            ),
        }
        result = await fetch_all_pages(
            client_page_fetcher(client, "/api/lists", params, ResourceType.LISTS),
            PaginationOptions(
                fetch_all=fetch_all,
                max_results=max_results,
                default_max_results=paging.max_results,
                compact=compact,
                compact_fields=LIST_COMPACT_FIELDS,
                detail_hint="Use klaviyo_lists_get(list_id) for full list details including profile count",
            ),
        )
        return render_json(result)

    async def get_list(list_id: str, include_profile_count: bool = False) -> str:
        """Fetch one list by ID."""
        params = {"additional-fields[list]": "profile_count" if include_profile_count else None}
        data = await client.get(f"/api/lists/{list_id}", params=params, resource_type=ResourceType.LISTS)
        return render_json(data)

    async def create_list(name: str) -> str:
        """Create a new list."""
        body = {"data": {"type": "list", "attributes": {"name": name}}}
        return render_json(await client.post("/api/lists", body, resource_type=ResourceType.LISTS))

    async def update_list(list_id: str, name: str) -> str:
        """Rename a list."""
        body = {"data": {"type": "list", "id": list_id, "attributes": {"name": name}}}
        return render_json(await client.patch(f"/api/lists/{list_id}", body, resource_type=ResourceType.LISTS))

    async def delete_list(list_id: str) -> str:
        """Delete a list."""
        await client.delete(f"/api/lists/{list_id}", resource_type=ResourceType.LISTS)
        return render_json({"deleted": True, "list_id": list_id})

    async def get_list_profiles(
        list_id: str,
        email: str | None = None,
        fetch_all: bool = True,
        max_results: int = paging.max_results,
    ) -> str:
        """List the profiles that belong to a list."""
        params = {
            "filter": filters.equals("email", email) if email else None,
            "page[size]": paging.page_size,
        }
        result = await fetch_all_pages(
            client_page_fetcher(client, f"/api/lists/{list_id}/profiles", params, ResourceType.LISTS),
            PaginationOptions(fetch_all=fetch_all, max_results=max_results, default_max_results=paging.max_results),
        )
        return render_json(result)

    async def add_profiles(list_id: str, profile_ids: list[str]) -> str:
        """Add existing profiles to a list."""
        await client.post(
            f"/api/lists/{list_id}/relationships/profiles",
            _profile_relationships(profile_ids),
            resource_type=ResourceType.LISTS,
        )
        return render_json({"added": len(profile_ids), "list_id": list_id})

    async def remove_profiles(list_id: str, profile_ids: list[str]) -> str:
        """Remove profiles from a list."""
        await client.delete(
            f"/api/lists/{list_id}/relationships/profiles",
            _profile_relationships(profile_ids),
            resource_type=ResourceType.LISTS,
        )
        return render_json({"removed": len(profile_ids), "list_id": list_id})

    return {
        "klaviyo_lists_list": {"func": list_lists, "title": "List lists", "description": "List all lists (compact: name, timestamps). Fetches all pages automatically."},
        "klaviyo_lists_get": {"func": get_list, "title": "Get list", "description": "Get a list by ID, optionally with its profile count."},
        "klaviyo_lists_create": {"func": create_list, "title": "Create list", "description": "Create a new list with the given name."},
        "klaviyo_lists_update": {"func": update_list, "title": "Update list", "description": "Rename an existing list."},
        "klaviyo_lists_delete": {"func": delete_list, "title": "Delete list", "description": "Delete a list. Profiles are not deleted."},
        "klaviyo_lists_get_profiles": {"func": get_list_profiles, "title": "Get list profiles", "description": "List the profiles in a list. Fetches all pages automatically."},
        "klaviyo_lists_add_profiles": {"func": add_profiles, "title": "Add profiles to list", "description": "Add profiles (by profile ID) to a list."},
        "klaviyo_lists_remove_profiles": {"func": remove_profiles, "title": "Remove profiles from list", "description": "Remove profiles (by profile ID) from a list."},
    }
