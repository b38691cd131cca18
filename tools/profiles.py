from typing import Any

from core.cache import ResourceType
from core.client import KlaviyoClient
from core.pagination import PaginationOptions, client_page_fetcher, fetch_all_pages
from utils import filters, render_json

PROFILE_COMPACT_FIELDS = ("email", "phone_number", "external_id", "first_name", "last_name", "created", "updated")


def _profile_filter(
    email: str | None,
    phone_number: str | None,
    external_id: str | None,
    created_after: str | None,
    created_before: str | None,
    updated_after: str | None,
    raw: str | None,
) -> str | None:
    return filters.combine(
        [
            filters.equals("email", email) if email else None,
            filters.equals("phone_number", phone_number) if phone_number else None,
            filters.equals("external_id", external_id) if external_id else None,
            filters.greater_than("created", created_after) if created_after else None,
            filters.less_than("created", created_before) if created_before else None,
            filters.greater_than("updated", updated_after) if updated_after else None,
        ],
        raw=raw,
    )


def _profile_body(profile_id: str | None, attributes: dict[str, Any]) -> dict[str, Any]:
    data: dict[str, Any] = {"type": "profile", "attributes": {k: v for k, v in attributes.items() if v is not None}}
    if profile_id:
        data["id"] = profile_id
    return {"data": data}


def get_tools(client: KlaviyoClient) -> dict[str, Any]:
    paging = client.pagination

    async def list_profiles(
        email: str | None = None,
        phone_number: str | None = None,
        external_id: str | None = None,
        created_after: str | None = None,
        created_before: str | None = None,
        updated_after: str | None = None,
        filter: str | None = None,
        sort: str | None = None,
        additional_fields: list[str] | None = None,
        fetch_all: bool = True,
        max_results: int = paging.max_results,
        compact: bool = True,
    ) -> str:
        """List profiles, following pagination automatically."""
        params = {
            "filter": _profile_filter(email, phone_number, external_id, created_after, created_before, updated_after, filter),
            "sort": sort,
            "additional-fields[profile]": additional_fields,
            "page[size]": paging.page_size,
        }
        result = await fetch_all_pages(
            client_page_fetcher(client, "/api/profiles", params, ResourceType.PROFILES),
            PaginationOptions(
                fetch_all=fetch_all,
                max_results=max_results,
                default_max_results=paging.max_results,
                compact=compact,
                compact_fields=PROFILE_COMPACT_FIELDS,
                detail_hint="Use klaviyo_profiles_get(profile_id) for all profile properties, subscriptions and location",
            ),
        )
        return render_json(result)

    async def get_profile(profile_id: str, additional_fields: list[str] | None = None, include: list[str] | None = None) -> str:
        """Fetch one profile by ID."""
        data = await client.get(
            f"/api/profiles/{profile_id}",
            params={"additional-fields[profile]": additional_fields, "include": include},
            resource_type=ResourceType.PROFILES,
        )
        return render_json(data)

    async def create_profile(
        email: str | None = None,
        phone_number: str | None = None,
        external_id: str | None = None,
        first_name: str | None = None,
        last_name: str | None = None,
        properties: dict[str, Any] | None = None,
    ) -> str:
        """Create a profile. At least one of email, phone_number or external_id is required."""
        if not (email or phone_number or external_id):
            return "One of email, phone_number or external_id is required to create a profile."
        body = _profile_body(None, {
            "email": email,
            "phone_number": phone_number,
            "external_id": external_id,
            "first_name": first_name,
            "last_name": last_name,
            "properties": properties,
        })
        data = await client.post("/api/profiles", body, resource_type=ResourceType.PROFILES)
        return render_json(data)

    async def update_profile(
        profile_id: str,
        email: str | None = None,
        phone_number: str | None = None,
        first_name: str | None = None,
        last_name: str | None = None,
        properties: dict[str, Any] | None = None,
    ) -> str:
        """Update attributes of an existing profile."""
        body = _profile_body(profile_id, {
            "email": email,
            "phone_number": phone_number,
            "first_name": first_name,
            "last_name": last_name,
            "properties": properties,
        })
        data = await client.patch(f"/api/profiles/{profile_id}", body, resource_type=ResourceType.PROFILES)
        return render_json(data)

    return {
        "klaviyo_profiles_list": {
            "func": list_profiles,
            "title": "List profiles",
            "description": "List profiles (compact: email, phone, name, timestamps). Fetches all pages automatically up to max_results; filter by email, phone_number, external_id or dates.",
        },
        "klaviyo_profiles_get": {
            "func": get_profile,
            "title": "Get profile",
            "description": "Get a single profile by ID with all attributes.",
        },
        "klaviyo_profiles_create": {
            "func": create_profile,
            "title": "Create profile",
            "description": "Create a new profile identified by email, phone number or external ID.",
        },
        "klaviyo_profiles_update": {
            "func": update_profile,
            "title": "Update profile",
            "description": "Update an existing profile's attributes and custom properties.",
        },
    }
