"""`klaviyo://{type}/{id}` resource templates.

Lets an assistant load a single Klaviyo object as context without a tool
call. Each template resolves to one GET through the shared client, so reads
are served from the response cache when possible.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from core.cache import ResourceType
from core.client import KlaviyoClient

logger = logging.getLogger(__name__)

URI_SCHEME = "klaviyo"
_URI_RE = re.compile(r"^klaviyo://(\w+)/(.+)$")


@dataclass(frozen=True)
class ResourceTemplate:
    kind: str
    path: str
    resource_type: ResourceType
    name: str
    description: str
    params: Dict[str, str] = field(default_factory=dict)

    @property
    def uri_template(self) -> str:
        return f"{URI_SCHEME}://{self.kind}/{{id}}"


RESOURCE_TEMPLATES: Tuple[ResourceTemplate, ...] = (
    ResourceTemplate(
        "profile", "/api/profiles/{id}", ResourceType.PROFILES, "Klaviyo Profile",
        "Access a Klaviyo profile by ID. Returns profile attributes, subscriptions, and custom properties.",
        {"additional-fields[profile]": "subscriptions,predictive_analytics"},
    ),
    ResourceTemplate(
        "list", "/api/lists/{id}", ResourceType.LISTS, "Klaviyo List",
        "Access a Klaviyo list by ID. Returns list details including profile count.",
        {"additional-fields[list]": "profile_count"},
    ),
    ResourceTemplate(
        "segment", "/api/segments/{id}", ResourceType.SEGMENTS, "Klaviyo Segment",
        "Access a Klaviyo segment by ID. Returns segment definition and profile count.",
        {"additional-fields[segment]": "profile_count"},
    ),
    ResourceTemplate(
        "campaign", "/api/campaigns/{id}", ResourceType.CAMPAIGNS, "Klaviyo Campaign",
        "Access a Klaviyo campaign by ID. Returns campaign details, audiences, and send settings.",
        {"include": "campaign-messages,tags"},
    ),
    ResourceTemplate(
        "flow", "/api/flows/{id}", ResourceType.FLOWS, "Klaviyo Flow",
        "Access a Klaviyo flow by ID. Returns flow details, status, and trigger information.",
        {"include": "flow-actions,tags"},
    ),
    ResourceTemplate(
        "template", "/api/templates/{id}", ResourceType.TEMPLATES, "Klaviyo Template",
        "Access a Klaviyo email template by ID. Returns template HTML and text content.",
    ),
    ResourceTemplate(
        "metric", "/api/metrics/{id}", ResourceType.METRICS, "Klaviyo Metric",
        "Access a Klaviyo metric by ID. Returns metric details and integration info.",
    ),
    ResourceTemplate(
        "tag", "/api/tags/{id}", ResourceType.TAGS, "Klaviyo Tag",
        "Access a Klaviyo tag by ID. Returns tag details and associated resources.",
        {"include": "tag-group"},
    ),
)

TEMPLATES_BY_KIND: Dict[str, ResourceTemplate] = {t.kind: t for t in RESOURCE_TEMPLATES}


def parse_resource_uri(uri: str) -> Optional[Tuple[str, str]]:
    match = _URI_RE.match(uri)
    if not match:
        return None
    return match.group(1), match.group(2)


async def fetch_resource(client: KlaviyoClient, kind: str, resource_id: str) -> Any:
    """GET the object behind `klaviyo://{kind}/{resource_id}`. ApiError propagates."""
    template = TEMPLATES_BY_KIND.get(kind)
    if template is None:
        raise ValueError(f"Unknown resource type: {kind}")
    logger.debug("Fetching resource: %s/%s", kind, resource_id)
    return await client.get(
        template.path.format(id=resource_id),
        params=template.params,
        resource_type=template.resource_type,
    )


async def fetch_resource_uri(client: KlaviyoClient, uri: str) -> Any:
    parsed = parse_resource_uri(uri)
    if parsed is None:
        raise ValueError(f"Invalid resource URI: {uri}")
    return await fetch_resource(client, *parsed)
