"""Trim JSON:API resource objects down to a handful of attributes so list
results stay small when handed to a language model."""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

IDENTITY_FIELDS = ("type", "id")


def compaction_active(compact: bool, fields: Optional[Sequence[str]]) -> bool:
    return bool(compact and fields)


def compact_item(item: Any, fields: Sequence[str]) -> Any:
    """Return a new object holding `type`, `id` and only the listed attributes.

    Non-dict items are returned as-is; the input is never mutated.
    """
    if not isinstance(item, dict):
        return item
    projected: Dict[str, Any] = {key: item[key] for key in IDENTITY_FIELDS if key in item}
    attributes = item.get("attributes")
    if isinstance(attributes, dict):
        projected["attributes"] = {name: attributes[name] for name in fields if name in attributes}
    else:
        projected["attributes"] = {}
    return projected


def compact_items(items: Sequence[Any], fields: Sequence[str]) -> List[Any]:
    return [compact_item(item, fields) for item in items]
