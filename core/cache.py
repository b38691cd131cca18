"""In-memory response cache for read requests.

Entries expire per resource type (TTL table) and the cache evicts the
least recently accessed fifth of its entries when full. Expired entries
are dropped lazily on lookup; an optional background task sweeps them
periodically to reclaim memory.
"""
from __future__ import annotations

import asyncio
import json
import logging
import math
import re
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional, Pattern, Union

from core.config import CacheSettings

logger = logging.getLogger(__name__)

EVICTION_FRACTION = 0.2


class ResourceType(str, Enum):
    METRICS = "metrics"
    CAMPAIGNS = "campaigns"
    FLOWS = "flows"
    TEMPLATES = "templates"
    LISTS = "lists"
    SEGMENTS = "segments"
    PROFILES = "profiles"
    TAGS = "tags"
    EVENTS = "events"
    DEFAULT = "default"


DEFAULT_TTL_SECONDS: Dict[ResourceType, int] = {
    ResourceType.METRICS: 3600,
    ResourceType.CAMPAIGNS: 1800,
    ResourceType.FLOWS: 1800,
    ResourceType.TEMPLATES: 3600,
    ResourceType.LISTS: 900,
    ResourceType.SEGMENTS: 900,
    ResourceType.PROFILES: 300,
    ResourceType.TAGS: 3600,
    ResourceType.EVENTS: 300,
    ResourceType.DEFAULT: 600,
}

DEFAULT_ROUTES: Dict[str, ResourceType] = {
    "/api/metrics": ResourceType.METRICS,
    "/api/campaigns": ResourceType.CAMPAIGNS,
    "/api/flows": ResourceType.FLOWS,
    "/api/templates": ResourceType.TEMPLATES,
    "/api/lists": ResourceType.LISTS,
    "/api/segments": ResourceType.SEGMENTS,
    "/api/profiles": ResourceType.PROFILES,
    "/api/tags": ResourceType.TAGS,
    "/api/events": ResourceType.EVENTS,
}


@dataclass
class CacheEntry:
    value: Any
    resource_type: ResourceType
    created_at: float
    last_accessed_at: float
    expires_at: float


def make_cache_key(
    method: str,
    path: str,
    params: Optional[Mapping[str, Any]] = None,
    body: Any = None,
) -> str:
    """Deterministic key for a request: equal inputs always give equal keys."""
    param_str = json.dumps(dict(params), sort_keys=True, default=str) if params else ""
    body_str = json.dumps(body, sort_keys=True, default=str) if body is not None else ""
    key = f"{method.upper()}:{path}:{param_str}"
    if body_str:
        key = f"{key}:{body_str}"
    return key


def _short(key: str) -> str:
    return key if len(key) <= 60 else key[:60] + "..."


class ResponseCache:
    """TTL and size bounded cache of decoded API responses.

    Owned by whoever builds the client and passed to it explicitly. All
    access happens on one event loop, so the entry map needs no lock.
    """

    def __init__(
        self,
        enabled: bool = True,
        max_size: int = 100,
        ttl_seconds: Optional[Mapping[Union[ResourceType, str], int]] = None,
        routes: Optional[Mapping[str, Union[ResourceType, str]]] = None,
        sweep_interval: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.enabled = enabled
        self.max_size = max(1, int(max_size))
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._sweep_task: Optional[asyncio.Task] = None

        self._ttl: Dict[ResourceType, int] = dict(DEFAULT_TTL_SECONDS)
        for name, seconds in (ttl_seconds or {}).items():
            self._ttl[ResourceType(name)] = int(seconds)

        route_table = {prefix: ResourceType(rt) for prefix, rt in (routes or DEFAULT_ROUTES).items()}
        # longest prefix first so "/api/metric-aggregates" beats a shorter match
        self._routes = sorted(route_table.items(), key=lambda kv: len(kv[0]), reverse=True)

    @classmethod
    def from_settings(cls, settings: CacheSettings, clock: Callable[[], float] = time.monotonic) -> "ResponseCache":
        return cls(
            enabled=settings.enabled,
            max_size=settings.max_size,
            ttl_seconds=settings.ttl_seconds,
            routes=settings.routes or None,
            sweep_interval=settings.sweep_interval_seconds,
            clock=clock,
        )

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.has(key)

    def resource_type_for(self, path: str) -> ResourceType:
        """Resolve the resource type of an API path from the declared route prefixes."""
        for prefix, resource_type in self._routes:
            if path == prefix or path.startswith(prefix + "/") or path.startswith(prefix + "?"):
                return resource_type
        return ResourceType.DEFAULT

    def ttl_for(self, resource_type: ResourceType) -> int:
        return self._ttl.get(resource_type, self._ttl[ResourceType.DEFAULT])

    def has(self, key: str) -> bool:
        if not self.enabled:
            return False
        entry = self._entries.get(key)
        if entry is None:
            return False
        if self._clock() >= entry.expires_at:
            del self._entries[key]
            return False
        return True

    def get(self, key: str) -> Any:
        """Return the cached value, or None on a miss or an expired entry."""
        if not self.has(key):
            return None
        entry = self._entries[key]
        entry.last_accessed_at = self._clock()
        logger.debug("Cache hit: %s", _short(key))
        return entry.value

    def set(self, key: str, value: Any, resource_type: Optional[ResourceType] = None) -> bool:
        """Store `value` under `key`. Returns False when nothing was stored."""
        if not self.enabled or value is None:
            return False

        if resource_type is None:
            parts = key.split(":", 2)
            resource_type = self.resource_type_for(parts[1] if len(parts) > 1 else key)
        ttl = self.ttl_for(resource_type)

        if key not in self._entries and len(self._entries) >= self.max_size:
            self._evict_oldest()

        now = self._clock()
        self._entries[key] = CacheEntry(
            value=value,
            resource_type=resource_type,
            created_at=now,
            last_accessed_at=now,
            expires_at=now + ttl,
        )
        logger.debug("Cache set: %s (TTL: %ss)", _short(key), ttl)
        return True

    def _evict_oldest(self) -> None:
        ordered = sorted(self._entries.items(), key=lambda kv: kv[1].last_accessed_at)
        to_remove = max(1, math.ceil(len(ordered) * EVICTION_FRACTION))
        for key, _ in ordered[:to_remove]:
            del self._entries[key]
            logger.debug("Cache evicted: %s", _short(key))

    def sweep_expired(self) -> int:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if now >= entry.expires_at]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("Cleared %d expired cache items", len(expired))
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()
        logger.info("Cache cleared")

    def clear_type(self, resource_type: Union[ResourceType, str]) -> int:
        resource_type = ResourceType(resource_type)
        keys = [key for key, entry in self._entries.items() if entry.resource_type == resource_type]
        for key in keys:
            del self._entries[key]
        if keys:
            logger.info("Cleared %d %s cache items", len(keys), resource_type.value)
        return len(keys)

    def invalidate(self, pattern: Union[str, Pattern[str]]) -> int:
        """Drop every entry whose key matches `pattern` (regex search)."""
        regex = re.compile(pattern) if isinstance(pattern, str) else pattern
        keys = [key for key in self._entries if regex.search(key)]
        for key in keys:
            del self._entries[key]
        if keys:
            logger.debug("Invalidated %d cache entries matching %s", len(keys), regex.pattern)
        return len(keys)

    def stats(self) -> Dict[str, Any]:
        by_type: Dict[str, int] = {}
        for entry in self._entries.values():
            by_type[entry.resource_type.value] = by_type.get(entry.resource_type.value, 0) + 1
        return {
            "enabled": self.enabled,
            "size": len(self._entries),
            "max_size": self.max_size,
            "by_type": by_type,
        }

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            self.sweep_expired()

    def start(self) -> None:
        """Start the periodic expiry sweep on the running event loop."""
        if not self.enabled:
            logger.info("Cache is disabled")
            return
        if self._sweep_task is not None and not self._sweep_task.done():
            self._sweep_task.cancel()
        self._sweep_task = asyncio.get_running_loop().create_task(self._sweep_loop())
        logger.info(
            "Cache initialized (max_size=%d, sweep_interval=%ss, ttl=%s)",
            self.max_size,
            self.sweep_interval,
            {rt.value: ttl for rt, ttl in self._ttl.items()},
        )

    async def shutdown(self) -> None:
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None
        self.clear()
