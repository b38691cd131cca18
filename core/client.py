"""Async JSON:API client for the Klaviyo REST API.

`KlaviyoClient.execute` performs exactly one HTTP exchange per request
descriptor and is the only place where transport and HTTP failures are
turned into `core.errors.ApiError` values.
"""
from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Sequence, Tuple, Union

import httpx

from core.cache import ResourceType, ResponseCache, make_cache_key
from core.config import ApiSettings, LogSettings, PaginationSettings
from core.errors import (
    ApiError,
    AuthError,
    GenericApiError,
    RequestTimeoutError,
    classify_error,
)
from utils.response_utils import robust_parse_text

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://a.klaviyo.com"
DEFAULT_REVISION = "2025-01-15"
DEFAULT_TIMEOUT_MS = 30000
READ_METHODS = ("GET", "HEAD")

ParamValue = Union[str, int, float, bool, Sequence[str], None]


def _param_value(value: ParamValue) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        joined = ",".join(str(v) for v in value if v is not None and v != "")
        return joined or None
    text = str(value)
    return text if text != "" else None


def normalize_params(params: Optional[Union[Mapping[str, ParamValue], Iterable[Tuple[str, ParamValue]]]]) -> Tuple[Tuple[str, str], ...]:
    """Ordered query parameters with None and empty values dropped; lists are comma-joined."""
    if not params:
        return ()
    items = params.items() if isinstance(params, Mapping) else params
    out = []
    for key, value in items:
        text = _param_value(value)
        if text is not None:
            out.append((key, text))
    return tuple(out)


@dataclass(frozen=True)
class ApiRequest:
    """One request against the API. Build with `ApiRequest.build` to normalise params."""

    method: str
    path: str
    params: Tuple[Tuple[str, str], ...] = ()
    body: Any = None
    timeout_ms: Optional[int] = None
    resource_type: Optional[ResourceType] = None
    invalidates: bool = True

    @classmethod
    def build(
        cls,
        method: str,
        path: str,
        params=None,
        body: Any = None,
        timeout_ms: Optional[int] = None,
        resource_type: Optional[ResourceType] = None,
        invalidates: bool = True,
    ) -> "ApiRequest":
        return cls(
            method=method.upper(),
            path=path,
            params=normalize_params(params),
            body=body,
            timeout_ms=timeout_ms,
            resource_type=resource_type,
            invalidates=invalidates,
        )

    def with_param(self, key: str, value: ParamValue) -> "ApiRequest":
        """Copy of this request with `key` replaced (or removed when value is empty)."""
        kept = [(k, v) for k, v in self.params if k != key]
        text = _param_value(value)
        if text is not None:
            kept.append((key, text))
        return ApiRequest(
            self.method, self.path, tuple(kept), self.body, self.timeout_ms, self.resource_type, self.invalidates
        )

    def cache_key(self) -> str:
        return make_cache_key(self.method, self.path, dict(self.params), self.body)


@dataclass(frozen=True)
class ApiResult:
    """Outcome of `KlaviyoClient.execute`: either a decoded value or an ApiError."""

    value: Any = None
    error: Optional[ApiError] = None
    from_cache: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> Any:
        if self.error is not None:
            raise self.error
        return self.value


class KlaviyoClient:
    def __init__(
        self,
        api_key: Optional[str],
        *,
        base_url: str = DEFAULT_BASE_URL,
        revision: str = DEFAULT_REVISION,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        api_key_prefix: str = "pk_",
        auth_header: str = "Authorization",
        auth_scheme: str = "Klaviyo-API-Key",
        revision_header: str = "revision",
        content_type: str = "application/vnd.api+json",
        cache: Optional[ResponseCache] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        log_requests: bool = False,
        log_responses: bool = False,
        pagination: Optional[PaginationSettings] = None,
    ):
        if not api_key:
            raise AuthError("API key is required", status_code=None)
        if api_key_prefix and not api_key.startswith(api_key_prefix):
            raise AuthError(f'Invalid API key format - must start with "{api_key_prefix}"', status_code=None)

        self._api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.revision = revision
        self.timeout_ms = timeout_ms if timeout_ms and timeout_ms > 0 else DEFAULT_TIMEOUT_MS
        self.auth_header = auth_header
        self.auth_scheme = auth_scheme
        self.revision_header = revision_header
        self.content_type = content_type
        self.cache = cache
        self.log_requests = log_requests
        self.log_responses = log_responses
        self.pagination = pagination or PaginationSettings()
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient()

    @classmethod
    def from_settings(
        cls,
        settings: ApiSettings,
        cache: Optional[ResponseCache] = None,
        log_settings: Optional[LogSettings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        pagination: Optional[PaginationSettings] = None,
    ) -> "KlaviyoClient":
        log_settings = log_settings or LogSettings()
        return cls(
            settings.api_key,
            base_url=settings.base_url,
            revision=settings.revision,
            timeout_ms=settings.timeout_ms,
            api_key_prefix=settings.api_key_prefix,
            auth_header=settings.auth_header,
            auth_scheme=settings.auth_scheme,
            revision_header=settings.revision_header,
            content_type=settings.content_type,
            cache=cache,
            http_client=http_client,
            log_requests=log_settings.log_requests,
            log_responses=log_settings.log_responses,
            pagination=pagination,
        )

    async def __aenter__(self) -> "KlaviyoClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    def _headers(self) -> dict[str, str]:
        return {
            self.auth_header: f"{self.auth_scheme} {self._api_key}",
            self.revision_header: self.revision,
            "Content-Type": self.content_type,
            "Accept": self.content_type,
        }

    def _resource_type(self, request: ApiRequest) -> ResourceType:
        if request.resource_type is not None:
            return request.resource_type
        if self.cache is not None:
            return self.cache.resource_type_for(request.path)
        return ResourceType.DEFAULT

    async def execute(self, request: ApiRequest) -> ApiResult:
        """Run one request. Never raises ApiError; failures come back in `ApiResult.error`."""
        cache = self.cache
        is_read = request.method in READ_METHODS
        key = request.cache_key() if cache is not None and is_read else None

        if key is not None:
            cached = cache.get(key)
            if cached is not None:
                return ApiResult(value=cached, from_cache=True)

        try:
            value = await self._send(request)
        except ApiError as exc:
            return ApiResult(error=exc)

        if cache is not None:
            resource_type = self._resource_type(request)
            if key is not None:
                cache.set(key, value, resource_type)
            elif request.invalidates:
                cache.clear_type(resource_type)
        return ApiResult(value=value)

    async def request(
        self,
        method: str,
        path: str,
        params=None,
        body: Any = None,
        timeout_ms: Optional[int] = None,
        resource_type: Optional[ResourceType] = None,
        invalidates: bool = True,
    ) -> Any:
        """Build, execute and unwrap a request; raises ApiError on failure."""
        api_request = ApiRequest.build(method, path, params, body, timeout_ms, resource_type, invalidates)
        return (await self.execute(api_request)).unwrap()

    async def get(self, path: str, params=None, resource_type: Optional[ResourceType] = None) -> Any:
        return await self.request("GET", path, params=params, resource_type=resource_type)

    async def post(
        self,
        path: str,
        body: Any = None,
        params=None,
        resource_type: Optional[ResourceType] = None,
        invalidates: bool = True,
    ) -> Any:
        """POST `body`. Pass invalidates=False for query endpoints that only read."""
        return await self.request(
            "POST", path, params=params, body=body, resource_type=resource_type, invalidates=invalidates
        )

    async def patch(self, path: str, body: Any = None, params=None, resource_type: Optional[ResourceType] = None) -> Any:
        return await self.request("PATCH", path, params=params, body=body, resource_type=resource_type)

    async def delete(self, path: str, body: Any = None, resource_type: Optional[ResourceType] = None) -> Any:
        return await self.request("DELETE", path, body=body, resource_type=resource_type)

    async def _send(self, request: ApiRequest) -> Any:
        url = f"{self.base_url}{request.path}"
        timeout_ms = request.timeout_ms if request.timeout_ms and request.timeout_ms > 0 else self.timeout_ms
        timeout = timeout_ms / 1000.0
        content = json.dumps(request.body).encode("utf-8") if request.body is not None else None

        if self.log_requests:
            logger.debug("API Request: %s %s params=%s body=%s", request.method, url, list(request.params), request.body)

        started = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._http.request(
                    request.method,
                    url,
                    params=list(request.params),
                    content=content,
                    headers=self._headers(),
                    timeout=timeout,
                ),
                timeout=timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            logger.warning("%s %s timed out after %dms", request.method, request.path, timeout_ms)
            raise RequestTimeoutError() from None
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.warning("%s %s failed: %s", request.method, request.path, exc)
            raise GenericApiError(f"Request failed: {str(exc) or type(exc).__name__}") from exc

        if self.log_responses:
            logger.debug(
                "API Response: %s %s -> %s (%dms)",
                request.method,
                url,
                response.status_code,
                (time.monotonic() - started) * 1000,
            )

        if not response.is_success:
            raise self._error_from_response(response)

        if response.status_code == 204 or not response.content:
            return {}

        try:
            return response.json()
        except ValueError as exc:
            raise GenericApiError(f"Invalid JSON in response: {exc}", response.status_code) from exc

    @staticmethod
    def _error_from_response(response: httpx.Response) -> ApiError:
        try:
            body = robust_parse_text(response.text)
        except Exception:
            body = None
        return classify_error(
            response.status_code,
            body,
            status_text=response.reason_phrase or "",
            retry_after=response.headers.get("Retry-After"),
        )
