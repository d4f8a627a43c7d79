"""HTTP client for the ScrapeCreators TikTok endpoints."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

import httpx

from comment_radar.config import Settings
from comment_radar.logging import get_logger
from comment_radar.models.common import Cursor
from comment_radar.utils.payload import extract_cursor, extract_has_more, extract_items

logger = get_logger(__name__)

TRANSIENT_STATUS_CODES = frozenset({502, 503, 504})
RAW_BODY_LIMIT = 500


class Endpoint(str, Enum):
    VIDEO_COMMENTS = "/tiktok/video/comments"
    USER_VIDEOS = "/tiktok/profile/videos"
    KEYWORD_SEARCH = "/tiktok/search/keyword"
    VIDEO_INFO = "/tiktok/video"


class UpstreamFailure(RuntimeError):
    """Raised when the provider cannot return a usable payload."""

    def __init__(self, message: str, status: Optional[int] = None, raw_body: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.raw_body = raw_body[:RAW_BODY_LIMIT]


class TransientUpstreamError(UpstreamFailure):
    """Timeouts, dropped connections and gateway errors; safe to retry."""


class PermanentUpstreamError(UpstreamFailure):
    """Client errors and malformed bodies; retrying will not help."""


@dataclass(frozen=True)
class UpstreamPage:
    items: List[Dict[str, Any]]
    next_cursor: Cursor
    has_more: bool
    payload: Dict[str, Any] = field(default_factory=dict, repr=False)


class ScrapeCreatorsClient:
    """Issue exactly one authenticated request per call; retries live in the paginator."""

    def __init__(self, settings: Settings, http_client: Optional[httpx.AsyncClient] = None) -> None:
        self._base_url = settings.scrapecreators_base_url.rstrip("/")
        self._headers = {"x-api-key": settings.scrapecreators_api_key}
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=settings.upstream_timeout_seconds)

    async def __aenter__(self) -> "ScrapeCreatorsClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def fetch_page(
        self,
        endpoint: Endpoint,
        params: Mapping[str, Any],
        cursor: Cursor = None,
    ) -> UpstreamPage:
        query = dict(params)
        if cursor is not None:
            query["cursor"] = cursor
        payload = await self.fetch_json(endpoint, query)
        return UpstreamPage(
            items=extract_items(payload),
            next_cursor=extract_cursor(payload),
            has_more=extract_has_more(payload),
            payload=payload,
        )

    async def fetch_json(self, endpoint: Endpoint, params: Mapping[str, Any]) -> Dict[str, Any]:
        url = f"{self._base_url}{endpoint.value}"
        try:
            response = await self._client.get(url, params=dict(params), headers=self._headers)
        except (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError) as exc:
            raise TransientUpstreamError(f"{endpoint.name} request failed: {exc!r}") from exc
        except httpx.HTTPError as exc:
            raise PermanentUpstreamError(f"{endpoint.name} request failed: {exc!r}") from exc

        body = response.text
        if response.is_error:
            error_cls = (
                TransientUpstreamError
                if response.status_code in TRANSIENT_STATUS_CODES
                else PermanentUpstreamError
            )
            logger.warning("Upstream error response", endpoint=endpoint.name, status=response.status_code)
            raise error_cls(
                f"{endpoint.name} returned HTTP {response.status_code}",
                status=response.status_code,
                raw_body=body,
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise PermanentUpstreamError(
                f"{endpoint.name} returned a non-JSON body",
                status=response.status_code,
                raw_body=body,
            ) from exc
        if not isinstance(payload, dict):
            raise PermanentUpstreamError(
                f"{endpoint.name} returned {type(payload).__name__}, expected an object",
                status=response.status_code,
                raw_body=body,
            )
        return payload
