"""Cursor-driven pagination over the upstream provider."""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Protocol

import backoff

from comment_radar.integrations.scrapecreators import (
    Endpoint,
    TransientUpstreamError,
    UpstreamFailure,
    UpstreamPage,
)
from comment_radar.logging import get_logger
from comment_radar.models.common import Cursor

logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


class PageSource(Protocol):
    async def fetch_page(
        self, endpoint: Endpoint, params: Mapping[str, Any], cursor: Cursor = None
    ) -> UpstreamPage: ...


class PaginationStatus(str, Enum):
    DONE = "done"
    FAILED = "failed"
    STUCK_CURSOR = "stuck_cursor"
    DEADLINE = "deadline"


@dataclass(frozen=True)
class FetchBudget:
    """Limits for one pagination pass."""

    target_count: int
    max_pages: Optional[int] = None
    per_request_delay_ms: int = 500

    def __post_init__(self) -> None:
        if self.target_count <= 0:
            raise ValueError("target_count must be positive")
        if self.max_pages is not None and self.max_pages <= 0:
            raise ValueError("max_pages must be positive when set")
        if self.per_request_delay_ms < 0:
            raise ValueError("per_request_delay_ms must not be negative")


class Deadline:
    """Monotonic deadline; ``Deadline(None)`` never expires."""

    def __init__(self, seconds: Optional[float], clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._expires_at = None if seconds is None else clock() + seconds

    @property
    def expired(self) -> bool:
        return self._expires_at is not None and self._clock() >= self._expires_at

    def remaining(self) -> Optional[float]:
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._clock())


@dataclass
class PaginationResult:
    items: List[Dict[str, Any]]
    status: PaginationStatus
    pages_fetched: int
    next_cursor: Cursor = None
    has_more: bool = False
    failure: Optional[UpstreamFailure] = field(default=None, repr=False)

    @property
    def failed(self) -> bool:
        return self.status is PaginationStatus.FAILED

    @property
    def partial(self) -> bool:
        return self.status in (PaginationStatus.FAILED, PaginationStatus.DEADLINE)


class Paginator:
    """Walk an upstream cursor until the budget is met or the stream ends.

    Transient failures are retried with exponential backoff; a permanent
    failure, exhausting the retries, or the deadline expiring between attempts
    stops the walk and returns everything gathered so far flagged as ``FAILED``.
    """

    def __init__(
        self,
        client: PageSource,
        *,
        retry_attempts: int = 3,
        retry_base_delay_ms: int = 300,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._client = client
        self._retry_attempts = max(retry_attempts, 1)
        self._retry_base_delay = retry_base_delay_ms / 1000
        self._sleep = sleep

    async def collect(
        self,
        endpoint: Endpoint,
        params: Mapping[str, Any],
        budget: FetchBudget,
        *,
        cursor: Cursor = None,
        deadline: Optional[Deadline] = None,
    ) -> PaginationResult:
        items: List[Dict[str, Any]] = []
        pages = 0
        has_more = True

        while True:
            if deadline is not None and deadline.expired:
                logger.warning("Deadline reached during pagination", endpoint=endpoint.name, items=len(items))
                return PaginationResult(items, PaginationStatus.DEADLINE, pages, cursor, has_more)

            try:
                page = await self._fetch_with_retry(endpoint, params, cursor, deadline)
            except UpstreamFailure as exc:
                logger.warning(
                    "Pagination failed",
                    endpoint=endpoint.name,
                    status=exc.status,
                    pages=pages,
                    items=len(items),
                    error=str(exc),
                )
                return PaginationResult(items, PaginationStatus.FAILED, pages, cursor, True, failure=exc)

            pages += 1
            remaining = budget.target_count - len(items)
            items.extend(page.items[:remaining])
            logger.debug("Fetched page", endpoint=endpoint.name, page=pages, items=len(items), cursor=cursor)
            await self._sleep(budget.per_request_delay_ms / 1000)

            next_cursor = page.next_cursor
            has_more = page.has_more and next_cursor is not None
            if next_cursor is not None and next_cursor == cursor:
                logger.warning("Upstream cursor did not advance", endpoint=endpoint.name, cursor=cursor)
                return PaginationResult(items, PaginationStatus.STUCK_CURSOR, pages, None, False)
            cursor = next_cursor

            if not has_more or len(items) >= budget.target_count:
                break
            # an empty page with a fresh cursor makes no progress either
            if not page.items:
                break
            if budget.max_pages is not None and pages >= budget.max_pages:
                break

        logger.info(
            "Pagination finished",
            endpoint=endpoint.name,
            pages=pages,
            items=len(items),
            has_more=has_more,
        )
        return PaginationResult(items, PaginationStatus.DONE, pages, cursor if has_more else None, has_more)

    async def _fetch_with_retry(
        self,
        endpoint: Endpoint,
        params: Mapping[str, Any],
        cursor: Cursor,
        deadline: Optional[Deadline] = None,
    ) -> UpstreamPage:
        fetch = backoff.on_exception(
            backoff.expo,
            TransientUpstreamError,
            max_tries=self._retry_attempts,
            factor=self._retry_base_delay,
            jitter=None,
            giveup=lambda _: deadline is not None and deadline.expired,
            on_backoff=self._log_backoff,
            logger=None,
        )(self._client.fetch_page)
        return await fetch(endpoint, params, cursor)

    @staticmethod
    def _log_backoff(details: Dict[str, Any]) -> None:
        logger.warning(
            "Retrying upstream page",
            attempt=details["tries"],
            wait=round(details["wait"], 3),
            error=str(details.get("exception")),
        )
