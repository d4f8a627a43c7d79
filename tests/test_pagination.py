import asyncio
import itertools

import pytest

from comment_radar.integrations.scrapecreators import (
    Endpoint,
    PermanentUpstreamError,
    TransientUpstreamError,
)
from comment_radar.services.pagination import Deadline, FetchBudget, PaginationStatus, Paginator

ENDPOINT = Endpoint.VIDEO_COMMENTS
PARAMS = {"url": "https://www.tiktok.com/@chef/video/1"}


def _items(start, count):
    return [{"cid": str(i)} for i in range(start, start + count)]


def _pages(make_page, sizes, last_has_more=False):
    pages = []
    offset = 0
    for index, size in enumerate(sizes):
        is_last = index == len(sizes) - 1
        cursor = None if is_last and not last_has_more else offset + size
        pages.append(make_page(_items(offset, size), cursor=cursor, has_more=not is_last or last_has_more))
        offset += size
    return pages


def _collect(client, budget, **kwargs):
    paginator = Paginator(client, retry_attempts=3, retry_base_delay_ms=0, sleep=kwargs.pop("sleep", _no_sleep))
    return asyncio.run(paginator.collect(ENDPOINT, PARAMS, budget, **kwargs))


async def _no_sleep(seconds):
    return None


def test_truncates_last_page_to_target(fake_upstream, make_page):
    client = fake_upstream({ENDPOINT: _pages(make_page, [20] * 5)})

    result = _collect(client, FetchBudget(target_count=45, per_request_delay_ms=0))

    assert len(result.items) == 45
    assert result.items[-1] == {"cid": "44"}
    assert client.count(ENDPOINT) == 3
    assert result.status is PaginationStatus.DONE
    assert result.has_more is True
    assert result.next_cursor == 60


@pytest.mark.parametrize(
    "sizes,target",
    list(itertools.product([[1], [7, 7, 7], [50, 3], [10] * 12, [0]], [1, 5, 20, 100])),
)
def test_never_returns_more_than_target(fake_upstream, make_page, sizes, target):
    client = fake_upstream({ENDPOINT: _pages(make_page, sizes)})
    result = _collect(client, FetchBudget(target_count=target, per_request_delay_ms=0))
    assert len(result.items) <= target
    assert len(result.items) == min(target, sum(sizes))


def test_stops_when_upstream_has_no_more(fake_upstream, make_page):
    client = fake_upstream({ENDPOINT: _pages(make_page, [20, 5])})
    result = _collect(client, FetchBudget(target_count=100, per_request_delay_ms=0))
    assert len(result.items) == 25
    assert result.has_more is False
    assert result.next_cursor is None
    assert client.count(ENDPOINT) == 2


def test_respects_max_pages(fake_upstream, make_page):
    client = fake_upstream({ENDPOINT: _pages(make_page, [10] * 10)})
    result = _collect(client, FetchBudget(target_count=100, max_pages=2, per_request_delay_ms=0))
    assert len(result.items) == 20
    assert client.count(ENDPOINT) == 2


def test_stuck_cursor_terminates(fake_upstream, make_page):
    stuck = make_page(_items(0, 10), cursor=10, has_more=True)
    client = fake_upstream({ENDPOINT: [stuck]})

    result = _collect(client, FetchBudget(target_count=1000, per_request_delay_ms=0))

    assert result.status is PaginationStatus.STUCK_CURSOR
    assert client.count(ENDPOINT) == 2
    assert len(result.items) == 20
    assert result.has_more is False


def test_retries_transient_failures_then_succeeds(fake_upstream, make_page):
    client = fake_upstream(
        {
            ENDPOINT: [
                TransientUpstreamError("gateway", status=503),
                TransientUpstreamError("gateway", status=502),
                make_page(_items(0, 5)),
            ]
        }
    )
    result = _collect(client, FetchBudget(target_count=10, per_request_delay_ms=0))
    assert result.status is PaginationStatus.DONE
    assert len(result.items) == 5
    assert client.count(ENDPOINT) == 3
    assert all(call[2] is None for call in client.calls)


def test_exhausted_retries_keep_partial_results(fake_upstream, make_page):
    client = fake_upstream(
        {
            ENDPOINT: [
                make_page(_items(0, 20), cursor=20, has_more=True),
                TransientUpstreamError("timeout"),
            ]
        }
    )
    result = _collect(client, FetchBudget(target_count=100, per_request_delay_ms=0))

    assert result.status is PaginationStatus.FAILED
    assert result.partial
    assert len(result.items) == 20
    assert isinstance(result.failure, TransientUpstreamError)
    # one successful page plus three attempts at the second
    assert client.count(ENDPOINT) == 4
    assert result.next_cursor == 20


def test_permanent_failure_is_not_retried(fake_upstream, make_page):
    client = fake_upstream(
        {
            ENDPOINT: [
                make_page(_items(0, 20), cursor=20, has_more=True),
                PermanentUpstreamError("bad request", status=400),
            ]
        }
    )
    result = _collect(client, FetchBudget(target_count=100, per_request_delay_ms=0))
    assert result.status is PaginationStatus.FAILED
    assert result.failure.status == 400
    assert len(result.items) == 20
    assert client.count(ENDPOINT) == 2


def test_sleeps_after_every_page_including_the_last(fake_upstream, make_page):
    delays = []

    async def record(seconds):
        delays.append(seconds)

    client = fake_upstream({ENDPOINT: _pages(make_page, [10, 10, 10])})
    _collect(client, FetchBudget(target_count=100, per_request_delay_ms=400), sleep=record)
    assert delays == [0.4, 0.4, 0.4]


def test_expired_deadline_stops_before_fetching(fake_upstream, make_page):
    client = fake_upstream({ENDPOINT: _pages(make_page, [10, 10])})
    result = _collect(client, FetchBudget(target_count=100, per_request_delay_ms=0), deadline=Deadline(0))
    assert result.status is PaginationStatus.DEADLINE
    assert result.items == []
    assert client.calls == []


def test_deadline_checked_between_pages(fake_upstream, make_page):
    ticks = iter([0.0, 0.0, 5.0, 5.0])
    deadline = Deadline(1.0, clock=lambda: next(ticks))
    client = fake_upstream({ENDPOINT: _pages(make_page, [10, 10, 10])})

    result = _collect(client, FetchBudget(target_count=100, per_request_delay_ms=0), deadline=deadline)

    assert result.status is PaginationStatus.DEADLINE
    assert len(result.items) == 10
    assert result.next_cursor == 10


@pytest.mark.parametrize(
    "kwargs",
    [{"target_count": 0}, {"target_count": 5, "max_pages": 0}, {"target_count": 5, "per_request_delay_ms": -1}],
)
def test_fetch_budget_validation(kwargs):
    with pytest.raises(ValueError):
        FetchBudget(**kwargs)


def test_retry_waits_grow_exponentially(fake_upstream, make_page, monkeypatch):
    waits = []

    async def record(seconds):
        waits.append(seconds)

    monkeypatch.setattr(asyncio, "sleep", record)
    client = fake_upstream(
        {
            ENDPOINT: [
                TransientUpstreamError("gateway", status=503),
                TransientUpstreamError("gateway", status=503),
                make_page(_items(0, 5)),
            ]
        }
    )
    paginator = Paginator(client, retry_attempts=3, retry_base_delay_ms=300, sleep=_no_sleep)

    result = asyncio.run(paginator.collect(ENDPOINT, PARAMS, FetchBudget(target_count=10, per_request_delay_ms=0)))

    assert result.status is PaginationStatus.DONE
    assert waits == pytest.approx([0.3, 0.6])


class _SlowFailingUpstream:
    """Every call fails transiently and pushes the clock past the deadline."""

    def __init__(self, clock):
        self.clock = clock
        self.calls = 0

    async def fetch_page(self, endpoint, params, cursor=None):
        self.calls += 1
        self.clock[0] += 10.0
        raise TransientUpstreamError("timeout")


def test_retries_stop_once_deadline_expires():
    clock = [0.0]
    deadline = Deadline(5.0, clock=lambda: clock[0])
    client = _SlowFailingUpstream(clock)

    result = _collect(client, FetchBudget(target_count=10, per_request_delay_ms=0), deadline=deadline)

    assert result.status is PaginationStatus.FAILED
    assert isinstance(result.failure, TransientUpstreamError)
    assert client.calls == 1
