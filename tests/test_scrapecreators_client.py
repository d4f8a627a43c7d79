import asyncio

import httpx
import pytest

from comment_radar.integrations.scrapecreators import (
    Endpoint,
    PermanentUpstreamError,
    ScrapeCreatorsClient,
    TransientUpstreamError,
)


def _client(settings, handler):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ScrapeCreatorsClient(settings, http_client=http_client)


def test_fetch_page_sends_key_and_cursor(settings):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = request.url
        seen["key"] = request.headers.get("x-api-key")
        return httpx.Response(200, json={"comments": [{"cid": "1"}], "cursor": 20, "has_more": 1})

    client = _client(settings, handler)
    result = asyncio.run(
        client.fetch_page(Endpoint.VIDEO_COMMENTS, {"url": "https://www.tiktok.com/@a/video/1"}, cursor=10)
    )

    assert seen["key"] == "test-key"
    assert seen["url"].path == "/v1/tiktok/video/comments"
    assert seen["url"].params["cursor"] == "10"
    assert result.items == [{"cid": "1"}]
    assert result.next_cursor == 20
    assert result.has_more is True


@pytest.mark.parametrize("status", [502, 503, 504])
def test_gateway_errors_are_transient(settings, status):
    client = _client(settings, lambda request: httpx.Response(status, text="upstream down"))
    with pytest.raises(TransientUpstreamError) as excinfo:
        asyncio.run(client.fetch_page(Endpoint.VIDEO_COMMENTS, {"url": "x"}))
    assert excinfo.value.status == status
    assert excinfo.value.raw_body == "upstream down"


@pytest.mark.parametrize("status", [400, 401, 404, 500])
def test_other_errors_are_permanent(settings, status):
    client = _client(settings, lambda request: httpx.Response(status, text="nope"))
    with pytest.raises(PermanentUpstreamError) as excinfo:
        asyncio.run(client.fetch_page(Endpoint.USER_VIDEOS, {"handle": "someone"}))
    assert excinfo.value.status == status


def test_non_json_body_is_permanent(settings):
    client = _client(settings, lambda request: httpx.Response(200, text="<html>rate limited</html>"))
    with pytest.raises(PermanentUpstreamError) as excinfo:
        asyncio.run(client.fetch_json(Endpoint.VIDEO_INFO, {"url": "x"}))
    assert excinfo.value.status == 200
    assert "rate limited" in excinfo.value.raw_body


def test_connection_errors_are_transient(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection reset", request=request)

    client = _client(settings, handler)
    with pytest.raises(TransientUpstreamError):
        asyncio.run(client.fetch_page(Endpoint.KEYWORD_SEARCH, {"query": "banjir"}))


def test_timeouts_are_transient(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("too slow", request=request)

    client = _client(settings, handler)
    with pytest.raises(TransientUpstreamError):
        asyncio.run(client.fetch_page(Endpoint.KEYWORD_SEARCH, {"query": "banjir"}))
