import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Provide default environment variables for settings
os.environ.setdefault("SCRAPECREATORS_API_KEY", "test")

import pytest

from comment_radar.config import Settings
from comment_radar.integrations.scrapecreators import UpstreamPage


class FakeUpstream:
    """Scripted stand-in for the ScrapeCreators client.

    ``scripts`` maps an endpoint, or an ``(endpoint, url)`` pair, to the list of
    responses returned in order; the last response repeats once the list runs
    out. Exceptions in the list are raised instead of returned.
    """

    def __init__(self, scripts=None, video_info=None):
        self.scripts = {key: list(value) for key, value in (scripts or {}).items()}
        self.video_info = video_info if video_info is not None else {}
        self.calls = []

    async def fetch_page(self, endpoint, params, cursor=None):
        self.calls.append((endpoint, dict(params), cursor))
        key = (endpoint, params.get("url"))
        queue = self.scripts[key] if key in self.scripts else self.scripts[endpoint]
        response = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(response, Exception):
            raise response
        return response

    async def fetch_json(self, endpoint, params):
        self.calls.append((endpoint, dict(params), None))
        if isinstance(self.video_info, Exception):
            raise self.video_info
        return self.video_info

    def count(self, endpoint):
        return sum(1 for call in self.calls if call[0] is endpoint)


def page(items, cursor=None, has_more=False):
    return UpstreamPage(items=list(items), next_cursor=cursor, has_more=has_more)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        scrapecreators_api_key="test-key",
        per_request_delay_ms=0,
        inter_video_delay_ms=0,
        retry_base_delay_ms=0,
        openai_api_key=None,
        _env_file=None,
    )


@pytest.fixture
def fake_upstream():
    return FakeUpstream


@pytest.fixture
def make_page():
    return page
