"""Shared fixtures: settings, stub upstreams and a recording sleep."""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock

import httpx
import pytest

from claude_writer import ClaudeWriter
from config import Settings
from dataforseo import DataForSEOClient
from seo_engine import SEOAnalysisEngine


class RecordingSleep:
    """Stands in for asyncio.sleep and remembers every requested delay."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class ScriptedUpstream:
    """httpx handler that replays a list of responses (or exceptions) in order."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        index = min(len(self.requests), len(self.outcomes)) - 1
        outcome = self.outcomes[index]
        if isinstance(outcome, Exception):
            raise outcome
        # fresh copy per call; a Response object is consumed once by the client
        return httpx.Response(outcome.status_code, headers=outcome.headers, content=outcome.content)

    @property
    def calls(self) -> int:
        return len(self.requests)

    def body(self, n: int = 0) -> dict:
        return json.loads(self.requests[n].content)


def serp_body(items=None, status_code=20000, status_message="Ok.", task_result=None) -> dict:
    """DataForSEO-shaped live SERP body."""
    if task_result is None:
        task_result = [{"keyword": "best running shoes", "items": items or []}]
    return {
        "version": "0.1.20240801",
        "status_code": status_code,
        "status_message": status_message,
        "time": "1.2 sec.",
        "cost": 0.002,
        "tasks_count": 1,
        "tasks": [{
            "id": "08011234-0000-0066-0000-abcdef",
            "status_code": 20000,
            "status_message": "Ok.",
            "result": task_result,
        }],
    }


def organic_item(rank: int, domain: str) -> dict:
    return {
        "type": "organic",
        "rank_group": rank,
        "rank_absolute": rank,
        "domain": domain,
        "title": f"Best running shoes - {domain}",
        "url": f"https://{domain}/running-shoes",
        "description": f"Reviews of running shoes from {domain}.",
    }


def claude_reply(text: str) -> SimpleNamespace:
    return SimpleNamespace(content=[SimpleNamespace(type="text", text=text)])


def fake_anthropic(*side_effect) -> SimpleNamespace:
    """Object shaped like AsyncAnthropic with messages.create mocked."""
    create = AsyncMock(side_effect=list(side_effect))
    return SimpleNamespace(messages=SimpleNamespace(create=create))


@pytest.fixture
def settings() -> Settings:
    return Settings(
        dataforseo_url="https://dfs.test/v3/",
        dataforseo_login="login@example.com",
        dataforseo_password="s3cret",
        anthropic_api_key="test-key",
    )


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def make_engine(settings, sleep):
    """Build an engine wired to a scripted DataForSEO upstream and a fake Claude client."""

    def _make(upstream: ScriptedUpstream, claude, engine_settings: Settings = None) -> SEOAnalysisEngine:
        cfg = engine_settings or settings
        serp_client = DataForSEOClient.from_settings(
            cfg, transport=httpx.MockTransport(upstream), sleep=sleep
        )
        writer = ClaudeWriter.from_settings(cfg, client=claude, sleep=sleep)
        return SEOAnalysisEngine(cfg, serp_client, writer)

    return _make
