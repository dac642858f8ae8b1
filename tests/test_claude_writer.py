"""Tests for the Claude writer retry behaviour."""

from types import SimpleNamespace

import anthropic
import httpx
import pytest

from claude_writer import ClaudeWriter
from config import Settings
from conftest import claude_reply, fake_anthropic
from errors import ConfigurationError, GenerationError

_MESSAGES_URL = "https://api.anthropic.com/v1/messages"


def _connection_error() -> anthropic.APIConnectionError:
    return anthropic.APIConnectionError(request=httpx.Request("POST", _MESSAGES_URL))


def _status_error(cls, status: int):
    response = httpx.Response(status, request=httpx.Request("POST", _MESSAGES_URL))
    return cls(f"HTTP {status}", response=response, body=None)


def _writer(client, sleep, retries=3) -> ClaudeWriter:
    return ClaudeWriter(client, model="claude-test", max_tokens=300, retries=retries, base_delay=0.5, sleep=sleep)


class TestClaudeWriter:
    @pytest.mark.asyncio
    async def test_returns_stripped_text(self, sleep):
        client = fake_anthropic(claude_reply("  Focus on comparison content.  \n"))
        text = await _writer(client, sleep).write("system", "prompt")

        assert text == "Focus on comparison content."
        kwargs = client.messages.create.await_args.kwargs
        assert kwargs["model"] == "claude-test"
        assert kwargs["max_tokens"] == 300
        assert kwargs["system"] == "system"
        assert kwargs["messages"] == [{"role": "user", "content": "prompt"}]

    @pytest.mark.asyncio
    async def test_transient_errors_are_retried_with_backoff(self, sleep):
        client = fake_anthropic(
            _connection_error(),
            _status_error(anthropic.InternalServerError, 529),
            claude_reply("ok"),
        )
        text = await _writer(client, sleep).write("s", "p")

        assert text == "ok"
        assert client.messages.create.await_count == 3
        assert sleep.delays == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_gives_up_after_budget(self, sleep):
        client = fake_anthropic(*[_connection_error() for _ in range(4)])

        with pytest.raises(GenerationError) as exc_info:
            await _writer(client, sleep, retries=3).write("s", "p")

        assert client.messages.create.await_count == 4
        assert exc_info.value.attempts == 4
        assert sleep.delays == [0.5, 1.0, 2.0]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("cls, status", [
        (anthropic.AuthenticationError, 401),
        (anthropic.UnprocessableEntityError, 422),
    ])
    async def test_caller_errors_are_not_retried(self, sleep, cls, status):
        client = fake_anthropic(_status_error(cls, status))

        with pytest.raises(GenerationError) as exc_info:
            await _writer(client, sleep).write("s", "p")

        assert client.messages.create.await_count == 1
        assert exc_info.value.attempts == 1
        assert cls.__name__ in exc_info.value.details
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_empty_content_counts_as_failed_attempt(self, sleep):
        client = fake_anthropic(SimpleNamespace(content=[]), claude_reply("second try"))
        text = await _writer(client, sleep).write("s", "p")

        assert text == "second try"
        assert client.messages.create.await_count == 2

    @pytest.mark.asyncio
    async def test_without_api_key_raises_configuration_error(self, sleep):
        writer = ClaudeWriter.from_settings(Settings(anthropic_api_key=""), sleep=sleep)

        assert not writer.configured
        with pytest.raises(ConfigurationError):
            await writer.write("s", "p")
