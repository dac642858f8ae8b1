"""
claude_writer.py - Claude helper for narrative analysis, with retry.

The SDK's own retries are disabled (max_retries=0) so retry_with_backoff is
the single place attempts are counted.
"""

import asyncio
import logging
from typing import Any, Optional

import anthropic
from anthropic import AsyncAnthropic  # requires anthropic >= 0.39

from config import Settings
from errors import ConfigurationError, GenerationError
from upstream_retry import AttemptFailed, RetryError, Sleep, retry_with_backoff

logger = logging.getLogger("claude-writer")

# Caller mistakes - retrying would only repeat them
_FATAL_API_ERRORS = (
    anthropic.AuthenticationError,
    anthropic.PermissionDeniedError,
    anthropic.BadRequestError,
    anthropic.UnprocessableEntityError,
    anthropic.NotFoundError,
)


class ClaudeWriter:
    def __init__(
        self,
        client: Optional[Any],
        model: str,
        max_tokens: int = 300,
        retries: int = 3,
        base_delay: float = 0.5,
        sleep: Sleep = asyncio.sleep,
    ):
        self.client = client
        self.model = model
        self.max_tokens = max_tokens
        self.retries = retries
        self.base_delay = base_delay
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: Settings, client: Optional[Any] = None, **kwargs) -> "ClaudeWriter":
        # No key → writer stays unconfigured and every call raises ConfigurationError
        if client is None and settings.anthropic_api_key:
            client = AsyncAnthropic(api_key=settings.anthropic_api_key, max_retries=0)
        return cls(
            client,
            model=settings.claude_model,
            max_tokens=settings.claude_max_tokens,
            retries=settings.claude_retries,
            base_delay=settings.claude_backoff_seconds,
            **kwargs,
        )

    @property
    def configured(self) -> bool:
        return self.client is not None

    def ensure_configured(self) -> None:
        if not self.configured:
            raise ConfigurationError("ANTHROPIC_API_KEY is not set - Claude calls cannot be made")

    async def write(self, system: str, prompt: str) -> str:
        """Return Claude's reply text (stripped). Raises GenerationError once retries are spent."""
        self.ensure_configured()

        async def attempt() -> str:
            return await self._create_once(system, prompt)

        try:
            text = await retry_with_backoff(
                attempt,
                retries=self.retries,
                base_delay=self.base_delay,
                label="Claude",
                sleep=self._sleep,
            )
        except RetryError as e:
            raise GenerationError(
                f"Claude call failed after {e.attempts} attempt(s)",
                attempts=e.attempts,
                last_error=str(e.last_failure),
            ) from e

        logger.info(f"Claude {self.model} replied ({len(text)} chars)")
        return text

    async def _create_once(self, system: str, prompt: str) -> str:
        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                system=system,
                messages=[
                    {"role": "user", "content": prompt},
                ],
            )
        except _FATAL_API_ERRORS as e:
            raise AttemptFailed(f"{type(e).__name__}: {e}", retriable=False) from e
        except anthropic.APIError as e:
            status = getattr(e, "status_code", None)
            raise AttemptFailed(f"{type(e).__name__}: {e}", status_code=status) from e

        if not response.content:
            raise AttemptFailed("Claude returned no content blocks")
        return (getattr(response.content[0], "text", "") or "").strip()
