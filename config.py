"""
config.py - service settings, built once at startup and passed to every component.

Reads the process environment (main.py calls load_dotenv() first so a local
.env file works the same as Railway/Render env vars).
"""

import os
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict, ValidationError as PydanticValidationError

from errors import ConfigurationError

DEFAULT_DATAFORSEO_URL = "https://api.dataforseo.com/v3"
DEFAULT_CLAUDE_MODEL = "claude-sonnet-4-6"
DEFAULT_LOCATION_CODE = 2840  # United States

# env var -> Settings field
_ENV_FIELDS = {
    "DATAFORSEO_URL": "dataforseo_url",
    "DATAFORSEO_LOGIN": "dataforseo_login",
    "DATAFORSEO_PASSWORD": "dataforseo_password",
    "DATAFORSEO_API_AUTH": "dataforseo_api_auth",
    "ANTHROPIC_API_KEY": "anthropic_api_key",
    "CLAUDE_MODEL": "claude_model",
    "PORT": "port",
    "DATAFORSEO_RETRIES": "dataforseo_retries",
    "DATAFORSEO_BACKOFF_SECONDS": "dataforseo_backoff_seconds",
    "DATAFORSEO_TIMEOUT_SECONDS": "dataforseo_timeout_seconds",
    "CLAUDE_RETRIES": "claude_retries",
    "CLAUDE_BACKOFF_SECONDS": "claude_backoff_seconds",
    "CLAUDE_MAX_TOKENS": "claude_max_tokens",
    "DEFAULT_LOCATION_CODE": "default_location_code",
}


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    dataforseo_url: str = DEFAULT_DATAFORSEO_URL
    dataforseo_login: str = ""
    dataforseo_password: str = ""
    dataforseo_api_auth: str = ""
    anthropic_api_key: str = ""
    claude_model: str = DEFAULT_CLAUDE_MODEL
    allowed_origins: tuple[str, ...] = ("*",)
    port: int = 8000

    dataforseo_retries: int = 3
    dataforseo_backoff_seconds: float = 0.5
    dataforseo_timeout_seconds: float = 30.0
    claude_retries: int = 3
    claude_backoff_seconds: float = 0.5
    claude_max_tokens: int = 300
    default_location_code: int = DEFAULT_LOCATION_CODE

    @property
    def has_dataforseo_credentials(self) -> bool:
        return bool(
            (self.dataforseo_login and self.dataforseo_password) or self.dataforseo_api_auth.strip()
        )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from env vars. Empty values fall back to defaults."""
        env = os.environ if environ is None else environ
        values: dict = {}
        for var, field in _ENV_FIELDS.items():
            raw = env.get(var, "")
            if raw.strip():
                values[field] = raw.strip()

        # ALLOWED_ORIGINS wins; WORDPRESS_URL is the single-site shorthand
        origins = env.get("ALLOWED_ORIGINS", "") or env.get("WORDPRESS_URL", "")
        parsed = tuple(o.strip() for o in origins.split(",") if o.strip())
        if parsed:
            values["allowed_origins"] = parsed

        try:
            return cls(**values)
        except PydanticValidationError as e:
            bad = ", ".join(str(err["loc"][0]) for err in e.errors())
            raise ConfigurationError(f"Invalid configuration value(s): {bad}") from e
