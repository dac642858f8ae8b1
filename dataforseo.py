"""
DataForSEO client - authorised, retrying access to the SERP API.

  CredentialResolver   - Basic credential from login/password or a precomputed token
  UpstreamRequest      - immutable description of one call (endpoint, tasks, retry policy)
  UpstreamResponse     - top-level status + task results, raw body kept for diagnostics
  DataForSEOClient     - POSTs {"tasks": [...]}, retries with exponential backoff

DataForSEO wraps every response in a status code - 20000 = success. Anything
else, even with HTTP 200, is a failed attempt.
"""

import asyncio
import base64
import logging
import re
from typing import Any, Optional

import httpx
from pydantic import BaseModel, ConfigDict

from config import Settings
from errors import ConfigurationError, UpstreamError
from upstream_retry import AttemptFailed, RetryError, Sleep, retry_with_backoff

logger = logging.getLogger("dataforseo")

DFS_SUCCESS = 20000
SERP_ORGANIC_LIVE_ADVANCED = "serp/google/organic/live/advanced"

_BASIC_PREFIX = re.compile(r"^basic\s*", re.IGNORECASE)


# ── Auth ─────────────────────────────────────────────────────────────────────

class CredentialResolver:
    """
    Resolves the DataForSEO credential. First match wins:
      1. DATAFORSEO_LOGIN + DATAFORSEO_PASSWORD  → base64("login:password")
      2. DATAFORSEO_API_AUTH                     → used as-is, minus any "Basic " prefix
    """

    def __init__(self, login: str = "", password: str = "", api_auth: str = ""):
        self.login = login
        self.password = password
        self.api_auth = api_auth

    @classmethod
    def from_settings(cls, settings: Settings) -> "CredentialResolver":
        return cls(
            login=settings.dataforseo_login,
            password=settings.dataforseo_password,
            api_auth=settings.dataforseo_api_auth,
        )

    def resolve(self) -> str:
        if self.login and self.password:
            return base64.b64encode(f"{self.login}:{self.password}".encode()).decode()

        if self.api_auth:
            cleaned = _BASIC_PREFIX.sub("", self.api_auth.strip()).strip()
            if cleaned:
                return cleaned

        raise ConfigurationError(
            "Missing DataForSEO credentials. Set DATAFORSEO_LOGIN & DATAFORSEO_PASSWORD "
            "or DATAFORSEO_API_AUTH in env."
        )


# ── Request / response models ────────────────────────────────────────────────

class UpstreamRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    endpoint: str
    tasks: tuple[dict, ...]
    retries: int = 3
    base_delay: float = 0.5   # seconds
    timeout: float = 30.0     # seconds, per attempt


class TaskResult(BaseModel):
    status_code: Optional[int] = None
    status_message: Optional[str] = None
    result: Any = None   # provider-defined tree, left opaque


class UpstreamResponse(BaseModel):
    status_code: Optional[int] = None
    status_message: Optional[str] = None
    tasks: list[TaskResult] = []
    raw: dict = {}

    @classmethod
    def from_payload(cls, data: dict) -> "UpstreamResponse":
        """Lenient parse - unexpected shapes become None rather than errors."""
        raw_tasks = data.get("tasks")
        tasks = []
        for task in raw_tasks if isinstance(raw_tasks, list) else []:
            if not isinstance(task, dict):
                tasks.append(TaskResult())
                continue
            tasks.append(TaskResult(
                status_code=_as_int(task.get("status_code")),
                status_message=_as_str(task.get("status_message")),
                result=task.get("result"),
            ))
        return cls(
            status_code=_as_int(data.get("status_code")),
            status_message=_as_str(data.get("status_message")),
            tasks=tasks,
            raw=data,
        )

    @property
    def first_task(self) -> Optional[TaskResult]:
        return self.tasks[0] if self.tasks else None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    return None


def _as_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _json_or_none(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return None


# ── Core HTTP client ─────────────────────────────────────────────────────────

class DataForSEOClient:
    """
    POSTs task batches to DataForSEO.

    The credential is resolved on first use and cached for the life of the
    client. A missing credential raises ConfigurationError before any attempt.
    """

    def __init__(
        self,
        base_url: str,
        credentials: CredentialResolver,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.base_url = base_url
        self.credentials = credentials
        self._transport = transport
        self._sleep = sleep
        self._credential: Optional[str] = None

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "DataForSEOClient":
        return cls(settings.dataforseo_url, CredentialResolver.from_settings(settings), **kwargs)

    def _auth_header(self) -> str:
        if self._credential is None:
            self._credential = self.credentials.resolve()
        return f"Basic {self._credential}"

    def url_for(self, endpoint: str) -> str:
        return f"{self.base_url.rstrip('/')}/{endpoint.lstrip('/')}"

    async def send(self, request: UpstreamRequest) -> UpstreamResponse:
        headers = {
            "Authorization": self._auth_header(),
            "Content-Type": "application/json",
        }
        url = self.url_for(request.endpoint)
        body = {"tasks": list(request.tasks)}
        logger.info(f"DataForSEO POST {request.endpoint} ({len(request.tasks)} task(s))")

        async def attempt() -> UpstreamResponse:
            return await self._post_once(url, headers, body, request.timeout)

        try:
            return await retry_with_backoff(
                attempt,
                retries=request.retries,
                base_delay=request.base_delay,
                label=f"DataForSEO {request.endpoint}",
                sleep=self._sleep,
            )
        except RetryError as e:
            last = e.last_failure
            raise UpstreamError(
                f"DataForSEO request failed after retries: {last}",
                last_status=last.status_code,
                last_message=last.status_message or str(last),
                attempts=e.attempts,
                payload=e.last_payload,
            ) from e

    async def _post_once(self, url: str, headers: dict, body: dict, timeout: float) -> UpstreamResponse:
        # httpx timeouts are per phase; wait_for bounds the whole attempt
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                resp = await asyncio.wait_for(client.post(url, headers=headers, json=body), timeout)
        except asyncio.TimeoutError as e:
            raise AttemptFailed(f"timed out after {timeout}s") from e
        except httpx.TimeoutException as e:
            raise AttemptFailed(f"timed out after {timeout}s: {e!r}") from e
        except httpx.HTTPError as e:
            raise AttemptFailed(f"network error: {e!r}") from e

        data = _json_or_none(resp)

        if resp.is_error:
            raise AttemptFailed(
                f"HTTP {resp.status_code} from DataForSEO",
                status_code=resp.status_code,
                status_message=resp.reason_phrase,
                payload=data,
            )

        if not isinstance(data, dict):
            raise AttemptFailed("DataForSEO returned a non-JSON-object body", status_code=resp.status_code)

        status = data.get("status_code")
        if status is not None and status != DFS_SUCCESS:
            raise AttemptFailed(
                f"DataForSEO API Error: {status} - {data.get('status_message')}",
                status_code=_as_int(status),
                status_message=_as_str(data.get("status_message")),
                payload=data,
            )

        return UpstreamResponse.from_payload(data)
