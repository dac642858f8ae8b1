# =============================================================================
# SEO Analysis Engine - SERP data + Claude narrative
# =============================================================================
#
# analyze():
#   1. validate caller input (no network until this passes)
#   2. one live SERP task against DataForSEO (retrying client)
#   3. normalise organic listings out of the response
#   4. ask Claude for a one-paragraph ranking strategy
#   5. assemble the report
#
# Dependencies are injected (serp_client, writer) so tests can stub the
# upstreams without touching the network.
#
# A SERP failure stops the run before Claude is called. A Claude failure fails
# the whole run with GenerationError - there is no placeholder analysis.
# =============================================================================

import json
import logging
import re
from typing import Any

from pydantic import BaseModel

from claude_writer import ClaudeWriter
from config import Settings
from dataforseo import SERP_ORGANIC_LIVE_ADVANCED, DataForSEOClient, UpstreamRequest, UpstreamResponse
from errors import ValidationError
from serp_parser import ResultRecord, extract_organic_results

logger = logging.getLogger("seo-engine")

PROMPT_SAMPLE_SIZE = 8      # records sent to Claude
SNIPPET_SAMPLE_SIZE = 5     # records echoed back to the caller

_INTEGER_TEXT = re.compile(r"^[+-]?\d+$")

# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

SERP_ANALYSIS_SYSTEM = """You are an expert SEO strategist. You read live Google SERP data and tell a website owner, in plain professional language, what to do to outrank the current results.
Be specific to the keyword and the competitors shown. Never invent rankings that are not in the data."""

SERP_ANALYSIS_PROMPT = """Analyze the following SERP data for the keyword "{keyword}" in the domain "{domain}".
{competitor_data}

Provide a brief, actionable SEO strategy for this website ({domain}) to rank higher.
The output should be a single, professional paragraph."""

NO_COMPETITOR_DATA = (
    "No competitor data was found in the SERP results. "
    "Provide general, foundational SEO advice for this keyword."
)


class AnalysisReport(BaseModel):
    domain: str
    keyword: str
    analysis: str
    raw_data_snippet: list[ResultRecord]
    df_status: dict


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------

def require_text(value: Any, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required and must be a non-empty string")
    return value.strip()


def coerce_location_code(value: Any, default: int) -> int:
    """Integer location code. Accepts ints, integral floats and digit strings."""
    if value is None:
        return default
    if isinstance(value, bool):
        raise ValidationError("location_code must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and _INTEGER_TEXT.match(value.strip()):
        return int(value.strip())
    raise ValidationError(f"location_code must be an integer, got {value!r}")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def build_serp_task(keyword: str, location_code: int, language_code: str, device: str) -> dict:
    return {
        "keyword": keyword,
        "location_code": location_code,
        "language_code": language_code,
        "device": device,
        "calculate_rectangles": False,
        # routing fields DataForSEO validates on (40503 without them)
        "api": "serp",
        "function": "live",
        "se": "google",
        "se_type": "organic",
    }


def build_prompt(keyword: str, domain: str, records: list[ResultRecord]) -> str:
    if records:
        data = json.dumps([r.model_dump(exclude_none=True) for r in records], indent=2)
        competitor_data = f"The top competitor data is: {data}"
    else:
        competitor_data = NO_COMPETITOR_DATA
    return SERP_ANALYSIS_PROMPT.format(keyword=keyword, domain=domain, competitor_data=competitor_data)


def status_echo(response: UpstreamResponse) -> dict:
    top = None
    if response.status_code is not None:
        top = {"status_code": response.status_code, "status_message": response.status_message}
    task = None
    if response.first_task is not None:
        task = {
            "status_code": response.first_task.status_code,
            "status_message": response.first_task.status_message,
        }
    return {"top": top, "task": task}


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class SEOAnalysisEngine:
    def __init__(self, settings: Settings, serp_client: DataForSEOClient, writer: ClaudeWriter):
        self.settings = settings
        self.serp_client = serp_client
        self.writer = writer

    @classmethod
    def from_settings(cls, settings: Settings) -> "SEOAnalysisEngine":
        return cls(
            settings,
            DataForSEOClient.from_settings(settings),
            ClaudeWriter.from_settings(settings),
        )

    def serp_request(self, task: dict) -> UpstreamRequest:
        return UpstreamRequest(
            endpoint=SERP_ORGANIC_LIVE_ADVANCED,
            tasks=(task,),
            retries=self.settings.dataforseo_retries,
            base_delay=self.settings.dataforseo_backoff_seconds,
            timeout=self.settings.dataforseo_timeout_seconds,
        )

    async def analyze(
        self,
        keyword: Any,
        domain: Any,
        location_code: Any = None,
        language_code: Any = "en",
        device: Any = "desktop",
    ) -> AnalysisReport:
        keyword = require_text(keyword, "keyword")
        domain = require_text(domain, "domain")
        location = coerce_location_code(location_code, self.settings.default_location_code)
        language_code = require_text("en" if language_code is None else language_code, "language_code")
        device = require_text("desktop" if device is None else device, "device")

        # Fail on a missing Claude key before paying for a SERP call
        self.writer.ensure_configured()

        logger.info(f"SERP analysis starting for '{keyword}' → {domain} (location {location}, {device})")

        # A. live SERP
        response = await self.serp_client.send(
            self.serp_request(build_serp_task(keyword, location, language_code, device))
        )
        _log_diagnostics(response)

        # B. organic listings
        records = extract_organic_results(response)
        logger.info(f"Extracted SERP records: {len(records)}")

        # C. narrative
        analysis = await self.writer.write(
            SERP_ANALYSIS_SYSTEM,
            build_prompt(keyword, domain, records[:PROMPT_SAMPLE_SIZE]),
        )

        logger.info(f"SERP analysis done for '{keyword}' ({len(analysis)} chars)")
        return AnalysisReport(
            domain=domain,
            keyword=keyword,
            analysis=analysis,
            raw_data_snippet=records[:SNIPPET_SAMPLE_SIZE],
            df_status=status_echo(response),
        )


def _log_diagnostics(response: UpstreamResponse) -> None:
    task = response.first_task
    logger.info(
        f"DataForSEO top-level status: {response.status_code} {response.status_message}; "
        f"task status: {task.status_code if task else None} {task.status_message if task else None}"
    )
    raw = response.raw
    logger.info(
        f"DataForSEO version={raw.get('version')} time={raw.get('time')} cost={raw.get('cost')}"
    )
