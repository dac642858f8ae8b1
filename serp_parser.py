"""
serp_parser.py - pull organic listings out of a DataForSEO SERP response.

The shape of tasks[0].result[0].items drifts between API versions: organic
entries may be tagged with `type`, `item_type` or an `item_types` list, and some
blocks nest their own `items`. Extraction never raises - no data is an empty
list.
"""

import logging
from typing import Any, Callable, Optional

from pydantic import BaseModel

from dataforseo import UpstreamResponse

logger = logging.getLogger("serp-parser")

ORGANIC = "organic"


class ResultRecord(BaseModel):
    rank: Optional[int] = None
    title: str = ""
    url: str = ""
    snippet: Optional[str] = None
    domain: Optional[str] = None
    type: Optional[str] = None


# ---------------------------------------------------------------------------
# Tree access
# ---------------------------------------------------------------------------

def first_result_object(response: UpstreamResponse) -> Optional[dict]:
    """tasks[0].result[0], or None when any level is missing or the wrong type."""
    task = response.first_task
    if task is None:
        return None
    result = task.result
    if not isinstance(result, list) or not result:
        return None
    first = result[0]
    return first if isinstance(first, dict) else None


def candidate_pool(result_object: dict) -> list[dict]:
    """Direct items followed by each item's nested items. One level deep only."""
    direct = result_object.get("items")
    if not isinstance(direct, list):
        return []
    direct = [it for it in direct if isinstance(it, dict)]
    nested = [
        child
        for it in direct
        if isinstance(it.get("items"), list)
        for child in it["items"]
        if isinstance(child, dict)
    ]
    return direct + nested


def is_organic(item: dict) -> bool:
    if item.get("type") == ORGANIC:
        return True
    if item.get("item_type") == ORGANIC:
        return True
    item_types = item.get("item_types")
    return isinstance(item_types, list) and ORGANIC in item_types


# ---------------------------------------------------------------------------
# Selection rules - tried in order, first non-None wins
# ---------------------------------------------------------------------------

def _organic_only(pool: list[dict]) -> Optional[list[dict]]:
    organic = [it for it in pool if is_organic(it)]
    return organic or None


def _whole_pool(pool: list[dict]) -> Optional[list[dict]]:
    return pool


SELECTION_RULES: tuple[Callable[[list[dict]], Optional[list[dict]]], ...] = (
    _organic_only,
    _whole_pool,
)


def select_items(pool: list[dict]) -> list[dict]:
    for rule in SELECTION_RULES:
        picked = rule(pool)
        if picked is not None:
            return picked
    return []


# ---------------------------------------------------------------------------
# Record mapping
# ---------------------------------------------------------------------------

def _rank_of(item: dict) -> Optional[int]:
    for key in ("rank_absolute", "rank_group", "position"):
        value = item.get(key)
        if isinstance(value, bool):
            continue
        if isinstance(value, int):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
    return None


def _text(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def to_record(item: dict) -> ResultRecord:
    snippet = _text(item.get("description"))
    if snippet is None:
        snippet = _text(item.get("snippet"))
    return ResultRecord(
        rank=_rank_of(item),
        title=_text(item.get("title")) or "",
        url=_text(item.get("url")) or "",
        snippet=snippet,
        domain=_text(item.get("domain")),
        type=_text(item.get("type")) or _text(item.get("item_type")),
    )


def extract_organic_results(response: UpstreamResponse) -> list[ResultRecord]:
    """Organic listings in provider order; every candidate if none is tagged organic."""
    result_object = first_result_object(response)
    if result_object is None:
        logger.warning("No result object in DataForSEO task.")
        return []

    pool = candidate_pool(result_object)
    return [to_record(it) for it in select_items(pool)]
