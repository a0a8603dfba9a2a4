"""
cache_types.py – footy

Value types shared by the Local Store (which persists them) and the Cache
Manager (which owns and mutates them).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Dict, Optional


DEFAULT_DAILY_LIMIT = 50


class QueryKind(str, Enum):
    LIVE = "live"
    SCHEDULE = "schedule"
    STANDINGS = "standings"
    SCORES = "scores"
    TEAMS = "teams"


# None = never goes stale
FRESHNESS_WINDOWS: Dict[QueryKind, Optional[timedelta]] = {
    QueryKind.LIVE: timedelta(seconds=30),
    QueryKind.SCHEDULE: timedelta(hours=1),
    QueryKind.STANDINGS: timedelta(hours=6),
    QueryKind.SCORES: None,
    QueryKind.TEAMS: timedelta(days=7),
}


def build_query_key(kind: QueryKind, subject: str, bucket: str = "") -> str:
    """
    Build the normalised cache key for one logical query.

        build_query_key(QueryKind.SCHEDULE, "39", "2026-10-18")
        -> "schedule:39@2026-10-18"
    """
    subject = " ".join(str(subject).split()).casefold()
    key = f"{kind.value}:{subject}"
    if bucket:
        key = f"{key}@{bucket}"
    return key


def key_subject(query_key: str) -> str:
    """Everything before the date/season bucket of a key."""
    return query_key.split("@", 1)[0]


@dataclass
class CacheEntry:
    query_key: str
    query_kind: QueryKind
    payload: Any
    fetched_at: datetime


@dataclass
class BudgetCounter:
    date: date
    calls_used: int = 0
    calls_limit: int = DEFAULT_DAILY_LIMIT

    @property
    def remaining(self) -> int:
        return max(self.calls_limit - self.calls_used, 0)


@dataclass
class CacheState:
    """Everything persisted in the cache/state file."""

    entries: Dict[str, CacheEntry] = field(default_factory=dict)
    budget: Optional[BudgetCounter] = None
