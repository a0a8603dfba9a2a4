"""
orchestrator.py – footy

Entry points used by the command handlers: scores, schedule, live and
standings. Each one builds its cache keys, lets the CacheManager decide
whether a remote call is needed, and parses the payload into records the
same way whether it came from the cache or from the API.

Remote query granularity (chosen to stay inside a ~50 calls/day budget):

    scores     one /fixtures?team=&last= call per team per UTC day
    schedule   one /fixtures?league=&season=&from=&to= call per league per UTC day
    live       one /fixtures?live=39-140-... call for all requested leagues
    standings  one /standings call per league per season (6h freshness)
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Generic, Iterable, Iterator, List, Optional, TypeVar

from ..api_sports_client import APISportsClient
from ..errors import RemoteUnavailable
from .cache_manager import CacheManager
from .cache_types import QueryKind, build_query_key
from .leagues import League, current_season
from .records import Fixture, StandingRow, Team, parse_fixtures, parse_standings


logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_LAST_N = 2
DEFAULT_DAYS_AHEAD = 7


@dataclass
class QueryResult(Generic[T]):
    """
    Records for one command, plus a staleness annotation.

    `stale` is True when part of the answer was served from an expired
    cache entry because no API calls were left; `fetched_at` is the age of
    the oldest payload used.
    """

    records: List[T] = field(default_factory=list)
    stale: bool = False
    fetched_at: Optional[datetime] = None

    def __iter__(self) -> Iterator[T]:
        return iter(self.records)

    def __len__(self) -> int:
        return len(self.records)

    def __getitem__(self, index: int) -> T:
        return self.records[index]

    def _merge(self, records: List[T], stale: bool, fetched_at: Optional[datetime]) -> None:
        self.records.extend(records)
        self.stale = self.stale or stale
        if fetched_at is not None and (self.fetched_at is None or fetched_at < self.fetched_at):
            self.fetched_at = fetched_at


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class QueryOrchestrator:
    """
    Compose CacheManager + APISportsClient into typed answers.

    Parameters
    ----------
    client : APISportsClient
    cache : CacheManager
    clock : callable, optional
        Returns the current aware datetime; injectable for tests.
    retry_backoff : float, optional
        Seconds to wait before the single retry of a failed remote call.
    sleep : callable, optional
        Used for the backoff; injectable for tests.
    """

    def __init__(
        self,
        client: APISportsClient,
        cache: CacheManager,
        clock: Callable[[], datetime] = _utc_now,
        retry_backoff: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.client = client
        self.cache = cache
        self.clock = clock
        self.retry_backoff = retry_backoff
        self.sleep = sleep

    # ------------------------------------------------------------------
    # Core fetch cycle
    # ------------------------------------------------------------------
    def _call_with_retry(self, key: str, attempt: Callable[[], Any], now: datetime) -> Any:
        try:
            return attempt()
        except RemoteUnavailable as exc:
            if not exc.retryable:
                raise
            # a failure the provider answered has already been counted
            if not self.cache.can_spend_call(now):
                raise
            logger.warning(
                "Fetching %s failed (%s); retrying once in %.1fs",
                key,
                exc,
                self.retry_backoff,
            )
        self.sleep(self.retry_backoff)
        return attempt()

    def _fetch(
        self,
        key: str,
        kind: QueryKind,
        call: Callable[[], Any],
        parse: Callable[[Any], List[T]],
        now: datetime,
    ):
        """Returns (records, stale, fetched_at)."""
        return self.cache.fetch(
            key,
            kind,
            call,
            parse,
            now,
            retry=lambda attempt: self._call_with_retry(key, attempt, now),
            quota_left=lambda: getattr(self.client, "requests_remaining", None),
        )

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------
    def get_scores(self, teams: Iterable[Team], last_n: int = DEFAULT_LAST_N) -> QueryResult[Fixture]:
        """Last `last_n` fixtures of each team, oldest first, without duplicates."""
        now = self.clock()
        today = now.astimezone(timezone.utc).date().isoformat()
        result: QueryResult[Fixture] = QueryResult()

        for team in teams:
            key = build_query_key(QueryKind.SCORES, f"{team.remote_id}-last{last_n}", today)
            records, stale, fetched_at = self._fetch(
                key,
                QueryKind.SCORES,
                lambda team=team: self.client.get_fixtures(team_id=team.remote_id, last=last_n),
                parse_fixtures,
                now,
            )
            result._merge(records, stale, fetched_at)

        result.records = _dedupe_fixtures(result.records)
        return result

    def get_schedule(
        self, leagues: Iterable[League], days_ahead: int = DEFAULT_DAYS_AHEAD
    ) -> QueryResult[Fixture]:
        """Fixtures from today to `days_ahead` days out, one call per league."""
        now = self.clock()
        today = now.astimezone(timezone.utc).date()
        season = current_season(today)
        until = today + timedelta(days=days_ahead)
        result: QueryResult[Fixture] = QueryResult()

        for league in leagues:
            key = build_query_key(
                QueryKind.SCHEDULE, f"{league.api_id}-{days_ahead}d", today.isoformat()
            )
            records, stale, fetched_at = self._fetch(
                key,
                QueryKind.SCHEDULE,
                lambda league=league: self.client.get_fixtures(
                    league_id=league.api_id,
                    season=season,
                    from_date=today.isoformat(),
                    to_date=until.isoformat(),
                ),
                parse_fixtures,
                now,
            )
            result._merge(records, stale, fetched_at)

        result.records = _dedupe_fixtures(result.records)
        return result

    def get_live(self, leagues: Iterable[League]) -> QueryResult[Fixture]:
        """Matches in progress in the given leagues, one call in total."""
        now = self.clock()
        wanted = list(dict.fromkeys(leagues))
        result: QueryResult[Fixture] = QueryResult()
        if not wanted:
            return result

        ids = sorted(league.api_id for league in wanted)
        key = build_query_key(QueryKind.LIVE, "-".join(str(i) for i in ids))
        records, stale, fetched_at = self._fetch(
            key,
            QueryKind.LIVE,
            lambda: self.client.get_live_fixtures(ids),
            parse_fixtures,
            now,
        )
        result._merge([f for f in records if f.league in wanted], stale, fetched_at)
        return result

    def get_standings(self, leagues: Iterable[League]) -> QueryResult[StandingRow]:
        """Current-season table for each league, in the order given."""
        now = self.clock()
        season = current_season(now.astimezone(timezone.utc).date())
        result: QueryResult[StandingRow] = QueryResult()

        for league in leagues:
            key = build_query_key(QueryKind.STANDINGS, str(league.api_id), str(season))
            records, stale, fetched_at = self._fetch(
                key,
                QueryKind.STANDINGS,
                lambda league=league: self.client.get_standings(league.api_id, season),
                lambda payload, league=league: parse_standings(payload, league),
                now,
            )
            result._merge(records, stale, fetched_at)

        return result


def _dedupe_fixtures(fixtures: List[Fixture]) -> List[Fixture]:
    by_id: Dict[int, Fixture] = {}
    for fixture in fixtures:
        by_id.setdefault(fixture.fixture_id, fixture)
    return sorted(by_id.values(), key=lambda f: (f.kickoff, f.fixture_id))
