"""Tests for the scores / schedule / live / standings entry points."""

from __future__ import annotations

import pytest

from footy.api_sports_client import APISportsLimitReached, APISportsUnavailable
from footy.errors import BudgetExhausted, ParseFailure, RemoteUnavailable
from footy.model.cache_manager import CacheManager
from footy.model.leagues import League
from footy.model.orchestrator import QueryOrchestrator
from footy.model.records import Fixture, StandingRow, Team

CHELSEA = Team("49", "Chelsea", League.PREMIER_LEAGUE)
ARSENAL = Team("42", "Arsenal", League.PREMIER_LEAGUE)


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def make_orchestrator(cache, clock, sleeps):
    def build(client, cache_manager=None):
        return QueryOrchestrator(
            client,
            cache_manager or cache,
            clock=clock,
            retry_backoff=0.5,
            sleep=sleeps.append,
        )

    return build


class TestSchedule:
    def test_one_call_per_league_then_cache(
        self, fake_client_cls, make_orchestrator, make_fixture, clock
    ) -> None:
        client = fake_client_cls(
            get_fixtures=lambda **kw: [make_fixture(kw["league_id"] * 10, league_id=kw["league_id"])]
        )
        orch = make_orchestrator(client)

        first = orch.get_schedule([League.PREMIER_LEAGUE, League.LA_LIGA])
        clock.advance(minutes=30)
        second = orch.get_schedule([League.PREMIER_LEAGUE, League.LA_LIGA])

        assert [f.fixture_id for f in first] == [390, 1400]
        assert [f.fixture_id for f in second] == [390, 1400]
        assert not second.stale
        assert len(client.calls_to("get_fixtures")) == 2
        assert client.calls_to("get_fixtures")[0] == {
            "league_id": 39,
            "season": 2026,
            "from_date": "2026-10-18",
            "to_date": "2026-10-25",
        }

    def test_refetches_when_stale(self, fake_client_cls, make_orchestrator, make_fixture, clock) -> None:
        client = fake_client_cls(get_fixtures=[make_fixture(1)])
        orch = make_orchestrator(client)

        orch.get_schedule([League.PREMIER_LEAGUE])
        clock.advance(hours=2)
        orch.get_schedule([League.PREMIER_LEAGUE])

        assert len(client.calls_to("get_fixtures")) == 2

    def test_stale_served_when_budget_gone(
        self, fake_client_cls, make_orchestrator, make_fixture, store, clock
    ) -> None:
        cache = CacheManager(store, calls_limit=1)
        client = fake_client_cls(get_fixtures=[make_fixture(1)])
        orch = make_orchestrator(client, cache)

        orch.get_schedule([League.PREMIER_LEAGUE])
        fetched_at = clock()
        clock.advance(hours=2)
        result = orch.get_schedule([League.PREMIER_LEAGUE])

        assert result.stale
        assert result.fetched_at == fetched_at
        assert [f.fixture_id for f in result] == [1]
        assert len(client.calls) == 1

    def test_no_budget_and_no_cache(self, fake_client_cls, make_orchestrator, store) -> None:
        cache = CacheManager(store, calls_limit=0)
        client = fake_client_cls(get_fixtures=[])
        with pytest.raises(BudgetExhausted):
            make_orchestrator(client, cache).get_schedule([League.SERIE_A])
        assert client.calls == []


class TestScores:
    def test_dedupes_shared_fixture(self, fake_client_cls, make_orchestrator, make_fixture) -> None:
        derby = make_fixture(7, status="FT", goals=(2, 1), date="2026-10-11T15:00:00+00:00")
        older = make_fixture(3, status="FT", goals=(0, 0), date="2026-10-04T15:00:00+00:00")
        client = fake_client_cls(
            get_fixtures=lambda **kw: [older, derby] if kw["team_id"] == "49" else [derby]
        )

        result = make_orchestrator(client).get_scores([CHELSEA, ARSENAL])

        assert [f.fixture_id for f in result] == [3, 7]
        assert result[1].score_line() == "Chelsea 2-1 Arsenal"
        assert result[1].is_finished
        assert client.calls_to("get_fixtures") == [
            {"team_id": "49", "last": 2},
            {"team_id": "42", "last": 2},
        ]

    def test_scores_cached_for_the_day(self, fake_client_cls, make_orchestrator, make_fixture, clock) -> None:
        client = fake_client_cls(get_fixtures=[make_fixture(1, status="FT", goals=(1, 0))])
        orch = make_orchestrator(client)

        orch.get_scores([CHELSEA])
        clock.advance(hours=8)
        orch.get_scores([CHELSEA])
        clock.advance(hours=8)  # next UTC day, new key
        orch.get_scores([CHELSEA])

        assert len(client.calls) == 2

    def test_yesterdays_scores_served_when_budget_gone(
        self, fake_client_cls, make_orchestrator, make_fixture, store, clock
    ) -> None:
        cache = CacheManager(store, calls_limit=1)
        client = fake_client_cls(get_fixtures=[make_fixture(1, status="FT", goals=(1, 0))])
        orch = make_orchestrator(client, cache)

        orch.get_scores([CHELSEA])
        fetched_at = clock()
        clock.advance(days=1)
        with cache.transaction():
            cache.mark_exhausted(clock())
        result = orch.get_scores([CHELSEA])

        assert result.stale
        assert result.fetched_at == fetched_at
        assert [f.fixture_id for f in result] == [1]
        assert len(client.calls) == 1

    def test_other_teams_entry_is_not_a_fallback(
        self, fake_client_cls, make_orchestrator, make_fixture, store, clock
    ) -> None:
        cache = CacheManager(store, calls_limit=1)
        client = fake_client_cls(get_fixtures=[make_fixture(1, status="FT", goals=(1, 0))])
        orch = make_orchestrator(client, cache)

        orch.get_scores([CHELSEA])
        with pytest.raises(BudgetExhausted):
            orch.get_scores([ARSENAL])
        assert len(client.calls) == 1


class TestLive:
    def test_one_call_for_all_leagues(self, fake_client_cls, make_orchestrator, make_fixture) -> None:
        client = fake_client_cls(
            get_live_fixtures=[
                make_fixture(1, status="2H", elapsed=67, goals=(1, 1)),
                make_fixture(2, league_id=140, status="1H", elapsed=12, goals=(0, 0)),
                make_fixture(3, league_id=999, status="HT", goals=(0, 0)),
            ]
        )

        result = make_orchestrator(client).get_live([League.LA_LIGA, League.PREMIER_LEAGUE])

        assert [f.fixture_id for f in result] == [1, 2]
        assert all(isinstance(f, Fixture) and f.is_live for f in result)
        assert client.calls_to("get_live_fixtures") == [{"league_ids": [39, 140]}]

    def test_live_goes_stale_quickly(self, fake_client_cls, make_orchestrator, make_fixture, clock) -> None:
        client = fake_client_cls(get_live_fixtures=[make_fixture(1, status="1H", elapsed=5)])
        orch = make_orchestrator(client)

        orch.get_live([League.PREMIER_LEAGUE])
        clock.advance(seconds=10)
        orch.get_live([League.PREMIER_LEAGUE])
        clock.advance(seconds=50)
        orch.get_live([League.PREMIER_LEAGUE])

        assert len(client.calls) == 2

    def test_no_leagues_no_call(self, fake_client_cls, make_orchestrator) -> None:
        client = fake_client_cls()
        assert len(make_orchestrator(client).get_live([])) == 0
        assert client.calls == []


class TestStandings:
    def test_rows_per_league(self, fake_client_cls, make_orchestrator, make_standings) -> None:
        client = fake_client_cls(
            get_standings=lambda league_id, season: make_standings(
                league_id, [(1, 42, "Arsenal", 19), (2, 49, "Chelsea", 17)]
            )
        )

        result = make_orchestrator(client).get_standings([League.PREMIER_LEAGUE])

        assert [(r.rank, r.team_name, r.points) for r in result] == [
            (1, "Arsenal", 19),
            (2, "Chelsea", 17),
        ]
        assert all(isinstance(r, StandingRow) and r.league is League.PREMIER_LEAGUE for r in result)
        assert client.calls_to("get_standings") == [{"league_id": 39, "season": 2026}]


class TestErrors:
    def test_retries_once_then_succeeds(
        self, fake_client_cls, queue_cls, make_orchestrator, make_fixture, sleeps, cache, clock
    ) -> None:
        client = fake_client_cls(
            get_fixtures=queue_cls(APISportsUnavailable("Timed out"), [make_fixture(1)])
        )

        result = make_orchestrator(client).get_schedule([League.PREMIER_LEAGUE])

        assert [f.fixture_id for f in result] == [1]
        assert sleeps == [0.5]
        assert len(client.calls) == 2
        assert cache.calls_remaining(clock()) == 4

    def test_retries_only_once(self, fake_client_cls, queue_cls, make_orchestrator, sleeps) -> None:
        client = fake_client_cls(
            get_fixtures=queue_cls(APISportsUnavailable("down"), APISportsUnavailable("still down"))
        )
        with pytest.raises(RemoteUnavailable, match="still down"):
            make_orchestrator(client).get_schedule([League.PREMIER_LEAGUE])
        assert len(client.calls) == 2
        assert sleeps == [0.5]

    def test_non_retryable_error(self, fake_client_cls, make_orchestrator, sleeps) -> None:
        client = fake_client_cls(
            get_fixtures=APISportsUnavailable("bad key", retryable=False)
        )
        with pytest.raises(RemoteUnavailable):
            make_orchestrator(client).get_schedule([League.PREMIER_LEAGUE])
        assert len(client.calls) == 1
        assert sleeps == []

    def test_parse_failure_not_retried_or_cached(
        self, fake_client_cls, make_orchestrator, sleeps, cache, clock
    ) -> None:
        client = fake_client_cls(get_fixtures=[{"fixture": {"id": 1}}])
        with pytest.raises(ParseFailure):
            make_orchestrator(client).get_schedule([League.PREMIER_LEAGUE])
        assert len(client.calls) == 1
        assert sleeps == []
        assert cache.state.entries == {}
        assert cache.calls_remaining(clock()) == 4

    def test_provider_limit_marks_budget_exhausted(
        self, fake_client_cls, make_orchestrator, cache, clock
    ) -> None:
        client = fake_client_cls(
            get_fixtures=APISportsLimitReached("You have reached the request limit for the day")
        )
        orch = make_orchestrator(client)

        with pytest.raises(BudgetExhausted):
            orch.get_schedule([League.PREMIER_LEAGUE])
        with pytest.raises(BudgetExhausted):
            orch.get_schedule([League.LA_LIGA])

        assert len(client.calls) == 1
        assert cache.calls_remaining(clock()) == 0

    def test_remaining_header_zero_stops_further_calls(
        self, fake_client_cls, make_orchestrator, make_fixture, cache, clock
    ) -> None:
        client = fake_client_cls(get_fixtures=[make_fixture(1)])
        client.requests_remaining = 0
        orch = make_orchestrator(client)

        orch.get_schedule([League.PREMIER_LEAGUE])

        assert not cache.can_spend_call(clock())

    def test_answered_failure_counts_against_budget(
        self, fake_client_cls, queue_cls, make_orchestrator, make_fixture, cache, clock
    ) -> None:
        client = fake_client_cls(
            get_fixtures=queue_cls(
                APISportsUnavailable("API HTTP 502", reached_server=True), [make_fixture(1)]
            )
        )

        make_orchestrator(client).get_schedule([League.PREMIER_LEAGUE])

        assert len(client.calls) == 2
        assert cache.calls_remaining(clock()) == 3

    def test_no_retry_when_failure_used_the_last_call(
        self, fake_client_cls, queue_cls, make_orchestrator, make_fixture, store, sleeps, clock
    ) -> None:
        cache = CacheManager(store, calls_limit=1)
        client = fake_client_cls(
            get_fixtures=queue_cls(
                APISportsUnavailable("API HTTP 502", reached_server=True), [make_fixture(1)]
            )
        )

        with pytest.raises(RemoteUnavailable):
            make_orchestrator(client, cache).get_schedule([League.PREMIER_LEAGUE])

        assert len(client.calls) == 1
        assert sleeps == []
        assert cache.calls_remaining(clock()) == 0
