"""Shared fakes and fixtures for the footy tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

import pytest

from footy.model.cache_manager import CacheManager
from footy.model.local_store import LocalStore

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeClient:
    """
    Stands in for APISportsClient. Each method answers from `responses`:
    a value is returned as-is, an exception instance is raised, a callable
    is called with the request kwargs, a Queue is consumed one per call.
    """

    def __init__(self, **responses: Any) -> None:
        self.responses: Dict[str, Any] = responses
        self.calls: List[tuple] = []
        self.requests_remaining: Optional[int] = None

    def _answer(self, name: str, kwargs: Dict[str, Any]) -> Any:
        self.calls.append((name, kwargs))
        answer = self.responses.get(name, [])
        if isinstance(answer, Queue):
            answer = answer.pop()
        if isinstance(answer, BaseException):
            raise answer
        if callable(answer):
            return answer(**kwargs)
        return answer

    def calls_to(self, name: str) -> List[Dict[str, Any]]:
        return [kwargs for called, kwargs in self.calls if called == name]

    def get_fixtures(self, **kwargs: Any) -> Any:
        return self._answer("get_fixtures", kwargs)

    def get_live_fixtures(self, league_ids) -> Any:
        return self._answer("get_live_fixtures", {"league_ids": list(league_ids)})

    def get_standings(self, league_id: int, season: int) -> Any:
        return self._answer("get_standings", {"league_id": league_id, "season": season})

    def get_teams(self, **kwargs: Any) -> Any:
        return self._answer("get_teams", kwargs)


class Queue:
    """Successive answers for one FakeClient method."""

    def __init__(self, *answers: Any) -> None:
        self.answers = list(answers)

    def pop(self) -> Any:
        return self.answers.pop(0)


def fixture_item(
    fixture_id: int,
    home: str = "Chelsea",
    away: str = "Arsenal",
    home_id: int = 49,
    away_id: int = 42,
    league_id: int = 39,
    date: str = "2026-10-18T14:00:00+00:00",
    status: str = "NS",
    elapsed: Optional[int] = None,
    goals: tuple = (None, None),
) -> Dict[str, Any]:
    return {
        "fixture": {
            "id": fixture_id,
            "date": date,
            "status": {"short": status, "elapsed": elapsed},
        },
        "league": {"id": league_id, "name": "League", "season": 2026},
        "teams": {
            "home": {"id": home_id, "name": home},
            "away": {"id": away_id, "name": away},
        },
        "goals": {"home": goals[0], "away": goals[1]},
    }


def team_item(team_id: int, name: str, country: str = "England", national: bool = False) -> Dict[str, Any]:
    return {
        "team": {
            "id": team_id,
            "name": name,
            "code": name[:3].upper(),
            "country": country,
            "national": national,
        },
        "venue": {"name": "Stadium"},
    }


def standings_payload(league_id: int, rows: List[tuple]) -> List[Dict[str, Any]]:
    """rows: (rank, team_id, team_name, points)"""
    table = []
    for rank, team_id, name, points in rows:
        table.append(
            {
                "rank": rank,
                "team": {"id": team_id, "name": name},
                "points": points,
                "goalsDiff": 10 - rank,
                "form": "WWDLW",
                "all": {
                    "played": 8,
                    "win": points // 3,
                    "draw": points % 3,
                    "lose": 8 - points // 3 - points % 3,
                    "goals": {"for": 15, "against": 5 + rank},
                },
            }
        )
    return [{"league": {"id": league_id, "season": 2026, "standings": [table]}}]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(tmp_path) -> LocalStore:
    return LocalStore(tmp_path / "state", lock_timeout=0.5)


@pytest.fixture
def cache(store: LocalStore) -> CacheManager:
    return CacheManager(store, calls_limit=5)


@pytest.fixture
def make_fixture() -> Callable[..., Dict[str, Any]]:
    return fixture_item


@pytest.fixture
def make_team() -> Callable[..., Dict[str, Any]]:
    return team_item


@pytest.fixture
def make_standings() -> Callable[..., List[Dict[str, Any]]]:
    return standings_payload


@pytest.fixture
def fake_client_cls():
    return FakeClient


@pytest.fixture
def queue_cls():
    return Queue
