"""
records.py – footy

Typed domain records and the parsers that turn raw API-FOOTBALL `response`
lists into them.

Fixture items look like:

    {"fixture": {"id", "date", "status": {"short", "elapsed"}},
     "league":  {"id", "name", "season"},
     "teams":   {"home": {"id", "name"}, "away": {"id", "name"}},
     "goals":   {"home", "away"}}

Standings come wrapped as:

    [{"league": {"id", "season", "standings": [[row, row, ...], ...]}}]

Team search results are `[{"team": {"id", "name", "country", "national"}}]`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..errors import ParseFailure
from .leagues import League


# Statuses API-FOOTBALL uses for a match in progress
LIVE_STATUSES = {"1H", "HT", "2H", "ET", "BT", "P", "SUSP", "INT", "LIVE"}
FINISHED_STATUSES = {"FT", "AET", "PEN"}


@dataclass(frozen=True)
class Team:
    """A favorite (or candidate) team. Identity is the remote id alone."""

    remote_id: str
    display_name: str = field(compare=False)
    league: League = field(compare=False)

    def label(self) -> str:
        return f"{self.display_name} ({self.league.display_name}, id {self.remote_id})"


@dataclass(frozen=True)
class Fixture:
    fixture_id: int
    kickoff: datetime
    status: str
    league: Optional[League]
    home: str
    away: str
    home_id: Optional[int] = None
    away_id: Optional[int] = None
    home_goals: Optional[int] = None
    away_goals: Optional[int] = None
    elapsed: Optional[int] = None

    @property
    def is_live(self) -> bool:
        return self.status in LIVE_STATUSES

    @property
    def is_finished(self) -> bool:
        return self.status in FINISHED_STATUSES

    def involves(self, remote_id: str) -> bool:
        return remote_id in (str(self.home_id), str(self.away_id))

    def score_line(self) -> str:
        if self.home_goals is None or self.away_goals is None:
            return f"{self.home} vs {self.away}"
        return f"{self.home} {self.home_goals}-{self.away_goals} {self.away}"


@dataclass(frozen=True)
class StandingRow:
    league: League
    rank: int
    team_id: int
    team_name: str
    played: int
    won: int
    drawn: int
    lost: int
    goals_for: int
    goals_against: int
    goal_diff: int
    points: int
    form: str = ""


# ----------------------------------------------------------------------
# Payload parsers
# ----------------------------------------------------------------------


def _expect_list(payload: Any, what: str) -> List[Any]:
    if not isinstance(payload, list):
        raise ParseFailure(
            f"Expected a list of {what}, got {type(payload).__name__}",
            hint="the provider response format may have changed",
        )
    return payload


def _optional_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


def parse_fixtures(payload: Any) -> List[Fixture]:
    """Convert raw `/fixtures` items into Fixture records."""
    fixtures: List[Fixture] = []

    for item in _expect_list(payload, "fixtures"):
        try:
            fixture = item["fixture"]
            league = item.get("league") or {}
            teams = item["teams"]
            home = teams["home"]
            away = teams["away"]
            goals = item.get("goals") or {}
            status = fixture.get("status") or {}

            fixtures.append(
                Fixture(
                    fixture_id=int(fixture["id"]),
                    kickoff=datetime.fromisoformat(fixture["date"]),
                    status=status.get("short") or "NS",
                    elapsed=_optional_int(status.get("elapsed")),
                    league=League.for_api_id(league.get("id")),
                    home=home["name"],
                    away=away["name"],
                    home_id=_optional_int(home.get("id")),
                    away_id=_optional_int(away.get("id")),
                    home_goals=_optional_int(goals.get("home")),
                    away_goals=_optional_int(goals.get("away")),
                )
            )
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise ParseFailure(
                f"Malformed fixture item: {exc!r}",
                hint="the provider response format may have changed",
            ) from exc

    fixtures.sort(key=lambda f: (f.kickoff, f.fixture_id))
    return fixtures


def parse_standings(payload: Any, league: League) -> List[StandingRow]:
    """
    Convert a raw `/standings` response into table rows for one league.

    Leagues with several groups return one list per group; they are
    flattened in the order given.
    """
    rows: List[StandingRow] = []

    for item in _expect_list(payload, "standings"):
        try:
            groups = item["league"]["standings"]
            for group in groups:
                for entry in group:
                    totals = entry["all"]
                    goals = totals["goals"]
                    rows.append(
                        StandingRow(
                            league=league,
                            rank=int(entry["rank"]),
                            team_id=int(entry["team"]["id"]),
                            team_name=entry["team"]["name"],
                            played=int(totals["played"]),
                            won=int(totals["win"]),
                            drawn=int(totals["draw"]),
                            lost=int(totals["lose"]),
                            goals_for=int(goals["for"]),
                            goals_against=int(goals["against"]),
                            goal_diff=int(entry["goalsDiff"]),
                            points=int(entry["points"]),
                            form=entry.get("form") or "",
                        )
                    )
        except (KeyError, TypeError, ValueError) as exc:
            raise ParseFailure(
                f"Malformed standings item for {league.display_name}: {exc!r}",
                hint="the provider response format may have changed",
            ) from exc

    return rows


def parse_team_candidates(
    payload: Any, league: Optional[League] = None
) -> List[Team]:
    """
    Convert raw `/teams` search results into candidate Teams.

    If `league` is given the search was already restricted to that league.
    Otherwise each team is assigned the configured league of its country;
    national sides and teams from other countries are dropped.
    """
    candidates: List[Team] = []

    for item in _expect_list(payload, "teams"):
        try:
            team: Dict[str, Any] = item["team"]
            team_id = team["id"]
            name = team["name"]
        except (KeyError, TypeError) as exc:
            raise ParseFailure(
                f"Malformed team item: {exc!r}",
                hint="the provider response format may have changed",
            ) from exc

        if team_id is None or not name:
            raise ParseFailure(f"Team item without id or name: {team!r}")

        if team.get("national"):
            continue

        team_league = league or League.for_country(team.get("country"))
        if team_league is None:
            continue

        candidates.append(
            Team(remote_id=str(team_id), display_name=str(name).strip(), league=team_league)
        )

    return candidates
