"""
leagues.py – footy

The closed set of leagues this client knows about, keyed by their
API-FOOTBALL ids.

Season lock:
    API-FOOTBALL tags a season by its starting year, so season=2025 means
    the 2025–26 season. European seasons start in July/August.
"""

from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Dict, Iterable, List, Optional


class League(Enum):
    PREMIER_LEAGUE = (39, "Premier League", "England")
    LA_LIGA = (140, "La Liga", "Spain")
    SERIE_A = (135, "Serie A", "Italy")
    BUNDESLIGA = (78, "Bundesliga", "Germany")
    LIGUE_1 = (61, "Ligue 1", "France")

    def __init__(self, api_id: int, display_name: str, country: str) -> None:
        self.api_id = api_id
        self.display_name = display_name
        self.country = country

    def __str__(self) -> str:
        return self.display_name

    @classmethod
    def parse(cls, text) -> "League":
        """
        Accept a display name, enum name, short alias or API id
        ("Premier League", "premier_league", "epl", "39").
        """
        key = _normalise(str(text))
        league = _LOOKUP.get(key)
        if league is None:
            known = ", ".join(lg.display_name for lg in cls)
            raise ValueError(f"Unknown league '{text}'. Known leagues: {known}")
        return league

    @classmethod
    def for_country(cls, country: Optional[str]) -> Optional["League"]:
        if not country:
            return None
        wanted = country.strip().casefold()
        for league in cls:
            if league.country.casefold() == wanted:
                return league
        return None

    @classmethod
    def for_api_id(cls, api_id) -> Optional["League"]:
        for league in cls:
            if str(league.api_id) == str(api_id):
                return league
        return None


def _normalise(text: str) -> str:
    return "".join(ch for ch in text.casefold() if ch.isalnum())


_ALIASES = {
    "epl": League.PREMIER_LEAGUE,
    "pl": League.PREMIER_LEAGUE,
    "laliga": League.LA_LIGA,
    "seriea": League.SERIE_A,
    "bundesliga": League.BUNDESLIGA,
    "ligue1": League.LIGUE_1,
}

_LOOKUP: Dict[str, League] = dict(_ALIASES)
for _league in League:
    _LOOKUP[_normalise(_league.display_name)] = _league
    _LOOKUP[_normalise(_league.name)] = _league
    _LOOKUP[str(_league.api_id)] = _league


def current_season(day: date) -> int:
    """Return the API-FOOTBALL season tag that contains `day`."""
    return day.year if day.month >= 7 else day.year - 1


def parse_leagues(values: Iterable[str]) -> List[League]:
    """Parse several league names, keeping order and dropping duplicates."""
    leagues: List[League] = []
    for value in values:
        value = value.strip()
        if not value:
            continue
        league = League.parse(value)
        if league not in leagues:
            leagues.append(league)
    return leagues
