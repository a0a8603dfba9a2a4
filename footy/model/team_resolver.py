"""
team_resolver.py – footy

Turn a team name typed by the user into exactly one remote team record.

Club names are not unique across API-FOOTBALL's catalog (there is more
than one "Arsenal"), so a search can legitimately return several clubs.
The resolver never picks one itself: the caller gets a tagged result and
has to deal with the Ambiguous case, usually by asking the user for a
league or an id and calling select_candidate().

    resolution = resolver.resolve("Arsenal")
    if isinstance(resolution, Ambiguous):
        team = select_candidate(resolution.candidates, league=League.PREMIER_LEAGUE)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple, Union

from ..api_sports_client import APISportsClient
from ..errors import AmbiguousTeam
from .cache_manager import CacheManager
from .cache_types import QueryKind, build_query_key
from .leagues import League, current_season
from .local_store import LocalStore
from .records import Team, parse_team_candidates


logger = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 3  # API-FOOTBALL rejects shorter search terms


@dataclass(frozen=True)
class Resolved:
    team: Team


@dataclass(frozen=True)
class Ambiguous:
    query: str
    candidates: Tuple[Team, ...]


@dataclass(frozen=True)
class NotFound:
    query: str


Resolution = Union[Resolved, Ambiguous, NotFound]


def normalise_name(text: str) -> str:
    """Case-insensitive, whitespace-collapsed form used for comparisons."""
    return " ".join(str(text).split()).casefold()


def _candidate_order(team: Team) -> Tuple[str, str, str]:
    return (team.league.display_name, normalise_name(team.display_name), team.remote_id)


def classify(query_text: str, candidates: Sequence[Team]) -> Resolution:
    """
    Decide NotFound / Resolved / Ambiguous for a list of search hits.

    Exact (normalised) name matches win over partial ones, so "Chelsea"
    resolves even when the search also returned "Chelsea W".
    """
    unique: Dict[str, Team] = {}
    for team in candidates:
        unique.setdefault(team.remote_id, team)

    wanted = normalise_name(query_text)
    exact = [t for t in unique.values() if normalise_name(t.display_name) == wanted]
    pool = exact or list(unique.values())

    if not pool:
        return NotFound(query=query_text)
    if len(pool) == 1:
        return Resolved(team=pool[0])
    return Ambiguous(query=query_text, candidates=tuple(sorted(pool, key=_candidate_order)))


def select_candidate(
    candidates: Sequence[Team],
    league: Optional[League] = None,
    remote_id: Optional[str] = None,
) -> Team:
    """
    Narrow an ambiguous candidate list with the caller's selector.

    Raises AmbiguousTeam when the selector leaves zero or several teams.
    """
    pool = list(candidates)
    if remote_id is not None:
        pool = [t for t in pool if t.remote_id == str(remote_id).strip()]
    if league is not None:
        pool = [t for t in pool if t.league is league]

    if len(pool) == 1:
        return pool[0]

    if not pool:
        raise AmbiguousTeam(
            "No candidate matches the given league/id",
            candidates=candidates,
            hint="pick one of the listed ids",
        )
    raise AmbiguousTeam(
        f"{len(pool)} candidates still match",
        candidates=pool,
        hint="pass --id with one of the listed ids",
    )


def add_favorite(store: LocalStore, resolution: Resolution) -> Tuple[Team, bool]:
    """
    Persist a Resolved team. Returns (team, added) where added is False if
    the id was already a favorite.
    """
    if isinstance(resolution, Ambiguous):
        raise AmbiguousTeam(
            f"'{resolution.query}' matches {len(resolution.candidates)} teams",
            candidates=resolution.candidates,
            hint="choose one with --league or --id",
        )
    if isinstance(resolution, NotFound):
        raise ValueError(f"No team found for '{resolution.query}'")

    team = resolution.team
    with store.edit_favorites() as favorites:
        if team in favorites:
            return team, False
        favorites.add(team)
    logger.info("Added favorite %s", team.label())
    return team, True


def remove_favorite(store: LocalStore, name_or_id: str) -> List[Team]:
    """Remove favorites whose id or normalised name equals `name_or_id`."""
    wanted = normalise_name(name_or_id)
    with store.edit_favorites() as favorites:
        matches: Set[Team] = {
            t
            for t in favorites
            if t.remote_id == name_or_id.strip() or normalise_name(t.display_name) == wanted
        }
        if len(matches) > 1:
            raise AmbiguousTeam(
                f"'{name_or_id}' matches {len(matches)} favorites",
                candidates=sorted(matches, key=_candidate_order),
                hint="remove by id instead",
            )
        favorites.difference_update(matches)
    return sorted(matches, key=_candidate_order)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TeamResolver:
    """
    Name search against API-FOOTBALL's /teams endpoint, one budget unit per
    uncached search.

    Parameters
    ----------
    client : APISportsClient
    cache : CacheManager
        Search results are cached under a TEAMS key.
    clock : callable, optional
        Returns the current aware datetime; injectable for tests.
    """

    def __init__(
        self,
        client: APISportsClient,
        cache: CacheManager,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.client = client
        self.cache = cache
        self.clock = clock

    def _search(self, query: str, league: Optional[League], now: datetime) -> List[Team]:
        subject = league.api_id if league else "all"
        key = build_query_key(QueryKind.TEAMS, str(subject), normalise_name(query))

        def search_teams():
            if league is None:
                return self.client.get_teams(search=query)
            return self.client.get_teams(
                league_id=league.api_id,
                season=current_season(now.astimezone(timezone.utc).date()),
                search=query,
            )

        # searches for other names share the key subject, so no fallback
        candidates, _, _ = self.cache.fetch(
            key,
            QueryKind.TEAMS,
            search_teams,
            lambda payload: parse_team_candidates(payload, league=league),
            now,
            quota_left=lambda: getattr(self.client, "requests_remaining", None),
            fallback=False,
        )
        return candidates

    def resolve(
        self,
        query_text: str,
        league: Optional[League] = None,
        now: Optional[datetime] = None,
    ) -> Resolution:
        """
        Search for `query_text` and classify the hits.

        Raises
        ------
        ValueError
            Query shorter than 3 characters after trimming.
        BudgetExhausted
            No call left today and no cached search.
        RemoteUnavailable, ParseFailure
            Propagated from the client; never retried here.
        """
        query = " ".join(str(query_text).split())
        if len(query) < MIN_QUERY_LENGTH:
            raise ValueError(
                f"Team name must have at least {MIN_QUERY_LENGTH} characters: '{query_text}'"
            )

        now = now or self.clock()
        candidates = self._search(query, league, now)
        resolution = classify(query, candidates)

        if isinstance(resolution, Ambiguous):
            logger.info(
                "'%s' is ambiguous: %s",
                query,
                ", ".join(t.label() for t in resolution.candidates),
            )
        return resolution
