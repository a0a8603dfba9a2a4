"""
cli.py – footy command line

Usage:

    footy scores [--team NAME_OR_ID ...] [--last N]
    footy schedule [--league L ...] [--days N] [--mine]
    footy live [--league L ...]
    footy standings [--league L ...]
    footy teams list
    footy teams add NAME [--league L] [--id ID]
    footy teams remove NAME_OR_ID
    footy budget

or, from the project root without installing:

    python -m footy.cli schedule --league epl
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence

from .api_sports_client import APISportsClient
from .config import FootyConfig, load_config
from .errors import AmbiguousTeam, FootyError
from .model.cache_manager import CacheManager
from .model.leagues import League
from .model.local_store import LocalStore
from .model.orchestrator import QueryOrchestrator, QueryResult
from .model.records import Team
from .model.team_resolver import (
    Ambiguous,
    NotFound,
    Resolved,
    TeamResolver,
    add_favorite,
    normalise_name,
    remove_favorite,
    select_candidate,
)
from .render import fixtures_df, standings_df, teams_df


logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_USAGE = 2


# ----------------------------------------------------------------------
# Wiring
# ----------------------------------------------------------------------


@dataclass
class App:
    """Everything a command needs, built once per invocation."""

    config: FootyConfig
    store: LocalStore
    cache: CacheManager
    client_factory: Callable[[], APISportsClient]
    _client: Optional[APISportsClient] = field(default=None, repr=False)

    @classmethod
    def from_config(cls, config: FootyConfig) -> "App":
        store = LocalStore(config.state_dir, favorites_path=config.favorites_path)
        cache = CacheManager(store, calls_limit=config.daily_limit)

        def client_factory() -> APISportsClient:
            return APISportsClient(
                api_key=config.require_api_key(),
                base_url=config.base_url,
                timeout=config.timeout,
                rate_limit_per_minute=config.rate_limit_per_minute or None,
            )

        return cls(config=config, store=store, cache=cache, client_factory=client_factory)

    @property
    def client(self) -> APISportsClient:
        if self._client is None:
            self._client = self.client_factory()
        return self._client

    def orchestrator(self) -> QueryOrchestrator:
        return QueryOrchestrator(self.client, self.cache)

    def resolver(self) -> TeamResolver:
        return TeamResolver(self.client, self.cache)

    def default_leagues(self) -> List[League]:
        if self.config.leagues:
            return list(self.config.leagues)
        favorite_leagues = {t.league for t in self.store.load_favorites()}
        if favorite_leagues:
            return [lg for lg in League if lg in favorite_leagues]
        return list(League)


# ----------------------------------------------------------------------
# Output helpers
# ----------------------------------------------------------------------


def _print_table(df) -> None:
    print(df.to_string(index=False))


def _print_staleness(result: QueryResult) -> None:
    if result.stale and result.fetched_at is not None:
        print(
            f"\n(no API calls left today – showing cached data from "
            f"{result.fetched_at.astimezone():%Y-%m-%d %H:%M})"
        )


def _print_candidates(candidates: Sequence[Team]) -> None:
    for i, team in enumerate(candidates, start=1):
        print(f"  {i}. {team.label()}")


def _prompt_choice(
    candidates: Sequence[Team], input_fn: Callable[[str], str] = input
) -> Optional[Team]:
    _print_candidates(candidates)
    while True:
        answer = input_fn(f"Choose 1-{len(candidates)} (blank to cancel): ").strip()
        if not answer:
            return None
        if answer.isdigit() and 1 <= int(answer) <= len(candidates):
            return candidates[int(answer) - 1]
        print(f"Please enter a number between 1 and {len(candidates)}.")


def _leagues_from_args(app: App, values: Optional[List[str]]) -> List[League]:
    if values:
        return [League.parse(v) for v in values]
    return app.default_leagues()


# ----------------------------------------------------------------------
# Commands
# ----------------------------------------------------------------------


def cmd_scores(app: App, args: argparse.Namespace) -> int:
    favorites = app.store.load_favorites()
    if not favorites:
        print("No favorite teams yet. Add one with: footy teams add NAME")
        return EXIT_OK

    teams = sorted(favorites, key=lambda t: t.display_name)
    if args.team:
        wanted = {normalise_name(v) for v in args.team}
        teams = [
            t
            for t in teams
            if t.remote_id in args.team or normalise_name(t.display_name) in wanted
        ]
        if not teams:
            print("None of the given teams are favorites. See: footy teams list")
            return EXIT_USAGE

    result = app.orchestrator().get_scores(teams, last_n=args.last)
    if not result:
        print("No recent results.")
    else:
        _print_table(fixtures_df(result))
    _print_staleness(result)
    return EXIT_OK


def cmd_schedule(app: App, args: argparse.Namespace) -> int:
    leagues = _leagues_from_args(app, args.league)
    result = app.orchestrator().get_schedule(leagues, days_ahead=args.days)

    fixtures = list(result)
    if args.mine:
        favorites = app.store.load_favorites()
        fixtures = [f for f in fixtures if any(f.involves(t.remote_id) for t in favorites)]

    if not fixtures:
        print(f"No fixtures in the next {args.days} days.")
    else:
        _print_table(fixtures_df(fixtures))
    _print_staleness(result)
    return EXIT_OK


def cmd_live(app: App, args: argparse.Namespace) -> int:
    leagues = _leagues_from_args(app, args.league)
    result = app.orchestrator().get_live(leagues)
    if not result:
        print("No matches in progress.")
    else:
        _print_table(fixtures_df(result))
    _print_staleness(result)
    return EXIT_OK


def cmd_standings(app: App, args: argparse.Namespace) -> int:
    leagues = _leagues_from_args(app, args.league)
    result = app.orchestrator().get_standings(leagues)

    for league in leagues:
        table = standings_df(result, league=league.display_name)
        print(f"\n{league.display_name}")
        print("=" * len(league.display_name))
        if table.empty:
            print("No standings available.")
        else:
            _print_table(table)

    _print_staleness(result)
    return EXIT_OK


def cmd_teams_list(app: App, args: argparse.Namespace) -> int:
    favorites = app.store.load_favorites()
    if not favorites:
        print("No favorite teams yet. Add one with: footy teams add NAME")
    else:
        _print_table(teams_df(favorites))
    return EXIT_OK


def cmd_teams_add(app: App, args: argparse.Namespace) -> int:
    league = League.parse(args.league) if args.league else None
    resolution = app.resolver().resolve(args.name, league=league)

    if isinstance(resolution, NotFound):
        where = f" in {league.display_name}" if league else ""
        print(f"No team called '{args.name}' found{where}.")
        return EXIT_ERROR

    if isinstance(resolution, Ambiguous):
        if args.id:
            team = select_candidate(resolution.candidates, remote_id=args.id)
        elif sys.stdin.isatty():
            print(f"'{args.name}' matches several teams:")
            team = _prompt_choice(resolution.candidates)
            if team is None:
                print("Nothing added.")
                return EXIT_USAGE
        else:
            print(f"'{args.name}' matches several teams:")
            _print_candidates(resolution.candidates)
            print("Run again with --league or --id to choose one. Nothing added.")
            return EXIT_USAGE
        resolution = Resolved(team=team)
    elif args.id and resolution.team.remote_id != str(args.id).strip():
        print(
            f"'{args.name}' resolved to {resolution.team.label()}, "
            f"not id {args.id}. Nothing added."
        )
        return EXIT_ERROR

    team, added = add_favorite(app.store, resolution)
    if added:
        print(f"Added {team.label()}.")
    else:
        print(f"{team.label()} is already a favorite.")
    return EXIT_OK


def cmd_teams_remove(app: App, args: argparse.Namespace) -> int:
    removed = remove_favorite(app.store, args.name_or_id)
    if not removed:
        print(f"'{args.name_or_id}' is not a favorite.")
        return EXIT_ERROR
    for team in removed:
        print(f"Removed {team.label()}.")
    return EXIT_OK


def cmd_budget(app: App, args: argparse.Namespace) -> int:
    # local only, no API key needed
    with app.cache.transaction():
        budget = app.cache.budget_snapshot(datetime.now(timezone.utc))
    print(
        f"{budget.date}: {budget.calls_used}/{budget.calls_limit} API calls used, "
        f"{budget.remaining} left (resets 00:00 UTC)"
    )
    return EXIT_OK


# ----------------------------------------------------------------------
# Parser / entrypoint
# ----------------------------------------------------------------------


def _positive_int(text: str) -> int:
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected a whole number, got '{text}'")
    if value < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {value}")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="footy",
        description="Football scores, fixtures and tables for your favorite teams.",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="show debug logging"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("scores", help="recent results of favorite teams")
    p.add_argument("--team", action="append", help="favorite name or id (repeatable)")
    p.add_argument("--last", type=_positive_int, default=2, help="results per team (default 2)")
    p.set_defaults(func=cmd_scores)

    p = sub.add_parser("schedule", help="upcoming fixtures")
    p.add_argument("--league", action="append", help="league name or id (repeatable)")
    p.add_argument("--days", type=_positive_int, default=7, help="days ahead (default 7)")
    p.add_argument("--mine", action="store_true", help="only fixtures of favorites")
    p.set_defaults(func=cmd_schedule)

    p = sub.add_parser("live", help="matches in progress")
    p.add_argument("--league", action="append", help="league name or id (repeatable)")
    p.set_defaults(func=cmd_live)

    p = sub.add_parser("standings", help="league tables")
    p.add_argument("--league", action="append", help="league name or id (repeatable)")
    p.set_defaults(func=cmd_standings)

    teams = sub.add_parser("teams", help="manage favorite teams")
    teams_sub = teams.add_subparsers(dest="teams_command", required=True)

    p = teams_sub.add_parser("list", help="show favorites")
    p.set_defaults(func=cmd_teams_list)

    p = teams_sub.add_parser("add", help="add a favorite by name")
    p.add_argument("name")
    p.add_argument("--league", help="only search this league")
    p.add_argument("--id", help="pick this team id when the name is ambiguous")
    p.set_defaults(func=cmd_teams_add)

    p = teams_sub.add_parser("remove", help="remove a favorite by name or id")
    p.add_argument("name_or_id")
    p.set_defaults(func=cmd_teams_remove)

    p = sub.add_parser("budget", help="API calls used today")
    p.set_defaults(func=cmd_budget)

    return parser


def main(argv: Optional[Sequence[str]] = None, app: Optional[App] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        if app is None:
            app = App.from_config(load_config())
        return args.func(app, args)
    except AmbiguousTeam as exc:
        print(f"error: {exc.describe()}", file=sys.stderr)
        _print_candidates(exc.candidates)
        return EXIT_USAGE
    except FootyError as exc:
        print(f"error: {exc.describe()}", file=sys.stderr)
        return EXIT_ERROR
    except (ValueError, RuntimeError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_USAGE


if __name__ == "__main__":
    sys.exit(main())
