"""
render.py – footy

DataFrame helpers for printing records in the terminal.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from .model.records import Fixture, StandingRow, Team


def _local_time(moment: datetime) -> str:
    return moment.astimezone().strftime("%a %d %b %H:%M")


def fixtures_df(fixtures: Iterable[Fixture]) -> pd.DataFrame:
    """
    Columns:
        - kickoff (local time)
        - league
        - home, score, away
        - status (with elapsed minutes while in play)
    """
    rows: List[Dict[str, Any]] = []

    for f in fixtures:
        if f.home_goals is None or f.away_goals is None:
            score = "-"
        else:
            score = f"{f.home_goals}-{f.away_goals}"

        status = f.status
        if f.is_live and f.elapsed is not None:
            status = f"{status} {f.elapsed}'"

        rows.append(
            {
                "kickoff": _local_time(f.kickoff),
                "league": f.league.display_name if f.league else "",
                "home": f.home,
                "score": score,
                "away": f.away,
                "status": status,
            }
        )

    return pd.DataFrame(rows, columns=["kickoff", "league", "home", "score", "away", "status"])


def standings_df(rows: Iterable[StandingRow], league: Optional[str] = None) -> pd.DataFrame:
    records = [
        {
            "league": r.league.display_name,
            "#": r.rank,
            "team": r.team_name,
            "P": r.played,
            "W": r.won,
            "D": r.drawn,
            "L": r.lost,
            "GF": r.goals_for,
            "GA": r.goals_against,
            "GD": r.goal_diff,
            "Pts": r.points,
            "form": r.form,
        }
        for r in rows
    ]
    df = pd.DataFrame(
        records,
        columns=["league", "#", "team", "P", "W", "D", "L", "GF", "GA", "GD", "Pts", "form"],
    )
    if league is not None:
        df = df[df["league"] == league].drop(columns=["league"])
    return df


def teams_df(teams: Iterable[Team]) -> pd.DataFrame:
    ordered = sorted(teams, key=lambda t: (t.league.display_name, t.display_name))
    return pd.DataFrame(
        [
            {"id": t.remote_id, "team": t.display_name, "league": t.league.display_name}
            for t in ordered
        ],
        columns=["id", "team", "league"],
    )
