"""
config.py – central configuration for footy.

Everything comes from environment variables, optionally placed in a .env
file in the working directory (loaded with python-dotenv):

    API_FOOTBALL_KEY              your API-Sports key (required for remote calls)
    API_FOOTBALL_BASE_URL         default https://v3.football.api-sports.io
    FOOTY_STATE_DIR               default ~/.footy
    FOOTY_FAVORITES               default <FOOTY_STATE_DIR>/favorites.csv
    FOOTY_DAILY_LIMIT             remote calls allowed per UTC day, default 50
    FOOTY_TIMEOUT                 HTTP timeout in seconds, default 5
    FOOTY_RATE_LIMIT_PER_MINUTE   client-side throttle, default 10
    FOOTY_LEAGUES                 default leagues, e.g. "epl,laliga"
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from .api_sports_client import DEFAULT_BASE_URL
from .model.cache_types import DEFAULT_DAILY_LIMIT
from .model.leagues import League, parse_leagues


@dataclass
class FootyConfig:
    api_key: str = ""
    base_url: str = DEFAULT_BASE_URL
    state_dir: Path = Path("~/.footy").expanduser()
    favorites_path: Optional[Path] = None
    daily_limit: int = DEFAULT_DAILY_LIMIT
    timeout: float = 5.0
    rate_limit_per_minute: int = 10  # free plan allows 10 requests/minute
    leagues: List[League] = field(default_factory=list)

    def require_api_key(self) -> str:
        if not self.api_key:
            raise RuntimeError(
                "API_FOOTBALL_KEY environment variable not set. "
                "Set it to your API-Sports key (or put it in a .env file)."
            )
        return self.api_key


def _env_number(name: str, default, cast):
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = cast(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got '{raw}'") from exc
    if value < 0:
        raise ValueError(f"{name} must not be negative, got '{raw}'")
    return value


def load_config(dotenv: bool = True) -> FootyConfig:
    """
    Build the configuration from the environment.

    The API key is not checked here so that local-only commands
    (`teams list`, `budget`) work without one; call require_api_key()
    before talking to the API.
    """
    if dotenv:
        load_dotenv()

    state_dir = Path(os.getenv("FOOTY_STATE_DIR", "").strip() or "~/.footy").expanduser()
    favorites = os.getenv("FOOTY_FAVORITES", "").strip()

    try:
        leagues = parse_leagues(os.getenv("FOOTY_LEAGUES", "").split(","))
    except ValueError as exc:
        raise ValueError(f"FOOTY_LEAGUES: {exc}") from exc

    return FootyConfig(
        api_key=os.getenv("API_FOOTBALL_KEY", "").strip(),
        base_url=os.getenv("API_FOOTBALL_BASE_URL", "").strip() or DEFAULT_BASE_URL,
        state_dir=state_dir,
        favorites_path=Path(favorites).expanduser() if favorites else None,
        daily_limit=_env_number("FOOTY_DAILY_LIMIT", DEFAULT_DAILY_LIMIT, int),
        timeout=_env_number("FOOTY_TIMEOUT", 5.0, float),
        rate_limit_per_minute=_env_number("FOOTY_RATE_LIMIT_PER_MINUTE", 10, int),
        leagues=leagues,
    )
