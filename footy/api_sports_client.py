"""
api_sports_client.py

Thin wrapper around the API-FOOTBALL / API-Sports v3 football API.

Docs:
    https://www.api-football.com/documentation-v3

Core ideas:
    - Single client class: APISportsClient
    - Handles headers, base URL, timeouts and error classification
    - One public call = one HTTP request = one unit of the daily budget,
      so there is no automatic pagination
    - Exposes the small surface the CLI needs:
        * Fixtures (by date range / team / league / live)
        * League standings
        * Team search

Usage:

    from footy.api_sports_client import APISportsClient

    client = APISportsClient(api_key="YOUR_KEY_HERE")

    fixtures = client.get_fixtures(league_id=39, season=2025,
                                   from_date="2025-12-04", to_date="2025-12-11")
    table = client.get_standings(league_id=39, season=2025)
    teams = client.get_teams(search="arsenal")
"""

from __future__ import annotations

import logging
import os
import time
from typing import Any, Dict, Iterable, List, Optional, Union

import requests

from .errors import BudgetExhausted, FootyError, ParseFailure, RemoteUnavailable


logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://v3.football.api-sports.io"


class APISportsError(FootyError):
    """
    Base class for errors raised by APISportsClient.

    `reached_server` is True when the provider answered (and so counted
    the request), False for timeouts and connection failures.
    """

    def __init__(self, *args: Any, reached_server: bool = False, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.reached_server = reached_server


class APISportsUnavailable(APISportsError, RemoteUnavailable):
    """Network problem, timeout or HTTP error."""


class APISportsParseError(APISportsError, ParseFailure):
    """The API answered, but not with the JSON we expect."""


class APISportsLimitReached(APISportsError, BudgetExhausted):
    """The provider itself says the daily request quota is used up."""


class APISportsClient:
    """
    Small, opinionated client for the API-FOOTBALL v3 API (api-football.com).

    Parameters
    ----------
    api_key : str
        Your API key from API-Sports / API-FOOTBALL.
    base_url : str, optional
        Base URL for the API. Default is the official v3 endpoint.
    timeout : int or float, optional
        Timeout (seconds) for HTTP requests. Default is 5; a request that
        takes longer is reported as APISportsUnavailable.
    rate_limit_per_minute : int, optional
        Soft rate limit; if set, the client sleeps between requests to stay
        under the provider's per-minute limit. Default None = no throttling.
    session : requests.Session, optional
        Optional custom session; if not provided, a new Session is created.

    Notes
    -----
    - Authentication is done via the `x-apisports-key` header.
    - Public methods return the raw JSON `response` list from the API.
    - After each request `requests_remaining` holds the provider's
      `x-ratelimit-requests-remaining` header, when present.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = DEFAULT_BASE_URL,
        timeout: Union[int, float] = 5,
        rate_limit_per_minute: Optional[int] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        if api_key is None:
            api_key = os.getenv("API_FOOTBALL_KEY")

        if not api_key:
            raise ValueError(
                "API key not provided. Either pass api_key=... to "
                "APISportsClient() or set the API_FOOTBALL_KEY environment "
                "variable."
            )

        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.rate_limit_per_minute = rate_limit_per_minute
        self.requests_remaining: Optional[int] = None

        self._last_request_ts: float = 0.0
        self._min_interval = (
            60.0 / rate_limit_per_minute if rate_limit_per_minute else 0.0
        )

        self.session.headers.update(
            {
                "x-apisports-key": self.api_key,
                "Accept": "application/json",
            }
        )

    # ------------------------------------------------------------------
    # Low-level request helpers
    # ------------------------------------------------------------------
    def _throttle(self) -> None:
        """Respect a soft client-side rate limit, if configured."""
        if not self._min_interval:
            return
        now = time.time()
        elapsed = now - self._last_request_ts
        if elapsed < self._min_interval:
            sleep_for = self._min_interval - elapsed
            logger.debug("Throttling API call for %.3f seconds", sleep_for)
            time.sleep(max(sleep_for, 0))
        self._last_request_ts = time.time()

    def _record_quota(self, resp: requests.Response) -> None:
        remaining = resp.headers.get("x-ratelimit-requests-remaining")
        if remaining is None:
            return
        try:
            self.requests_remaining = int(remaining)
        except ValueError:
            logger.debug("Ignoring odd x-ratelimit-requests-remaining: %r", remaining)

    @staticmethod
    def _raise_for_api_errors(errors: Iterable[Any], keys: Iterable[str]) -> None:
        """
        API-FOOTBALL reports most problems with HTTP 200 and a non-empty
        `errors` field, e.g. {"requests": "You have reached the request
        limit for the day, ..."} or {"token": "Error/Missing application key"}.
        """
        messages = [str(e) for e in errors]
        text = "; ".join(messages)
        lowered = text.lower()
        keys = {k.lower() for k in keys}

        if "requests" in keys or "request limit" in lowered:
            raise APISportsLimitReached(
                f"API request limit reached: {text}",
                hint="the provider resets the quota at 00:00 UTC",
            )
        if "token" in keys or "application key" in lowered or "access" in keys:
            raise APISportsUnavailable(
                f"API rejected the key: {text}",
                hint="check API_FOOTBALL_KEY",
                retryable=False,
            )
        if "ratelimit" in keys or "too many requests" in lowered:
            raise APISportsUnavailable(f"API rate limit: {text}")
        raise APISportsUnavailable(f"API returned errors: {text}", retryable=False)

    def _request(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Perform a GET against the API and return the parsed JSON envelope.

        Raises
        ------
        APISportsUnavailable
            Network problems, timeouts, non-2xx responses, API errors.
        APISportsParseError
            Body is not JSON or not the standard envelope.
        APISportsLimitReached
            The provider's daily quota is exhausted.
        """
        self._throttle()

        url = f"{self.base_url}{endpoint}"
        logger.debug("API request: GET %s params=%s", url, params)

        try:
            resp = self.session.get(url, params=params, timeout=self.timeout)
        except requests.Timeout as exc:
            raise APISportsUnavailable(
                f"Timed out after {self.timeout}s waiting for {url}"
            ) from exc
        except requests.RequestException as exc:
            raise APISportsUnavailable(f"Network error: {exc}") from exc

        self._record_quota(resp)

        try:
            return self._check_response(url, resp)
        except APISportsError as exc:
            # the provider saw this request, so it counts against the quota
            exc.reached_server = True
            raise

    def _check_response(self, url: str, resp: requests.Response) -> Dict[str, Any]:
        if resp.status_code == 429:
            raise APISportsUnavailable(f"API HTTP 429 for {url} (too many requests)")
        if resp.status_code in (401, 403):
            raise APISportsUnavailable(
                f"API HTTP {resp.status_code} for {url}",
                hint="check API_FOOTBALL_KEY",
                retryable=False,
            )
        if not resp.ok:
            raise APISportsUnavailable(
                f"API HTTP {resp.status_code} for {url} – body: {resp.text[:200]}"
            )

        try:
            data = resp.json()
        except ValueError as exc:
            raise APISportsParseError(f"Invalid JSON response from {url}") from exc

        if not isinstance(data, dict):
            raise APISportsParseError(
                f"Unexpected top-level JSON from {url}: {type(data).__name__}"
            )

        # API-FOOTBALL standard structure:
        # {"get": "...", "parameters": {...}, "errors": [], "results": ..., "paging": {...}, "response": [...]}
        errors = data.get("errors") or []
        keys: List[str] = []
        if isinstance(errors, dict):
            # sometimes errors is a dict
            keys = list(errors.keys())
            errors = list(errors.values())
        if errors:
            self._raise_for_api_errors(errors, keys)

        return data

    def _get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Single GET returning the `response` list (first page only)."""
        data = self._request(endpoint, params or {})
        items = data.get("response")

        if not isinstance(items, list):
            raise APISportsParseError(
                f"Unexpected response format for {endpoint}: {type(items).__name__}",
                reached_server=True,
            )

        paging = data.get("paging") or {}
        total = paging.get("total", 1)
        if isinstance(total, int) and total > 1:
            logger.warning(
                "%s returned %d pages; only the first is used", endpoint, total
            )

        return items

    # ------------------------------------------------------------------
    # Public API wrappers
    # ------------------------------------------------------------------

    # --- Teams ------------------------------------------------------------
    def get_teams(
        self,
        league_id: Optional[int] = None,
        season: Optional[int] = None,
        search: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        Fetch teams, optionally filtered by league, season, or search term.

        Parameters
        ----------
        league_id : int, optional
            League ID.
        season : int, optional
            Season year (e.g., 2025). Required by the API with league_id.
        search : str, optional
            Text search for team name (3 characters minimum).

        Returns
        -------
        list of dict
        """
        params: Dict[str, Any] = {}
        if league_id is not None:
            params["league"] = league_id
        if season is not None:
            params["season"] = season
        if search:
            params["search"] = search

        return self._get("/teams", params)

    # --- Standings --------------------------------------------------------
    def get_standings(self, league_id: int, season: int) -> List[Dict[str, Any]]:
        """
        Fetch the league table for one league & season.

        Returns
        -------
        list of dict
            Usually one item whose ["league"]["standings"] holds one list of
            rows per group.
        """
        return self._get("/standings", {"league": league_id, "season": season})

    # --- Fixtures / matches -------------------------------------------------
    def get_fixtures(
        self,
        date: Optional[str] = None,
        league_id: Optional[int] = None,
        season: Optional[int] = None,
        team_id: Optional[int] = None,
        from_date: Optional[str] = None,
        to_date: Optional[str] = None,
        status: Optional[str] = None,
        last: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        Fetch fixtures (matches).

        Parameters
        ----------
        date : str, optional
            Specific date in 'YYYY-MM-DD' format.
        league_id : int, optional
            League ID.
        season : int, optional
            Season year.
        team_id : int, optional
            Filter by team.
        from_date : str, optional
            Start date for range ('YYYY-MM-DD').
        to_date : str, optional
            End date for range ('YYYY-MM-DD').
        status : str, optional
            Status filter (e.g. 'NS', 'FT').
        last : int, optional
            Only the team's last N fixtures (needs team_id).

        Returns
        -------
        list of dict
        """
        params: Dict[str, Any] = {}
        if date:
            params["date"] = date
        if league_id is not None:
            params["league"] = league_id
        if season is not None:
            params["season"] = season
        if team_id is not None:
            params["team"] = team_id
        if from_date:
            params["from"] = from_date
        if to_date:
            params["to"] = to_date
        if status:
            params["status"] = status
        if last is not None:
            params["last"] = last

        return self._get("/fixtures", params)

    def get_live_fixtures(self, league_ids: Iterable[int]) -> List[Dict[str, Any]]:
        """
        Fetch fixtures in progress for several leagues with one request.

        API-FOOTBALL takes the league ids joined with '-' (live=39-140).
        """
        ids = "-".join(str(i) for i in sorted(set(league_ids)))
        return self._get("/fixtures", {"live": ids or "all"})
