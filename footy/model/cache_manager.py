"""
cache_manager.py – footy

Decides whether a logical query can be answered from the local cache or
needs a remote call, and keeps the daily call budget.

The free API-FOOTBALL plan allows a fixed number of requests per day, and
running out locks the tool until the provider resets at 00:00 UTC. Every
remote call therefore goes through CacheManager.fetch:

    records, stale, fetched_at = cache.fetch(
        key, QueryKind.SCHEDULE, lambda: client.get_fixtures(...), parse_fixtures, now
    )

The budget counter moves in record_fetch (a successful call) and in
record_failed_call (an error the provider answered, which it counts too).
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from ..errors import BudgetExhausted, FootyError, ParseFailure
from .cache_types import (
    DEFAULT_DAILY_LIMIT,
    FRESHNESS_WINDOWS,
    BudgetCounter,
    CacheEntry,
    CacheState,
    QueryKind,
    key_subject,
)
from .local_store import LocalStore


logger = logging.getLogger(__name__)

# Superseded entries that never go stale are dropped after this long
SUPERSEDED_RETENTION = timedelta(days=7)


class Freshness(str, Enum):
    FRESH = "fresh"
    STALE = "stale"
    ABSENT = "absent"


@dataclass(frozen=True)
class CacheLookup:
    status: Freshness
    payload: Any = None
    fetched_at: Optional[datetime] = None

    @property
    def is_fresh(self) -> bool:
        return self.status is Freshness.FRESH

    @property
    def is_stale(self) -> bool:
        return self.status is Freshness.STALE

    @property
    def is_absent(self) -> bool:
        return self.status is Freshness.ABSENT


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


class CacheManager:
    """
    Freshness decisions + daily budget over an explicit CacheState.

    Parameters
    ----------
    store : LocalStore
        Where the state is loaded from and saved to by `transaction()`.
    calls_limit : int, optional
        Remote calls allowed per UTC day. Default 50.
    windows : dict, optional
        Freshness window per QueryKind (None = never stale).
    """

    def __init__(
        self,
        store: LocalStore,
        calls_limit: int = DEFAULT_DAILY_LIMIT,
        windows: Optional[Dict[QueryKind, Optional[timedelta]]] = None,
    ) -> None:
        if calls_limit < 0:
            raise ValueError("calls_limit must not be negative")
        self.store = store
        self.calls_limit = calls_limit
        self.windows = dict(FRESHNESS_WINDOWS)
        if windows:
            self.windows.update(windows)

        self.state = CacheState()
        self._dirty = False
        self._depth = 0

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    @contextmanager
    def transaction(self) -> Iterator["CacheManager"]:
        """
        Lock the state directory, load the state, run the block, save.

        The state is saved even when the block raises, so a call that was
        already recorded is never lost. Nested transactions join the
        outer one.
        """
        if self._depth:
            self._depth += 1
            try:
                yield self
            finally:
                self._depth -= 1
            return

        with self.store.locked():
            self.state = self.store.load_cache()
            self._dirty = False
            self._depth = 1
            try:
                yield self
            finally:
                self._depth = 0
                if self._dirty:
                    self.store.save_cache(self.state)
                    self._dirty = False

    # ------------------------------------------------------------------
    # Budget
    # ------------------------------------------------------------------
    def _budget(self, now: datetime) -> BudgetCounter:
        today = _as_utc(now).date()
        budget = self.state.budget

        if budget is None or budget.date != today:
            if budget is not None:
                logger.info(
                    "New day %s: resetting call budget (%d/%d used on %s)",
                    today,
                    budget.calls_used,
                    budget.calls_limit,
                    budget.date,
                )
            budget = BudgetCounter(date=today, calls_used=0, calls_limit=self.calls_limit)
            self.state.budget = budget
            self._dirty = True
        elif budget.calls_limit != self.calls_limit:
            budget.calls_limit = self.calls_limit
            budget.calls_used = min(budget.calls_used, budget.calls_limit)
            self._dirty = True

        return budget

    def can_spend_call(self, now: datetime) -> bool:
        budget = self._budget(now)
        return budget.calls_used < budget.calls_limit

    def calls_remaining(self, now: datetime) -> int:
        return self._budget(now).remaining

    def budget_snapshot(self, now: datetime) -> BudgetCounter:
        return replace(self._budget(now))

    def mark_exhausted(self, now: datetime) -> None:
        """The provider says today's quota is gone; stop calling it."""
        budget = self._budget(now)
        if budget.calls_used != budget.calls_limit:
            logger.warning(
                "Provider reports the daily request limit reached (%d/%d used locally)",
                budget.calls_used,
                budget.calls_limit,
            )
            budget.calls_used = budget.calls_limit
            self._dirty = True

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------
    def _is_stale(self, entry: CacheEntry, now: datetime) -> bool:
        window = self.windows.get(entry.query_kind)
        if window is None:
            return False
        return _as_utc(now) - _as_utc(entry.fetched_at) > window

    def resolve(self, query_key: str, query_kind: QueryKind, now: datetime) -> CacheLookup:
        entry = self.state.entries.get(query_key)
        if entry is None or entry.query_kind != query_kind:
            return CacheLookup(Freshness.ABSENT)

        status = Freshness.STALE if self._is_stale(entry, now) else Freshness.FRESH
        return CacheLookup(status, payload=entry.payload, fetched_at=entry.fetched_at)

    def record_fetch(
        self,
        query_key: str,
        query_kind: QueryKind,
        payload: Any,
        now: datetime,
    ) -> None:
        """Store the payload of a remote call and count the call."""
        budget = self._budget(now)
        if budget.calls_used >= budget.calls_limit:
            raise BudgetExhausted(
                f"Daily call budget of {budget.calls_limit} already used",
                hint="try again after 00:00 UTC",
            )

        budget.calls_used += 1
        self.state.entries[query_key] = CacheEntry(
            query_key=query_key,
            query_kind=query_kind,
            payload=payload,
            fetched_at=_as_utc(now),
        )
        self._dirty = True
        logger.info(
            "Fetched %s (%d/%d calls used today)",
            query_key,
            budget.calls_used,
            budget.calls_limit,
        )

    def record_failed_call(self, now: datetime) -> None:
        """Count a request the provider answered with an error."""
        budget = self._budget(now)
        if budget.calls_used < budget.calls_limit:
            budget.calls_used += 1
            self._dirty = True
        logger.info(
            "Failed call counted (%d/%d calls used today)",
            budget.calls_used,
            budget.calls_limit,
        )

    def last_known(self, query_key: str, query_kind: QueryKind) -> CacheLookup:
        """
        Newest entry for the same subject under any bucket, e.g. yesterday's
        scores for today's key. Always reported as STALE.
        """
        subject = key_subject(query_key)
        newest: Optional[CacheEntry] = None
        for key, entry in self.state.entries.items():
            if entry.query_kind != query_kind or key_subject(key) != subject:
                continue
            if newest is None or _as_utc(entry.fetched_at) > _as_utc(newest.fetched_at):
                newest = entry

        if newest is None:
            return CacheLookup(Freshness.ABSENT)
        return CacheLookup(Freshness.STALE, payload=newest.payload, fetched_at=newest.fetched_at)

    def fetch(
        self,
        query_key: str,
        query_kind: QueryKind,
        call: Callable[[], Any],
        parse: Callable[[Any], List[Any]],
        now: datetime,
        retry: Optional[Callable[[Callable[[], Any]], Any]] = None,
        quota_left: Optional[Callable[[], Optional[int]]] = None,
        fallback: bool = True,
    ) -> Tuple[List[Any], bool, Optional[datetime]]:
        """
        One cache-or-remote cycle under the state lock.

        Parameters
        ----------
        call : callable
            Performs the remote request and returns the raw payload.
        parse : callable
            Turns a payload (cached or fresh) into records.
        retry : callable, optional
            Wraps the attempt function with a retry policy. Default: one try.
        quota_left : callable, optional
            Provider's own count of remaining requests after the call.
        fallback : bool, optional
            Serve the newest entry of the same subject when this exact key
            was never fetched and no calls are left.

        Returns
        -------
        (records, stale, fetched_at)
        """

        def attempt() -> Any:
            try:
                return call()
            except FootyError as exc:
                if getattr(exc, "reached_server", False):
                    self.record_failed_call(now)
                raise

        with self.transaction():
            lookup = self.resolve(query_key, query_kind, now)

            if lookup.is_fresh:
                logger.debug("Cache hit for %s", query_key)
                try:
                    return parse(lookup.payload), False, lookup.fetched_at
                except ParseFailure:
                    self.discard(query_key)
                    raise

            if lookup.is_absent and fallback:
                lookup = self.last_known(query_key, query_kind)

            if not self.can_spend_call(now):
                if lookup.is_stale:
                    return _serve_stale(query_key, lookup, parse)
                raise BudgetExhausted(
                    f"No API calls left today and nothing cached for {query_key}",
                    hint="try again after 00:00 UTC",
                )

            try:
                payload = retry(attempt) if retry else attempt()
            except BudgetExhausted:
                # the provider's own counter ran out before ours
                self.mark_exhausted(now)
                if lookup.is_stale:
                    return _serve_stale(query_key, lookup, parse)
                raise

            self.record_fetch(query_key, query_kind, payload, now)
            if quota_left is not None and quota_left() == 0:
                self.mark_exhausted(now)

            try:
                records = parse(payload)
            except ParseFailure:
                self.discard(query_key)
                raise

            self.prune(now)
            return records, False, now

    def discard(self, query_key: str) -> None:
        if self.state.entries.pop(query_key, None) is not None:
            self._dirty = True

    def prune(self, now: datetime) -> List[str]:
        """
        Drop entries that a newer entry for the same subject has replaced
        and that are either stale or older than a week.
        """
        newest: Dict[str, datetime] = {}
        for key, entry in self.state.entries.items():
            subject = key_subject(key)
            fetched = _as_utc(entry.fetched_at)
            if subject not in newest or fetched > newest[subject]:
                newest[subject] = fetched

        removed: List[str] = []
        for key, entry in list(self.state.entries.items()):
            fetched = _as_utc(entry.fetched_at)
            if fetched >= newest[key_subject(key)]:
                continue
            too_old = _as_utc(now) - fetched > SUPERSEDED_RETENTION
            if self._is_stale(entry, now) or too_old:
                del self.state.entries[key]
                removed.append(key)

        if removed:
            self._dirty = True
            logger.info("Pruned %d superseded cache entries", len(removed))
        return removed


def _serve_stale(
    query_key: str, lookup: CacheLookup, parse: Callable[[Any], List[Any]]
) -> Tuple[List[Any], bool, Optional[datetime]]:
    logger.warning(
        "No API calls left today; serving %s from %s", query_key, lookup.fetched_at
    )
    return parse(lookup.payload), True, lookup.fetched_at
