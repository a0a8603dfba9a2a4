"""
local_store.py – footy

Durable local state for the CLI:

    <state_dir>/favorites.csv   remote_id,display_name,league (one team per line)
    <state_dir>/cache.csv       record,key,kind,timestamp,payload
    <state_dir>/.lock           exclusive lock held during load-modify-save

Both CSV files are read and written with pandas. Every write goes to a
temporary file in the same directory and is moved into place with
os.replace, so a crash mid-write leaves the previous file intact.

The favorites file must end with a newline. A file that doesn't (usually
after a hand edit) is normalised on load instead of losing its last line.
"""

from __future__ import annotations

import io
import json
import logging
import os
import tempfile
import time
import uuid
from contextlib import contextmanager, suppress
from datetime import date, datetime
from pathlib import Path
from typing import IO, Callable, Iterator, List, Optional, Set, Union

import pandas as pd

from ..errors import MalformedLocalState, StateLocked
from .cache_types import BudgetCounter, CacheEntry, CacheState, QueryKind
from .leagues import League
from .records import Team


logger = logging.getLogger(__name__)

FAVORITES_FILENAME = "favorites.csv"
CACHE_FILENAME = "cache.csv"
LOCK_FILENAME = ".lock"

FAVORITES_COLUMNS = ["remote_id", "display_name", "league"]
CACHE_COLUMNS = ["record", "key", "kind", "timestamp", "payload"]

PathLike = Union[str, Path]


# ----------------------------------------------------------------------
# File helpers
# ----------------------------------------------------------------------


def atomic_write(path: Path, write: Callable[[IO[str]], None]) -> None:
    """Write via a sibling temp file + os.replace."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent)
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
            write(handle)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        with suppress(OSError):
            os.unlink(tmp_name)
        raise


def _lock_is_abandoned(lock_path: Path, stale_after: float) -> bool:
    try:
        age = time.time() - lock_path.stat().st_mtime
    except FileNotFoundError:
        return True
    return age > stale_after


def _remove_abandoned_lock(lock_path: Path, stale_after: float) -> None:
    """
    Delete an abandoned lock file, at most one process at a time.

    The age check is repeated under a second O_EXCL guard file, so a waiter
    that looked at the old lock can never delete the fresh lock another
    process has created in its place.
    """
    guard_path = lock_path.with_name(lock_path.name + ".takeover")
    try:
        guard = os.open(str(guard_path), os.O_CREAT | os.O_EXCL | os.O_WRONLY)
    except FileExistsError:
        # a process that died mid-takeover leaves the guard behind
        if _lock_is_abandoned(guard_path, stale_after):
            with suppress(FileNotFoundError):
                guard_path.unlink()
        return

    try:
        if _lock_is_abandoned(lock_path, stale_after):
            logger.warning("Removing abandoned lock file %s", lock_path)
            with suppress(FileNotFoundError):
                lock_path.unlink()
    finally:
        os.close(guard)
        with suppress(FileNotFoundError):
            guard_path.unlink()


def _release_lock(lock_path: Path, token: str) -> None:
    try:
        owner = lock_path.read_text(encoding="ascii")
    except FileNotFoundError:
        return
    if owner != token:
        logger.warning("Lock file %s was taken over by %r; leaving it", lock_path, owner)
        return
    with suppress(FileNotFoundError):
        lock_path.unlink()


@contextmanager
def state_lock(
    state_dir: Path,
    timeout: float = 10.0,
    stale_after: float = 60.0,
    poll_interval: float = 0.1,
) -> Iterator[None]:
    """
    Hold an exclusive lock on `state_dir` for the duration of the block.

    The lock is a file created with O_EXCL, so it works the same on every
    platform. It holds "<pid> <token>"; on exit it is removed only if it
    still holds ours. A lock file older than `stale_after` seconds belongs
    to a process that died and is removed.
    """
    state_dir.mkdir(parents=True, exist_ok=True)
    lock_path = state_dir / LOCK_FILENAME
    token = f"{os.getpid()} {uuid.uuid4().hex}"
    deadline = time.monotonic() + timeout

    while True:
        try:
            fd = os.open(str(lock_path), os.O_CREAT | os.O_EXCL | os.O_WRONLY)
            break
        except FileExistsError:
            if _lock_is_abandoned(lock_path, stale_after):
                _remove_abandoned_lock(lock_path, stale_after)
                continue
            if time.monotonic() >= deadline:
                raise StateLocked(
                    f"State directory {state_dir} is locked by another footy process",
                    hint=f"wait for it to finish, or delete {lock_path} if none is running",
                )
            time.sleep(poll_interval)

    try:
        os.write(fd, token.encode("ascii"))
        os.close(fd)
        yield
    finally:
        _release_lock(lock_path, token)


# ----------------------------------------------------------------------
# Store
# ----------------------------------------------------------------------


class LocalStore:
    """
    Favorites list + cache/budget state on disk.

    Parameters
    ----------
    state_dir : str or Path
        Directory holding the cache file and the lock file.
    favorites_path : str or Path, optional
        Favorites CSV. Defaults to <state_dir>/favorites.csv.
    lock_timeout : float, optional
        Seconds to wait for another process to release the lock.
    """

    def __init__(
        self,
        state_dir: PathLike,
        favorites_path: Optional[PathLike] = None,
        lock_timeout: float = 10.0,
    ) -> None:
        self.state_dir = Path(state_dir).expanduser()
        self.favorites_path = (
            Path(favorites_path).expanduser()
            if favorites_path
            else self.state_dir / FAVORITES_FILENAME
        )
        self.cache_path = self.state_dir / CACHE_FILENAME
        self.lock_timeout = lock_timeout
        self._lock_depth = 0

    @contextmanager
    def locked(self) -> Iterator["LocalStore"]:
        """Scoped exclusive lock; re-entrant within one process."""
        if self._lock_depth:
            self._lock_depth += 1
            try:
                yield self
            finally:
                self._lock_depth -= 1
            return

        with state_lock(self.state_dir, timeout=self.lock_timeout):
            self._lock_depth = 1
            try:
                yield self
            finally:
                self._lock_depth = 0

    # --- Favorites ------------------------------------------------------
    def load_favorites(self) -> Set[Team]:
        path = self.favorites_path
        if not path.exists():
            return set()

        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise MalformedLocalState(
                path,
                f"cannot read favorites file: {exc}",
                hint="check the file permissions and that it is UTF-8 text",
            ) from exc

        if not text.strip():
            return set()

        if not text.endswith("\n"):
            logger.warning(
                "%s has no trailing newline; treating the last line as a complete record",
                path,
            )
            text += "\n"

        try:
            df = pd.read_csv(
                io.StringIO(text),
                header=None,
                dtype=str,
                keep_default_na=False,
                skip_blank_lines=True,
            )
        except (pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
            raise MalformedLocalState(
                path,
                f"cannot parse favorites file: {exc}",
                hint="each line must be remote_id,display_name,league; "
                "quote names that contain commas",
            ) from exc

        if df.shape[1] != len(FAVORITES_COLUMNS):
            raise MalformedLocalState(
                path,
                f"expected {len(FAVORITES_COLUMNS)} fields per line, found {df.shape[1]}",
                hint="each line must be remote_id,display_name,league",
            )

        df = df.fillna("")
        df.columns = FAVORITES_COLUMNS

        line_offset = 1
        first = [str(v).strip().casefold() for v in df.iloc[0]]
        if first == FAVORITES_COLUMNS:
            df = df.iloc[1:]
            line_offset = 2

        teams: Set[Team] = set()
        for lineno, row in enumerate(df.itertuples(index=False), start=line_offset):
            remote_id = str(row.remote_id).strip()
            display_name = str(row.display_name).strip()
            league_text = str(row.league).strip()

            if not remote_id or not display_name or not league_text:
                raise MalformedLocalState(
                    path,
                    f"line {lineno} has an empty field",
                    hint="each line must be remote_id,display_name,league",
                )
            try:
                league = League.parse(league_text)
            except ValueError as exc:
                raise MalformedLocalState(path, f"line {lineno}: {exc}") from exc

            team = Team(remote_id=remote_id, display_name=display_name, league=league)
            if team in teams:
                raise MalformedLocalState(
                    path,
                    f"line {lineno} repeats team id {remote_id}",
                    hint="remove the duplicate line",
                )
            teams.add(team)

        return teams

    def save_favorites(self, teams: Set[Team]) -> None:
        ordered: List[Team] = sorted(
            teams, key=lambda t: (t.league.display_name, t.display_name, t.remote_id)
        )
        df = pd.DataFrame(
            [
                {
                    "remote_id": t.remote_id,
                    "display_name": t.display_name,
                    "league": t.league.display_name,
                }
                for t in ordered
            ],
            columns=FAVORITES_COLUMNS,
        )
        atomic_write(
            self.favorites_path,
            lambda handle: df.to_csv(handle, index=False, lineterminator="\n"),
        )
        logger.debug("Saved %d favorites to %s", len(ordered), self.favorites_path)

    @contextmanager
    def edit_favorites(self) -> Iterator[Set[Team]]:
        """
        Lock, load, hand the set to the caller and save it on a clean exit.

            with store.edit_favorites() as favorites:
                favorites.add(team)
        """
        with self.locked():
            favorites = self.load_favorites()
            yield favorites
            self.save_favorites(favorites)

    # --- Cache / budget state ---------------------------------------------
    def _malformed_cache(self, message: str) -> MalformedLocalState:
        return MalformedLocalState(
            self.cache_path,
            message,
            hint="delete the cache file to start over; cached responses and "
            "today's call count will be lost",
        )

    def load_cache(self) -> CacheState:
        path = self.cache_path
        if not path.exists():
            return CacheState()

        try:
            df = pd.read_csv(path, dtype=str, keep_default_na=False)
        except pd.errors.EmptyDataError:
            return CacheState()
        except (OSError, UnicodeDecodeError, pd.errors.ParserError) as exc:
            raise self._malformed_cache(f"cannot parse cache file: {exc}") from exc

        missing = [col for col in CACHE_COLUMNS if col not in df.columns]
        if missing:
            raise self._malformed_cache(f"missing columns {missing}")

        state = CacheState()
        for lineno, row in enumerate(df.itertuples(index=False), start=2):
            try:
                if row.record == "budget":
                    counts = json.loads(row.payload)
                    state.budget = BudgetCounter(
                        date=date.fromisoformat(row.key),
                        calls_used=int(counts["calls_used"]),
                        calls_limit=int(counts["calls_limit"]),
                    )
                elif row.record == "entry":
                    state.entries[row.key] = CacheEntry(
                        query_key=row.key,
                        query_kind=QueryKind(row.kind),
                        payload=json.loads(row.payload),
                        fetched_at=datetime.fromisoformat(row.timestamp),
                    )
                else:
                    raise ValueError(f"unknown record type {row.record!r}")
            except (KeyError, TypeError, ValueError) as exc:
                raise self._malformed_cache(f"line {lineno}: {exc}") from exc

        return state

    def save_cache(self, state: CacheState) -> None:
        rows = []
        if state.budget is not None:
            rows.append(
                {
                    "record": "budget",
                    "key": state.budget.date.isoformat(),
                    "kind": "",
                    "timestamp": "",
                    "payload": json.dumps(
                        {
                            "calls_used": state.budget.calls_used,
                            "calls_limit": state.budget.calls_limit,
                        }
                    ),
                }
            )
        for key in sorted(state.entries):
            entry = state.entries[key]
            rows.append(
                {
                    "record": "entry",
                    "key": key,
                    "kind": entry.query_kind.value,
                    "timestamp": entry.fetched_at.isoformat(),
                    "payload": json.dumps(entry.payload, separators=(",", ":")),
                }
            )

        df = pd.DataFrame(rows, columns=CACHE_COLUMNS)
        atomic_write(
            self.cache_path,
            lambda handle: df.to_csv(handle, index=False, lineterminator="\n"),
        )
