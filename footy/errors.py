"""
errors.py – footy

Error kinds surfaced to the command layer.

Local, recoverable conditions (cache miss, stale-but-servable) never reach
this module; everything here propagates to the CLI for reporting.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional, Sequence


class ErrorKind(str, Enum):
    BUDGET_EXHAUSTED = "budget_exhausted"
    REMOTE_UNAVAILABLE = "remote_unavailable"
    PARSE_FAILURE = "parse_failure"
    AMBIGUOUS = "ambiguous"
    MALFORMED_LOCAL_STATE = "malformed_local_state"
    STATE_LOCKED = "state_locked"


class FootyError(Exception):
    """Base error; carries an ErrorKind and an optional corrective hint."""

    kind: ErrorKind = ErrorKind.REMOTE_UNAVAILABLE

    def __init__(self, message: str, hint: Optional[str] = None) -> None:
        super().__init__(message)
        self.hint = hint

    def describe(self) -> str:
        if self.hint:
            return f"{self} ({self.hint})"
        return str(self)


class BudgetExhausted(FootyError):
    """No remote calls remain today and no usable cache exists."""

    kind = ErrorKind.BUDGET_EXHAUSTED


class RemoteUnavailable(FootyError):
    """Network failure, timeout or non-2xx response from the provider."""

    kind = ErrorKind.REMOTE_UNAVAILABLE

    def __init__(
        self,
        message: str,
        hint: Optional[str] = None,
        retryable: bool = True,
    ) -> None:
        super().__init__(message, hint)
        self.retryable = retryable


class ParseFailure(FootyError):
    """Remote payload did not have the expected shape."""

    kind = ErrorKind.PARSE_FAILURE


class AmbiguousTeam(FootyError):
    kind = ErrorKind.AMBIGUOUS

    def __init__(self, message: str, candidates: Sequence, hint: Optional[str] = None) -> None:
        super().__init__(message, hint)
        self.candidates = list(candidates)


class MalformedLocalState(FootyError):
    """Favorites or cache file is unreadable or structurally invalid."""

    kind = ErrorKind.MALFORMED_LOCAL_STATE

    def __init__(self, path, message: str, hint: Optional[str] = None) -> None:
        super().__init__(f"{path}: {message}", hint)
        self.path = path


class StateLocked(FootyError):
    kind = ErrorKind.STATE_LOCKED
