from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class BetError(str, Enum):
    NOT_BETTING_PHASE = "NOT_BETTING_PHASE"
    BET_ALREADY_ACTIVE = "BET_ALREADY_ACTIVE"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    LEDGER_UPDATE_FAILED = "LEDGER_UPDATE_FAILED"
    ROOM_UNAVAILABLE = "ROOM_UNAVAILABLE"


class CashoutError(str, Enum):
    NO_ACTIVE_BET = "NO_ACTIVE_BET"
    NOT_PLAYING_PHASE = "NOT_PLAYING_PHASE"
    LEDGER_UPDATE_FAILED = "LEDGER_UPDATE_FAILED"
    ROOM_UNAVAILABLE = "ROOM_UNAVAILABLE"


class InvariantViolation(AssertionError):
    """A state the public API should never be able to reach."""


@dataclass(frozen=True)
class Result:
    """Outcome of a bet ledger operation: a value or an error code, never both."""

    value: Any = None
    error: Optional[Enum] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value=None) -> "Result":
        return cls(value=value)

    @classmethod
    def failure(cls, error: Enum) -> "Result":
        return cls(error=error)
