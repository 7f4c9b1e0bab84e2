from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Dict, Hashable, List, Optional


class CrashHistory:
    """Most-recent-first crash points, oldest evicted past capacity."""

    def __init__(self, capacity: int):
        self._items = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._items.maxlen

    def record(self, crash_point: Decimal) -> None:
        self._items.appendleft(crash_point)

    def items(self) -> List[Decimal]:
        return list(self._items)

    def __len__(self):
        return len(self._items)


@dataclass(frozen=True)
class CompletedBet:
    id: str
    amount: Decimal
    timestamp: datetime
    status: str  # "won" | "lost"
    profit: Decimal
    cashout_at: Optional[Decimal] = None
    crash_multiplier: Optional[Decimal] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "amount": str(self.amount),
            "timestamp": self.timestamp.isoformat(),
            "status": self.status,
            "profit": str(self.profit),
            "cashout_at": str(self.cashout_at) if self.cashout_at is not None else None,
            "crash_multiplier": (
                str(self.crash_multiplier) if self.crash_multiplier is not None else None
            ),
        }


class RecentBets:
    """Per-user bounded log of resolved bets, most recent first."""

    def __init__(self, capacity: int):
        self.capacity = capacity
        self._by_user: Dict[Hashable, deque] = {}

    def record(self, user_id: Hashable, entry: CompletedBet) -> bool:
        """Append `entry` unless a record with the same bet id is already logged."""
        log = self._by_user.setdefault(user_id, deque(maxlen=self.capacity))
        if any(existing.id == entry.id for existing in log):
            return False
        log.appendleft(entry)
        return True

    def for_user(self, user_id: Hashable) -> List[CompletedBet]:
        return list(self._by_user.get(user_id, ()))
