from __future__ import annotations

import threading
from decimal import Decimal
from typing import Dict, Hashable, Optional, Protocol

from .curve import q2


class WalletError(Exception):
    pass


class InsufficientFunds(WalletError):
    pass


class LedgerError(WalletError):
    pass


class WalletLedger(Protocol):
    """
    Balance store the bet ledger moves money through.

    Implementations must apply every debit/credit as one atomic step; the
    game never reads a balance and writes it back.
    """

    def get_balance(self, user_id: Hashable) -> Decimal:
        ...

    def debit(self, user_id: Hashable, amount: Decimal, reference: Optional[str] = None) -> None:
        """Remove `amount`. Raises InsufficientFunds or LedgerError."""

        ...

    def credit(self, user_id: Hashable, amount: Decimal, reference: Optional[str] = None) -> None:
        """Add `amount`. Raises LedgerError."""

        ...


class InMemoryWalletLedger:
    """Process-local wallet, used for demo rooms and tests."""

    def __init__(self, balances: Optional[Dict[Hashable, object]] = None):
        self._balances: Dict[Hashable, Decimal] = {
            user_id: q2(amount) for user_id, amount in (balances or {}).items()
        }
        self._lock = threading.Lock()

    def get_balance(self, user_id) -> Decimal:
        with self._lock:
            return self._balances.get(user_id, Decimal("0.00"))

    def debit(self, user_id, amount: Decimal, reference: Optional[str] = None) -> None:
        with self._lock:
            balance = self._balances.get(user_id, Decimal("0.00"))
            if balance < amount:
                raise InsufficientFunds(f"Balance {balance} below {amount}")
            self._balances[user_id] = balance - amount

    def credit(self, user_id, amount: Decimal, reference: Optional[str] = None) -> None:
        if amount < 0:
            raise LedgerError("Credit amount must not be negative")
        with self._lock:
            self._balances[user_id] = self._balances.get(user_id, Decimal("0.00")) + amount
