"""
Player conveniences layered on top of the bet ledger.

Both policies only call BetLedger.place_bet / BetLedger.cash_out; they hold
no bet state of their own.
"""
from __future__ import annotations

import logging
import threading
from decimal import Decimal
from typing import Dict, Hashable, Optional

from .curve import ONE, to_amount
from .errors import BetError
from .ledger import BetLedger

logger = logging.getLogger(__name__)


class AutoBet:
    """Re-places a saved stake at the start of every betting phase."""

    def __init__(self, ledger: BetLedger):
        self.ledger = ledger
        self._amounts: Dict[Hashable, Decimal] = {}
        self._last_error: Dict[Hashable, BetError] = {}
        self._lock = threading.Lock()
        ledger.machine.subscribe(self.handle_event)

    def enable(self, user_id: Hashable, amount) -> Decimal:
        amount = to_amount(amount)
        if amount <= 0:
            raise ValueError("Auto-bet amount must be positive")
        with self._lock:
            self._amounts[user_id] = amount
            self._last_error.pop(user_id, None)
        return amount

    def disable(self, user_id: Hashable) -> None:
        with self._lock:
            self._amounts.pop(user_id, None)

    def status(self, user_id: Hashable) -> dict:
        with self._lock:
            amount = self._amounts.get(user_id)
            error = self._last_error.get(user_id)
        return {
            "enabled": amount is not None,
            "amount": str(amount) if amount is not None else None,
            "last_error": error.value if error is not None else None,
        }

    def handle_event(self, event: dict) -> None:
        if event["type"] != "round.phase" or event["data"]["phase"] != "betting":
            return
        with self._lock:
            stakes = list(self._amounts.items())

        for user_id, amount in stakes:
            result = self.ledger.place_bet(user_id, amount)
            if result.ok:
                continue
            with self._lock:
                self._last_error[user_id] = result.error
                if result.error is BetError.INSUFFICIENT_FUNDS:
                    self._amounts.pop(user_id, None)
            if result.error is BetError.INSUFFICIENT_FUNDS:
                logger.warning(f"Auto-bet disabled for user {user_id}: insufficient funds")
                self.ledger.machine.emit("player.auto_bet_disabled", {
                    "room": self.ledger.machine.room,
                    "user_id": user_id,
                    "error": result.error.value,
                })
                self.ledger.machine.dispatch_pending()


class AutoCashout:
    """Cashes a bet out the first time the multiplier reaches the player's target."""

    def __init__(self, ledger: BetLedger):
        self.ledger = ledger
        self._targets: Dict[Hashable, Decimal] = {}
        self._fired: Dict[Hashable, str] = {}
        self._lock = threading.Lock()
        ledger.machine.subscribe(self.handle_event)

    def set_target(self, user_id: Hashable, target) -> Decimal:
        target = to_amount(target)
        if target <= ONE:
            raise ValueError("Auto-cashout target must be above 1.00")
        with self._lock:
            self._targets[user_id] = target
        return target

    def clear(self, user_id: Hashable) -> None:
        with self._lock:
            self._targets.pop(user_id, None)

    def target_for(self, user_id: Hashable) -> Optional[Decimal]:
        with self._lock:
            return self._targets.get(user_id)

    def handle_event(self, event: dict) -> None:
        if event["type"] != "round.multiplier":
            return
        round_id = event["data"]["round_id"]
        multiplier = Decimal(event["data"]["multiplier"])

        due = []
        with self._lock:
            for user_id, target in self._targets.items():
                if multiplier < target or self._fired.get(user_id) == round_id:
                    continue
                # Mark before cashing out so a re-entrant tick cannot fire twice.
                self._fired[user_id] = round_id
                due.append(user_id)

        for user_id in due:
            bet = self.ledger.active_bet(user_id)
            if bet is None or bet.round_id != round_id:
                continue
            result = self.ledger.cash_out(user_id)
            if not result.ok:
                logger.info(f"Auto-cashout for user {user_id} rejected: {result.error.value}")
