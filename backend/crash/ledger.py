from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, Hashable, List, Optional

from .curve import payout, to_amount
from .engine import Phase, Round, RoundStateMachine, utcnow
from .errors import BetError, CashoutError, InvariantViolation, Result
from .history import CompletedBet, RecentBets
from .wallet import InsufficientFunds, WalletError, WalletLedger

logger = logging.getLogger(__name__)


class BetStatus(str, Enum):
    PLACED = "placed"
    CASHED_OUT = "cashed_out"
    LOST = "lost"


@dataclass
class Bet:
    user_id: Hashable
    round_id: str
    amount: Decimal
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: BetStatus = BetStatus.PLACED
    cash_out_multiplier: Optional[Decimal] = None
    winnings: Optional[Decimal] = None
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "round_id": self.round_id,
            "amount": str(self.amount),
            "status": self.status.value,
            "cash_out_multiplier": (
                str(self.cash_out_multiplier) if self.cash_out_multiplier is not None else None
            ),
            "winnings": str(self.winnings) if self.winnings is not None else None,
            "created_at": self.created_at.isoformat(),
        }


class BetLedger:
    """
    One bet per player per round, settled against the round state machine.

    placed -> cashed_out   (cash_out while playing)
    placed -> lost         (round crashes first)

    Every operation runs under the machine's lock, so a cash-out and the
    crash check can never both resolve the same bet.
    """

    def __init__(self, machine: RoundStateMachine, wallet: WalletLedger,
                 recent_bets_capacity: Optional[int] = None):
        self.machine = machine
        self.wallet = wallet
        self._bets: Dict[Hashable, Bet] = {}
        self._recent = RecentBets(recent_bets_capacity or machine.config.recent_bets_capacity)

        machine.on_enter(Phase.CRASHED, self._resolve_losses)
        machine.on_enter(Phase.IDLE, self._clear_round)

    # ------------------------------------------------------------------
    # commands
    # ------------------------------------------------------------------
    def place_bet(self, user_id: Hashable, amount) -> Result:
        try:
            with self.machine.lock:
                return self._place_bet(user_id, amount)
        finally:
            self.machine.dispatch_pending()

    def _place_bet(self, user_id, amount) -> Result:
        if self.machine.halted:
            return Result.failure(BetError.ROOM_UNAVAILABLE)
        self.machine.advance_locked()
        rnd = self.machine.current_round

        if rnd.phase is not Phase.BETTING:
            return Result.failure(BetError.NOT_BETTING_PHASE)

        current = self._bets.get(user_id)
        if current is not None and current.status is BetStatus.PLACED:
            return Result.failure(BetError.BET_ALREADY_ACTIVE)

        try:
            amount = to_amount(amount)
        except ValueError:
            return Result.failure(BetError.INVALID_AMOUNT)
        if amount <= 0:
            return Result.failure(BetError.INVALID_AMOUNT)

        try:
            balance = self.wallet.get_balance(user_id)
        except WalletError:
            logger.exception(f"Balance lookup failed for user {user_id}")
            return Result.failure(BetError.LEDGER_UPDATE_FAILED)
        if amount > balance:
            return Result.failure(BetError.INSUFFICIENT_FUNDS)

        bet = Bet(user_id=user_id, round_id=rnd.round_id, amount=amount)

        # Debit first; the bet only exists once the funds are committed.
        try:
            self.wallet.debit(user_id, amount, reference=f"crash-bet-{bet.id}")
        except InsufficientFunds:
            return Result.failure(BetError.INSUFFICIENT_FUNDS)
        except WalletError:
            logger.exception(f"Debit failed for user {user_id}, bet not placed")
            return Result.failure(BetError.LEDGER_UPDATE_FAILED)

        self._bets[user_id] = bet
        logger.info(f"Bet {bet.id} placed: user={user_id} amount={amount} round={rnd.round_id}")
        self.machine.emit("player.bet", {
            "room": self.machine.room,
            "round_id": rnd.round_id,
            "bet_id": bet.id,
            "user_id": user_id,
            "amount": str(amount),
        })
        return Result.success(bet.id)

    def cash_out(self, user_id: Hashable) -> Result:
        try:
            with self.machine.lock:
                return self._cash_out(user_id)
        finally:
            self.machine.dispatch_pending()

    def _cash_out(self, user_id) -> Result:
        if self.machine.halted:
            return Result.failure(CashoutError.ROOM_UNAVAILABLE)
        # Sample the curve at the moment of the request; if the crash point
        # has been reached this flips the round to `crashed` first.
        self.machine.advance_locked()
        rnd = self.machine.current_round

        if rnd.phase is not Phase.PLAYING:
            return Result.failure(CashoutError.NOT_PLAYING_PHASE)

        bet = self._bets.get(user_id)
        if bet is None or bet.status is not BetStatus.PLACED:
            return Result.failure(CashoutError.NO_ACTIVE_BET)
        if bet.round_id != rnd.round_id:
            raise InvariantViolation(f"Bet {bet.id} belongs to round {bet.round_id}")

        multiplier = rnd.live_multiplier
        winnings = payout(bet.amount, multiplier)

        try:
            self.wallet.credit(user_id, winnings, reference=f"crash-cashout-{bet.id}")
        except WalletError:
            # Bet stays placed: the player keeps the claim, nothing is lost silently.
            logger.exception(f"Credit failed for bet {bet.id}, bet left active")
            return Result.failure(CashoutError.LEDGER_UPDATE_FAILED)

        bet.status = BetStatus.CASHED_OUT
        bet.cash_out_multiplier = multiplier
        bet.winnings = winnings
        self._recent.record(user_id, CompletedBet(
            id=bet.id,
            amount=bet.amount,
            timestamp=bet.created_at,
            status="won",
            profit=winnings,
            cashout_at=multiplier,
        ))
        logger.info(f"Bet {bet.id} cashed out @ {multiplier}x for {winnings}")
        self.machine.emit("player.cashout", {
            "room": self.machine.room,
            "round_id": rnd.round_id,
            "bet_id": bet.id,
            "user_id": user_id,
            "multiplier": str(multiplier),
            "payout": str(winnings),
        })
        return Result.success(winnings)

    # ------------------------------------------------------------------
    # phase hooks (called by the machine under its lock)
    # ------------------------------------------------------------------
    def _resolve_losses(self, rnd: Round) -> None:
        for user_id, bet in self._bets.items():
            if bet.round_id != rnd.round_id or bet.status is not BetStatus.PLACED:
                continue
            bet.status = BetStatus.LOST
            recorded = self._recent.record(user_id, CompletedBet(
                id=bet.id,
                amount=bet.amount,
                timestamp=bet.created_at,
                status="lost",
                profit=-bet.amount,
                crash_multiplier=rnd.crash_target,
            ))
            if not recorded:
                continue
            logger.info(f"Bet {bet.id} lost @ {rnd.crash_target}x")
            self._queue_loss(bet, rnd)

    def _queue_loss(self, bet: Bet, rnd: Round) -> None:
        self.machine.emit("player.lost", {
            "room": self.machine.room,
            "round_id": rnd.round_id,
            "bet_id": bet.id,
            "user_id": bet.user_id,
            "amount": str(bet.amount),
            "crash_point": str(rnd.crash_target),
        })

    def _clear_round(self, rnd: Round) -> None:
        stale = [b.id for b in self._bets.values() if b.status is BetStatus.PLACED]
        if stale:
            raise InvariantViolation(f"Bets still placed at round reset: {stale}")
        self._bets.clear()

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------
    def current_bet(self, user_id: Hashable) -> Optional[Bet]:
        """The player's bet for the current round, in any status."""
        with self.machine.lock:
            bet = self._bets.get(user_id)
            return replace(bet) if bet is not None else None

    def active_bet(self, user_id: Hashable) -> Optional[Bet]:
        bet = self.current_bet(user_id)
        if bet is None or bet.status is not BetStatus.PLACED:
            return None
        return bet

    def active_bets(self) -> List[Bet]:
        with self.machine.lock:
            return [replace(b) for b in self._bets.values() if b.status is BetStatus.PLACED]

    def recent_bets(self, user_id: Hashable) -> List[CompletedBet]:
        with self.machine.lock:
            return self._recent.for_user(user_id)
