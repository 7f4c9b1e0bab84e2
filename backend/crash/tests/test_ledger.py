from decimal import Decimal

from django.test import SimpleTestCase

from crash.engine import Phase
from crash.errors import BetError, CashoutError, InvariantViolation
from crash.ledger import BetLedger, BetStatus
from crash.wallet import InMemoryWalletLedger, LedgerError

from .support import BETTING_AT, PLAYING_AT, FakeClock, Recorder, make_machine


class FlakyWallet(InMemoryWalletLedger):
    def __init__(self, balances):
        super().__init__(balances)
        self.fail_debit = False
        self.fail_credit = False

    def debit(self, user_id, amount, reference=None):
        if self.fail_debit:
            raise LedgerError("debit unavailable")
        super().debit(user_id, amount, reference)

    def credit(self, user_id, amount, reference=None):
        if self.fail_credit:
            raise LedgerError("credit unavailable")
        super().credit(user_id, amount, reference)


class LedgerTestCase(SimpleTestCase):
    crash_point = "2.00"

    def setUp(self):
        self.clock = FakeClock()
        self.machine = make_machine(self.clock, crash_point=self.crash_point)
        self.wallet = FlakyWallet({"alice": "100.00", "bob": "20.00"})
        self.ledger = BetLedger(self.machine, self.wallet)
        self.events = Recorder()
        self.machine.subscribe(self.events)

    def at(self, now):
        self.clock.set(now)
        self.machine.advance()

    def balance(self, user_id):
        return self.wallet.get_balance(user_id)


class PlaceBetTests(LedgerTestCase):

    def test_bet_debits_wallet(self):
        self.at(BETTING_AT)
        result = self.ledger.place_bet("alice", "50.00")

        self.assertTrue(result.ok)
        self.assertEqual(self.balance("alice"), Decimal("50.00"))
        bet = self.ledger.active_bet("alice")
        self.assertEqual(bet.id, result.value)
        self.assertEqual(bet.amount, Decimal("50.00"))
        self.assertEqual(bet.round_id, self.machine.current_round.round_id)
        self.assertEqual(self.events.of_type("player.bet")[0]["bet_id"], bet.id)

    def test_outside_betting_phase(self):
        self.assertEqual(self.ledger.place_bet("alice", "10").error, BetError.NOT_BETTING_PHASE)
        self.at(PLAYING_AT + 1.0)
        self.assertEqual(self.ledger.place_bet("alice", "10").error, BetError.NOT_BETTING_PHASE)
        self.assertEqual(self.balance("alice"), Decimal("100.00"))

    def test_betting_window_closes_at_deadline(self):
        self.clock.set(PLAYING_AT)
        result = self.ledger.place_bet("alice", "10")
        self.assertEqual(result.error, BetError.NOT_BETTING_PHASE)
        self.assertIs(self.machine.phase, Phase.PLAYING)

    def test_one_bet_per_round(self):
        self.at(BETTING_AT)
        self.assertTrue(self.ledger.place_bet("alice", "10").ok)
        result = self.ledger.place_bet("alice", "10")
        self.assertEqual(result.error, BetError.BET_ALREADY_ACTIVE)
        self.assertEqual(self.balance("alice"), Decimal("90.00"))

    def test_invalid_amounts(self):
        self.at(BETTING_AT)
        for amount in ("0", "-5", "abc", None, "1.005", True):
            with self.subTest(amount=amount):
                result = self.ledger.place_bet("alice", amount)
                self.assertEqual(result.error, BetError.INVALID_AMOUNT)
        self.assertEqual(self.balance("alice"), Decimal("100.00"))

    def test_insufficient_funds(self):
        self.at(BETTING_AT)
        self.assertEqual(self.ledger.place_bet("bob", "20.01").error, BetError.INSUFFICIENT_FUNDS)
        self.assertEqual(self.ledger.place_bet("nobody", "1").error, BetError.INSUFFICIENT_FUNDS)
        self.assertTrue(self.ledger.place_bet("bob", "20").ok)
        self.assertEqual(self.balance("bob"), Decimal("0.00"))

    def test_failed_debit_leaves_no_bet(self):
        self.at(BETTING_AT)
        self.wallet.fail_debit = True
        with self.assertLogs("crash.ledger", level="ERROR"):
            result = self.ledger.place_bet("alice", "10")

        self.assertEqual(result.error, BetError.LEDGER_UPDATE_FAILED)
        self.assertIsNone(self.ledger.current_bet("alice"))
        self.assertEqual(self.balance("alice"), Decimal("100.00"))
        self.assertEqual(self.events.of_type("player.bet"), [])


class CashOutTests(LedgerTestCase):

    def setUp(self):
        super().setUp()
        self.at(BETTING_AT)
        self.ledger.place_bet("alice", "50.00")

    def test_cash_out_pays_live_multiplier(self):
        self.at(PLAYING_AT + 2.75)
        result = self.ledger.cash_out("alice")

        self.assertTrue(result.ok)
        self.assertEqual(result.value, Decimal("75.00"))
        self.assertEqual(self.balance("alice"), Decimal("125.00"))
        bet = self.ledger.current_bet("alice")
        self.assertIs(bet.status, BetStatus.CASHED_OUT)
        self.assertEqual(bet.cash_out_multiplier, Decimal("1.50"))
        self.assertEqual(bet.winnings, Decimal("75.00"))

        recent = self.ledger.recent_bets("alice")
        self.assertEqual(len(recent), 1)
        self.assertEqual(recent[0].status, "won")
        self.assertEqual(recent[0].profit, Decimal("75.00"))
        self.assertEqual(recent[0].cashout_at, Decimal("1.50"))

    def test_cash_out_uses_time_of_request(self):
        # No tick since the flight started; the request itself samples the curve.
        self.at(PLAYING_AT)
        self.clock.set(PLAYING_AT + 2.75)
        self.assertEqual(self.ledger.cash_out("alice").value, Decimal("75.00"))

    def test_cash_out_before_flight(self):
        self.assertEqual(self.ledger.cash_out("alice").error, CashoutError.NOT_PLAYING_PHASE)

    def test_cash_out_without_bet(self):
        self.at(PLAYING_AT + 1.0)
        self.assertEqual(self.ledger.cash_out("bob").error, CashoutError.NO_ACTIVE_BET)

    def test_cash_out_twice(self):
        self.at(PLAYING_AT + 1.0)
        self.assertTrue(self.ledger.cash_out("alice").ok)
        self.assertEqual(self.ledger.cash_out("alice").error, CashoutError.NO_ACTIVE_BET)

    def test_cash_out_after_crash_point_reached(self):
        # The crash point has passed but no tick has observed it yet.
        self.at(PLAYING_AT + 1.0)
        self.clock.set(PLAYING_AT + 6.0)
        result = self.ledger.cash_out("alice")

        self.assertEqual(result.error, CashoutError.NOT_PLAYING_PHASE)
        self.assertIs(self.ledger.current_bet("alice").status, BetStatus.LOST)
        self.assertEqual(self.balance("alice"), Decimal("50.00"))

    def test_failed_credit_keeps_bet_active(self):
        self.at(PLAYING_AT + 2.75)
        self.wallet.fail_credit = True
        with self.assertLogs("crash.ledger", level="ERROR"):
            result = self.ledger.cash_out("alice")
        self.assertEqual(result.error, CashoutError.LEDGER_UPDATE_FAILED)
        self.assertIs(self.ledger.active_bet("alice").status, BetStatus.PLACED)
        self.assertEqual(self.balance("alice"), Decimal("50.00"))

        self.wallet.fail_credit = False
        self.assertTrue(self.ledger.cash_out("alice").ok)
        self.assertEqual(self.balance("alice"), Decimal("125.00"))


class ResolutionTests(LedgerTestCase):

    def test_crash_marks_open_bets_lost(self):
        self.at(BETTING_AT)
        self.ledger.place_bet("alice", "30")
        self.ledger.place_bet("bob", "20")
        self.at(PLAYING_AT + 5.0)

        for user_id in ("alice", "bob"):
            self.assertIs(self.ledger.current_bet(user_id).status, BetStatus.LOST)
            recent = self.ledger.recent_bets(user_id)
            self.assertEqual(len(recent), 1)
            self.assertEqual(recent[0].status, "lost")
            self.assertEqual(recent[0].crash_multiplier, Decimal("2.00"))
        self.assertEqual(self.ledger.recent_bets("alice")[0].profit, Decimal("-30.00"))
        self.assertEqual(len(self.events.of_type("player.lost")), 2)
        self.assertEqual(self.ledger.active_bets(), [])

    def test_cashed_out_bet_is_not_lost(self):
        self.at(BETTING_AT)
        self.ledger.place_bet("alice", "50")
        self.at(PLAYING_AT + 2.75)
        self.ledger.cash_out("alice")
        self.at(PLAYING_AT + 5.0)

        self.assertIs(self.ledger.current_bet("alice").status, BetStatus.CASHED_OUT)
        self.assertEqual([r.status for r in self.ledger.recent_bets("alice")], ["won"])
        self.assertEqual(self.events.of_type("player.lost"), [])

    def test_bets_cleared_for_next_round(self):
        self.at(BETTING_AT)
        self.ledger.place_bet("alice", "10")
        self.at(PLAYING_AT + 5.0)
        self.at(PLAYING_AT + 10.0)
        self.assertIs(self.machine.phase, Phase.IDLE)
        self.assertIsNone(self.ledger.current_bet("alice"))
        self.assertEqual(len(self.ledger.recent_bets("alice")), 1)

    def test_money_is_conserved(self):
        start = self.balance("alice") + self.balance("bob")
        self.at(BETTING_AT)
        self.ledger.place_bet("alice", "50")
        self.ledger.place_bet("bob", "20")
        self.at(PLAYING_AT + 2.75)
        payout = self.ledger.cash_out("alice").value
        self.at(PLAYING_AT + 5.0)

        lost = Decimal("20.00")
        staked = Decimal("70.00")
        self.assertEqual(
            self.balance("alice") + self.balance("bob"),
            start - staked + payout,
        )
        self.assertEqual(payout - Decimal("50.00") - lost, Decimal("5.00"))

    def test_stale_placed_bet_at_reset_is_an_invariant_violation(self):
        self.at(BETTING_AT)
        self.ledger.place_bet("alice", "10")
        with self.assertRaises(InvariantViolation):
            self.ledger._clear_round(self.machine.current_round)


class AllInCrashAtOneTests(LedgerTestCase):
    crash_point = "1.00"

    def test_instant_crash_loses_every_bet(self):
        self.at(BETTING_AT)
        self.ledger.place_bet("alice", "100")
        self.at(PLAYING_AT)
        self.assertIs(self.machine.phase, Phase.CRASHED)
        self.assertEqual(self.ledger.cash_out("alice").error, CashoutError.NOT_PLAYING_PHASE)
        self.assertEqual(self.balance("alice"), Decimal("0.00"))
