from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase, override_settings
from rest_framework.test import APIClient

from crash.engine import RoundStateMachine
from crash.config import GameConfig
from crash.crash_points import CrashPointGenerator
from crash.ledger import BetLedger
from crash.wallet import InsufficientFunds, LedgerError

from .models import Wallet, WalletTransaction
from .services import DjangoWalletLedger, credit_atomic, debit_atomic, deposit

User = get_user_model()


class WalletServiceTests(TestCase):

    def setUp(self):
        self.user = User.objects.create_user(username="alice", password="pw-12345")

    def balance(self):
        return Wallet.objects.get(user=self.user).balance

    def test_wallet_created_with_signup_balance(self):
        self.assertEqual(self.balance(), Decimal("100.00"))

    @override_settings(WALLET_INITIAL_BALANCE="0.00")
    def test_signup_balance_is_configurable(self):
        bob = User.objects.create_user(username="bob", password="pw-12345")
        self.assertEqual(bob.wallet.balance, Decimal("0.00"))

    def test_debit_and_credit(self):
        debit_atomic(self.user.pk, Decimal("30.00"), "ref-debit")
        credit_atomic(self.user.pk, Decimal("12.50"), "ref-credit")
        self.assertEqual(self.balance(), Decimal("82.50"))
        self.assertEqual(
            list(WalletTransaction.objects.values_list("tx_type", flat=True)),
            [WalletTransaction.CREDIT, WalletTransaction.DEBIT],
        )

    def test_debit_never_overdraws(self):
        with self.assertRaises(InsufficientFunds):
            debit_atomic(self.user.pk, Decimal("100.01"), "ref-1")
        self.assertEqual(self.balance(), Decimal("100.00"))
        self.assertFalse(WalletTransaction.objects.exists())

    def test_credit_without_wallet(self):
        with self.assertRaises(LedgerError):
            credit_atomic(999999, Decimal("1.00"), "ref-2")

    def test_deposit(self):
        wallet = deposit(self.user, Decimal("25.00"))
        self.assertEqual(wallet.balance, Decimal("125.00"))


class DjangoWalletLedgerTests(TestCase):

    def setUp(self):
        self.user = User.objects.create_user(username="alice", password="pw-12345")
        self.wallet = DjangoWalletLedger()

    def test_balance(self):
        self.assertEqual(self.wallet.get_balance(self.user.pk), Decimal("100.00"))
        self.assertEqual(self.wallet.get_balance(999999), Decimal("0.00"))

    def test_moves_money(self):
        self.wallet.debit(self.user.pk, Decimal("40.00"), reference="crash-bet-1")
        self.wallet.credit(self.user.pk, Decimal("60.00"), reference="crash-cashout-1")
        self.assertEqual(self.wallet.get_balance(self.user.pk), Decimal("120.00"))
        self.assertTrue(WalletTransaction.objects.filter(reference="crash-bet-1").exists())

    def test_round_trip_through_bet_ledger(self):
        clock = [0.0]
        machine = RoundStateMachine(
            GameConfig(), CrashPointGenerator(["2.00"]), clock=lambda: clock[0]
        )
        ledger = BetLedger(machine, self.wallet)

        clock[0] = 8.0
        self.assertTrue(ledger.place_bet(self.user.pk, "50").ok)
        clock[0] = 20.75
        self.assertEqual(ledger.cash_out(self.user.pk).value, Decimal("75.00"))

        self.assertEqual(self.wallet.get_balance(self.user.pk), Decimal("125.00"))
        self.assertEqual(WalletTransaction.objects.filter(user=self.user).count(), 2)


class WalletApiTests(TestCase):

    def setUp(self):
        self.user = User.objects.create_user(username="alice", password="pw-12345")
        self.client = APIClient()
        self.client.force_authenticate(self.user)

    def test_balance(self):
        response = self.client.get("/api/wallet/balance/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["balance"], "100.00")

    def test_deposit(self):
        response = self.client.post("/api/wallet/deposit/", {"amount": "25.00"}, format="json")
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data, {"status": True, "balance": "125.00"})

        response = self.client.get("/api/wallet/transactions/")
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]["tx_type"], "CREDIT")

    def test_deposit_limits(self):
        for amount in ("0.50", "10000.01"):
            with self.subTest(amount=amount):
                response = self.client.post("/api/wallet/deposit/", {"amount": amount}, format="json")
                self.assertEqual(response.status_code, 400)

    def test_requires_login(self):
        response = APIClient().get("/api/wallet/balance/")
        self.assertIn(response.status_code, (401, 403))
