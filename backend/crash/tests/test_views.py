from datetime import timedelta
from decimal import Decimal
from unittest import mock

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APIClient

from crash.models import GameRound
from crash.rooms import registry

from .support import BETTING_AT, PLAYING_AT, FakeClock, held_room_registry, make_room

User = get_user_model()


class CrashApiTestCase(TestCase):

    def setUp(self):
        self.user = User.objects.create_user(username="alice", password="pw-12345")
        self.clock = FakeClock()
        self.room = make_room(self.clock, balances={self.user.pk: "100.00"})
        registry.install(self.room)
        self.client = APIClient()
        self.client.force_authenticate(self.user)

    def tearDown(self):
        registry.remove("main")


class GameStateViewTests(CrashApiTestCase):

    def test_anonymous_state(self):
        response = APIClient().get("/api/crash/state/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["phase"], "idle")
        self.assertNotIn("current_bet", response.data)

    def test_player_state(self):
        response = self.client.get("/api/crash/state/")
        self.assertEqual(response.status_code, 200)
        self.assertIsNone(response.data["current_bet"])
        self.assertEqual(response.data["recent_bets"], [])

    def test_unknown_room(self):
        response = self.client.get("/api/crash/state/", {"room": "nope"})
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data["error"], "UNKNOWN_ROOM")

    def test_room_hosted_by_another_process(self):
        with mock.patch("crash.views.registry", held_room_registry()):
            response = self.client.get("/api/crash/state/")
            self.assertEqual(response.status_code, 503)
            self.assertEqual(response.data["error"], "ROOM_UNAVAILABLE")

            response = self.client.post("/api/crash/place-bet/", {"amount": "10"}, format="json")
            self.assertEqual(response.status_code, 503)


class BetFlowViewTests(CrashApiTestCase):

    def test_requires_login(self):
        response = APIClient().post("/api/crash/place-bet/", {"amount": "10"}, format="json")
        self.assertIn(response.status_code, (401, 403))

    def test_bet_outside_betting(self):
        response = self.client.post("/api/crash/place-bet/", {"amount": "10"}, format="json")
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data, {"success": False, "error": "NOT_BETTING_PHASE"})

    def test_invalid_amount(self):
        self.clock.set(BETTING_AT)
        response = self.client.post("/api/crash/place-bet/", {"amount": "lots"}, format="json")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["error"], "INVALID_AMOUNT")

    def test_bet_and_cash_out(self):
        self.clock.set(BETTING_AT)
        response = self.client.post("/api/crash/place-bet/", {"amount": "50.00"}, format="json")
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.data["success"])
        self.assertEqual(response.data["amount"], "50.00")
        self.assertEqual(response.data["balance"], "50.00")

        response = self.client.post("/api/crash/place-bet/", {"amount": "5"}, format="json")
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data["error"], "BET_ALREADY_ACTIVE")

        self.clock.set(PLAYING_AT + 2.75)
        response = self.client.post("/api/crash/cash-out/", format="json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["payout"], "75.00")
        self.assertEqual(response.data["multiplier"], "1.50")
        self.assertEqual(response.data["balance"], "125.00")

    def test_cash_out_without_bet(self):
        self.clock.set(PLAYING_AT + 1.0)
        response = self.client.post("/api/crash/cash-out/", format="json")
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data["error"], "NO_ACTIVE_BET")


class PolicyViewTests(CrashApiTestCase):

    def test_auto_bet(self):
        response = self.client.post(
            "/api/crash/auto-bet/", {"enabled": True, "amount": "10.00"}, format="json"
        )
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.data["enabled"])
        self.assertEqual(response.data["amount"], "10.00")

        response = self.client.post("/api/crash/auto-bet/", {"enabled": False}, format="json")
        self.assertFalse(response.data["enabled"])

    def test_auto_bet_needs_amount(self):
        response = self.client.post("/api/crash/auto-bet/", {"enabled": True}, format="json")
        self.assertEqual(response.status_code, 400)

    def test_auto_cashout(self):
        response = self.client.post("/api/crash/auto-cashout/", {"target": "2.00"}, format="json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["target"], "2.00")

        response = self.client.post("/api/crash/auto-cashout/", {"target": None}, format="json")
        self.assertIsNone(response.data["target"])

    def test_auto_cashout_rejects_one(self):
        response = self.client.post("/api/crash/auto-cashout/", {"target": "1.00"}, format="json")
        self.assertEqual(response.status_code, 400)


class RoundHistoryViewTests(TestCase):

    def setUp(self):
        now = timezone.now()
        for n, point in enumerate(("1.00", "2.00", "3.00", "10.00")):
            GameRound.objects.create(
                round_id=f"round{n}",
                crash_point=Decimal(point),
                occurred_at=now + timedelta(seconds=n),
            )
        GameRound.objects.create(
            round_id="vipround", room="vip", crash_point=Decimal("50.00"), occurred_at=now
        )

    def test_recent_rounds(self):
        response = APIClient().get("/api/crash/recent-rounds/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual([r["crash_point"] for r in response.data], ["10.00", "3.00", "2.00", "1.00"])

    def test_stats(self):
        response = APIClient().get("/api/crash/stats/")
        self.assertEqual(response.data["rounds"], 4)
        self.assertEqual(response.data["average"], "4.00")
        self.assertEqual(response.data["median"], "2.50")
        self.assertEqual(response.data["max"], "10.00")
        self.assertEqual(response.data["share_at_most_2x"], 0.5)

    def test_stats_empty_room(self):
        response = APIClient().get("/api/crash/stats/", {"room": "empty"})
        self.assertEqual(response.data, {"room": "empty", "rounds": 0})
