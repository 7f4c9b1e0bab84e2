import logging

from asgiref.sync import sync_to_async
from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncJsonWebsocketConsumer

from .broadcast import group_name_for
from .rooms import RoomUnavailable, UnknownRoom, registry
from .wallet import WalletError

logger = logging.getLogger(__name__)


class CrashConsumer(AsyncJsonWebsocketConsumer):
    """
    Live feed and command channel for one room.

    Inbound events: place_bet, cashout, set_auto_bet, set_auto_cashout.
    Outbound events mirror the room's channel group (round_phase,
    multiplier_update, round_crash, player_bet, player_cashout) plus the
    caller's own results.
    """

    async def connect(self):
        user = self.scope.get("user")
        if user is None or user.is_anonymous:
            await self.close()
            return

        self.user_id = user.pk
        self.room_name = self.scope["url_route"]["kwargs"]["room"]
        try:
            self.room = await sync_to_async(registry.get)(self.room_name)
        except (UnknownRoom, RoomUnavailable):
            logger.warning(f"Rejected socket for room {self.room_name}")
            await self.close()
            return

        self.group_name = group_name_for(self.room_name)
        await self.channel_layer.group_add(self.group_name, self.channel_name)
        await self.accept()

        await self.send_json({
            "event": "connected",
            "room": self.room_name,
            "data": await self._state(),
        })

    async def disconnect(self, close_code):
        if hasattr(self, "group_name"):
            await self.channel_layer.group_discard(self.group_name, self.channel_name)

    async def receive_json(self, content, **kwargs):
        event = content.get("event")
        data = content.get("data") or {}

        if event == "place_bet":
            await self.handle_place_bet(data)
        elif event == "cashout":
            await self.handle_cashout()
        elif event == "set_auto_bet":
            await self.handle_auto_bet(data)
        elif event == "set_auto_cashout":
            await self.handle_auto_cashout(data)
        elif event == "state":
            await self.send_json({"event": "state", "data": await self._state()})

    # ------------------------------------------------------------------
    # room access (wallet ledger may hit the database)
    # ------------------------------------------------------------------
    @database_sync_to_async
    def _state(self):
        return self.room.state(self.user_id)

    @database_sync_to_async
    def _place_bet(self, amount):
        result = self.room.place_bet(self.user_id, amount)
        return result, self.room.ledger.current_bet(self.user_id), self._balance()

    @database_sync_to_async
    def _cashout(self):
        result = self.room.cash_out(self.user_id)
        return result, self.room.ledger.current_bet(self.user_id), self._balance()

    def _balance(self):
        try:
            return str(self.room.ledger.wallet.get_balance(self.user_id))
        except WalletError:
            logger.exception(f"Balance lookup failed for user {self.user_id}")
            return None

    # ------------------------------------------------------------------
    # commands
    # ------------------------------------------------------------------
    async def handle_place_bet(self, data):
        amount = data.get("amount")
        result, bet, balance = await self._place_bet(amount)
        if not result.ok:
            await self.send_json({
                "event": "bet_failed",
                "error": result.error.value,
                "data": {"amount": str(amount)},
            })
            return

        await self.send_json({
            "event": "bet_accepted",
            "data": {**bet.to_dict(), "balance": balance},
        })

    async def handle_cashout(self):
        result, bet, balance = await self._cashout()
        if not result.ok:
            await self.send_json({"event": "cashout_failed", "error": result.error.value})
            return

        await self.send_json({
            "event": "cashout_success",
            "data": {
                "bet_id": bet.id,
                "payout": str(result.value),
                "multiplier": str(bet.cash_out_multiplier),
                "balance": balance,
            },
        })

    async def handle_auto_bet(self, data):
        try:
            if data.get("enabled"):
                self.room.auto_bet.enable(self.user_id, data.get("amount"))
            else:
                self.room.auto_bet.disable(self.user_id)
        except ValueError:
            await self.send_json({"event": "auto_bet_failed", "error": "INVALID_AMOUNT"})
            return
        await self.send_json({
            "event": "auto_bet_updated",
            "data": self.room.auto_bet.status(self.user_id),
        })

    async def handle_auto_cashout(self, data):
        target = data.get("target")
        try:
            if target is None:
                self.room.auto_cashout.clear(self.user_id)
            else:
                self.room.auto_cashout.set_target(self.user_id, target)
        except ValueError:
            await self.send_json({"event": "auto_cashout_failed", "error": "INVALID_TARGET"})
            return
        current = self.room.auto_cashout.target_for(self.user_id)
        await self.send_json({
            "event": "auto_cashout_updated",
            "data": {"target": str(current) if current is not None else None},
        })

    # ------------------------------------------------------------------
    # group handlers from the room engine
    # ------------------------------------------------------------------
    async def round_phase(self, event):
        await self.send_json({"event": "round_phase", "data": event["data"]})

    async def round_multiplier(self, event):
        await self.send_json({"event": "multiplier_update", "data": event["data"]})

    async def round_crash(self, event):
        await self.send_json({"event": "round_crash", "data": event["data"]})

    async def player_bet(self, event):
        await self.send_json({"event": "player_bet", "data": event["data"]})

    async def player_cashout(self, event):
        await self.send_json({"event": "player_cashout", "data": event["data"]})

    async def player_lost(self, event):
        if event["data"].get("user_id") == self.user_id:
            await self.send_json({"event": "bet_crashed", "data": event["data"]})

    async def player_auto_bet_disabled(self, event):
        if event["data"].get("user_id") == self.user_id:
            await self.send_json({"event": "auto_bet_disabled", "data": event["data"]})
