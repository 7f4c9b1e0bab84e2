from __future__ import annotations

import atexit
import logging
import threading
from typing import Callable, Dict, Hashable, Optional

from django.conf import settings
from django.utils.module_loading import import_string

from .broadcast import ChannelsBroadcaster
from .config import GameConfig
from .crash_points import CrashPointGenerator
from .engine import RoundStateMachine
from .errors import Result
from .ledger import BetLedger
from .persistence import RoundRecorder
from .policies import AutoBet, AutoCashout
from .redis_lock import LockHeartbeat, RedisEngineLock, room_lock_key
from .wallet import InMemoryWalletLedger, WalletLedger

logger = logging.getLogger(__name__)

DEFAULT_WALLET_LEDGER = "wallets.services.DjangoWalletLedger"
DEFAULT_LOCK_TTL = 15  # seconds


class UnknownRoom(LookupError):
    pass


class RoomUnavailable(RuntimeError):
    """Another process already hosts this room."""


class GameRoom:
    """One table: a state machine, its bet ledger and the player policies."""

    def __init__(
        self,
        name: str,
        config: Optional[GameConfig] = None,
        wallet: Optional[WalletLedger] = None,
        generator: Optional[CrashPointGenerator] = None,
        clock: Optional[Callable[[], float]] = None,
        engine_lock: Optional[RedisEngineLock] = None,
        heartbeat_interval: float = 5.0,
    ):
        self.name = name
        machine_kwargs = {"clock": clock} if clock is not None else {}
        self.machine = RoundStateMachine(config, generator, room=name, **machine_kwargs)
        self.ledger = BetLedger(self.machine, wallet if wallet is not None else InMemoryWalletLedger())
        self.auto_bet = AutoBet(self.ledger)
        self.auto_cashout = AutoCashout(self.ledger)
        self.engine_lock = engine_lock
        self._heartbeat = (
            LockHeartbeat(engine_lock, every_seconds=heartbeat_interval)
            if engine_lock is not None else None
        )
        if self._heartbeat is not None:
            self.machine.add_tick_hook(self._heartbeat.tick)

    def subscribe(self, listener: Callable[[dict], None]) -> None:
        self.machine.subscribe(listener)

    @property
    def running(self) -> bool:
        return self.machine.running

    @property
    def halted(self) -> bool:
        return self.machine.halted

    def start(self) -> None:
        if self.machine.running:
            return
        if self.engine_lock is not None and not self.engine_lock.acquire():
            raise RoomUnavailable(f"Room {self.name} is hosted by another process")
        self.machine.start()

    def stop(self) -> None:
        self.machine.stop()
        if self.engine_lock is not None:
            self.engine_lock.release()

    # commands ---------------------------------------------------------
    def place_bet(self, user_id: Hashable, amount) -> Result:
        return self.ledger.place_bet(user_id, amount)

    def cash_out(self, user_id: Hashable) -> Result:
        return self.ledger.cash_out(user_id)

    # reads ------------------------------------------------------------
    def state(self, user_id: Optional[Hashable] = None) -> dict:
        data = self.machine.snapshot().to_dict()
        data["active_bets"] = [
            {"bet_id": bet.id, "user_id": bet.user_id, "amount": str(bet.amount)}
            for bet in self.ledger.active_bets()
        ]
        if user_id is not None:
            bet = self.ledger.current_bet(user_id)
            target = self.auto_cashout.target_for(user_id)
            data["current_bet"] = bet.to_dict() if bet is not None else None
            data["recent_bets"] = [r.to_dict() for r in self.ledger.recent_bets(user_id)]
            data["auto_bet"] = self.auto_bet.status(user_id)
            data["auto_cashout"] = str(target) if target is not None else None
        return data


def room_names():
    return list(getattr(settings, "CRASH_GAME", {}).get("ROOMS", ["main"]))


def build_room(name: str, locking: Optional[bool] = None) -> GameRoom:
    """Room wired from settings: configured wallet ledger, broadcaster, round recorder."""
    options = getattr(settings, "CRASH_GAME", {})
    config = GameConfig.from_settings()
    wallet = import_string(options.get("WALLET_LEDGER", DEFAULT_WALLET_LEDGER))()

    if locking is None:
        locking = options.get("ENGINE_LOCKING", False)
    ttl = options.get("ENGINE_LOCK_TTL", DEFAULT_LOCK_TTL)
    engine_lock = RedisEngineLock(room_lock_key(name), ttl) if locking else None

    room = GameRoom(
        name,
        config=config,
        wallet=wallet,
        engine_lock=engine_lock,
        heartbeat_interval=ttl / 3,
    )
    room.subscribe(ChannelsBroadcaster(name))
    room.subscribe(RoundRecorder(name))
    return room


class RoomRegistry:
    """Rooms hosted by this process, started on first use."""

    def __init__(self, factory: Callable[[str], GameRoom] = build_room):
        self._factory = factory
        self._rooms: Dict[str, GameRoom] = {}
        self._lock = threading.Lock()

    def get(self, name: str) -> GameRoom:
        with self._lock:
            room = self._rooms.get(name)
            if room is not None and room.halted:
                # tick loop died, e.g. on a lost engine lock
                logger.warning(f"Room {name} stopped, dropping it")
                del self._rooms[name]
                room.stop()
                room = None
            if room is None:
                if name not in room_names():
                    raise UnknownRoom(name)
                room = self._factory(name)
                room.start()
                self._rooms[name] = room
                logger.info(f"Room {name} is now hosted by this process")
            return room

    def install(self, room: GameRoom) -> None:
        with self._lock:
            self._rooms[room.name] = room

    def remove(self, name: str) -> Optional[GameRoom]:
        with self._lock:
            return self._rooms.pop(name, None)

    def stop_all(self) -> None:
        with self._lock:
            rooms, self._rooms = list(self._rooms.values()), {}
        for room in rooms:
            room.stop()


registry = RoomRegistry()
atexit.register(registry.stop_all)
