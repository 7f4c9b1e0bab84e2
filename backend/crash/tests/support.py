
from crash.config import GameConfig
from crash.crash_points import CrashPointGenerator
from crash.engine import RoundStateMachine
from crash.redis_lock import RedisEngineLock, room_lock_key
from crash.rooms import GameRoom, RoomRegistry
from crash.wallet import InMemoryWalletLedger

# Default schedule: idle 5s, starting 3s, betting 10s, crashed 5s.
BETTING_AT = 8.0
PLAYING_AT = 18.0


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now

    def set(self, now):
        self.now = now


def fixed_generator(*points):
    return CrashPointGenerator(points or ("2.00",))


def make_machine(clock, crash_point="2.00", **config):
    return RoundStateMachine(
        GameConfig(**config),
        fixed_generator(crash_point),
        clock=clock,
    )


def make_room(clock, balances=None, crash_point="2.00", name="main", wallet=None):
    return GameRoom(
        name,
        config=GameConfig(),
        wallet=wallet if wallet is not None else InMemoryWalletLedger(balances or {}),
        generator=fixed_generator(crash_point),
        clock=clock,
    )


class Recorder:
    """Listener that keeps every event it receives."""

    def __init__(self):
        self.events = []

    def __call__(self, event):
        self.events.append(event)

    def of_type(self, event_type):
        return [e["data"] for e in self.events if e["type"] == event_type]


class FakeRedis:
    """Just enough of redis.Redis for the engine lock (TTL is not simulated)."""

    def __init__(self):
        self.store = {}
        self.ttls = {}

    def set(self, key, value, nx=False, xx=False, px=None):
        if nx and key in self.store:
            return None
        if xx and key not in self.store:
            return None
        self.store[key] = value
        self.ttls[key] = px
        return True

    def get(self, key):
        return self.store.get(key)

    def eval(self, script, numkeys, key, token):
        if self.store.get(key) == token:
            del self.store[key]
            return 1
        return 0

    def expire_now(self, key):
        self.store.pop(key, None)


def held_room_registry(name="main"):
    """Registry in a process that lost the race: `name` is hosted by another process."""
    redis = FakeRedis()
    RedisEngineLock(room_lock_key(name), 15, client=redis).acquire()
    return RoomRegistry(
        lambda room: GameRoom(
            room,
            wallet=InMemoryWalletLedger(),
            engine_lock=RedisEngineLock(room_lock_key(room), 15, client=redis),
        )
    )
