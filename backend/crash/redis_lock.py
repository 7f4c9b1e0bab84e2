import logging
import time
import uuid

import redis
from django.conf import settings

logger = logging.getLogger(__name__)

# Compare-and-delete: only the holder's token may remove the key.
RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


def get_redis():
    return redis.Redis.from_url(settings.REDIS_URL, decode_responses=True)


def room_lock_key(room: str) -> str:
    return f"crash:engine:{room}"


class RedisEngineLock:
    """
    Guarantees a single process hosts a given room's engine.

    - acquire: SET NX PX
    - renew:   SET XX PX, only while we still hold the token
    - release: compare-and-delete
    """

    def __init__(self, key: str, ttl_seconds: float, client=None):
        self.key = key
        self.ttl_ms = int(ttl_seconds * 1000)
        self.token = uuid.uuid4().hex
        self.r = client if client is not None else get_redis()

    def acquire(self) -> bool:
        acquired = bool(self.r.set(self.key, self.token, nx=True, px=self.ttl_ms))
        if acquired:
            logger.info(f"Lock {self.key} acquired")
        return acquired

    def renew(self) -> bool:
        if self.r.get(self.key) != self.token:
            return False
        return bool(self.r.set(self.key, self.token, xx=True, px=self.ttl_ms))

    def release(self) -> bool:
        released = bool(self.r.eval(RELEASE_SCRIPT, 1, self.key, self.token))
        if released:
            logger.info(f"Lock {self.key} released")
        return released


class LockHeartbeat:
    """Tick hook that renews the lock every `every_seconds`."""

    def __init__(self, lock: RedisEngineLock, every_seconds: float = 5.0, clock=time.monotonic):
        self.lock = lock
        self.every = every_seconds
        self._clock = clock
        self._next = clock() + self.every

    def tick(self):
        now = self._clock()
        if now >= self._next:
            if not self.lock.renew():
                logger.error(f"Lost engine lock {self.lock.key}")
                raise RuntimeError("Lost engine lock")
            self._next = now + self.every
