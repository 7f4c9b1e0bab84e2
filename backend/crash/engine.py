from __future__ import annotations

import logging
import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Callable, Dict, List, Optional

from .config import GameConfig
from .crash_points import CrashPointGenerator
from .curve import ONE, next_multiplier
from .errors import InvariantViolation
from .history import CrashHistory

logger = logging.getLogger(__name__)

# Longest sleep outside `playing`, so tick hooks (lock heartbeat) keep running.
MAX_PHASE_WAIT = 1.0


class Phase(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    BETTING = "betting"
    PLAYING = "playing"
    CRASHED = "crashed"


NEXT_PHASE = {
    Phase.IDLE: Phase.STARTING,
    Phase.STARTING: Phase.BETTING,
    Phase.BETTING: Phase.PLAYING,
    Phase.PLAYING: Phase.CRASHED,
    Phase.CRASHED: Phase.IDLE,
}


def new_round_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Round:
    round_id: str
    phase: Phase = Phase.IDLE
    crash_target: Optional[Decimal] = None
    live_multiplier: Decimal = ONE
    flight_started_at: Optional[float] = None
    crashed_at: Optional[datetime] = None


@dataclass(frozen=True)
class Snapshot:
    room: str
    round_id: str
    phase: Phase
    multiplier: Decimal
    time_remaining: Optional[float]
    crash_history: List[Decimal] = field(default_factory=list)
    crash_point: Optional[Decimal] = None

    def to_dict(self) -> dict:
        return {
            "room": self.room,
            "round_id": self.round_id,
            "phase": self.phase.value,
            "multiplier": str(self.multiplier),
            "time_remaining": self.time_remaining,
            "crash_history": [str(v) for v in self.crash_history],
            "crash_point": str(self.crash_point) if self.crash_point is not None else None,
        }


class RoundStateMachine:
    """
    idle -> starting -> betting -> playing -> crashed -> idle -> ...

    Timed phases end when their configured duration has elapsed; `playing`
    ends when the live multiplier reaches the round's crash target. Elapsed
    time always comes from `clock`, so a late tick recomputes the curve
    instead of replaying missed increments.

    Anything that reads-then-mutates round state holds `lock`. Phase hooks
    run under the lock, in the same step as the transition. Listeners get
    `{"type": ..., "data": ...}` events after the lock is released.
    """

    def __init__(
        self,
        config: Optional[GameConfig] = None,
        generator: Optional[CrashPointGenerator] = None,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], datetime] = utcnow,
        room: str = "main",
    ):
        self.config = config or GameConfig()
        self.room = room
        self.generator = generator or CrashPointGenerator(self.config.crash_point_pool)
        self.history = CrashHistory(self.config.crash_history_capacity)
        self.lock = threading.RLock()
        self.rounds_completed = 0

        self._clock = clock
        self._wall_clock = wall_clock
        self._durations = {
            Phase.IDLE: self.config.idle_duration,
            Phase.STARTING: self.config.starting_duration,
            Phase.BETTING: self.config.betting_duration,
            Phase.CRASHED: self.config.crashed_duration,
        }
        self._hooks: Dict[Phase, List[Callable[[Round], None]]] = {phase: [] for phase in Phase}
        self._tick_hooks: List[Callable[[], None]] = []
        self._listeners: List[Callable[[dict], None]] = []
        self._pending: List[dict] = []
        self._local = threading.local()

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._executor: Optional[ThreadPoolExecutor] = None
        self._started = False

        self._round = Round(round_id=new_round_id())
        self._phase_started_at = self._clock()

    # ------------------------------------------------------------------
    # wiring
    # ------------------------------------------------------------------
    def on_enter(self, phase: Phase, hook: Callable[[Round], None]) -> None:
        self._hooks[phase].append(hook)

    def add_tick_hook(self, hook: Callable[[], None]) -> None:
        self._tick_hooks.append(hook)

    def subscribe(self, listener: Callable[[dict], None]) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: Callable[[dict], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # ------------------------------------------------------------------
    # state
    # ------------------------------------------------------------------
    @property
    def current_round(self) -> Round:
        return self._round

    @property
    def phase(self) -> Phase:
        return self._round.phase

    @property
    def multiplier(self) -> Decimal:
        return self._round.live_multiplier

    def time_remaining(self, now: Optional[float] = None) -> Optional[float]:
        duration = self._durations.get(self._round.phase)
        if duration is None:
            return None
        now = self._clock() if now is None else now
        return max(0.0, round(self._phase_started_at + duration - now, 2))

    def snapshot(self, now: Optional[float] = None) -> Snapshot:
        with self.lock:
            rnd = self._round
            return Snapshot(
                room=self.room,
                round_id=rnd.round_id,
                phase=rnd.phase,
                multiplier=rnd.live_multiplier,
                time_remaining=self.time_remaining(now),
                crash_history=self.history.items(),
                crash_point=rnd.crash_target if rnd.phase is Phase.CRASHED else None,
            )

    # ------------------------------------------------------------------
    # advancing
    # ------------------------------------------------------------------
    def advance(self, now: Optional[float] = None) -> None:
        """Apply every transition due at `now` and sample the multiplier."""
        with self.lock:
            self.advance_locked(now)
        self.dispatch_pending()

    def advance_locked(self, now: Optional[float] = None) -> None:
        """Same as advance(); the caller holds `lock` and dispatches events itself."""
        now = self._clock() if now is None else now
        while True:
            phase = self._round.phase
            if phase is Phase.PLAYING:
                self._sample(now)
                if self._round.phase is Phase.PLAYING:
                    return
                continue

            deadline = self._phase_started_at + self._durations[phase]
            if now < deadline:
                return
            # Start the next phase at the deadline, not at `now`, so a late
            # tick never stretches the schedule.
            self._transition(NEXT_PHASE[phase], deadline)

    def _sample(self, now: float) -> None:
        rnd = self._round
        elapsed = max(0.0, now - rnd.flight_started_at)
        value = next_multiplier(elapsed, rnd.live_multiplier, rnd.crash_target)
        changed = value != rnd.live_multiplier
        rnd.live_multiplier = value

        if value >= rnd.crash_target:
            self._transition(Phase.CRASHED, now)
        elif changed:
            self._queue("round.multiplier", {
                "room": self.room,
                "round_id": rnd.round_id,
                "multiplier": str(value),
            })

    def _transition(self, target: Phase, at: float) -> None:
        current = self._round.phase
        if NEXT_PHASE[current] is not target:
            raise InvariantViolation(f"Illegal transition {current.value} -> {target.value}")

        if target is Phase.IDLE:
            self._round = Round(round_id=new_round_id())
        else:
            self._round.phase = target
        self._phase_started_at = at
        rnd = self._round

        if target is Phase.PLAYING:
            rnd.crash_target = self.generator.draw()
            rnd.live_multiplier = ONE
            rnd.flight_started_at = at
        elif target is Phase.CRASHED:
            rnd.live_multiplier = rnd.crash_target
            rnd.crashed_at = self._wall_clock()
            self.history.record(rnd.crash_target)
            self.rounds_completed += 1
            logger.info(f"[ENGINE:{self.room}] Round {rnd.round_id} crashed @ {rnd.crash_target}x")

        logger.debug(f"[ENGINE:{self.room}] {current.value} -> {target.value}")

        for hook in self._hooks[target]:
            hook(rnd)

        self._queue("round.phase", {
            "room": self.room,
            "round_id": rnd.round_id,
            "phase": target.value,
            "multiplier": str(rnd.live_multiplier),
            "duration": self._durations.get(target),
        })
        if target is Phase.CRASHED:
            self._queue("round.crash", {
                "room": self.room,
                "round_id": rnd.round_id,
                "crash_point": str(rnd.crash_target),
                "occurred_at": rnd.crashed_at.isoformat(),
            })

    # ------------------------------------------------------------------
    # events
    # ------------------------------------------------------------------
    def emit(self, event_type: str, data: dict) -> None:
        with self.lock:
            self._queue(event_type, data)

    def _queue(self, event_type: str, data: dict) -> None:
        self._pending.append({"type": event_type, "data": data})

    def dispatch_pending(self) -> None:
        if self.halted:
            # no listener fires once the room is torn down
            with self.lock:
                self._pending.clear()
            return
        executor = self._executor
        if executor is not None:
            try:
                executor.submit(self._drain)
                return
            except RuntimeError:
                # executor shut down between the check and the submit
                pass
        self._drain()

    def _drain(self) -> None:
        if getattr(self._local, "draining", False):
            return
        self._local.draining = True
        try:
            while True:
                with self.lock:
                    if not self._pending:
                        return
                    events, self._pending = self._pending, []
                for event in events:
                    for listener in list(self._listeners):
                        try:
                            listener(event)
                        except Exception:
                            logger.exception(
                                f"[ENGINE:{self.room}] Listener failed for {event['type']}"
                            )
        finally:
            self._local.draining = False

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------
    @property
    def running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive() and not self._stop_event.is_set()

    @property
    def halted(self) -> bool:
        """Started once, and the tick loop has since stopped (stop() or a failed tick)."""
        return self._started and not self.running

    def start(self) -> None:
        with self.lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self._stop_event.clear()
            self._executor = ThreadPoolExecutor(
                max_workers=1, thread_name_prefix=f"crash-{self.room}-events"
            )
            self._thread = threading.Thread(
                target=self._run, name=f"crash-{self.room}", daemon=True
            )
            self._thread.start()
            self._started = True
        logger.info(f"[ENGINE:{self.room}] Started")

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """Stop the tick loop and the event dispatcher; no callback fires afterwards."""
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

        with self.lock:
            self._thread = None
            executor, self._executor = self._executor, None
        if executor is not None:
            # Called from a listener: the worker cannot wait for itself.
            executor.shutdown(wait=not getattr(self._local, "draining", False))
        logger.info(f"[ENGINE:{self.room}] Stopped")

    def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                for hook in list(self._tick_hooks):
                    hook()
                self.advance()
            except Exception:
                logger.exception(f"[ENGINE:{self.room}] Tick failed, stopping")
                self._stop_event.set()
                break
            self._stop_event.wait(self._next_wait())

    def _next_wait(self) -> float:
        with self.lock:
            phase = self._round.phase
            if phase is Phase.PLAYING:
                return self.config.tick_interval
            remaining = self._phase_started_at + self._durations[phase] - self._clock()
        return min(max(remaining, 0.0), MAX_PHASE_WAIT)
