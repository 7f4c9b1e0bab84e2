from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Tuple

from .crash_points import DEFAULT_CRASH_POINTS, normalize_pool

IDLE_DURATION = 5        # seconds
STARTING_DURATION = 3    # seconds
BETTING_DURATION = 10    # seconds
CRASHED_DURATION = 5     # seconds
TICK_INTERVAL = 0.05     # 20 FPS
MAX_RECENT_BETS = 10
MAX_CRASH_POINTS_HISTORY = 15


@dataclass(frozen=True)
class GameConfig:
    idle_duration: float = IDLE_DURATION
    starting_duration: float = STARTING_DURATION
    betting_duration: float = BETTING_DURATION
    crashed_duration: float = CRASHED_DURATION
    crash_point_pool: Tuple[Decimal, ...] = DEFAULT_CRASH_POINTS
    recent_bets_capacity: int = MAX_RECENT_BETS
    crash_history_capacity: int = MAX_CRASH_POINTS_HISTORY
    tick_interval: float = TICK_INTERVAL

    def __post_init__(self):
        for name in ("idle_duration", "starting_duration", "betting_duration",
                     "crashed_duration", "tick_interval"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        for name in ("recent_bets_capacity", "crash_history_capacity"):
            if int(getattr(self, name)) < 1:
                raise ValueError(f"{name} must be at least 1")
        object.__setattr__(self, "crash_point_pool", normalize_pool(self.crash_point_pool))

    @classmethod
    def from_settings(cls) -> "GameConfig":
        """Build from the CRASH_GAME settings dict; missing keys keep their defaults."""
        from django.conf import settings
        from django.core.exceptions import ImproperlyConfigured

        options = getattr(settings, "CRASH_GAME", {}) or {}
        try:
            return cls(
                idle_duration=float(options.get("IDLE_DURATION", IDLE_DURATION)),
                starting_duration=float(options.get("STARTING_DURATION", STARTING_DURATION)),
                betting_duration=float(options.get("BETTING_DURATION", BETTING_DURATION)),
                crashed_duration=float(options.get("CRASHED_DURATION", CRASHED_DURATION)),
                crash_point_pool=tuple(options.get("CRASH_POINT_POOL") or DEFAULT_CRASH_POINTS),
                recent_bets_capacity=int(options.get("RECENT_BETS_CAPACITY", MAX_RECENT_BETS)),
                crash_history_capacity=int(
                    options.get("CRASH_HISTORY_CAPACITY", MAX_CRASH_POINTS_HISTORY)
                ),
                tick_interval=float(options.get("TICK_INTERVAL", TICK_INTERVAL)),
            )
        except (TypeError, ValueError) as exc:
            raise ImproperlyConfigured(f"Invalid CRASH_GAME setting: {exc}") from exc
