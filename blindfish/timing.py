"""Synthetic think time and move confidence."""

from __future__ import annotations

import threading
from typing import Callable, Optional

from .config import EngineSettings
from .levels import EngineLevel, LevelCatalog


def _clamp(value: float, minimum: float, maximum: float) -> float:
    return max(minimum, min(maximum, value))


class ThinkTimeSimulator:
    """Makes stronger tiers appear to deliberate longer.

    The delay has nothing to do with how long selection actually took; it is
    a presentation concern. Completion is scheduled on a timer thread so the
    caller is never blocked.
    """

    def __init__(self, *, factor: float = 0.3, cap_ms: int = 3000, floor_ms: int = 300) -> None:
        self.factor = max(0.0, factor)
        self.cap_ms = max(0, cap_ms)
        self.floor_ms = max(0, floor_ms)

    @classmethod
    def from_settings(cls, settings: EngineSettings) -> "ThinkTimeSimulator":
        return cls(factor=settings.think_factor, cap_ms=settings.think_cap_ms, floor_ms=settings.think_floor_ms)

    def delay_ms(self, level: EngineLevel) -> float:
        return min(level.time_budget_ms * self.factor, float(self.cap_ms))

    def minimum_ms(self, level: EngineLevel) -> float:
        return max(self.delay_ms(level), float(self.floor_ms))

    def remaining_seconds(self, level: EngineLevel, elapsed_seconds: float) -> float:
        return max(0.0, self.minimum_ms(level) / 1000.0 - elapsed_seconds)

    def schedule(self, seconds: float, callback: Callable[[], None]) -> Optional[threading.Timer]:
        """Run ``callback`` after ``seconds``; immediately when nothing is left to wait."""
        if seconds <= 0:
            callback()
            return None
        timer = threading.Timer(seconds, callback)
        timer.daemon = True
        timer.start()
        return timer


class ConfidenceEstimator:
    RATING_WEIGHT = 0.5
    DEPTH_WEIGHT = 0.3
    TIME_WEIGHT = 0.2

    def __init__(self, *, max_rating: int, max_depth: int, max_time_budget_ms: int) -> None:
        self.max_rating = max(1, max_rating)
        self.max_depth = max(1, max_depth)
        self.max_time_budget_ms = max(1, max_time_budget_ms)

    @classmethod
    def from_catalog(cls, catalog: LevelCatalog) -> "ConfidenceEstimator":
        return cls(
            max_rating=catalog.max_rating,
            max_depth=catalog.max_depth,
            max_time_budget_ms=catalog.max_time_budget_ms,
        )

    def estimate(self, level: EngineLevel) -> float:
        rating = min(level.rating / self.max_rating, 1.0)
        depth = min(level.depth / self.max_depth, 1.0)
        time_share = min(level.time_budget_ms / self.max_time_budget_ms, 1.0)
        value = self.RATING_WEIGHT * rating + self.DEPTH_WEIGHT * depth + self.TIME_WEIGHT * time_share
        return _clamp(value, 0.0, 1.0)
