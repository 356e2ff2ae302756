"""Registry of skill tiers.

Each tier approximates a target rating. The numeric hints (depth, time budget,
threads, hash) mirror the knobs a UCI engine would expose; BlindFish uses them
to drive strategy selection, synthetic think time and confidence.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional

from .errors import ConfigurationError, UnknownLevel


@dataclass(slots=True, frozen=True)
class EngineLevel:
    key: str
    name: str
    rating: int
    skill: int
    depth: int
    time_budget_ms: int
    threads: int = 1
    hash_mb: int = 16
    multi_pv: int = 1
    limit_strength: bool = True
    error_rate: int = 0  # percent

    def summary(self) -> str:
        return f"{self.name} - {self.rating} ELO (Depth {self.depth}, {self.time_budget_ms}ms)"


DEFAULT_LEVELS = (
    EngineLevel("beginner-1", "Beginner 1", 700, skill=0, depth=1, time_budget_ms=250, error_rate=20),
    EngineLevel("beginner-2", "Beginner 2", 900, skill=2, depth=2, time_budget_ms=400, error_rate=15),
    EngineLevel("intermediate-1", "Intermediate 1", 1200, skill=5, depth=4, time_budget_ms=600, hash_mb=32, error_rate=10),
    EngineLevel("intermediate-2", "Intermediate 2", 1400, skill=8, depth=6, time_budget_ms=800, hash_mb=64, error_rate=6),
    EngineLevel("expert-1", "Expert 1", 1600, skill=10, depth=8, time_budget_ms=1000, threads=2, hash_mb=128),
    EngineLevel("expert-2", "Expert 2", 1800, skill=12, depth=10, time_budget_ms=1500, threads=2, hash_mb=256),
    EngineLevel("master-1", "Master (FM)", 2100, skill=15, depth=12, time_budget_ms=2000, threads=2, hash_mb=512),
    EngineLevel("master-2", "Master (IM)", 2300, skill=17, depth=14, time_budget_ms=3000, threads=4, hash_mb=1024, multi_pv=2),
    EngineLevel("grandmaster", "Grandmaster", 2500, skill=19, depth=18, time_budget_ms=6000, threads=6, hash_mb=2048, multi_pv=3),
    EngineLevel(
        "super-grandmaster",
        "Super GM",
        3000,
        skill=20,
        depth=20,
        time_budget_ms=8000,
        threads=8,
        hash_mb=4096,
        multi_pv=3,
        limit_strength=False,
    ),
)


class LevelCatalog:
    """Immutable, insertion-ordered lookup of tiers by key."""

    NOT_FOUND = "Level not found"

    def __init__(self, levels: Iterable[EngineLevel] = DEFAULT_LEVELS) -> None:
        table: Dict[str, EngineLevel] = {}
        for level in levels:
            if level.key in table:
                raise ConfigurationError(f"Duplicate level key '{level.key}'")
            table[level.key] = level
        if not table:
            raise ConfigurationError("Level catalog cannot be empty")
        self._levels: Mapping[str, EngineLevel] = MappingProxyType(table)
        self.max_rating = max(level.rating for level in table.values())
        self.max_depth = max(level.depth for level in table.values())
        self.max_time_budget_ms = max(level.time_budget_ms for level in table.values())

    def __contains__(self, key: object) -> bool:
        return key in self._levels

    def __iter__(self) -> Iterator[EngineLevel]:
        return iter(self._levels.values())

    def __len__(self) -> int:
        return len(self._levels)

    def find(self, key: str) -> Optional[EngineLevel]:
        return self._levels.get(key)

    def get(self, key: str) -> EngineLevel:
        level = self._levels.get(key)
        if level is None:
            raise UnknownLevel(key)
        return level

    def list_all(self) -> List[Dict[str, Any]]:
        return [{"key": level.key, "name": level.name, "rating": level.rating} for level in self._levels.values()]

    def describe(self, key: str) -> str:
        level = self._levels.get(key)
        return level.summary() if level else self.NOT_FOUND

    def closest(self, rating: int) -> EngineLevel:
        best: Optional[EngineLevel] = None
        best_diff = None
        for level in self._levels.values():
            diff = abs(level.rating - rating)
            if best_diff is None or diff < best_diff:
                best, best_diff = level, diff
        assert best is not None
        return best
