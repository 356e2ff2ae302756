"""Engine tunables and named presets."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Dict, Optional

from .errors import ConfigurationError


def _clamp(value: float, minimum: float, maximum: float) -> float:
    return max(minimum, min(maximum, value))


@dataclass(slots=True, frozen=True)
class EngineSettings:
    # Synthetic deliberation: delay = min(time_budget * think_factor, think_cap_ms)
    think_factor: float = 0.3
    think_cap_ms: int = 3000
    think_floor_ms: int = 300
    timeout_grace_ms: int = 2000

    # Mate search bounds
    mate_reply_sample: int = 3
    mate_candidate_limit: int = 12

    # Scanner / evaluator sample sizes
    threat_sample: int = 24
    positional_sample: int = 16
    intermediate_prefix: int = 8

    error_simulation: bool = True
    seed: Optional[int] = None

    def with_seed(self, seed: Optional[int]) -> "EngineSettings":
        return replace(self, seed=seed)

    def clamp(self) -> "EngineSettings":
        return replace(
            self,
            think_factor=_clamp(self.think_factor, 0.0, 1.0),
            think_cap_ms=max(0, int(self.think_cap_ms)),
            think_floor_ms=max(0, int(self.think_floor_ms)),
            timeout_grace_ms=max(0, int(self.timeout_grace_ms)),
            mate_reply_sample=max(1, int(self.mate_reply_sample)),
            mate_candidate_limit=max(1, int(self.mate_candidate_limit)),
            threat_sample=max(1, int(self.threat_sample)),
            positional_sample=max(1, int(self.positional_sample)),
            intermediate_prefix=max(1, int(self.intermediate_prefix)),
        )


class SettingsRegistry:
    PRESETS: Dict[str, EngineSettings] = {
        "standard": EngineSettings(),
        "blitz": EngineSettings(
            think_factor=0.1,
            think_cap_ms=800,
            think_floor_ms=100,
            mate_candidate_limit=8,
            positional_sample=10,
        ),
        "instant": EngineSettings(
            think_factor=0.0,
            think_cap_ms=0,
            think_floor_ms=0,
        ),
    }

    @classmethod
    def resolve(cls, preset: str) -> EngineSettings:
        if preset not in cls.PRESETS:
            raise ConfigurationError(f"Unknown settings preset '{preset}'")
        return cls.PRESETS[preset].clamp()

    @classmethod
    def names(cls) -> tuple:
        return tuple(cls.PRESETS)
