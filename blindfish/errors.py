"""Error taxonomy shared by every BlindFish component."""

from __future__ import annotations


class EngineError(Exception):
    """Base class for all engine failures."""


class ConfigurationError(EngineError):
    pass


class UnknownLevel(ConfigurationError):
    def __init__(self, key: str) -> None:
        super().__init__(f"Level not found: {key}")
        self.key = key


class InvalidPosition(EngineError):
    def __init__(self, position: str, reason: str = "") -> None:
        detail = f" ({reason})" if reason else ""
        super().__init__(f"Invalid position '{position}'{detail}")
        self.position = position


class StateError(EngineError):
    pass


class EngineNotReady(StateError):
    pass


class LifecycleError(EngineError):
    pass


class EngineDestroyed(LifecycleError):
    pass


class AnalysisCancelled(LifecycleError):
    pass


class AnalysisTimeout(LifecycleError):
    pass


__all__ = [
    "AnalysisCancelled",
    "AnalysisTimeout",
    "ConfigurationError",
    "EngineDestroyed",
    "EngineError",
    "EngineNotReady",
    "InvalidPosition",
    "LifecycleError",
    "StateError",
    "UnknownLevel",
]
