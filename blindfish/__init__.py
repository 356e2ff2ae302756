"""Graduated-strength chess move advisor."""

from .config import EngineSettings, SettingsRegistry
from .engine import NONE_MOVE, AdvisoryEngine, EngineState, MoveResult
from .errors import (
    AnalysisCancelled,
    AnalysisTimeout,
    ConfigurationError,
    EngineDestroyed,
    EngineError,
    EngineNotReady,
    InvalidPosition,
    LifecycleError,
    StateError,
    UnknownLevel,
)
from .levels import DEFAULT_LEVELS, EngineLevel, LevelCatalog

__version__ = "0.1.0"

__all__ = [
    "AdvisoryEngine",
    "AnalysisCancelled",
    "AnalysisTimeout",
    "ConfigurationError",
    "DEFAULT_LEVELS",
    "EngineDestroyed",
    "EngineError",
    "EngineLevel",
    "EngineNotReady",
    "EngineSettings",
    "EngineState",
    "InvalidPosition",
    "LevelCatalog",
    "LifecycleError",
    "MoveResult",
    "NONE_MOVE",
    "SettingsRegistry",
    "StateError",
    "UnknownLevel",
]
