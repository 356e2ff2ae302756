import threading
import time
from dataclasses import replace
from typing import List

import chess
import pytest

from blindfish.config import SettingsRegistry
from blindfish.engine import NONE_MOVE, AdvisoryEngine, EngineState
from blindfish.errors import (
    AnalysisCancelled,
    AnalysisTimeout,
    ConfigurationError,
    EngineDestroyed,
    EngineNotReady,
    InvalidPosition,
    UnknownLevel,
)
from blindfish.levels import EngineLevel, LevelCatalog

BACK_RANK = "6k1/5ppp/8/8/8/8/5PPP/R5K1 w - - 0 1"
CHECKMATED = "rnb1kbnr/pppp1ppp/8/4p3/6Pq/5P2/PPPPP2P/RNBQKBNR w KQkq - 1 3"
STALEMATE = "7k/5Q2/6K1/8/8/8/8/8 b - - 0 1"


def make_engine(preset: str = "instant", seed: int = 7, **kwargs) -> AdvisoryEngine:
    settings = SettingsRegistry.resolve(preset).with_seed(seed)
    engine = AdvisoryEngine(settings=settings, **kwargs)
    engine.initialize().result(timeout=5)
    return engine


@pytest.fixture()
def engine():
    engine = make_engine()
    yield engine
    engine.destroy()


def test_lifecycle_transitions() -> None:
    engine = AdvisoryEngine(preset="instant")
    assert engine.state is EngineState.UNINITIALIZED
    assert engine.is_ready() is False

    first = engine.initialize()
    assert engine.initialize() is first
    first.result(timeout=5)
    assert engine.state is EngineState.READY
    assert engine.is_ready() is True

    engine.destroy()
    assert engine.state is EngineState.DESTROYED
    assert engine.is_ready() is False
    engine.destroy()


def test_analyze_before_initialize_is_rejected() -> None:
    engine = AdvisoryEngine(preset="instant")
    future = engine.analyze_position("startpos", "beginner-1")
    assert isinstance(future.exception(timeout=1), EngineNotReady)


def test_back_rank_mate_at_grandmaster(engine: AdvisoryEngine) -> None:
    result = engine.analyze_position(BACK_RANK, "grandmaster").result(timeout=5)
    assert result.move == "a1a8"
    assert result.from_square == "a1"
    assert result.to_square == "a8"
    assert result.san == "Ra8#"
    assert result.rating == 2500
    assert result.confidence > 0.8
    assert result.principal_variation == ("a1a8",)
    assert result.strategy == "mate-search-3"
    assert result.depth == 1
    assert result.elapsed_ms >= 0.0


def test_unknown_level_fails_with_configuration_error(engine: AdvisoryEngine) -> None:
    future = engine.analyze_position("startpos", "ultra")
    error = future.exception(timeout=1)
    assert isinstance(error, UnknownLevel)
    assert isinstance(error, ConfigurationError)


def test_invalid_position_fails(engine: AdvisoryEngine) -> None:
    error = engine.analyze_position("garbage", "beginner-1").exception(timeout=5)
    assert isinstance(error, InvalidPosition)
    # The failed request does not block later ones.
    assert engine.analyze_position("startpos", "beginner-1").result(timeout=5).move != NONE_MOVE


@pytest.mark.parametrize("fen", [CHECKMATED, STALEMATE])
def test_positions_without_moves_return_none_sentinel(engine: AdvisoryEngine, fen: str) -> None:
    result = engine.analyze_position(fen, "master-1").result(timeout=5)
    assert result.move == NONE_MOVE
    assert result.is_none
    assert result.confidence == 0.0


def test_every_level_returns_a_legal_move(engine: AdvisoryEngine) -> None:
    legal = {move.uci() for move in chess.Board().legal_moves}
    for entry in engine.get_all_levels():
        result = engine.analyze_position("startpos", entry["key"]).result(timeout=10)
        assert result.move in legal
        assert result.rating == entry["rating"]
        assert 0.0 <= result.confidence <= 1.0


def test_latest_request_wins() -> None:
    engine = make_engine(preset="standard")
    try:
        first = engine.analyze_position("startpos", "beginner-1")
        second = engine.analyze_position(BACK_RANK, "expert-1")
        assert isinstance(first.exception(timeout=5), AnalysisCancelled)
        assert second.result(timeout=5).move == "a1a8"
    finally:
        engine.destroy()


def test_cancel_pending_analysis() -> None:
    engine = make_engine(preset="standard")
    try:
        future = engine.analyze_position("startpos", "beginner-1")
        assert engine.cancel() is True
        assert isinstance(future.exception(timeout=5), AnalysisCancelled)
        assert engine.cancel() is False
    finally:
        engine.destroy()


def test_destroy_cancels_pending_work() -> None:
    engine = make_engine(preset="standard")
    future = engine.analyze_position("startpos", "beginner-1")
    engine.destroy()
    assert isinstance(future.exception(timeout=5), EngineDestroyed)
    assert engine.is_ready() is False
    assert isinstance(engine.analyze_position("startpos", "beginner-1").exception(timeout=1), EngineNotReady)
    assert isinstance(engine.initialize().exception(timeout=1), EngineDestroyed)


def test_destroy_while_analysis_is_being_queued() -> None:
    engines: List[AdvisoryEngine] = []

    def logger(message: str) -> None:
        if message.startswith("analysis #1:") and engines:
            engines[0].destroy()

    engine = make_engine(logger=logger)
    engines.append(engine)
    future = engine.analyze_position("startpos", "beginner-1")
    assert isinstance(future.exception(timeout=1), EngineDestroyed)
    assert engine.state is EngineState.DESTROYED


def test_destroy_during_initialization_resolves_init_future() -> None:
    engines: List[AdvisoryEngine] = []

    def logger(message: str) -> None:
        if message == "initializing engine" and engines:
            engines[0].destroy()

    engine = AdvisoryEngine(preset="instant", logger=logger)
    engines.append(engine)
    future = engine.initialize()
    assert isinstance(future.exception(timeout=1), EngineDestroyed)
    assert engine.state is EngineState.DESTROYED
    assert engine.selector is None


def test_none_sentinel_respects_think_time_floor() -> None:
    engine = make_engine(preset="standard")
    try:
        started = time.perf_counter()
        result = engine.analyze_position(STALEMATE, "beginner-1").result(timeout=5)
        elapsed = time.perf_counter() - started
    finally:
        engine.destroy()
    # max(250 * 0.3, 300) = 300ms
    assert result.move == NONE_MOVE
    assert elapsed >= 0.28
    assert result.elapsed_ms >= 280


def test_timeout_fires_when_completion_is_late() -> None:
    settings = replace(SettingsRegistry.resolve("standard"), timeout_grace_ms=50, think_floor_ms=1000)
    catalog = LevelCatalog([EngineLevel("flash", "Flash", 800, skill=0, depth=1, time_budget_ms=0)])
    engine = AdvisoryEngine(settings=settings, catalog=catalog)
    engine.initialize().result(timeout=5)
    try:
        error = engine.analyze_position("startpos", "flash").exception(timeout=5)
        assert isinstance(error, AnalysisTimeout)
    finally:
        engine.destroy()


def test_level_info_for_every_listed_level(engine: AdvisoryEngine) -> None:
    for entry in engine.get_all_levels():
        assert engine.get_level_info(entry["key"]) != LevelCatalog.NOT_FOUND
    assert engine.get_level_info("ultra") == "Level not found"
    assert engine.level_for_rating(2450).key == "grandmaster"


def test_evaluation_listener_receives_info_line(engine: AdvisoryEngine) -> None:
    lines: List[str] = []
    received = threading.Event()

    def listener(line: str) -> None:
        lines.append(line)
        received.set()

    engine.on_evaluation(listener)
    engine.analyze_position(BACK_RANK, "grandmaster").result(timeout=5)
    assert received.wait(2.0)
    assert lines[0].startswith("info depth 1")
    assert "pv a1a8" in lines[0]
    assert lines[0].endswith("string mate-search-3")


def test_logger_records_activity() -> None:
    messages: List[str] = []
    engine = make_engine(logger=messages.append)
    try:
        engine.analyze_position(BACK_RANK, "expert-1").result(timeout=5)
    finally:
        engine.destroy()
    assert any("engine ready" in message for message in messages)
    assert any("selected move a1a8" in message for message in messages)
    assert messages[-1] == "engine destroyed"


@pytest.mark.slow
def test_think_time_delays_completion() -> None:
    engine = make_engine(preset="standard")
    try:
        started = time.perf_counter()
        result = engine.analyze_position("startpos", "master-2").result(timeout=10)
        elapsed = time.perf_counter() - started
    finally:
        engine.destroy()
    # min(3000 * 0.3, 3000) = 900ms
    assert elapsed >= 0.85
    assert result.elapsed_ms >= 850
