"""Public engine handle.

An :class:`AdvisoryEngine` owns one worker thread and at most one pending
analysis. Every request returns a :class:`concurrent.futures.Future` that
completes exactly once, either with a :class:`MoveResult` or with one of the
errors in :mod:`blindfish.errors`. A newer request supersedes an older one.
"""

from __future__ import annotations

import itertools
import random
import threading
import time
from concurrent.futures import Future, InvalidStateError, ThreadPoolExecutor
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from .config import EngineSettings, SettingsRegistry
from .errors import (
    AnalysisCancelled,
    AnalysisTimeout,
    EngineDestroyed,
    EngineError,
    EngineNotReady,
    UnknownLevel,
)
from .levels import EngineLevel, LevelCatalog
from .oracle import ChessOracle, PositionOracle
from .strategies import MoveSelector, StrategyResult
from .tactics import PositionalEvaluator
from .timing import ConfidenceEstimator, ThinkTimeSimulator

NONE_MOVE = "none"


class EngineState(Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    DESTROYED = "destroyed"


@dataclass(slots=True, frozen=True)
class MoveResult:
    move: str
    rating: int
    depth: int
    elapsed_ms: float
    confidence: float
    from_square: Optional[str] = None
    to_square: Optional[str] = None
    promotion: Optional[str] = None
    san: Optional[str] = None
    evaluation: Optional[float] = None
    principal_variation: Tuple[str, ...] = ()
    strategy: Optional[str] = None

    @property
    def is_none(self) -> bool:
        return self.move == NONE_MOVE

    def info_line(self) -> str:
        parts = [f"info depth {self.depth}"]
        if self.evaluation is not None:
            parts.append(f"score cp {int(round(self.evaluation * 100))}")
        if self.principal_variation:
            parts.append("pv " + " ".join(self.principal_variation))
        elif not self.is_none:
            parts.append(f"pv {self.move}")
        if self.strategy:
            parts.append(f"string {self.strategy}")
        return " ".join(parts)


@dataclass(eq=False)
class PendingAnalysis:
    future: "Future[MoveResult]"
    level: EngineLevel
    token: int
    started: float
    timeout: Optional[threading.Timer] = None
    completion: Optional[threading.Timer] = None

    def cancel_timers(self) -> None:
        for timer in (self.timeout, self.completion):
            if timer is not None:
                timer.cancel()


def _failed(error: BaseException) -> "Future[Any]":
    future: "Future[Any]" = Future()
    future.set_running_or_notify_cancel()
    future.set_exception(error)
    return future


def _reject(future: "Future[Any]", error: BaseException) -> bool:
    """Fail ``future`` unless something else already completed it."""
    try:
        future.set_exception(error)
    except InvalidStateError:
        return False
    return True


class AdvisoryEngine:
    def __init__(
        self,
        *,
        settings: Optional[EngineSettings] = None,
        preset: Optional[str] = None,
        catalog: Optional[LevelCatalog] = None,
        oracle: Optional[PositionOracle] = None,
        evaluator: Optional[PositionalEvaluator] = None,
        logger: Optional[Callable[[str], None]] = None,
    ) -> None:
        if settings is None:
            settings = SettingsRegistry.resolve(preset or "standard")
        self.settings = settings.clamp()
        self.catalog = catalog or LevelCatalog()
        self.oracle = oracle or ChessOracle()
        self._evaluator = evaluator
        self._logger = logger or (lambda *_: None)

        self.think_time = ThinkTimeSimulator.from_settings(self.settings)
        self.confidence = ConfidenceEstimator.from_catalog(self.catalog)
        self.selector: Optional[MoveSelector] = None

        self._state = EngineState.UNINITIALIZED
        self._state_lock = threading.Lock()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._init_future: Optional["Future[None]"] = None
        self._pending: Optional[PendingAnalysis] = None
        self._tokens = itertools.count(1)
        self._listeners: List[Callable[[str], None]] = []

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def state(self) -> EngineState:
        return self._state

    def is_ready(self) -> bool:
        return self._state is EngineState.READY

    def initialize(self) -> "Future[None]":
        with self._state_lock:
            if self._state is EngineState.DESTROYED:
                return _failed(EngineDestroyed("Engine has been destroyed"))
            if self._init_future is not None:
                return self._init_future
            self._state = EngineState.INITIALIZING
            self._init_future = Future()
            self._init_future.set_running_or_notify_cancel()
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="blindfish")
            executor = self._executor
            init_future = self._init_future
        self._logger("initializing engine")
        try:
            executor.submit(self._initialize_worker, init_future)
        except RuntimeError:
            # destroy() shut the executor down before the worker was queued.
            _reject(init_future, EngineDestroyed("Engine destroyed during initialization"))
        return init_future

    def _initialize_worker(self, init_future: "Future[None]") -> None:
        try:
            selector = MoveSelector(
                oracle=self.oracle,
                settings=self.settings,
                evaluator=self._evaluator,
                rng=random.Random(self.settings.seed),
                logger=self._logger,
            )
        except Exception as exc:
            with self._state_lock:
                if self._state is EngineState.INITIALIZING:
                    self._state = EngineState.UNINITIALIZED
                    self._init_future = None
            _reject(init_future, exc)
            return
        with self._state_lock:
            if self._state is not EngineState.INITIALIZING:
                destroyed = True
            else:
                destroyed = False
                self.selector = selector
                self._state = EngineState.READY
        if destroyed:
            _reject(init_future, EngineDestroyed("Engine destroyed during initialization"))
            return
        self._logger(f"engine ready ({len(self.catalog)} levels)")
        init_future.set_result(None)

    def destroy(self) -> None:
        with self._state_lock:
            if self._state is EngineState.DESTROYED:
                return
            init_future = self._init_future if self._state is EngineState.INITIALIZING else None
            self._state = EngineState.DESTROYED
            pending, self._pending = self._pending, None
            executor, self._executor = self._executor, None
        if init_future is not None:
            # shutdown(cancel_futures=True) may drop the queued worker.
            _reject(init_future, EngineDestroyed("Engine destroyed during initialization"))
        if pending is not None:
            pending.cancel_timers()
            pending.future.set_exception(EngineDestroyed("Engine destroyed"))
            self._logger(f"analysis #{pending.token} cancelled by destroy")
        if executor is not None:
            executor.shutdown(wait=False, cancel_futures=True)
        self._listeners.clear()
        self._logger("engine destroyed")

    # ------------------------------------------------------------------
    # Level information
    # ------------------------------------------------------------------

    def get_all_levels(self) -> List[Dict[str, Any]]:
        return self.catalog.list_all()

    def get_level_info(self, level_key: str) -> str:
        return self.catalog.describe(level_key)

    def level_for_rating(self, rating: int) -> EngineLevel:
        return self.catalog.closest(rating)

    def on_evaluation(self, callback: Callable[[str], None]) -> None:
        self._listeners.append(callback)

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def analyze_position(self, position: str, level_key: str) -> "Future[MoveResult]":
        future: "Future[MoveResult]" = Future()
        future.set_running_or_notify_cancel()
        state: Optional[str] = None
        level: Optional[EngineLevel] = None
        superseded: Optional[PendingAnalysis] = None
        executor: Optional[ThreadPoolExecutor] = None
        with self._state_lock:
            if self._state is not EngineState.READY:
                state = self._state.value
            else:
                executor = self._executor
                level = self.catalog.find(level_key)
                if level is not None:
                    superseded, self._pending = self._pending, None
                    pending = PendingAnalysis(
                        future=future,
                        level=level,
                        token=next(self._tokens),
                        started=time.perf_counter(),
                    )
                    self._pending = pending
                    pending.timeout = self._schedule_timeout(pending)
        if state is not None:
            future.set_exception(EngineNotReady(f"Engine not ready (state={state})"))
            return future
        if level is None:
            future.set_exception(UnknownLevel(level_key))
            return future
        if superseded is not None:
            superseded.cancel_timers()
            superseded.future.set_exception(AnalysisCancelled(f"Analysis #{superseded.token} superseded"))
            self._logger(f"analysis #{superseded.token} superseded by #{pending.token}")

        self._logger(f"analysis #{pending.token}: {level.name} ({level.rating} ELO) position={position}")
        assert executor is not None
        try:
            executor.submit(self._run_analysis, pending, position)
        except RuntimeError:
            # destroy() won the race; it normally fails the pending future itself.
            self._fail(pending, EngineDestroyed("Engine destroyed"))
        return future

    def cancel(self) -> bool:
        with self._state_lock:
            pending, self._pending = self._pending, None
        if pending is None:
            return False
        pending.cancel_timers()
        pending.future.set_exception(AnalysisCancelled(f"Analysis #{pending.token} cancelled"))
        self._logger(f"analysis #{pending.token} cancelled")
        return True

    def _schedule_timeout(self, pending: PendingAnalysis) -> threading.Timer:
        seconds = (pending.level.time_budget_ms + self.settings.timeout_grace_ms) / 1000.0
        timer = threading.Timer(seconds, self._expire, args=(pending,))
        timer.daemon = True
        timer.start()
        return timer

    def _claim(self, pending: PendingAnalysis) -> bool:
        with self._state_lock:
            if self._pending is not pending:
                return False
            self._pending = None
        pending.cancel_timers()
        return True

    def _expire(self, pending: PendingAnalysis) -> None:
        if not self._claim(pending):
            return
        budget = pending.level.time_budget_ms + self.settings.timeout_grace_ms
        self._logger(f"analysis #{pending.token} timed out")
        pending.future.set_exception(AnalysisTimeout(f"Analysis timeout after {budget}ms"))

    def _fail(self, pending: PendingAnalysis, error: BaseException) -> None:
        if not self._claim(pending):
            return
        self._logger(f"analysis #{pending.token} failed: {error}")
        pending.future.set_exception(error)

    def _run_analysis(self, pending: PendingAnalysis, position: str) -> None:
        if self._pending is not pending:
            return
        selector = self.selector
        try:
            board = self.oracle.load_position(position)
            assert selector is not None
            outcome = selector.select(board, pending.level)
        except EngineError as exc:
            self._fail(pending, exc)
            return
        except Exception as exc:
            self._fail(pending, EngineError(f"Error generating move: {exc}"))
            return

        result = self._build_result(pending.level, outcome)
        elapsed = time.perf_counter() - pending.started
        wait = self.think_time.remaining_seconds(pending.level, elapsed)
        timer = self.think_time.schedule(wait, lambda: self._complete(pending, result))
        if timer is not None:
            pending.completion = timer
            if self._pending is not pending:
                timer.cancel()

    def _complete(self, pending: PendingAnalysis, result: MoveResult) -> None:
        if not self._claim(pending):
            return
        elapsed_ms = (time.perf_counter() - pending.started) * 1000.0
        result = replace(result, elapsed_ms=round(elapsed_ms, 1))
        self._logger(f"analysis #{pending.token}: {result.strategy or '-'} selected move {result.move}")
        # Listeners see the info line before the future's callbacks report the move.
        self._emit(result.info_line())
        pending.future.set_result(result)

    def _emit(self, line: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(line)
            except Exception as exc:
                self._logger(f"evaluation listener error: {exc}")

    def _build_result(self, level: EngineLevel, outcome: Optional[StrategyResult]) -> MoveResult:
        if outcome is None:
            return MoveResult(
                move=NONE_MOVE,
                rating=level.rating,
                depth=0,
                elapsed_ms=0.0,
                confidence=0.0,
                strategy=None,
            )
        candidate = outcome.move
        metadata = outcome.metadata
        evaluation = metadata.get("evaluation")
        if evaluation is None and outcome.score is not None and not outcome.definitive:
            evaluation = round(float(outcome.score), 2)
        pv = tuple(metadata.get("pv") or (candidate.uci,))
        return MoveResult(
            move=candidate.uci,
            rating=level.rating,
            depth=int(metadata.get("depth", level.depth)),
            elapsed_ms=0.0,
            confidence=self.confidence.estimate(level),
            from_square=candidate.from_square,
            to_square=candidate.to_square,
            promotion=candidate.promotion,
            san=candidate.san,
            evaluation=evaluation,
            principal_variation=pv,
            strategy=outcome.strategy_name,
        )


__all__ = [
    "AdvisoryEngine",
    "EngineState",
    "MoveResult",
    "NONE_MOVE",
    "PendingAnalysis",
]
