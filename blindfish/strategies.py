"""Per-band strategy chains.

A chain is an ordered list of :class:`MoveStrategy` objects. The first one that
produces a move wins; every chain ends in a strategy that always produces one
when the position has legal moves. Strategies probe the board with
apply/undo pairs and must leave it as they found it.
"""

from __future__ import annotations

import random
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import chess

from .config import EngineSettings
from .levels import EngineLevel
from .oracle import CandidateMove, ChessOracle, PositionOracle
from .tactics import (
    CENTER_SQUARES,
    PIECE_VALUES,
    CoarsePositionalEvaluator,
    PositionalEvaluator,
    TacticalScanner,
)


# ---------------------------------------------------------------------------
# Strategy interfaces and context models
# ---------------------------------------------------------------------------


@dataclass
class StrategyContext:
    level: EngineLevel
    candidates: List[CandidateMove]
    turn: bool
    fullmove_number: int
    in_check: bool

    @property
    def legal_moves_count(self) -> int:
        return len(self.candidates)


@dataclass
class StrategyResult:
    move: CandidateMove
    strategy_name: str
    score: Optional[float] = None
    confidence: Optional[float] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    definitive: bool = False


class MoveStrategy(ABC):
    def __init__(self, *, name: Optional[str] = None, rng: Optional[random.Random] = None):
        self.name = name or self.__class__.__name__
        self._rng = rng or random.Random()

    def is_applicable(self, context: StrategyContext) -> bool:
        return context.legal_moves_count > 0

    @abstractmethod
    def generate_move(self, board: chess.Board, context: StrategyContext) -> Optional[StrategyResult]:
        ...

    def _result(self, candidate: CandidateMove, **kwargs: Any) -> StrategyResult:
        return StrategyResult(move=candidate, strategy_name=self.name, **kwargs)

    def _pick_best(self, scored: Sequence[Tuple[float, CandidateMove]]) -> Tuple[float, CandidateMove]:
        """Highest score wins; ties are broken at random."""
        top = max(score for score, _ in scored)
        best = [candidate for score, candidate in scored if score == top]
        return top, self._rng.choice(best)


class StrategyChain:
    """Ordered, first-match-wins sequence of strategies."""

    def __init__(
        self,
        name: str,
        strategies: Sequence[MoveStrategy] = (),
        *,
        logger: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.name = name
        self._strategies: List[MoveStrategy] = []
        self._logger = logger or (lambda *_: None)
        for strategy in strategies:
            self.append(strategy)

    def append(self, strategy: MoveStrategy) -> None:
        self._strategies.append(strategy)
        self._logger(f"{self.name}: strategy registered: {strategy.name} (position={len(self._strategies)})")

    def strategies(self) -> Tuple[MoveStrategy, ...]:
        return tuple(self._strategies)

    def select(self, board: chess.Board, context: StrategyContext) -> Optional[StrategyResult]:
        for strategy in self._strategies:
            if not strategy.is_applicable(context):
                continue
            try:
                result = strategy.generate_move(board, context)
            except Exception as exc:
                self._logger(f"{self.name}: strategy {strategy.name} error: {exc}")
                continue
            if result is not None:
                self._logger(f"{self.name}: {strategy.name} chose {result.move.uci}")
                return result
        self._logger(f"{self.name}: no strategy produced a move suggestion")
        return None


# ---------------------------------------------------------------------------
# Tactical strategies
# ---------------------------------------------------------------------------


class MateSearchStrategy(MoveStrategy):
    def __init__(
        self,
        scanner: TacticalScanner,
        depth: int,
        *,
        candidate_limit: Optional[int] = None,
        probability: float = 1.0,
        rng: Optional[random.Random] = None,
    ) -> None:
        super().__init__(name=f"mate-search-{depth}", rng=rng)
        self.scanner = scanner
        self.depth = depth
        self.candidate_limit = candidate_limit
        self.probability = probability

    def generate_move(self, board: chess.Board, context: StrategyContext) -> Optional[StrategyResult]:
        if self.probability < 1.0 and self._rng.random() >= self.probability:
            return None
        pool = context.candidates
        if self.candidate_limit is not None:
            pool = pool[: self.candidate_limit]
        mate = self.scanner.find_mate_in_n(board, pool, self.depth)
        if mate is None:
            return None
        return self._result(
            mate.candidate,
            score=1000.0 - mate.moves_to_mate,
            confidence=1.0,
            definitive=True,
            metadata={"mate_in": mate.moves_to_mate, "pv": list(mate.line), "depth": 2 * mate.moves_to_mate - 1},
        )


class ThreatScanStrategy(MoveStrategy):
    """Prefer safe moves that leave several captures or checks hanging over the opponent."""

    def __init__(
        self,
        scanner: TacticalScanner,
        *,
        sample: int = 24,
        min_threats: int = 2,
        rng: Optional[random.Random] = None,
    ) -> None:
        super().__init__(name="multi-threat-scan", rng=rng)
        self.scanner = scanner
        self.sample = sample
        self.min_threats = min_threats

    def generate_move(self, board: chess.Board, context: StrategyContext) -> Optional[StrategyResult]:
        scored: List[Tuple[float, CandidateMove]] = []
        for candidate in context.candidates[: self.sample]:
            if self.scanner.hangs_piece(board, candidate.move):
                continue
            threats = self.scanner.threats_created(board, candidate.move)
            if threats < self.min_threats:
                continue
            gain = self.scanner.material_gain(board, candidate.move)
            scored.append((threats + 2.0 * gain, candidate))
        if not scored:
            return None
        score, choice = self._pick_best(scored)
        return self._result(choice, score=score, metadata={"threat_score": score})


class TacticalAdvantageStrategy(MoveStrategy):
    """Single-ply material/check gain without leaving the piece en prise."""

    def __init__(self, scanner: TacticalScanner, *, threshold: float = 1.0, rng: Optional[random.Random] = None) -> None:
        super().__init__(name="tactical-advantage", rng=rng)
        self.scanner = scanner
        self.threshold = threshold

    def generate_move(self, board: chess.Board, context: StrategyContext) -> Optional[StrategyResult]:
        scored: List[Tuple[float, CandidateMove]] = []
        for candidate in context.candidates:
            score = float(self.scanner.material_gain(board, candidate.move))
            if candidate.move.promotion:
                score += PIECE_VALUES[candidate.move.promotion] - PIECE_VALUES[chess.PAWN]
            if candidate.gives_check:
                score += 0.5
            if score < self.threshold:
                continue
            if self.scanner.hangs_piece(board, candidate.move):
                continue
            scored.append((score, candidate))
        if not scored:
            return None
        score, choice = self._pick_best(scored)
        return self._result(choice, score=score)


class SafeCaptureStrategy(MoveStrategy):
    """Captures whose destination the opponent cannot immediately recapture on."""

    def __init__(self, scanner: TacticalScanner, *, rng: Optional[random.Random] = None) -> None:
        super().__init__(name="safe-capture", rng=rng)
        self.scanner = scanner

    def generate_move(self, board: chess.Board, context: StrategyContext) -> Optional[StrategyResult]:
        scored: List[Tuple[float, CandidateMove]] = []
        for candidate in context.candidates:
            if not candidate.is_capture:
                continue
            if self.scanner.is_recapturable(board, candidate.move):
                continue
            scored.append((float(self.scanner.material_gain(board, candidate.move)), candidate))
        if not scored:
            return None
        score, choice = self._pick_best(scored)
        return self._result(choice, score=score)


class KingAttackStrategy(MoveStrategy):
    """Bring pieces within reach of the enemy king when it increases pressure."""

    def __init__(self, scanner: TacticalScanner, *, radius: int = 2, rng: Optional[random.Random] = None) -> None:
        super().__init__(name="king-attack", rng=rng)
        self.scanner = scanner
        self.radius = radius

    def generate_move(self, board: chess.Board, context: StrategyContext) -> Optional[StrategyResult]:
        king_square = board.king(not context.turn)
        if king_square is None:
            return None
        baseline = self.scanner.king_pressure(board, king_square)
        scored: List[Tuple[float, CandidateMove]] = []
        for candidate in context.candidates:
            if chess.square_distance(candidate.move.to_square, king_square) > self.radius:
                continue
            if candidate.piece == chess.KING or self.scanner.hangs_piece(board, candidate.move):
                continue
            pressure = self.scanner.king_pressure_after(board, candidate.move, king_square)
            if pressure > baseline:
                scored.append((float(pressure - baseline), candidate))
        if not scored:
            return None
        score, choice = self._pick_best(scored)
        return self._result(choice, score=score, metadata={"king_pressure": baseline + score})


# ---------------------------------------------------------------------------
# Positional strategies
# ---------------------------------------------------------------------------


class PositionalEvaluationStrategy(MoveStrategy):
    """Score a bounded candidate sample with material plus a positional evaluator."""

    def __init__(
        self,
        scanner: TacticalScanner,
        evaluator: PositionalEvaluator,
        *,
        sample: int = 16,
        opening_moves: int = 4,
        rng: Optional[random.Random] = None,
    ) -> None:
        super().__init__(name="positional-evaluation", rng=rng)
        self.scanner = scanner
        self.evaluator = evaluator
        self.sample = sample
        self.opening_moves = opening_moves

    def is_applicable(self, context: StrategyContext) -> bool:
        return context.legal_moves_count > 0 and context.fullmove_number > self.opening_moves

    def _sample(self, candidates: Sequence[CandidateMove]) -> List[CandidateMove]:
        forcing = [candidate for candidate in candidates if candidate.is_capture or candidate.gives_check]
        quiet = [candidate for candidate in candidates if not (candidate.is_capture or candidate.gives_check)]
        pool = forcing[: self.sample]
        room = self.sample - len(pool)
        if room > 0 and quiet:
            pool.extend(self._rng.sample(quiet, min(room, len(quiet))))
        return pool

    def generate_move(self, board: chess.Board, context: StrategyContext) -> Optional[StrategyResult]:
        color = context.turn
        scored: List[Tuple[float, CandidateMove]] = []
        for candidate in self._sample(context.candidates):
            if self.scanner.hangs_piece(board, candidate.move):
                continue
            self.scanner.oracle.apply(board, candidate.move)
            try:
                score = self.scanner.material_balance(board, color) + self.evaluator.evaluate(board, color)
            finally:
                self.scanner.oracle.undo(board)
            scored.append((score, candidate))
        if not scored:
            return None
        score, choice = self._pick_best(scored)
        return self._result(choice, score=score, metadata={"evaluation": round(score, 2)})


class DevelopmentStrategy(MoveStrategy):
    """Opening principles: develop minors, occupy the center, castle.

    With ``coordinated`` the heuristic also discourages moving the same piece
    twice and early queen sorties, and rewards connecting the rooks.
    """

    def __init__(
        self,
        scanner: TacticalScanner,
        *,
        coordinated: bool = False,
        opening_moves: int = 12,
        rng: Optional[random.Random] = None,
    ) -> None:
        super().__init__(name="coordinated-development" if coordinated else "development", rng=rng)
        self.scanner = scanner
        self.coordinated = coordinated
        self.opening_moves = opening_moves

    def is_applicable(self, context: StrategyContext) -> bool:
        if context.in_check:
            return False
        return context.legal_moves_count > 0 and context.fullmove_number <= self.opening_moves

    def _score(self, board: chess.Board, candidate: CandidateMove, color: bool) -> float:
        move = candidate.move
        home_rank = 0 if color == chess.WHITE else 7
        from_rank = chess.square_rank(move.from_square)
        score = 0.0
        if board.is_castling(move):
            score += 4.0 if self.coordinated else 3.0
        if candidate.piece in (chess.KNIGHT, chess.BISHOP) and from_rank == home_rank:
            score += 2.0
        if candidate.piece == chess.PAWN and move.to_square in CENTER_SQUARES:
            score += 1.5
        if self.coordinated:
            if candidate.piece in (chess.KNIGHT, chess.BISHOP) and from_rank != home_rank:
                score -= 1.0
            if candidate.piece == chess.QUEEN:
                score -= 1.5
            if candidate.piece == chess.KING and not board.is_castling(move):
                score -= 2.0
            score += 0.5 * self.scanner.center_hits(board, move)
        return score

    def generate_move(self, board: chess.Board, context: StrategyContext) -> Optional[StrategyResult]:
        scored: List[Tuple[float, CandidateMove]] = []
        for candidate in context.candidates:
            score = self._score(board, candidate, context.turn)
            if score <= 0:
                continue
            if self.scanner.hangs_piece(board, candidate.move):
                continue
            scored.append((score, candidate))
        if not scored:
            return None
        score, choice = self._pick_best(scored)
        return self._result(choice, score=score)


class KeySquareControlStrategy(MoveStrategy):
    """Increase control of d4/e4/d5/e5 with a safe move."""

    def __init__(self, scanner: TacticalScanner, *, rng: Optional[random.Random] = None) -> None:
        super().__init__(name="key-square-control", rng=rng)
        self.scanner = scanner

    def generate_move(self, board: chess.Board, context: StrategyContext) -> Optional[StrategyResult]:
        scored: List[Tuple[float, CandidateMove]] = []
        for candidate in context.candidates:
            if candidate.piece == chess.KING:
                continue
            move = candidate.move
            attacks = board.attacks(move.from_square)
            before = sum(1 for square in CENTER_SQUARES if square in attacks or square == move.from_square)
            after = self.scanner.center_hits(board, move)
            if after <= before:
                continue
            if self.scanner.hangs_piece(board, move):
                continue
            scored.append((float(after - before), candidate))
        if not scored:
            return None
        score, choice = self._pick_best(scored)
        return self._result(choice, score=score)


class FirstSafeMoveStrategy(MoveStrategy):
    def __init__(self, scanner: TacticalScanner, *, rng: Optional[random.Random] = None) -> None:
        super().__init__(name="first-safe-move", rng=rng)
        self.scanner = scanner

    def generate_move(self, board: chess.Board, context: StrategyContext) -> Optional[StrategyResult]:
        for candidate in context.candidates:
            if not self.scanner.hangs_piece(board, candidate.move):
                return self._result(candidate)
        return None


# ---------------------------------------------------------------------------
# Biased and random strategies
# ---------------------------------------------------------------------------


class WeightedFallbackStrategy(MoveStrategy):
    """Weighted draw favouring captures, central destinations and development."""

    def __init__(self, scanner: TacticalScanner, *, rng: Optional[random.Random] = None) -> None:
        super().__init__(name="weighted-fallback", rng=rng)
        self.scanner = scanner

    def _weight(self, board: chess.Board, candidate: CandidateMove, color: bool) -> float:
        weight = 1.0
        weight += 3.0 * self.scanner.material_gain(board, candidate.move)
        if candidate.move.to_square in CENTER_SQUARES:
            weight += 2.0
        home_rank = 0 if color == chess.WHITE else 7
        if candidate.piece in (chess.KNIGHT, chess.BISHOP) and chess.square_rank(candidate.move.from_square) == home_rank:
            weight += 2.0
        if candidate.gives_check:
            weight += 1.0
        if self.scanner.hangs_piece(board, candidate.move):
            weight *= 0.2
        return weight

    def generate_move(self, board: chess.Board, context: StrategyContext) -> Optional[StrategyResult]:
        weights = [self._weight(board, candidate, context.turn) for candidate in context.candidates]
        choice = self._rng.choices(context.candidates, weights=weights, k=1)[0]
        return self._result(choice)


class BiasedCaptureStrategy(MoveStrategy):
    def __init__(self, probability: float, *, rng: Optional[random.Random] = None) -> None:
        super().__init__(name="capture-bias", rng=rng)
        self.probability = probability

    def generate_move(self, board: chess.Board, context: StrategyContext) -> Optional[StrategyResult]:
        captures = [candidate for candidate in context.candidates if candidate.is_capture]
        if not captures or self._rng.random() >= self.probability:
            return None
        return self._result(self._rng.choice(captures))


class BiasedCenterStrategy(MoveStrategy):
    def __init__(self, probability: float, *, rng: Optional[random.Random] = None) -> None:
        super().__init__(name="center-bias", rng=rng)
        self.probability = probability

    def generate_move(self, board: chess.Board, context: StrategyContext) -> Optional[StrategyResult]:
        central = [candidate for candidate in context.candidates if candidate.move.to_square in CENTER_SQUARES]
        if not central or self._rng.random() >= self.probability:
            return None
        return self._result(self._rng.choice(central))


class BoundedRandomStrategy(MoveStrategy):
    def __init__(self, limit: int, *, rng: Optional[random.Random] = None) -> None:
        super().__init__(name=f"bounded-random-{limit}", rng=rng)
        self.limit = max(1, limit)

    def generate_move(self, board: chess.Board, context: StrategyContext) -> Optional[StrategyResult]:
        return self._result(self._rng.choice(context.candidates[: self.limit]))


class RandomMoveStrategy(MoveStrategy):
    def __init__(self, *, rng: Optional[random.Random] = None) -> None:
        super().__init__(name="uniform-random", rng=rng)

    def generate_move(self, board: chess.Board, context: StrategyContext) -> Optional[StrategyResult]:
        return self._result(self._rng.choice(context.candidates))


# ---------------------------------------------------------------------------
# Bands and chain construction
# ---------------------------------------------------------------------------


class RatingBand(Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    EXPERT = "expert"
    MASTER = "master"
    GRANDMASTER = "grandmaster"


BAND_FLOORS: Tuple[Tuple[int, RatingBand], ...] = (
    (2400, RatingBand.GRANDMASTER),
    (2000, RatingBand.MASTER),
    (1500, RatingBand.EXPERT),
    (1000, RatingBand.INTERMEDIATE),
)


def band_for_rating(rating: int) -> RatingBand:
    for floor, band in BAND_FLOORS:
        if rating >= floor:
            return band
    return RatingBand.BEGINNER


def build_chain(
    band: RatingBand,
    scanner: TacticalScanner,
    evaluator: PositionalEvaluator,
    settings: EngineSettings,
    *,
    rng: random.Random,
    logger: Optional[Callable[[str], None]] = None,
) -> StrategyChain:
    if band is RatingBand.GRANDMASTER:
        strategies: List[MoveStrategy] = [
            MateSearchStrategy(scanner, 3, rng=rng),
            ThreatScanStrategy(scanner, sample=settings.threat_sample, rng=rng),
            PositionalEvaluationStrategy(scanner, evaluator, sample=settings.positional_sample, rng=rng),
            DevelopmentStrategy(scanner, rng=rng),
            FirstSafeMoveStrategy(scanner, rng=rng),
        ]
    elif band is RatingBand.MASTER:
        strategies = [
            MateSearchStrategy(scanner, 2, rng=rng),
            TacticalAdvantageStrategy(scanner, rng=rng),
            KeySquareControlStrategy(scanner, rng=rng),
            DevelopmentStrategy(scanner, coordinated=True, rng=rng),
        ]
    elif band is RatingBand.EXPERT:
        strategies = [
            MateSearchStrategy(scanner, 1, rng=rng),
            SafeCaptureStrategy(scanner, rng=rng),
            KingAttackStrategy(scanner, rng=rng),
            WeightedFallbackStrategy(scanner, rng=rng),
        ]
    elif band is RatingBand.INTERMEDIATE:
        strategies = [
            MateSearchStrategy(scanner, 1, candidate_limit=settings.mate_candidate_limit, rng=rng),
            BiasedCaptureStrategy(0.6, rng=rng),
            BiasedCenterStrategy(0.6, rng=rng),
            BoundedRandomStrategy(settings.intermediate_prefix, rng=rng),
        ]
    else:
        strategies = [
            MateSearchStrategy(scanner, 1, probability=0.25, rng=rng),
            BiasedCaptureStrategy(0.3, rng=rng),
            BiasedCenterStrategy(0.2, rng=rng),
        ]
    strategies.append(RandomMoveStrategy(rng=rng))
    return StrategyChain(band.value, strategies, logger=logger)


class MoveSelector:
    """Dispatch a level to its band's chain and return one legal move."""

    def __init__(
        self,
        *,
        oracle: Optional[PositionOracle] = None,
        settings: Optional[EngineSettings] = None,
        evaluator: Optional[PositionalEvaluator] = None,
        rng: Optional[random.Random] = None,
        logger: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.oracle = oracle or ChessOracle()
        self.settings = (settings or EngineSettings()).clamp()
        self._rng = rng or random.Random(self.settings.seed)
        self._logger = logger or (lambda *_: None)
        self.scanner = TacticalScanner(
            self.oracle,
            reply_sample=self.settings.mate_reply_sample,
            candidate_limit=self.settings.mate_candidate_limit,
            threat_sample=self.settings.threat_sample,
        )
        self.evaluator = evaluator or CoarsePositionalEvaluator(rng=self._rng)
        self.chains: Dict[RatingBand, StrategyChain] = {
            band: build_chain(band, self.scanner, self.evaluator, self.settings, rng=self._rng, logger=self._logger)
            for band in RatingBand
        }
        self._fallback = RandomMoveStrategy(rng=self._rng)

    def chain_for(self, level: EngineLevel) -> StrategyChain:
        return self.chains[band_for_rating(level.rating)]

    def build_context(self, board: chess.Board, level: EngineLevel, candidates: List[CandidateMove]) -> StrategyContext:
        return StrategyContext(
            level=level,
            candidates=candidates,
            turn=self.oracle.turn_color(board),
            fullmove_number=board.fullmove_number,
            in_check=self.oracle.is_check(board),
        )

    def select(self, board: chess.Board, level: EngineLevel) -> Optional[StrategyResult]:
        work = self.oracle.copy(board)
        candidates = self.oracle.legal_moves(work)
        if not candidates:
            return None
        context = self.build_context(work, level, candidates)
        chain = self.chain_for(level)

        result = chain.select(work, context)
        legal = {candidate.move for candidate in candidates}
        if result is None or result.move.move not in legal:
            if result is not None:
                self._logger(f"{chain.name}: discarding illegal suggestion {result.move.uci}")
            result = self._fallback.generate_move(work, context)
            assert result is not None

        result = self._simulate_error(result, level, candidates)
        result.metadata.setdefault("band", chain.name)
        return result

    def _simulate_error(
        self,
        result: StrategyResult,
        level: EngineLevel,
        candidates: Sequence[CandidateMove],
    ) -> StrategyResult:
        if not self.settings.error_simulation or level.error_rate <= 0 or result.definitive:
            return result
        if self._rng.random() * 100 >= level.error_rate:
            return result
        alternatives = [candidate for candidate in candidates if candidate.move != result.move.move][:3]
        if not alternatives:
            return result
        choice = self._rng.choice(alternatives)
        self._logger(f"error simulation: {result.move.uci} -> {choice.uci}")
        metadata = dict(result.metadata)
        metadata["intended"] = result.move.uci
        return replace(result, move=choice, strategy_name="error-simulation", score=None, metadata=metadata)
