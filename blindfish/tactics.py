"""Tactical probes and coarse positional estimators.

Everything here is bounded: fixed candidate prefixes, fixed reply samples and
a fixed recursion depth. The scanner works on a board handle supplied by the
caller and always restores it (push/pop in ``try``/``finally``) before
returning.

The mate search is an approximation. At depth > 1 it only explores checking
continuations and only samples the first few opponent replies, assuming the
rest behave the same. It can report a mate that a full search would refute.
"""

from __future__ import annotations

import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

import chess

from .oracle import CandidateMove, ChessOracle, PositionOracle

PIECE_VALUES = {
    chess.PAWN: 1,
    chess.KNIGHT: 3,
    chess.BISHOP: 3,
    chess.ROOK: 5,
    chess.QUEEN: 9,
    chess.KING: 0,
}

CENTER_SQUARES = (chess.D4, chess.E4, chess.D5, chess.E5)
EXTENDED_CENTER = (
    chess.C3, chess.D3, chess.E3, chess.F3,
    chess.C4, chess.F4, chess.C5, chess.F5,
    chess.C6, chess.D6, chess.E6, chess.F6,
)

MAX_MATE_DEPTH = 3


@dataclass(slots=True, frozen=True)
class MateLine:
    candidate: CandidateMove
    moves_to_mate: int
    line: Tuple[str, ...]


class TacticalScanner:
    def __init__(
        self,
        oracle: Optional[PositionOracle] = None,
        *,
        reply_sample: int = 3,
        candidate_limit: int = 12,
        threat_sample: int = 24,
        continuation_limit: int = 6,
    ) -> None:
        self.oracle = oracle or ChessOracle()
        self.continuation_limit = max(1, continuation_limit)
        self.reply_sample = max(1, reply_sample)
        self.candidate_limit = max(1, candidate_limit)
        self.threat_sample = max(1, threat_sample)

    # ------------------------------------------------------------------
    # Mate search
    # ------------------------------------------------------------------

    def find_mate_in_n(
        self,
        board: chess.Board,
        candidates: Sequence[CandidateMove],
        depth: int,
    ) -> Optional[MateLine]:
        depth = max(1, min(int(depth), MAX_MATE_DEPTH))
        for candidate in candidates:
            if self._mates_immediately(board, candidate.move):
                return MateLine(candidate, 1, (candidate.uci,))
        if depth == 1:
            return None

        forcing = [candidate for candidate in candidates if candidate.gives_check][: self.candidate_limit]
        for moves_to_mate in range(2, depth + 1):
            for candidate in forcing:
                line = self._forces_mate(board, candidate.move, moves_to_mate)
                if line:
                    return MateLine(candidate, moves_to_mate, tuple(move.uci() for move in line))
        return None

    def _mates_immediately(self, board: chess.Board, move: chess.Move) -> bool:
        self.oracle.apply(board, move)
        try:
            return self.oracle.is_checkmate(board)
        finally:
            self.oracle.undo(board)

    def _forces_mate(self, board: chess.Board, move: chess.Move, depth: int) -> Optional[List[chess.Move]]:
        self.oracle.apply(board, move)
        try:
            if self.oracle.is_checkmate(board):
                return [move]
            if depth <= 1:
                return None
            replies = self._sample_replies(board)
            if not replies:
                # Stalemate, not mate.
                return None
            principal: Optional[List[chess.Move]] = None
            for reply in replies:
                self.oracle.apply(board, reply)
                try:
                    continuation = self._mating_continuation(board, depth - 1)
                finally:
                    self.oracle.undo(board)
                if continuation is None:
                    return None
                if principal is None:
                    principal = [move, reply, *continuation]
            return principal
        finally:
            self.oracle.undo(board)

    def _mating_continuation(self, board: chess.Board, depth: int) -> Optional[List[chess.Move]]:
        checks = 0
        for move in board.legal_moves:
            if not board.gives_check(move):
                continue
            checks += 1
            if checks > self.continuation_limit:
                break
            line = self._forces_mate(board, move, depth)
            if line:
                return line
        return None

    def _sample_replies(self, board: chess.Board) -> List[chess.Move]:
        replies: List[chess.Move] = []
        for reply in board.legal_moves:
            replies.append(reply)
            if len(replies) >= self.reply_sample:
                break
        return replies

    # ------------------------------------------------------------------
    # Threats and material
    # ------------------------------------------------------------------

    def count_threats(self, board: chess.Board, sample: Optional[int] = None) -> int:
        limit = sample if sample is not None else self.threat_sample
        threats = 0
        for index, move in enumerate(board.legal_moves):
            if index >= limit:
                break
            if board.is_capture(move) or board.gives_check(move):
                threats += 1
        return threats

    def threats_created(self, board: chess.Board, move: chess.Move) -> int:
        """Captures and checks the mover would have if it could move again."""
        self.oracle.apply(board, move)
        try:
            if self.oracle.is_check(board):
                attacked = board.attacks_mask(move.to_square) & board.occupied_co[board.turn] & ~board.kings
                return 1 + chess.popcount(attacked)
            board.push(chess.Move.null())
            try:
                return self.count_threats(board)
            finally:
                board.pop()
        finally:
            self.oracle.undo(board)

    def material_gain(self, board: chess.Board, move: chess.Move) -> int:
        if board.is_en_passant(move):
            return PIECE_VALUES[chess.PAWN]
        captured = board.piece_at(move.to_square)
        if captured is None or captured.color == board.turn:
            return 0
        return PIECE_VALUES[captured.piece_type]

    def material_balance(self, board: chess.Board, color: bool) -> int:
        total = 0
        for piece in board.piece_map().values():
            value = PIECE_VALUES[piece.piece_type]
            total += value if piece.color == color else -value
        return total

    def king_pressure(self, board: chess.Board, king_square: int) -> int:
        return sum(1 for move in board.legal_moves if chess.square_distance(move.to_square, king_square) <= 2)

    def king_pressure_after(self, board: chess.Board, move: chess.Move, king_square: int) -> int:
        """Pressure the mover would exert on ``king_square`` on its next turn."""
        self.oracle.apply(board, move)
        try:
            if self.oracle.is_check(board):
                # Null moves are not playable while in check; count the checker's reach instead.
                reach = board.attacks(move.to_square)
                return sum(1 for square in reach if chess.square_distance(square, king_square) <= 2)
            board.push(chess.Move.null())
            try:
                return self.king_pressure(board, king_square)
            finally:
                board.pop()
        finally:
            self.oracle.undo(board)

    def is_recapturable(self, board: chess.Board, move: chess.Move) -> bool:
        self.oracle.apply(board, move)
        try:
            return board.is_attacked_by(board.turn, move.to_square)
        finally:
            self.oracle.undo(board)

    def hangs_piece(self, board: chess.Board, move: chess.Move) -> bool:
        """True when the moved piece can be won for less than it captured."""
        mover = board.piece_type_at(move.from_square)
        if mover is None or mover == chess.KING:
            return False
        moved_value = PIECE_VALUES[move.promotion or mover]
        gained = self.material_gain(board, move)
        self.oracle.apply(board, move)
        try:
            attackers = board.attackers(board.turn, move.to_square)
            if not attackers:
                return False
            defenders = board.attackers(not board.turn, move.to_square)
            if not defenders:
                lost = moved_value
            else:
                cheapest = min(PIECE_VALUES[board.piece_type_at(square) or chess.PAWN] for square in attackers)
                lost = max(0, moved_value - cheapest)
            return lost > gained
        finally:
            self.oracle.undo(board)

    def center_hits(self, board: chess.Board, move: chess.Move) -> int:
        """Center squares attacked by the moved piece after the move."""
        self.oracle.apply(board, move)
        try:
            attacks = board.attacks(move.to_square)
            return sum(1 for square in CENTER_SQUARES if square in attacks or square == move.to_square)
        finally:
            self.oracle.undo(board)


# ---------------------------------------------------------------------------
# Positional evaluation contract
# ---------------------------------------------------------------------------


class PositionalEvaluator(ABC):
    """Scores a position in pawns from ``color``'s point of view."""

    @abstractmethod
    def evaluate(self, board: chess.Board, color: bool) -> float:
        ...


class CoarsePositionalEvaluator(PositionalEvaluator):
    """Cheap pawn-structure, activity and king-safety terms.

    The pawn-structure and king-safety terms carry a bounded random jitter, so
    the top tiers are not fully deterministic. Replace the evaluator as a
    whole rather than patching the selection pipeline.
    """

    DOUBLED_PENALTY = 0.15
    ISOLATED_PENALTY = 0.10
    PASSED_BONUS = 0.20
    PASSED_RANK_BONUS = 0.05
    ACTIVITY_UNIT = 0.02
    CENTER_UNIT = 0.05
    SHIELD_UNIT = 0.10
    EXPOSED_PENALTY = 0.08

    def __init__(
        self,
        *,
        rng: Optional[random.Random] = None,
        noise: float = 0.1,
        weights: Tuple[float, float, float] = (1.0, 1.0, 1.0),
    ) -> None:
        self._rng = rng or random.Random()
        self.noise = max(0.0, noise)
        self.weights = weights

    def evaluate(self, board: chess.Board, color: bool) -> float:
        pawn_w, activity_w, king_w = self.weights
        score = 0.0
        for side, sign in ((color, 1.0), (not color, -1.0)):
            score += sign * pawn_w * self.pawn_structure(board, side)
            score += sign * activity_w * self.piece_activity(board, side)
            score += sign * king_w * self.king_safety(board, side)
        return score

    def _jitter(self) -> float:
        if not self.noise:
            return 0.0
        return self._rng.uniform(-self.noise, self.noise)

    def pawn_structure(self, board: chess.Board, color: bool) -> float:
        pawns = board.pieces(chess.PAWN, color)
        if not pawns:
            return 0.0
        enemy_pawns = board.pieces(chess.PAWN, not color)
        by_file = [0] * 8
        for square in pawns:
            by_file[chess.square_file(square)] += 1

        score = -self.DOUBLED_PENALTY * sum(max(count - 1, 0) for count in by_file)
        for square in pawns:
            file_index = chess.square_file(square)
            left = by_file[file_index - 1] if file_index > 0 else 0
            right = by_file[file_index + 1] if file_index < 7 else 0
            if not left and not right:
                score -= self.ISOLATED_PENALTY
            if _is_passed(square, color, enemy_pawns):
                advance = chess.square_rank(square) if color == chess.WHITE else 7 - chess.square_rank(square)
                score += self.PASSED_BONUS + self.PASSED_RANK_BONUS * advance
        return score + self._jitter()

    def piece_activity(self, board: chess.Board, color: bool) -> float:
        score = 0.0
        for piece_type in (chess.KNIGHT, chess.BISHOP, chess.ROOK, chess.QUEEN):
            for square in board.pieces(piece_type, color):
                attacks = board.attacks(square)
                score += self.ACTIVITY_UNIT * len(attacks)
                score += self.CENTER_UNIT * sum(1 for target in CENTER_SQUARES if target in attacks)
        return score

    def king_safety(self, board: chess.Board, color: bool) -> float:
        king_square = board.king(color)
        if king_square is None:
            return 0.0
        direction = 1 if color == chess.WHITE else -1
        shield = 0
        for distance in (1, 2):
            rank = chess.square_rank(king_square) + direction * distance
            if not 0 <= rank < 8:
                continue
            for offset in (-1, 0, 1):
                file_index = chess.square_file(king_square) + offset
                if not 0 <= file_index < 8:
                    continue
                piece = board.piece_at(chess.square(file_index, rank))
                if piece and piece.piece_type == chess.PAWN and piece.color == color:
                    shield += 2 if distance == 1 else 1
        pressure = sum(len(board.attackers(not color, square)) for square in _king_zone(king_square))
        return self.SHIELD_UNIT * shield - self.EXPOSED_PENALTY * pressure + self._jitter()


def _is_passed(square: int, color: bool, enemy_pawns: Iterable[int]) -> bool:
    file_index = chess.square_file(square)
    rank = chess.square_rank(square)
    for enemy in enemy_pawns:
        if abs(chess.square_file(enemy) - file_index) > 1:
            continue
        enemy_rank = chess.square_rank(enemy)
        if color == chess.WHITE and enemy_rank > rank:
            return False
        if color == chess.BLACK and enemy_rank < rank:
            return False
    return True


def _king_zone(square: int) -> List[int]:
    return [target for target in chess.SQUARES if chess.square_distance(square, target) == 1]
