"""Legality boundary between the engine and the rules of chess.

The engine never keeps board state of its own. Everything it knows about a
position comes through a :class:`PositionOracle`, and every probe is an
apply/undo pair on a handle the engine owns.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

import chess

from .errors import InvalidPosition


@dataclass(slots=True, frozen=True)
class CandidateMove:
    move: chess.Move
    san: str
    piece: int
    captured: Optional[int] = None

    @property
    def uci(self) -> str:
        return self.move.uci()

    @property
    def from_square(self) -> str:
        return chess.square_name(self.move.from_square)

    @property
    def to_square(self) -> str:
        return chess.square_name(self.move.to_square)

    @property
    def promotion(self) -> Optional[str]:
        if self.move.promotion is None:
            return None
        return chess.piece_symbol(self.move.promotion)

    @property
    def is_capture(self) -> bool:
        return self.captured is not None

    @property
    def gives_check(self) -> bool:
        return self.san.endswith(("+", "#"))


class PositionOracle(ABC):
    @abstractmethod
    def load_position(self, encoded: str) -> chess.Board:
        ...

    @abstractmethod
    def legal_moves(self, handle: chess.Board) -> List[CandidateMove]:
        ...

    @abstractmethod
    def apply(self, handle: chess.Board, move: chess.Move) -> chess.Board:
        ...

    @abstractmethod
    def undo(self, handle: chess.Board) -> None:
        ...

    @abstractmethod
    def is_checkmate(self, handle: chess.Board) -> bool:
        ...

    @abstractmethod
    def is_check(self, handle: chess.Board) -> bool:
        ...

    @abstractmethod
    def turn_color(self, handle: chess.Board) -> bool:
        ...

    @abstractmethod
    def piece_at(self, handle: chess.Board, square: int) -> Optional[chess.Piece]:
        ...

    @abstractmethod
    def copy(self, handle: chess.Board) -> chess.Board:
        ...


class ChessOracle(PositionOracle):
    """:class:`PositionOracle` backed by ``python-chess``."""

    def load_position(self, encoded: str) -> chess.Board:
        text = (encoded or "").strip()
        if text == "startpos":
            return chess.Board()
        try:
            board = chess.Board(text)
        except ValueError as exc:
            raise InvalidPosition(encoded, str(exc)) from exc
        status = board.status()
        # Positions the rules engine cannot reason about safely.
        fatal = chess.STATUS_NO_WHITE_KING | chess.STATUS_NO_BLACK_KING | chess.STATUS_TOO_MANY_KINGS
        if status & fatal:
            raise InvalidPosition(encoded, "kings missing or duplicated")
        if status & chess.STATUS_OPPOSITE_CHECK:
            raise InvalidPosition(encoded, "side not to move is in check")
        return board

    def legal_moves(self, handle: chess.Board) -> List[CandidateMove]:
        candidates: List[CandidateMove] = []
        for move in handle.legal_moves:
            piece = handle.piece_type_at(move.from_square)
            if handle.is_en_passant(move):
                captured: Optional[int] = chess.PAWN
            else:
                captured = handle.piece_type_at(move.to_square) if handle.is_capture(move) else None
            candidates.append(
                CandidateMove(
                    move=move,
                    san=handle.san(move),
                    piece=piece or chess.PAWN,
                    captured=captured,
                )
            )
        return candidates

    def apply(self, handle: chess.Board, move: chess.Move) -> chess.Board:
        handle.push(move)
        return handle

    def undo(self, handle: chess.Board) -> None:
        handle.pop()

    def is_checkmate(self, handle: chess.Board) -> bool:
        return handle.is_checkmate()

    def is_check(self, handle: chess.Board) -> bool:
        return handle.is_check()

    def turn_color(self, handle: chess.Board) -> bool:
        return handle.turn

    def piece_at(self, handle: chess.Board, square: int) -> Optional[chess.Piece]:
        return handle.piece_at(square)

    def copy(self, handle: chess.Board) -> chess.Board:
        return handle.copy(stack=True)
