import random

import chess
import pytest

from blindfish.oracle import ChessOracle
from blindfish.tactics import CoarsePositionalEvaluator, TacticalScanner

BACK_RANK = "6k1/5ppp/8/8/8/8/5PPP/R5K1 w - - 0 1"
# Rxe8+ Rxe8 Rxe8#
DOUBLED_ROOKS = "3rr1k1/5ppp/8/8/8/8/4RPPP/4R1K1 w - - 0 1"
# Rxe8+ Rxe8 Rxe8+ Rxe8 Rxe8#
TRIPLE_ROOKS = "2rrr1k1/5ppp/8/8/8/4R3/4RPPP/4R1K1 w - - 0 1"


def load(fen: str) -> chess.Board:
    return ChessOracle().load_position(fen)


def test_find_mate_in_one() -> None:
    oracle = ChessOracle()
    scanner = TacticalScanner(oracle)
    board = load(BACK_RANK)
    mate = scanner.find_mate_in_n(board, oracle.legal_moves(board), 1)
    assert mate is not None
    assert mate.candidate.uci == "a1a8"
    assert mate.moves_to_mate == 1
    assert mate.line == ("a1a8",)
    assert board.fen() == BACK_RANK


def test_find_mate_in_two_through_checks() -> None:
    oracle = ChessOracle()
    scanner = TacticalScanner(oracle)
    board = load(DOUBLED_ROOKS)
    candidates = oracle.legal_moves(board)

    assert scanner.find_mate_in_n(board, candidates, 1) is None
    mate = scanner.find_mate_in_n(board, candidates, 2)
    assert mate is not None
    assert mate.candidate.uci == "e2e8"
    assert mate.moves_to_mate == 2
    assert mate.line == ("e2e8", "d8e8", "e1e8")
    assert board.fen() == DOUBLED_ROOKS


def test_find_mate_in_three_needs_full_depth() -> None:
    oracle = ChessOracle()
    scanner = TacticalScanner(oracle)
    board = load(TRIPLE_ROOKS)
    candidates = oracle.legal_moves(board)

    assert scanner.find_mate_in_n(board, candidates, 2) is None
    mate = scanner.find_mate_in_n(board, candidates, 3)
    assert mate is not None
    assert mate.candidate.uci == "e3e8"
    assert mate.moves_to_mate == 3
    assert mate.line == ("e3e8", "d8e8", "e2e8", "c8e8", "e1e8")
    assert board.fen() == TRIPLE_ROOKS


def test_no_mate_in_opening() -> None:
    oracle = ChessOracle()
    board = load("startpos")
    assert TacticalScanner(oracle).find_mate_in_n(board, oracle.legal_moves(board), 3) is None
    assert board.fen() == chess.STARTING_FEN


def test_stalemating_move_is_not_mate() -> None:
    oracle = ChessOracle()
    board = load("7k/4Q3/6K1/8/8/8/8/8 w - - 0 1")
    candidates = oracle.legal_moves(board)
    mate = TacticalScanner(oracle).find_mate_in_n(board, candidates, 1)
    assert mate is not None
    stalemate = chess.Move.from_uci("e7f7")
    board.push(stalemate)
    assert board.is_stalemate()
    board.pop()
    assert mate.candidate.move != stalemate


def test_threat_counts() -> None:
    scanner = TacticalScanner()
    assert scanner.count_threats(load("startpos")) == 0
    board = load(BACK_RANK)
    assert scanner.threats_created(board, chess.Move.from_uci("a1a8")) == 1
    assert board.fen() == BACK_RANK


def test_threat_count_honours_explicit_sample() -> None:
    scanner = TacticalScanner(threat_sample=24)
    board = load("4k3/8/8/3q4/4P3/8/8/4K3 w - - 0 1")
    assert scanner.count_threats(board) == 1
    assert scanner.count_threats(board, sample=0) == 0


def test_material_gain_and_balance() -> None:
    scanner = TacticalScanner()
    board = load("4k3/8/8/3q4/4P3/8/8/4K3 w - - 0 1")
    assert scanner.material_gain(board, chess.Move.from_uci("e4d5")) == 9
    assert scanner.material_gain(board, chess.Move.from_uci("e4e5")) == 0
    assert scanner.material_balance(board, chess.WHITE) == -8
    assert scanner.material_balance(board, chess.BLACK) == 8


def test_recapture_detection() -> None:
    scanner = TacticalScanner()
    defended = load("4k3/8/2p5/3p4/4P3/8/8/4K3 w - - 0 1")
    undefended = load("4k3/8/8/3p4/4P3/8/8/4K3 w - - 0 1")
    move = chess.Move.from_uci("e4d5")
    assert scanner.is_recapturable(defended, move) is True
    assert scanner.is_recapturable(undefended, move) is False


def test_hangs_piece() -> None:
    scanner = TacticalScanner()
    board = load("4k3/8/8/8/8/2p5/8/3QK3 w - - 0 1")
    assert scanner.hangs_piece(board, chess.Move.from_uci("d1d2")) is True
    assert scanner.hangs_piece(board, chess.Move.from_uci("d1d3")) is False
    assert scanner.hangs_piece(board, chess.Move.from_uci("e1f1")) is False


def test_center_hits_and_king_pressure() -> None:
    scanner = TacticalScanner()
    board = load("startpos")
    assert scanner.center_hits(board, chess.Move.from_uci("e2e4")) == 2
    assert scanner.center_hits(board, chess.Move.from_uci("a2a3")) == 0

    board = load("4k3/8/8/8/8/8/8/R3K3 w - - 0 1")
    king = board.king(chess.BLACK)
    before = scanner.king_pressure(board, king)
    after = scanner.king_pressure_after(board, chess.Move.from_uci("a1a7"), king)
    assert after > before


def test_coarse_evaluator_is_symmetric_without_noise() -> None:
    evaluator = CoarsePositionalEvaluator(noise=0.0)
    board = load("startpos")
    assert evaluator.evaluate(board, chess.WHITE) == pytest.approx(0.0, abs=1e-9)


def test_coarse_evaluator_rewards_passed_pawns() -> None:
    evaluator = CoarsePositionalEvaluator(noise=0.0)
    board = load("4k3/8/8/4P3/8/8/8/4K3 w - - 0 1")
    assert evaluator.pawn_structure(board, chess.WHITE) > 0
    assert evaluator.evaluate(board, chess.WHITE) > 0
    assert evaluator.evaluate(board, chess.BLACK) < 0


def test_coarse_evaluator_noise_is_bounded() -> None:
    evaluator = CoarsePositionalEvaluator(rng=random.Random(3), noise=0.1)
    quiet = CoarsePositionalEvaluator(noise=0.0)
    board = load("startpos")
    baseline = quiet.king_safety(board, chess.WHITE)
    for _ in range(20):
        assert abs(evaluator.king_safety(board, chess.WHITE) - baseline) <= 0.1 + 1e-9
