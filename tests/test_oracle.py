import chess
import pytest

from blindfish.errors import InvalidPosition
from blindfish.oracle import ChessOracle


def test_load_startpos_and_fen() -> None:
    oracle = ChessOracle()
    assert oracle.load_position("startpos").fen() == chess.STARTING_FEN
    fen = "6k1/5ppp/8/8/8/8/5PPP/R5K1 w - - 0 1"
    assert oracle.load_position(fen).fen() == fen


@pytest.mark.parametrize(
    "position",
    [
        "not a fen",
        "8/8/8/8/8/8/8/8 w - - 0 1",
        "4k3/8/8/8/8/8/8/4R1K1 w - - 0 1",
    ],
)
def test_load_rejects_unusable_positions(position: str) -> None:
    with pytest.raises(InvalidPosition) as excinfo:
        ChessOracle().load_position(position)
    assert excinfo.value.position == position


def test_legal_moves_describe_each_candidate() -> None:
    oracle = ChessOracle()
    board = oracle.load_position("startpos")
    candidates = oracle.legal_moves(board)
    assert len(candidates) == 20
    by_uci = {candidate.uci: candidate for candidate in candidates}
    e4 = by_uci["e2e4"]
    assert e4.san == "e4"
    assert e4.piece == chess.PAWN
    assert e4.from_square == "e2"
    assert e4.to_square == "e4"
    assert e4.promotion is None
    assert e4.is_capture is False
    assert e4.gives_check is False


def test_en_passant_counts_as_pawn_capture() -> None:
    oracle = ChessOracle()
    board = oracle.load_position("4k3/8/8/3pP3/8/8/8/4K3 w - d6 0 2")
    by_uci = {candidate.uci: candidate for candidate in oracle.legal_moves(board)}
    assert by_uci["e5d6"].is_capture is True
    assert by_uci["e5d6"].captured == chess.PAWN


def test_checks_and_promotions_are_flagged() -> None:
    oracle = ChessOracle()
    board = oracle.load_position("6k1/5ppp/8/8/8/8/5PPP/R5K1 w - - 0 1")
    by_uci = {candidate.uci: candidate for candidate in oracle.legal_moves(board)}
    assert by_uci["a1a8"].gives_check is True
    assert by_uci["a1a8"].san == "Ra8#"

    board = oracle.load_position("8/P7/8/8/8/8/8/k1K5 w - - 0 1")
    by_uci = {candidate.uci: candidate for candidate in oracle.legal_moves(board)}
    assert by_uci["a7a8q"].promotion == "q"


def test_apply_undo_and_copy_leave_original_untouched() -> None:
    oracle = ChessOracle()
    board = oracle.load_position("startpos")
    copy = oracle.copy(board)
    oracle.apply(copy, chess.Move.from_uci("e2e4"))
    assert board.fen() == chess.STARTING_FEN
    assert copy.piece_at(chess.E4) is not None
    oracle.undo(copy)
    assert copy.fen() == chess.STARTING_FEN


def test_status_queries() -> None:
    oracle = ChessOracle()
    mated = oracle.load_position("rnb1kbnr/pppp1ppp/8/4p3/6Pq/5P2/PPPPP2P/RNBQKBNR w KQkq - 1 3")
    assert oracle.is_checkmate(mated) is True
    assert oracle.is_check(mated) is True
    assert oracle.turn_color(mated) == chess.WHITE
    assert oracle.piece_at(mated, chess.H4) == chess.Piece(chess.QUEEN, chess.BLACK)
    assert oracle.legal_moves(mated) == []
