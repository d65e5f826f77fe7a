"""Chess rules backed by python-chess.

Moves are accepted as ``{'from': 'e2', 'to': 'e4', 'promotion': 'q'}`` or
``{'uci': 'e2e4'}``. The board is copied before every push so a rejected or
abandoned move never touches the committed position.
"""
from dataclasses import dataclass, field

import chess
import chess.pgn

from arena.errors import IllegalAction
from ..session import DRAW, EndReason
from .base import GameRules, TerminalInfo


PROMOTIONS = {'q': chess.QUEEN, 'r': chess.ROOK, 'b': chess.BISHOP, 'n': chess.KNIGHT}
PIECE_VALUES = {chess.PAWN: 1, chess.KNIGHT: 3, chess.BISHOP: 3, chess.ROOK: 5, chess.QUEEN: 9}
CENTER_SQUARES = {chess.C4, chess.C5, chess.D4, chess.D5, chess.E4, chess.E5, chess.F4, chess.F5}
TIMEOUT_POLICIES = ('random', 'heuristic', 'forfeit')

TERMINATIONS = {
    chess.Termination.CHECKMATE: EndReason.CHECKMATE,
    chess.Termination.STALEMATE: EndReason.STALEMATE,
    chess.Termination.INSUFFICIENT_MATERIAL: EndReason.INSUFFICIENT,
    chess.Termination.THREEFOLD_REPETITION: EndReason.REPETITION,
    chess.Termination.FIVEFOLD_REPETITION: EndReason.REPETITION,
}


@dataclass(frozen=True)
class ChessState:
    board: chess.Board = field(default_factory=chess.Board)


def seat_for(color: bool) -> str:
    return 'white' if color == chess.WHITE else 'black'


def parse_move(board: chess.Board, action) -> chess.Move:
    if isinstance(action, str):
        uci = action
    elif isinstance(action, dict):
        if action.get('uci'):
            uci = str(action['uci'])
        else:
            src, dst = action.get('from'), action.get('to')
            if not src or not dst:
                raise IllegalAction('Missing required fields: from, to')
            promotion = (action.get('promotion') or '').lower()
            if promotion and promotion not in PROMOTIONS:
                raise IllegalAction(f'Invalid promotion piece: {promotion}')
            uci = f"{src}{dst}{promotion}"
    else:
        raise IllegalAction('Move must be an object with from/to or uci')
    try:
        move = chess.Move.from_uci(uci.lower())
    except ValueError:
        raise IllegalAction(f'Invalid move format: {uci}')
    if move not in board.legal_moves:
        raise IllegalAction(f'Illegal move: {uci}')
    return move


def heuristic_move(board: chess.Board, rng) -> chess.Move:
    """Mate if possible, else the most valuable capture, a check, a central move."""
    moves = list(board.legal_moves)
    mates, captures, checks = [], [], []
    for move in moves:
        if board.is_capture(move):
            captures.append(move)
        board.push(move)
        try:
            if board.is_checkmate():
                mates.append(move)
            elif board.is_check():
                checks.append(move)
        finally:
            board.pop()
    if mates:
        return mates[0]
    if captures:
        def victim_value(move):
            piece = board.piece_at(move.to_square)
            # en passant leaves the target square empty
            return PIECE_VALUES.get(piece.piece_type, 0) if piece else PIECE_VALUES[chess.PAWN]
        return max(captures, key=victim_value)
    if checks:
        return rng.choice(checks)
    center = [m for m in moves if m.to_square in CENTER_SQUARES]
    if center and rng.random() > 0.3:
        return rng.choice(center)
    return rng.choice(moves)


def export_pgn(board: chess.Board) -> str:
    game = chess.pgn.Game.from_board(board)
    exporter = chess.pgn.StringExporter(headers=False, variations=False, comments=False)
    return game.accept(exporter)


def san_history(board: chess.Board):
    replay = board.root()
    sans = []
    for move in board.move_stack:
        sans.append(replay.san(move))
        replay.push(move)
    return sans


class ChessRules(GameRules):
    kind = 'chess'
    seats = ('white', 'black')
    persists_history = True
    default_host_seat = 'random'

    def __init__(self, turn_duration=0, timeout_policy='random'):
        super().__init__(turn_duration)
        if timeout_policy not in TIMEOUT_POLICIES:
            raise ValueError(f"timeout_policy must be one of {TIMEOUT_POLICIES}, got {timeout_policy!r}")
        self.timeout_policy = timeout_policy

    def initial_state(self):
        return ChessState()

    def seats_to_act(self, state):
        if state.board.is_game_over(claim_draw=True):
            return ()
        return (seat_for(state.board.turn),)

    def turn_key(self, state):
        return len(state.board.move_stack)

    def legal_actions(self, state, seat):
        if seat not in self.seats_to_act(state):
            return []
        return [m.uci() for m in state.board.legal_moves]

    def apply_action(self, state, seat, action):
        if seat != seat_for(state.board.turn):
            raise IllegalAction(f'Not your turn ({seat_for(state.board.turn)} to move)')
        board = state.board.copy()
        move = parse_move(board, action)
        san = board.san(move)
        board.push(move)
        descriptor = {
            'from': chess.square_name(move.from_square),
            'to': chess.square_name(move.to_square),
            'promotion': chess.piece_symbol(move.promotion) if move.promotion else None,
            'uci': move.uci(),
            'san': san,
            'fen': board.fen(),
        }
        return ChessState(board=board), descriptor

    def is_terminal(self, state):
        outcome = state.board.outcome(claim_draw=True)
        if outcome is None:
            return None
        reason = TERMINATIONS.get(outcome.termination, EndReason.DRAW)
        if outcome.winner is None:
            return TerminalInfo(DRAW, reason)
        return TerminalInfo(seat_for(outcome.winner), reason)

    def on_timeout(self, state, rng):
        board = state.board
        mover = seat_for(board.turn)
        if self.timeout_policy == 'forfeit':
            return TerminalInfo(seat_for(not board.turn), EndReason.TIMEOUT)
        moves = list(board.legal_moves)
        if not moves:
            return []
        if self.timeout_policy == 'heuristic':
            move = heuristic_move(board.copy(), rng)
        else:
            move = rng.choice(moves)
        return [(mover, {'uci': move.uci()})]

    def serialize(self, state):
        board = state.board
        return {
            'fen': board.fen(),
            'pgn': export_pgn(board),
            'moves': san_history(board),
            'turn': seat_for(board.turn),
            'check': board.is_check(),
        }
