from dataclasses import dataclass, replace
from typing import Optional, Tuple

from arena.errors import IllegalAction
from ..session import DRAW, EndReason
from .base import GameRules, TerminalInfo


WINNING_LINES = (
    (0, 1, 2), (3, 4, 5), (6, 7, 8),  # rows
    (0, 3, 6), (1, 4, 7), (2, 5, 8),  # cols
    (0, 4, 8), (2, 4, 6),             # diagonals
)


@dataclass(frozen=True)
class TicTacToeState:
    board: Tuple[Optional[str], ...] = (None,) * 9
    turn: str = 'X'

    @property
    def marks(self) -> int:
        return sum(1 for cell in self.board if cell is not None)


def _cell_index(action) -> int:
    if isinstance(action, dict):
        action = action.get('index')
    if isinstance(action, bool) or not isinstance(action, int):
        raise IllegalAction('Cell index must be an integer 0-8')
    if action < 0 or action > 8:
        raise IllegalAction('Cell index must be an integer 0-8')
    return action


class TicTacToeRules(GameRules):
    kind = 'ttt'
    seats = ('X', 'O')

    def initial_state(self):
        return TicTacToeState()

    def seats_to_act(self, state):
        return (state.turn,)

    def turn_key(self, state):
        return state.marks

    def legal_actions(self, state, seat):
        if seat != state.turn or self.is_terminal(state):
            return []
        return [i for i, cell in enumerate(state.board) if cell is None]

    def apply_action(self, state, seat, action):
        index = _cell_index(action)
        if seat != state.turn:
            raise IllegalAction(f'It is {state.turn} to move')
        if state.board[index] is not None:
            raise IllegalAction('Cell is already taken')
        board = list(state.board)
        board[index] = seat
        new_state = replace(state, board=tuple(board), turn='O' if seat == 'X' else 'X')
        return new_state, {'index': index, 'mark': seat}

    def is_terminal(self, state):
        for a, b, c in WINNING_LINES:
            if state.board[a] and state.board[a] == state.board[b] == state.board[c]:
                return TerminalInfo(state.board[a], EndReason.THREE_IN_ROW)
        if all(cell is not None for cell in state.board):
            return TerminalInfo(DRAW, EndReason.BOARD_FULL)
        return None

    def on_timeout(self, state, rng):
        empty = self.legal_actions(state, state.turn)
        if not empty:
            return []
        return [(state.turn, {'index': rng.choice(empty)})]

    def serialize(self, state):
        return {'board': list(state.board), 'turn': state.turn}
