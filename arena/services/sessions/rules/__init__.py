from .base import GameRules, TerminalInfo
from .chess_rules import ChessRules
from .rps import RPSRules
from .tictactoe import TicTacToeRules


def build_rules(config):
    """Rules engines keyed by game kind, tuned from the app config."""
    return {
        'chess': ChessRules(
            turn_duration=int(config.get('CHESS_MOVE_TIMEOUT_SEC', 0)),
            timeout_policy=config.get('CHESS_TIMEOUT_POLICY', 'random'),
        ),
        'rps': RPSRules(
            turn_duration=int(config.get('RPS_ROUND_SEC', 3)),
            winning_score=int(config.get('RPS_WINNING_SCORE', 2)),
            max_rounds=int(config.get('RPS_MAX_ROUNDS', 3)),
        ),
        'ttt': TicTacToeRules(turn_duration=int(config.get('TTT_TURN_SEC', 5))),
    }


__all__ = ['GameRules', 'TerminalInfo', 'ChessRules', 'RPSRules', 'TicTacToeRules', 'build_rules']
