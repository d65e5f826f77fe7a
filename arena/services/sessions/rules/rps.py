"""Rock-paper-scissors, best of three.

Both seats pick during the same round; the round resolves the moment the
second pick lands, so a round is the unit the turn timer guards.
"""
from dataclasses import dataclass, field, replace
from typing import Dict, Tuple

from arena.errors import IllegalAction
from ..session import DRAW, EndReason
from .base import GameRules, TerminalInfo


CHOICES = ('rock', 'paper', 'scissors')
BEATS = {'rock': 'scissors', 'paper': 'rock', 'scissors': 'paper'}


@dataclass(frozen=True)
class RPSState:
    round: int = 1
    picks: Dict[str, str] = field(default_factory=dict)
    scores: Dict[str, int] = field(default_factory=lambda: {'p1': 0, 'p2': 0})
    results: Tuple[dict, ...] = ()


def round_winner(p1: str, p2: str) -> str:
    if p1 == p2:
        return DRAW
    return 'p1' if BEATS[p1] == p2 else 'p2'


class RPSRules(GameRules):
    kind = 'rps'
    seats = ('p1', 'p2')

    def __init__(self, turn_duration=3, winning_score=2, max_rounds=3):
        super().__init__(turn_duration)
        self.winning_score = winning_score
        self.max_rounds = max_rounds

    def initial_state(self):
        return RPSState()

    def seats_to_act(self, state):
        if self.is_terminal(state):
            return ()
        return tuple(s for s in self.seats if s not in state.picks)

    def turn_key(self, state):
        return state.round

    def legal_actions(self, state, seat):
        if seat not in self.seats_to_act(state):
            return []
        return list(CHOICES)

    def apply_action(self, state, seat, action):
        choice = action.get('choice') if isinstance(action, dict) else action
        if choice not in CHOICES:
            raise IllegalAction('Pick must be rock, paper or scissors')
        if seat in state.picks:
            raise IllegalAction('Already picked this round')
        picks = dict(state.picks)
        picks[seat] = choice
        descriptor = {'seat': seat, 'locked': True, 'round': state.round}
        if len(picks) < len(self.seats):
            return replace(state, picks=picks), descriptor

        winner = round_winner(picks['p1'], picks['p2'])
        scores = dict(state.scores)
        if winner != DRAW:
            scores[winner] += 1
        outcome = {'round': state.round, 'p1_pick': picks['p1'], 'p2_pick': picks['p2'], 'winner': winner}
        resolved = replace(state, picks={}, scores=scores, results=state.results + (outcome,))
        if not self.is_terminal(resolved):
            resolved = replace(resolved, round=state.round + 1)
        descriptor['round_result'] = dict(outcome, scores=scores)
        return resolved, descriptor

    def is_terminal(self, state):
        if not state.results:
            return None
        p1, p2 = state.scores['p1'], state.scores['p2']
        if max(p1, p2) < self.winning_score and len(state.results) < self.max_rounds:
            return None
        if p1 > p2:
            return TerminalInfo('p1', EndReason.BEST_OF)
        if p2 > p1:
            return TerminalInfo('p2', EndReason.BEST_OF)
        return TerminalInfo(DRAW, EndReason.BEST_OF)

    def on_timeout(self, state, rng):
        return [(seat, {'choice': rng.choice(CHOICES)}) for seat in self.seats_to_act(state)]

    def serialize(self, state):
        # Picks stay hidden until the round resolves
        return {
            'round': state.round,
            'locked': {seat: seat in state.picks for seat in self.seats},
            'scores': dict(state.scores),
            'results': list(state.results),
        }
