from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..session import EndReason


@dataclass(frozen=True)
class TerminalInfo:
    winner: str  # seat label or 'draw'
    reason: EndReason


class GameRules:
    """Game-specific collaborator of the session coordinator.

    The coordinator never looks inside ``state``; it asks the rules which
    seats may act, applies actions through them and asks whether the result
    is terminal. Implementations must not mutate the state they are given:
    ``apply_action`` returns a new state or raises ``IllegalAction``.
    """

    kind: str = ''
    seats: Tuple[str, ...] = ()
    # Finished sessions of this kind are handed to the game archive
    persists_history: bool = False
    # Side given to a host that asked for none: a seat label, 'random', or None for the first seat
    default_host_seat: Optional[str] = None

    def __init__(self, turn_duration: float = 0):
        self.turn_duration = turn_duration

    def initial_state(self) -> Any:
        raise NotImplementedError

    def seats_to_act(self, state) -> Sequence[str]:
        raise NotImplementedError

    def turn_key(self, state) -> int:
        """Counter that changes exactly when a new turn (or round) begins."""
        raise NotImplementedError

    def legal_actions(self, state, seat: str) -> List[Any]:
        raise NotImplementedError

    def apply_action(self, state, seat: str, action) -> Tuple[Any, Dict[str, Any]]:
        raise NotImplementedError

    def is_terminal(self, state) -> Optional[TerminalInfo]:
        raise NotImplementedError

    def on_timeout(self, state, rng):
        """Fallback for an expired turn.

        Returns a list of ``(seat, action)`` pairs to apply as forced actions,
        or a ``TerminalInfo`` when the game should end on time instead.
        """
        raise NotImplementedError

    def serialize(self, state) -> Dict[str, Any]:
        raise NotImplementedError

    def pick_host_seat(self, preference, rng) -> str:
        if preference is None:
            preference = self.default_host_seat
        if preference in self.seats:
            return preference
        if preference == 'random':
            return rng.choice(self.seats)
        return self.seats[0]
