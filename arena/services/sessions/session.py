import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class Phase(str, Enum):
    WAITING = 'waiting'
    ACTIVE = 'active'
    TERMINAL = 'terminal'


class EndReason(str, Enum):
    CHECKMATE = 'checkmate'
    STALEMATE = 'stalemate'
    REPETITION = 'repetition'
    INSUFFICIENT = 'insufficient'
    DRAW = 'draw'
    THREE_IN_ROW = 'three_in_row'
    BOARD_FULL = 'board_full'
    BEST_OF = 'best_of'
    TIMEOUT = 'timeout'
    RESIGN = 'resign'
    ABANDONED = 'abandoned'
    DRAW_AGREEMENT = 'draw_agreement'


DRAW = 'draw'


@dataclass
class Participant:
    identity: str
    name: str
    seat: str
    connected: bool = False
    disconnected_at: Optional[float] = None
    # Played by the server; always connected, never counted for abandonment
    is_bot: bool = False

    def to_dict(self):
        return {
            'id': self.identity,
            'name': self.name,
            'seat': self.seat,
            'connected': self.connected,
            'disconnected_at': self.disconnected_at,
            'bot': self.is_bot,
        }


@dataclass
class Result:
    winner: str  # seat label or DRAW
    reason: EndReason

    def to_dict(self):
        return {'winner': self.winner, 'reason': self.reason.value}


@dataclass(eq=False)
class Session:
    code: str
    kind: str
    seats: Dict[str, Optional[Participant]]
    state: Any
    host: Optional[str] = None
    observers: Dict[str, str] = field(default_factory=dict)
    phase: Phase = Phase.WAITING
    active_timer: Any = None
    deadline: Optional[float] = None
    draw_offer: Optional[str] = None
    result: Optional[Result] = None
    created_at: float = field(default_factory=time.time)
    started_at: Optional[float] = None
    ended_at: Optional[float] = None
    record_id: Optional[int] = None
    lock: Any = field(default_factory=threading.RLock, repr=False)

    @property
    def room(self) -> str:
        return f"game:{self.code}"

    def seat_of(self, identity: str) -> Optional[str]:
        for seat, participant in self.seats.items():
            if participant is not None and participant.identity == identity:
                return seat
        return None

    def participant(self, seat: str) -> Optional[Participant]:
        return self.seats.get(seat)

    def open_seats(self):
        return [seat for seat, p in self.seats.items() if p is None]

    def is_full(self) -> bool:
        return not self.open_seats()

    def opponent_seat(self, seat: str) -> Optional[str]:
        others = [s for s in self.seats if s != seat]
        return others[0] if len(others) == 1 else None

    def seated(self):
        return [p for p in self.seats.values() if p is not None]

    def humans(self):
        return [p for p in self.seated() if not p.is_bot]

    def to_dict(self, rules) -> Dict[str, Any]:
        return {
            'code': self.code,
            'kind': self.kind,
            'phase': self.phase.value,
            'host': self.host,
            'seats': {seat: (p.to_dict() if p else None) for seat, p in self.seats.items()},
            'observers': [{'id': i, 'name': n} for i, n in self.observers.items()],
            'state': rules.serialize(self.state),
            'turn': list(rules.seats_to_act(self.state)) if self.phase == Phase.ACTIVE else [],
            'deadline': self.deadline,
            'draw_offer': self.draw_offer,
            'result': self.result.to_dict() if self.result else None,
            'created_at': self.created_at,
            'started_at': self.started_at,
            'ended_at': self.ended_at,
            'record_id': self.record_id,
        }
