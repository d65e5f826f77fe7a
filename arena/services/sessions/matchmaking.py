import threading
from collections import OrderedDict
from typing import Dict, Optional, Tuple

from arena.errors import SeatUnavailable, SessionNotFound
from .session import Phase


class MatchmakingQueue:
    """FIFO pairing of identities looking for an opponent in one game kind.

    The identity that waited in the queue is not polling when it gets
    paired, so its result is parked in ``_pending`` and handed out exactly
    once on its next ``join`` or ``status`` call. Parked results nobody
    collects expire after ``pending_ttl`` seconds.
    """

    def __init__(self, kind: str, registry, coordinator, logger=None, pending_ttl: float = 600):
        self.kind = kind
        self.registry = registry
        self.coordinator = coordinator
        self.logger = logger or coordinator.logger
        self._waiting: "OrderedDict[str, str]" = OrderedDict()  # identity -> name
        self.pending_ttl = pending_ttl
        self._pending: Dict[str, Tuple[dict, float]] = {}  # identity -> (result, parked at)
        self._lock = threading.RLock()

    def position(self, identity: str) -> int:
        for idx, queued in enumerate(self._waiting, start=1):
            if queued == identity:
                return idx
        return 0

    def join(self, identity: str, name: str) -> dict:
        with self._lock:
            pending = self._take_pending(identity)
            if pending is not None:
                return pending
            if identity in self._waiting:
                return {'status': 'waiting', 'position': self.position(identity)}

            direct = self._join_open_session(identity, name)
            if direct is not None:
                return direct

            opponent = next((q for q in self._waiting if q != identity), None)
            if opponent is None:
                self._waiting[identity] = name
                self.logger.info(f"[queue] kind={self.kind} identity={identity} waiting position={self.position(identity)}")
                return {'status': 'waiting', 'position': self.position(identity)}

            opponent_name = self._waiting.pop(opponent)
            rules = self.coordinator.rules_for(self.kind)
            session = self.coordinator.create_session(self.kind, opponent, opponent_name, seat=rules.seats[0])
            opponent_seat = session.seat_of(opponent)
            seat = self.coordinator.take_seat(session.code, identity, name)
            self._pending[opponent] = ({
                'status': 'matched',
                'code': session.code,
                'seat': opponent_seat,
                'opponent': name,
            }, self.coordinator.scheduler.now())
            self.logger.info(f"[queue] kind={self.kind} paired code={session.code} {opponent}={opponent_seat} {identity}={seat}")
            return {'status': 'matched', 'code': session.code, 'seat': seat, 'opponent': opponent_name}

    def _join_open_session(self, identity: str, name: str):
        for session in self.registry.list(self.kind):
            if session.phase != Phase.WAITING or len(session.open_seats()) != 1:
                continue
            if session.seat_of(identity) is not None:
                continue
            try:
                seat = self.coordinator.take_seat(session.code, identity, name, kind=self.kind)
            except (SeatUnavailable, SessionNotFound):
                # Filled or torn down since we listed it
                continue
            host = next((p for p in session.seated() if p.identity != identity), None)
            self.logger.info(f"[queue] kind={self.kind} identity={identity} joined open code={session.code}")
            return {'status': 'matched', 'code': session.code, 'seat': seat, 'opponent': host.name if host else None}
        return None

    def _take_pending(self, identity: str) -> Optional[dict]:
        now = self.coordinator.scheduler.now()
        for stale in [i for i, (_, parked) in self._pending.items() if now - parked >= self.pending_ttl]:
            del self._pending[stale]
        entry = self._pending.pop(identity, None)
        if entry is None:
            return None
        result, _ = entry
        if result['code'] not in self.registry:
            # Torn down before the identity came back for it
            return None
        return result

    def status(self, identity: str) -> dict:
        with self._lock:
            pending = self._take_pending(identity)
            if pending is not None:
                return pending
            if identity in self._waiting:
                return {'status': 'waiting', 'position': self.position(identity)}
            return {'status': 'idle'}

    def leave(self, identity: str) -> bool:
        with self._lock:
            self._pending.pop(identity, None)
            return self._waiting.pop(identity, None) is not None

    def __len__(self):
        return len(self._waiting)
