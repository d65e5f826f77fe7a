import random
import string
import threading
from typing import Dict, List, Optional

from arena.errors import SessionNotFound
from .session import Phase, Session


CODE_ALPHABET = string.ascii_uppercase + string.digits


class SessionRegistry:
    """Live sessions keyed by their public code.

    The only structure shared across sessions; every mutation happens under
    the registry lock in a single step.
    """

    def __init__(self, code_length: int = 6, rng: Optional[random.Random] = None):
        self.code_length = code_length
        self._rng = rng or random.Random()
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()

    def _generate_code(self) -> str:
        while True:
            code = ''.join(self._rng.choices(CODE_ALPHABET, k=self.code_length))
            if code not in self._sessions:
                return code

    def create(self, kind: str, seats, state, host: Optional[str] = None, created_at: Optional[float] = None) -> Session:
        with self._lock:
            session = Session(
                code=self._generate_code(),
                kind=kind,
                seats={seat: None for seat in seats},
                state=state,
                host=host,
            )
            if created_at is not None:
                session.created_at = created_at
            self._sessions[session.code] = session
            return session

    def get(self, code: str, kind: Optional[str] = None) -> Session:
        session = self.peek(code)
        if session is None or (kind is not None and session.kind != kind):
            raise SessionNotFound()
        return session

    def peek(self, code: Optional[str]) -> Optional[Session]:
        if not code:
            return None
        return self._sessions.get(code.upper())

    def remove(self, code: str) -> Optional[Session]:
        with self._lock:
            return self._sessions.pop(code.upper(), None)

    def list(self, kind: Optional[str] = None, include_finished: bool = False) -> List[Session]:
        sessions = list(self._sessions.values())
        return [
            s for s in sessions
            if (kind is None or s.kind == kind) and (include_finished or s.phase != Phase.TERMINAL)
        ]

    def __contains__(self, code) -> bool:
        return self.peek(code) is not None

    def __len__(self):
        return len(self._sessions)
