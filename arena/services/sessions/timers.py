import itertools
import time
from typing import Callable, Optional


_handle_ids = itertools.count(1)


class TimerHandle:
    """One scheduled callback. Cancelling is synchronous and final."""

    def __init__(self, code: str, label: str, delay: float, deadline: float):
        self.id = next(_handle_ids)
        self.code = code
        self.label = label
        self.delay = delay
        self.deadline = deadline
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True

    def __repr__(self):
        return f"<TimerHandle {self.id} code={self.code} label={self.label} deadline={self.deadline}>"


class BackgroundScheduler:
    """Run timers as Socket.IO background tasks.

    Each timer sleeps on ``socketio.sleep`` so it cooperates with whatever
    async mode the server runs under, then calls back unless cancelled.
    """

    def __init__(self, socketio, logger=None, clock: Callable[[], float] = time.time):
        self.socketio = socketio
        self.logger = logger
        self.clock = clock

    def now(self) -> float:
        return self.clock()

    def schedule(self, code: str, label: str, delay: float, callback: Callable[[TimerHandle], None]) -> TimerHandle:
        handle = TimerHandle(code, label, delay, self.now() + delay)

        def _worker(h: TimerHandle):
            self.socketio.sleep(h.delay)
            if h.cancelled:
                return
            h.fired = True
            try:
                callback(h)
            except Exception:
                if self.logger:
                    self.logger.exception(f"[timer-error] code={h.code} label={h.label}")

        self.socketio.start_background_task(_worker, handle)
        return handle


class ManualScheduler:
    """Scheduler driven by an explicit clock; ``advance`` fires due timers in order."""

    def __init__(self, start: float = 1_000_000.0):
        self._now = start
        self._pending = []

    def now(self) -> float:
        return self._now

    def schedule(self, code, label, delay, callback) -> TimerHandle:
        handle = TimerHandle(code, label, delay, self._now + delay)
        self._pending.append((handle, callback))
        return handle

    def pending(self, code: Optional[str] = None):
        return [h for h, _ in self._pending if not h.cancelled and not h.fired and (code is None or h.code == code)]

    def advance(self, seconds: float) -> int:
        target = self._now + seconds
        fired = 0
        while True:
            due = sorted(
                (entry for entry in self._pending if not entry[0].cancelled and not entry[0].fired and entry[0].deadline <= target),
                key=lambda entry: (entry[0].deadline, entry[0].id),
            )
            if not due:
                break
            handle, callback = due[0]
            self._now = max(self._now, handle.deadline)
            handle.fired = True
            callback(handle)
            fired += 1
        self._pending = [e for e in self._pending if not e[0].cancelled and not e[0].fired]
        self._now = target
        return fired
