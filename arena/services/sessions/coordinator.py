import logging
import random
from contextlib import contextmanager
from typing import Dict, List, Optional

from arena.errors import (
    IllegalAction,
    InvalidPhase,
    NotYourTurn,
    SeatUnavailable,
    SessionInconsistent,
    SessionNotFound,
    StaleTimer,
    UnknownGameKind,
    WrongParticipant,
)
from .rules.base import GameRules, TerminalInfo
from .session import DRAW, EndReason, Participant, Phase, Result, Session


TURN_TIMER = 'turn'
ABANDON_TIMER = 'abandon'


class SessionCoordinator:
    """Owns every transition of every live session.

    Each public operation resolves the session by code and runs under that
    session's lock, so transitions on one session never interleave while
    different sessions proceed independently. A rejected operation raises
    before anything on the session is touched.
    """

    def __init__(
        self,
        registry,
        broadcaster,
        scheduler,
        rules: Dict[str, GameRules],
        archive=None,
        logger: Optional[logging.Logger] = None,
        abandon_grace: float = 60,
        abandon_teardown: float = 300,
        finished_ttl: float = 3600,
        waiting_ttl: float = 1800,
        strict: bool = False,
        rng: Optional[random.Random] = None,
    ):
        self.registry = registry
        self.broadcaster = broadcaster
        self.scheduler = scheduler
        self.rules = rules
        self.archive = archive
        self.logger = logger or logging.getLogger(__name__)
        self.abandon_grace = abandon_grace
        self.abandon_teardown = abandon_teardown
        self.finished_ttl = finished_ttl
        self.waiting_ttl = waiting_ttl
        self.strict = strict
        self.rng = rng or random.Random()
        # Objects with session_activated(code) and session_torndown(code), e.g. the bot driver
        self.listeners = []

    # ---- lookup helpers ----

    def rules_for(self, kind: str) -> GameRules:
        rules = self.rules.get(kind)
        if rules is None:
            raise UnknownGameKind(f"Unknown game type: {kind}")
        return rules

    @contextmanager
    def _locked(self, code: str, kind: Optional[str] = None):
        session = self.registry.get(code, kind)
        with session.lock:
            # Torn down while we waited for the lock
            if self.registry.peek(code) is not session:
                raise SessionNotFound()
            yield session

    def _now(self) -> float:
        return self.scheduler.now()

    def _inconsistent(self, session: Session, message: str) -> None:
        if self.strict:
            raise SessionInconsistent(f"{session.code}: {message}")
        self.logger.error(f"[inconsistent] code={session.code} {message}")

    def _publish(self, session: Session, event: str, payload) -> None:
        self.broadcaster.publish(session.code, event, payload)

    def _publish_snapshot(self, session: Session) -> None:
        self._publish(session, 'session_snapshot', session.to_dict(self.rules_for(session.kind)))

    def _require_seat(self, session: Session, identity: str) -> str:
        seat = session.seat_of(identity)
        if seat is None:
            raise WrongParticipant()
        return seat

    def _require_phase(self, session: Session, phase: Phase) -> None:
        if session.phase == phase:
            return
        if session.phase == Phase.TERMINAL:
            raise InvalidPhase('Game is already over')
        if phase == Phase.TERMINAL:
            raise InvalidPhase('Game is not over yet')
        raise InvalidPhase('Game has not started')

    # ---- timers ----

    def _cancel_timer(self, session: Session) -> None:
        handle = session.active_timer
        if handle is not None:
            handle.cancel()
            self.logger.info(f"[timer-cancel] code={session.code} label={handle.label}")
        session.active_timer = None
        session.deadline = None

    def _arm_timer(self, session: Session, label: str, delay: float) -> None:
        self._cancel_timer(session)
        handle = self.scheduler.schedule(session.code, label, delay, self._on_timer)
        session.active_timer = handle
        if label == TURN_TIMER:
            session.deadline = handle.deadline
        self.logger.info(f"[timer-set] code={session.code} label={label} duration={delay}s deadline={handle.deadline}")

    def _on_timer(self, handle) -> None:
        try:
            session = self.registry.peek(handle.code)
            if session is None:
                raise StaleTimer('session gone')
            with session.lock:
                if self.registry.peek(handle.code) is not session:
                    raise StaleTimer('session torn down')
                if session.active_timer is not handle or handle.cancelled:
                    raise StaleTimer('superseded')
                if session.phase == Phase.TERMINAL:
                    raise StaleTimer('session finished')
                session.active_timer = None
                session.deadline = None
                self.logger.info(f"[timer-fire] code={session.code} label={handle.label} phase={session.phase.value}")
                if handle.label == ABANDON_TIMER:
                    self._abandon(session)
                else:
                    self._turn_expired(session)
        except StaleTimer as exc:
            self.logger.info(f"[timer-stale] code={handle.code} label={handle.label} reason={exc}")

    def _turn_expired(self, session: Session) -> None:
        if session.phase != Phase.ACTIVE:
            raise StaleTimer('session not active')
        rules = self.rules_for(session.kind)
        fallback = rules.on_timeout(session.state, self.rng)
        if isinstance(fallback, TerminalInfo):
            self._finish(session, fallback.winner, fallback.reason)
            return
        for seat, action in fallback:
            self._commit(session, seat, action, forced=True)
            if session.phase != Phase.ACTIVE:
                return
        if session.active_timer is None:
            self._inconsistent(session, 'turn did not advance after timeout fallback')
            self._begin_turn(session)

    def _abandon(self, session: Session) -> None:
        if any(p.connected for p in session.humans()):
            raise StaleTimer('a player came back')
        if session.phase == Phase.ACTIVE:
            self._finish(session, DRAW, EndReason.ABANDONED)
        self._teardown(session)

    # ---- transitions ----

    def create_session(self, kind: str, identity: str, name: str, seat: Optional[str] = None, bot: bool = False) -> Session:
        rules = self.rules_for(kind)
        self.prune()
        session = self.registry.create(kind, rules.seats, rules.initial_state(), host=identity, created_at=self._now())
        host_seat = rules.pick_host_seat(seat, self.rng)
        with session.lock:
            session.seats[host_seat] = Participant(identity=identity, name=name, seat=host_seat, connected=bot, is_bot=bot)
        self.logger.info(f"[session-create] code={session.code} kind={kind} host={identity} seat={host_seat}")
        return session

    def snapshot(self, code: str, kind: Optional[str] = None) -> dict:
        with self._locked(code, kind) as session:
            return session.to_dict(self.rules_for(session.kind))

    def join_room(self, code: str, identity: str, name: str) -> dict:
        """Subscribe an identity: seated identities reconnect, others observe."""
        with self._locked(code) as session:
            seat = session.seat_of(identity)
            if seat is not None:
                participant = session.participant(seat)
                was_connected = participant.connected
                participant.connected = True
                participant.disconnected_at = None
                if not was_connected:
                    self.logger.info(f"[reconnect] code={session.code} seat={seat}")
                if session.active_timer is not None and session.active_timer.label == ABANDON_TIMER:
                    self._cancel_timer(session)
                    if session.phase == Phase.ACTIVE:
                        self._begin_turn(session, announce=False)
            else:
                session.observers[identity] = name
            snapshot = session.to_dict(self.rules_for(session.kind))
            self._publish(session, 'session_snapshot', snapshot)
            return snapshot

    def leave_room(self, code: str, identity: str) -> None:
        with self._locked(code) as session:
            seat = session.seat_of(identity)
            if seat is None:
                session.observers.pop(identity, None)
                self._publish_snapshot(session)
                return
            participant = session.participant(seat)
            if not participant.connected:
                return
            participant.connected = False
            participant.disconnected_at = self._now()
            self.logger.info(f"[disconnect] code={session.code} seat={seat}")
            self._publish(session, 'participant_disconnected', {
                'seat': seat,
                'name': participant.name,
                'disconnected_at': participant.disconnected_at,
            })
            self._publish_snapshot(session)
            humans = session.humans()
            if session.phase != Phase.TERMINAL and not any(p.connected for p in humans):
                self._arm_timer(session, ABANDON_TIMER, self.abandon_teardown)

    def take_seat(
        self, code: str, identity: str, name: str, seat: Optional[str] = None, kind: Optional[str] = None, bot: bool = False
    ) -> str:
        with self._locked(code, kind) as session:
            current = session.seat_of(identity)
            if current is not None:
                return current
            if session.phase == Phase.TERMINAL:
                raise SeatUnavailable('Game is already over')
            open_seats = session.open_seats()
            if seat is None:
                if not open_seats:
                    raise SeatUnavailable('Game is full')
                seat = open_seats[0]
            elif seat not in session.seats:
                raise SeatUnavailable(f'No such seat: {seat}')
            elif seat not in open_seats:
                raise SeatUnavailable(f'Seat {seat} is taken')
            session.seats[seat] = Participant(identity=identity, name=name, seat=seat, connected=True, is_bot=bot)
            session.observers.pop(identity, None)
            self.logger.info(f"[seat] code={session.code} seat={seat} identity={identity}")
            self._publish(session, 'participant_joined', {'seat': seat, 'name': name})
            if session.phase == Phase.WAITING and session.is_full():
                self._activate(session)
            else:
                self._publish_snapshot(session)
            return seat

    def _activate(self, session: Session) -> None:
        session.phase = Phase.ACTIVE
        session.started_at = self._now()
        self.logger.info(f"[start] code={session.code} kind={session.kind}")
        self._publish_snapshot(session)
        self._begin_turn(session)
        for listener in self.listeners:
            listener.session_activated(session.code)

    def _begin_turn(self, session: Session, announce: bool = True) -> None:
        rules = self.rules_for(session.kind)
        self._cancel_timer(session)
        if rules.turn_duration:
            self._arm_timer(session, TURN_TIMER, rules.turn_duration)
        payload = {
            'phase': session.phase.value,
            'turn': list(rules.seats_to_act(session.state)),
            'turn_key': rules.turn_key(session.state),
            'deadline': session.deadline,
            'time_limit': rules.turn_duration or None,
        }
        if announce or session.deadline is not None:
            self._publish(session, 'phase_changed', payload)

    def submit_action(self, code: str, identity: str, action, kind: Optional[str] = None) -> dict:
        with self._locked(code, kind) as session:
            self._require_phase(session, Phase.ACTIVE)
            seat = self._require_seat(session, identity)
            if seat not in self.rules_for(session.kind).seats_to_act(session.state):
                raise NotYourTurn()
            return self._commit(session, seat, action, forced=False)

    def _commit(self, session: Session, seat: str, action, forced: bool) -> dict:
        rules = self.rules_for(session.kind)
        new_state, descriptor = rules.apply_action(session.state, seat, action)
        turn_advanced = rules.turn_key(new_state) != rules.turn_key(session.state)
        if turn_advanced:
            self._cancel_timer(session)
        session.state = new_state
        session.draw_offer = None
        self.logger.info(f"[action] code={session.code} seat={seat} forced={forced}")
        self._publish(session, 'action_applied', {'seat': seat, 'forced': forced, 'action': descriptor})
        terminal = rules.is_terminal(new_state)
        if terminal is not None:
            self._finish(session, terminal.winner, terminal.reason)
        elif turn_advanced:
            self._begin_turn(session)
        return descriptor

    def _finish(self, session: Session, winner: str, reason: EndReason) -> None:
        if session.phase == Phase.TERMINAL:
            return
        self._cancel_timer(session)
        session.phase = Phase.TERMINAL
        session.result = Result(winner=winner, reason=reason)
        session.draw_offer = None
        session.ended_at = self._now()
        self.logger.info(f"[terminal] code={session.code} winner={winner} reason={reason.value}")
        if self.rules_for(session.kind).persists_history and self.archive is not None:
            try:
                session.record_id = self.archive.save(session)
            except Exception:
                self.logger.exception(f"[archive-error] code={session.code}")
        winner_participant = session.participant(winner) if winner != DRAW else None
        self._publish(session, 'session_terminal', {
            'winner': winner,
            'winner_name': winner_participant.name if winner_participant else None,
            'reason': reason.value,
            'record_id': session.record_id,
        })

    def resign(self, code: str, identity: str, kind: Optional[str] = None) -> dict:
        with self._locked(code, kind) as session:
            self._require_phase(session, Phase.ACTIVE)
            seat = self._require_seat(session, identity)
            opponent = session.opponent_seat(seat)
            if opponent is None:
                self._inconsistent(session, f'no opponent seat for {seat}')
                return session.to_dict(self.rules_for(session.kind))
            self._finish(session, opponent, EndReason.RESIGN)
            return session.result.to_dict()

    def offer_draw(self, code: str, identity: str, kind: Optional[str] = None) -> None:
        with self._locked(code, kind) as session:
            self._require_phase(session, Phase.ACTIVE)
            seat = self._require_seat(session, identity)
            if session.draw_offer is not None:
                raise InvalidPhase('A draw offer is already pending')
            session.draw_offer = seat
            self._publish(session, 'draw_offered', {'seat': seat, 'name': session.participant(seat).name})

    def respond_draw(self, code: str, identity: str, accept: bool, kind: Optional[str] = None) -> None:
        with self._locked(code, kind) as session:
            self._require_phase(session, Phase.ACTIVE)
            seat = self._require_seat(session, identity)
            if session.draw_offer is None or session.draw_offer == seat:
                raise InvalidPhase('No draw offer to respond to')
            if accept:
                self._finish(session, DRAW, EndReason.DRAW_AGREEMENT)
                return
            offered_by = session.draw_offer
            session.draw_offer = None
            self._publish(session, 'draw_declined', {'seat': seat, 'offered_by': offered_by})

    def claim_abandonment(self, code: str, identity: str, outcome: str, kind: Optional[str] = None) -> dict:
        if outcome not in ('win', 'draw'):
            raise IllegalAction('Claim must be win or draw')
        with self._locked(code, kind) as session:
            self._require_phase(session, Phase.ACTIVE)
            seat = self._require_seat(session, identity)
            claimant = session.participant(seat)
            if not claimant.connected:
                raise WrongParticipant('You must be connected to claim')
            opponent_seat = session.opponent_seat(seat)
            opponent = session.participant(opponent_seat) if opponent_seat else None
            if opponent is None:
                self._inconsistent(session, f'active session without opponent for {seat}')
                raise InvalidPhase('No opponent to claim against')
            if opponent.connected or opponent.disconnected_at is None:
                raise InvalidPhase('Opponent is still connected')
            waited = self._now() - opponent.disconnected_at
            if waited < self.abandon_grace:
                raise InvalidPhase(f'Opponent may still reconnect ({int(self.abandon_grace - waited)}s left)')
            self._finish(session, seat if outcome == 'win' else DRAW, EndReason.ABANDONED)
            return session.result.to_dict()

    def continue_session(self, code: str, identity: str, kind: Optional[str] = None) -> dict:
        with self._locked(code, kind) as session:
            self._require_phase(session, Phase.TERMINAL)
            self._require_seat(session, identity)
            rules = self.rules_for(session.kind)
            self._cancel_timer(session)
            session.state = rules.initial_state()
            session.result = None
            session.draw_offer = None
            session.record_id = None
            session.started_at = None
            session.ended_at = None
            session.phase = Phase.WAITING
            self.logger.info(f"[reset] code={session.code}")
            self._publish(session, 'session_reset', {'code': session.code})
            if session.is_full():
                self._activate(session)
            else:
                self._publish_snapshot(session)
            return session.to_dict(rules)

    def end_session(self, code: str, identity: str, kind: Optional[str] = None) -> None:
        with self._locked(code, kind) as session:
            self._require_phase(session, Phase.TERMINAL)
            self._teardown(session)

    def _teardown(self, session: Session) -> None:
        self._cancel_timer(session)
        self.registry.remove(session.code)
        self.logger.info(f"[teardown] code={session.code}")
        self._publish(session, 'session_torndown', {'code': session.code})
        self.broadcaster.close_room(session.code)
        for listener in self.listeners:
            listener.session_torndown(session.code)

    def abort_session(self, code: str, kind: Optional[str] = None) -> None:
        """Stop a session from the server side: an active game ends as an abandoned draw."""
        with self._locked(code, kind) as session:
            if session.phase == Phase.ACTIVE:
                self._finish(session, DRAW, EndReason.ABANDONED)
            self._teardown(session)

    # ---- housekeeping ----

    def _expired(self, session: Session, now: float) -> bool:
        if session.phase == Phase.TERMINAL:
            return session.ended_at is not None and now - session.ended_at >= self.finished_ttl
        if session.phase == Phase.WAITING:
            # Nobody is watching the seat open
            return now - session.created_at >= self.waiting_ttl and not any(p.connected for p in session.humans())
        return False

    def prune(self) -> List[str]:
        """Tear down finished sessions past their TTL and abandoned waiting ones."""
        now = self._now()
        removed = []
        for session in self.registry.list(include_finished=True):
            with session.lock:
                if self.registry.peek(session.code) is not session or not self._expired(session, now):
                    continue
                self._teardown(session)
                removed.append(session.code)
        if removed:
            self.logger.info(f"[prune] removed={','.join(removed)}")
        return removed
