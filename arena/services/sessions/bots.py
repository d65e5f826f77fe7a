"""Server-side players.

A bot occupies a seat like anyone else and plays through
``SessionCoordinator.submit_action``. Each bot session gets a polling task
on the scheduler (label ``bot``) that moves whenever one of its seats is to
act. Bot-vs-bot battles are chess sessions with both seats taken by bots,
watched by observers.
"""
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import chess

from arena.errors import ArenaError, SeatUnavailable, SessionNotFound
from .coordinator import ABANDON_TIMER
from .rules.chess_rules import PIECE_VALUES, heuristic_move
from .session import Phase


BOT_TIMER = 'bot'
DEFAULT_STYLE = 'heuristic'

# style -> display name
BOT_PROFILES = {
    'heuristic': 'Moltbot',
    'aggressive': 'Alpha',
    'defensive': 'Bravo',
    'random': 'Charlie',
    'tactical': 'Delta',
    'positional': 'Gamma',
}
BATTLE_STYLES = ('aggressive', 'defensive', 'random', 'tactical', 'positional')

CENTER = (chess.D4, chess.E4, chess.D5, chess.E5)
MATE_SCORE = 10000


def _centrality(square: int) -> int:
    return 3 - min(chess.square_distance(square, c) for c in CENTER)


def score_move(board: chess.Board, move: chess.Move, style: str, rng) -> float:
    """Rough preference of ``style`` for ``move``; higher is better."""
    if style == 'random':
        return rng.random() * 100
    score = rng.random() * 10
    piece = board.piece_type_at(move.from_square)
    victim = board.piece_type_at(move.to_square) if board.is_capture(move) else None
    if victim is None and board.is_en_passant(move):
        victim = chess.PAWN
    check = board.gives_check(move)
    board.push(move)
    mate = board.is_checkmate()
    board.pop()

    if style == 'aggressive':
        if victim:
            score += PIECE_VALUES[victim] * 200
        if check:
            score += 150
        forward = chess.square_rank(move.to_square) - chess.square_rank(move.from_square)
        if (forward > 0) == (board.turn == chess.WHITE) and forward:
            score += 20
    elif style == 'defensive':
        if board.is_castling(move):
            score += 200
        if piece == chess.PAWN:
            score += 30
        if board.fullmove_number < 10 and not victim:
            score += 50
    elif style == 'tactical':
        if victim:
            score += PIECE_VALUES[victim] * 1000 - PIECE_VALUES.get(piece, 0) * 100
        if check:
            score += 100
        if piece == chess.KNIGHT:
            score += _centrality(move.to_square) * 15
    elif style == 'positional':
        score += _centrality(move.to_square) * 40
        home_rank = 0 if board.turn == chess.WHITE else 7
        if board.fullmove_number < 12 and piece in (chess.KNIGHT, chess.BISHOP) \
                and chess.square_rank(move.from_square) == home_rank:
            score += 60
        if piece == chess.PAWN:
            score += _centrality(move.to_square) * 10
    if mate:
        score += MATE_SCORE
    return score


def select_move(board: chess.Board, style: str, rng) -> Optional[chess.Move]:
    moves = list(board.legal_moves)
    if not moves:
        return None
    if style == DEFAULT_STYLE:
        return heuristic_move(board.copy(), rng)
    scored = sorted(((score_move(board, m, style, rng), m) for m in moves), key=lambda sm: sm[0], reverse=True)
    if scored[0][0] >= MATE_SCORE:
        return scored[0][1]
    # Weighted pick among the top three keeps games from repeating
    top = scored[:3]
    total = sum(max(s, 1) for s, _ in top)
    roll = rng.random() * total
    for s, move in top:
        roll -= max(s, 1)
        if roll <= 0:
            return move
    return top[0][1]


@dataclass
class BotPlan:
    seats: Dict[str, str] = field(default_factory=dict)  # seat -> style
    delay: float = 1.5
    battle: bool = False
    handle: object = None


class BotManager:
    """Drives bot seats. Registered as a coordinator listener so play resumes
    whenever a session with bots (re)activates."""

    def __init__(self, coordinator, move_delay: float = 1.5, battle_delay: float = 2.0):
        self.coordinator = coordinator
        self.registry = coordinator.registry
        self.scheduler = coordinator.scheduler
        self.logger = coordinator.logger
        self.move_delay = move_delay
        self.battle_delay = battle_delay
        self._plans: Dict[str, BotPlan] = {}
        self._lock = threading.Lock()
        coordinator.listeners.append(self)

    # ---- lookups ----

    @staticmethod
    def profiles() -> List[dict]:
        return [{'id': style, 'name': name, 'style': style} for style, name in BOT_PROFILES.items()]

    def active_bots(self) -> List[str]:
        with self._lock:
            return [code for code, plan in self._plans.items() if not plan.battle]

    def is_battle(self, code: str) -> bool:
        with self._lock:
            plan = self._plans.get(code.upper())
            return bool(plan and plan.battle)

    def battles(self) -> List[dict]:
        with self._lock:
            plans = [(code, plan) for code, plan in self._plans.items() if plan.battle]
        return [{
            'code': code,
            'white': BOT_PROFILES[plan.seats['white']],
            'black': BOT_PROFILES[plan.seats['black']],
            'move_delay': plan.delay,
        } for code, plan in plans]

    # ---- seating ----

    def _check_style(self, style: str, allowed=tuple(BOT_PROFILES)) -> str:
        if style not in allowed:
            raise ArenaError(f"Unknown bot style: {style}")
        return style

    def add_bot(self, code: str, style: str = DEFAULT_STYLE, kind: Optional[str] = None) -> str:
        """Seat a bot in the open seat of a waiting session."""
        self._check_style(style)
        code = code.upper()
        with self._lock:
            if code in self._plans:
                raise SeatUnavailable('Bot already in this game')
            # Registered before seating so activation finds it
            plan = self._plans[code] = BotPlan(delay=self.move_delay)
        try:
            seat = self.coordinator.take_seat(code, f"bot:{style}", BOT_PROFILES[style], kind=kind, bot=True)
        except ArenaError:
            with self._lock:
                self._plans.pop(code, None)
            raise
        plan.seats[seat] = style
        self.logger.info(f"[bot-join] code={code} seat={seat} style={style}")
        return seat

    def create_vs_bot(self, kind: str, identity: str, name: str, seat: Optional[str] = None,
                      style: str = DEFAULT_STYLE):
        self._check_style(style)
        session = self.coordinator.create_session(kind, identity, name, seat=seat)
        self.add_bot(session.code, style, kind=kind)
        return session

    def start_battle(self, white: Optional[str] = None, black: Optional[str] = None,
                     delay: Optional[float] = None):
        rng = self.coordinator.rng
        white = self._check_style(white, BATTLE_STYLES) if white else rng.choice(BATTLE_STYLES)
        if black:
            self._check_style(black, BATTLE_STYLES)
        else:
            black = rng.choice([s for s in BATTLE_STYLES if s != white])
        session = self.coordinator.create_session(
            'chess', f"bot:{white}:white", BOT_PROFILES[white], seat='white', bot=True
        )
        with self._lock:
            self._plans[session.code] = BotPlan(
                seats={'white': white, 'black': black},
                delay=delay if delay and delay > 0 else self.battle_delay,
                battle=True,
            )
        self.coordinator.take_seat(session.code, f"bot:{black}:black", BOT_PROFILES[black], seat='black', bot=True)
        self.logger.info(f"[battle-start] code={session.code} white={white} black={black}")
        return session

    def stop_battle(self, code: str) -> None:
        code = code.upper()
        if not self.is_battle(code):
            raise SessionNotFound('No bot battle with that code')
        self.logger.info(f"[battle-stop] code={code}")
        self.coordinator.abort_session(code, 'chess')

    # ---- coordinator listener ----

    def session_activated(self, code: str) -> None:
        with self._lock:
            plan = self._plans.get(code)
            if plan is None or plan.handle is not None:
                return
            plan.handle = self.scheduler.schedule(code, BOT_TIMER, plan.delay, self._tick)

    def session_torndown(self, code: str) -> None:
        with self._lock:
            plan = self._plans.pop(code, None)
        if plan is not None and plan.handle is not None:
            plan.handle.cancel()

    # ---- play ----

    def _tick(self, handle) -> None:
        with self._lock:
            plan = self._plans.get(handle.code)
            if plan is None or plan.handle is not handle or handle.cancelled:
                return
            plan.handle = None
        session = self.registry.peek(handle.code)
        if session is None:
            self.session_torndown(handle.code)
            return
        with session.lock:
            if session.phase == Phase.ACTIVE:
                self._play(session, plan)
            still_active = session.phase == Phase.ACTIVE
        if still_active:
            self.session_activated(handle.code)
        elif plan.battle and session.phase == Phase.TERMINAL:
            # Battles are not continued; the finished session stays viewable until pruned
            with self._lock:
                self._plans.pop(handle.code, None)

    def _play(self, session, plan: BotPlan) -> None:
        if session.active_timer is not None and session.active_timer.label == ABANDON_TIMER:
            # Every human left; moving would re-arm the turn timer over the abandon timer
            return
        rules = self.coordinator.rules_for(session.kind)
        for seat in rules.seats_to_act(session.state):
            style = plan.seats.get(seat)
            if style is None:
                continue
            action = self._choose(rules, session.state, seat, style)
            if action is None:
                return
            try:
                self.coordinator.submit_action(session.code, session.participant(seat).identity, action)
            except ArenaError as exc:
                self.logger.warning(f"[bot-error] code={session.code} seat={seat} error={exc.message}")
            return

    def _choose(self, rules, state, seat: str, style: str):
        rng = self.coordinator.rng
        if rules.kind == 'chess':
            move = select_move(state.board, style, rng)
            return {'uci': move.uci()} if move else None
        options = rules.legal_actions(state, seat)
        return rng.choice(options) if options else None
