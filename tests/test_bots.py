import random

import chess
import pytest

from arena.errors import ArenaError, SeatUnavailable, SessionNotFound
from arena.services.sessions import DRAW, EndReason, Phase
from arena.services.sessions.bots import BATTLE_STYLES, select_move


def labels(scheduler, code):
    return sorted(h.label for h in scheduler.pending(code))


def test_bot_answers_after_its_delay(hub, coordinator, scheduler, broadcaster):
    session = hub.bots.create_vs_bot('ttt', 'a', 'Alice', seat='X')
    assert session.phase == Phase.ACTIVE
    assert session.participant('O').is_bot
    assert session.participant('O').connected
    assert session.code in hub.bots.active_bots()

    coordinator.submit_action(session.code, 'a', {'index': 4})
    scheduler.advance(1.0)
    assert session.state.marks == 1
    scheduler.advance(0.5)
    assert session.state.marks == 2
    assert broadcaster.of('action_applied')[-1]['seat'] == 'O'
    assert broadcaster.of('action_applied')[-1]['forced'] is False
    # The bot poll runs beside the single session timer
    assert session.active_timer.label == 'turn'
    assert labels(scheduler, session.code) == ['bot', 'turn']


def test_bot_opens_when_it_holds_the_first_seat(hub, scheduler):
    session = hub.bots.create_vs_bot('chess', 'a', 'Alice', seat='black')
    assert session.participant('white').name == 'Moltbot'
    scheduler.advance(1.5)
    assert len(session.state.board.move_stack) == 1
    assert session.state.board.turn == chess.BLACK
    # Nothing more until the human moves
    scheduler.advance(3)
    assert len(session.state.board.move_stack) == 1


def test_bot_waits_while_every_human_is_away(hub, coordinator, scheduler):
    session = hub.bots.create_vs_bot('ttt', 'a', 'Alice', seat='O')
    coordinator.join_room(session.code, 'a', 'Alice')
    coordinator.leave_room(session.code, 'a')
    assert session.active_timer.label == 'abandon'
    scheduler.advance(1.5)
    assert session.state.marks == 0
    assert session.active_timer.label == 'abandon'

    coordinator.join_room(session.code, 'a', 'Alice')
    assert session.active_timer.label == 'turn'
    scheduler.advance(1.5)
    assert session.state.marks == 1


def test_bot_stops_on_terminal_and_resumes_on_continue(hub, coordinator, scheduler):
    session = hub.bots.create_vs_bot('rps', 'a', 'Alice', seat='p1')
    coordinator.resign(session.code, 'a')
    scheduler.advance(1.5)
    assert scheduler.pending(session.code) == []

    coordinator.continue_session(session.code, 'a')
    assert session.phase == Phase.ACTIVE
    scheduler.advance(1.5)
    assert set(session.state.picks) == {'p2'}


def test_add_bot_to_open_session(hub, coordinator, scheduler):
    session = coordinator.create_session('ttt', 'a', 'Alice', seat='X')
    assert hub.bots.add_bot(session.code.lower(), 'random') == 'O'
    assert session.participant('O').identity == 'bot:random'
    assert session.phase == Phase.ACTIVE
    with pytest.raises(SeatUnavailable):
        hub.bots.add_bot(session.code)


def test_add_bot_failures_leave_nothing_behind(hub, coordinator):
    session = coordinator.create_session('ttt', 'a', 'Alice')
    coordinator.take_seat(session.code, 'b', 'Bob')
    with pytest.raises(SeatUnavailable):
        hub.bots.add_bot(session.code)
    assert hub.bots.active_bots() == []
    with pytest.raises(SessionNotFound):
        hub.bots.add_bot('NOPE00')
    with pytest.raises(ArenaError):
        hub.bots.add_bot(session.code, 'grandmaster')
    assert hub.bots.active_bots() == []


def test_battle_plays_itself(hub, scheduler, broadcaster):
    session = hub.bots.start_battle('aggressive', 'defensive', delay=1)
    assert session.phase == Phase.ACTIVE
    assert hub.bots.is_battle(session.code)
    assert session.participant('white').name == 'Alpha'
    assert session.participant('black').name == 'Bravo'
    assert session.humans() == []
    assert hub.bots.battles() == [{'code': session.code, 'white': 'Alpha', 'black': 'Bravo', 'move_delay': 1}]

    scheduler.advance(4)
    assert len(session.state.board.move_stack) == 4
    assert [a['seat'] for a in broadcaster.of('action_applied', session.code)] == ['white', 'black'] * 2


def test_battle_picks_two_different_styles(hub):
    session = hub.bots.start_battle()
    names = {session.participant('white').name, session.participant('black').name}
    assert len(names) == 2
    assert 'Moltbot' not in names
    with pytest.raises(ArenaError):
        hub.bots.start_battle('heuristic')


def test_stopping_a_battle_tears_it_down(hub, coordinator, scheduler, broadcaster):
    session = hub.bots.start_battle('random', 'tactical')
    scheduler.advance(2)
    hub.bots.stop_battle(session.code)
    assert session.result.winner == DRAW
    assert session.result.reason == EndReason.ABANDONED
    assert session.code not in hub.registry
    assert broadcaster.closed == [session.code]
    assert scheduler.pending(session.code) == []
    assert hub.bots.battles() == []
    scheduler.advance(10)
    assert len(session.state.board.move_stack) == 1
    with pytest.raises(SessionNotFound):
        hub.bots.stop_battle(session.code)


def test_stop_battle_rejects_human_games(hub):
    session = hub.bots.create_vs_bot('chess', 'a', 'Alice', seat='white')
    with pytest.raises(SessionNotFound):
        hub.bots.stop_battle(session.code)


def test_every_style_takes_a_mate_in_one():
    board = chess.Board('6k1/5ppp/8/8/8/8/8/R5K1 w - - 0 1')
    for style in ('heuristic',) + tuple(s for s in BATTLE_STYLES if s != 'random'):
        move = select_move(board, style, random.Random(1))
        assert move.uci() == 'a1a8', style
    # The board is left as it was
    assert board.fen() == '6k1/5ppp/8/8/8/8/8/R5K1 w - - 0 1'


def test_select_move_is_legal_and_none_when_over():
    rng = random.Random(9)
    board = chess.Board()
    for style in BATTLE_STYLES:
        assert select_move(board, style, rng) in board.legal_moves
    mated = chess.Board('rnb1kbnr/pppp1ppp/8/4p3/6Pq/5P2/PPPPP2P/RNBQKBNR w KQkq - 1 3')
    assert select_move(mated, 'tactical', rng) is None
