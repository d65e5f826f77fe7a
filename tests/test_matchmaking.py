from arena.services.sessions import Phase


def test_first_caller_waits_then_is_paired(hub):
    queue = hub.queue_for('chess')
    assert queue.join('a', 'Alice') == {'status': 'waiting', 'position': 1}
    # Asking again does not queue twice
    assert queue.join('a', 'Alice') == {'status': 'waiting', 'position': 1}
    assert len(queue) == 1

    matched = queue.join('b', 'Bob')
    assert matched['status'] == 'matched'
    assert matched['opponent'] == 'Alice'
    assert len(queue) == 0

    pending = queue.status('a')
    assert pending['status'] == 'matched'
    assert pending['code'] == matched['code']
    assert pending['opponent'] == 'Bob'
    assert {pending['seat'], matched['seat']} == {'white', 'black'}

    session = hub.registry.get(matched['code'])
    assert session.phase == Phase.ACTIVE
    assert session.seat_of('a') == pending['seat']

    # The parked result is handed out exactly once
    assert queue.status('a') == {'status': 'idle'}


def test_pending_result_returned_on_next_join(hub):
    queue = hub.queue_for('ttt')
    queue.join('a', 'Alice')
    matched = queue.join('b', 'Bob')
    again = queue.join('a', 'Alice')
    assert again['status'] == 'matched'
    assert again['code'] == matched['code']


def test_fifo_order(hub):
    queue = hub.queue_for('rps')
    queue.join('a', 'Alice')
    # Nobody else is waiting for 'a' to pair with; a second waiting identity pairs with 'a'
    first = queue.join('b', 'Bob')
    queue.join('c', 'Cara')
    assert queue.status('c') == {'status': 'waiting', 'position': 1}
    second = queue.join('d', 'Dan')
    assert first['opponent'] == 'Alice'
    assert second['opponent'] == 'Cara'
    assert first['code'] != second['code']


def test_open_session_is_joined_directly(hub, coordinator):
    session = coordinator.create_session('chess', 'host', 'Hana', seat='black')
    queue = hub.queue_for('chess')
    result = queue.join('b', 'Bob')
    assert result == {'status': 'matched', 'code': session.code, 'seat': 'white', 'opponent': 'Hana'}
    assert session.phase == Phase.ACTIVE
    assert len(queue) == 0


def test_host_does_not_join_own_open_session(hub, coordinator):
    session = coordinator.create_session('ttt', 'a', 'Alice')
    queue = hub.queue_for('ttt')
    assert queue.join('a', 'Alice')['status'] == 'waiting'
    assert session.phase == Phase.WAITING


def test_leave_queue(hub):
    queue = hub.queue_for('chess')
    queue.join('a', 'Alice')
    assert queue.leave('a') is True
    assert queue.leave('a') is False
    assert queue.status('a') == {'status': 'idle'}
    assert queue.join('b', 'Bob')['status'] == 'waiting'


def test_uncollected_match_result_expires(hub, scheduler):
    queue = hub.queue_for('ttt')
    queue.join('a', 'Alice')
    matched = queue.join('b', 'Bob')
    scheduler.advance(600)
    assert queue.status('a') == {'status': 'idle'}
    # The session itself is unaffected
    assert matched['code'] in hub.registry


def test_match_result_for_torn_down_session_is_dropped(hub, coordinator):
    queue = hub.queue_for('rps')
    queue.join('a', 'Alice')
    matched = queue.join('b', 'Bob')
    coordinator.resign(matched['code'], 'b')
    coordinator.end_session(matched['code'], 'b')
    assert queue.status('a') == {'status': 'idle'}
