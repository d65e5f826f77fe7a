def names(sio_client):
    return [pkt['name'] for pkt in sio_client.get_received('/ws')]


def received(sio_client, name):
    return [pkt['args'][0] for pkt in sio_client.get_received('/ws') if pkt['name'] == name]


def test_socket_connect(sio_factory):
    sio_client = sio_factory()
    assert sio_client.is_connected('/ws')
    assert 'connected' in names(sio_client)


def test_join_room_requires_login_and_known_code(sio_factory, alice):
    anonymous = sio_factory()
    anonymous.get_received('/ws')
    anonymous.emit('join_room', {'code': 'ABCDEF'}, namespace='/ws')
    errors = received(anonymous, 'error')
    assert errors and errors[0]['code'] == 'error'

    sio_client = sio_factory(alice)
    sio_client.get_received('/ws')
    sio_client.emit('join_room', {'code': 'ABCDEF'}, namespace='/ws')
    errors = received(sio_client, 'error')
    assert errors[0]['code'] == 'session_not_found'


def test_join_room_sends_snapshot(sio_factory, alice):
    code = alice.post('/api/games/chess', json={'seat': 'white'}).get_json()['code']
    sio_client = sio_factory(alice)
    sio_client.get_received('/ws')
    sio_client.emit('join_room', {'code': code.lower()}, namespace='/ws')
    packets = sio_client.get_received('/ws')
    assert [p['name'] for p in packets][:2] == ['joined', 'session_snapshot']
    snapshot = packets[1]['args'][0]
    assert snapshot['code'] == code
    assert snapshot['seats']['white']['connected'] is True


def test_actions_are_broadcast_to_the_room(sio_factory, alice, bob):
    code = alice.post('/api/games/ttt').get_json()['code']
    alice_sio = sio_factory(alice)
    bob_sio = sio_factory(bob)
    alice_sio.emit('join_room', {'code': code}, namespace='/ws')
    bob_sio.emit('join_room', {'code': code}, namespace='/ws')
    bob_sio.emit('take_seat', {'code': code}, namespace='/ws')
    alice_names = names(alice_sio)
    assert 'participant_joined' in alice_names
    assert 'phase_changed' in alice_names
    bob_sio.get_received('/ws')

    alice_sio.emit('submit_action', {'code': code, 'action': {'index': 4}}, namespace='/ws')
    applied = received(bob_sio, 'action_applied')
    assert applied == [{'seat': 'X', 'forced': False, 'action': {'index': 4, 'mark': 'X'}}]

    # Errors go back to the sender only
    alice_sio.get_received('/ws')
    alice_sio.emit('submit_action', {'code': code, 'action': {'index': 0}}, namespace='/ws')
    errors = received(alice_sio, 'error')
    assert errors[0]['code'] == 'not_your_turn'
    assert 'error' not in names(bob_sio)


def test_resign_over_socket(sio_factory, alice, bob):
    code = alice.post('/api/games/chess', json={'seat': 'white'}).get_json()['code']
    bob.post(f'/api/games/chess/{code}/join')
    bob_sio = sio_factory(bob)
    bob_sio.emit('join_room', {'code': code}, namespace='/ws')
    bob_sio.get_received('/ws')
    bob_sio.emit('resign', {'code': code}, namespace='/ws')
    terminal = received(bob_sio, 'session_terminal')
    assert terminal[0]['winner'] == 'white'
    assert terminal[0]['winner_name'] == 'Alice'
    assert terminal[0]['reason'] == 'resign'


def test_disconnect_is_announced(sio_factory, alice, bob):
    code = alice.post('/api/games/chess', json={'seat': 'white'}).get_json()['code']
    bob.post(f'/api/games/chess/{code}/join')
    alice_sio = sio_factory(alice)
    bob_sio = sio_factory(bob)
    alice_sio.emit('join_room', {'code': code}, namespace='/ws')
    bob_sio.emit('join_room', {'code': code}, namespace='/ws')
    bob_sio.get_received('/ws')

    alice_sio.disconnect(namespace='/ws')
    gone = received(bob_sio, 'participant_disconnected')
    assert gone[0]['seat'] == 'white'
    assert gone[0]['name'] == 'Alice'


def test_second_tab_keeps_player_connected(sio_factory, alice, bob):
    code = alice.post('/api/games/chess', json={'seat': 'white'}).get_json()['code']
    bob.post(f'/api/games/chess/{code}/join')
    first_tab = sio_factory(alice)
    second_tab = sio_factory(alice)
    bob_sio = sio_factory(bob)
    for sio_client in (first_tab, second_tab, bob_sio):
        sio_client.emit('join_room', {'code': code}, namespace='/ws')
    bob_sio.get_received('/ws')

    first_tab.disconnect(namespace='/ws')
    assert 'participant_disconnected' not in names(bob_sio)
    second_tab.emit('leave_room', {'code': code}, namespace='/ws')
    assert 'participant_disconnected' in names(bob_sio)


def test_chat_and_ping(sio_factory, alice, bob):
    code = alice.post('/api/games/rps').get_json()['code']
    alice_sio = sio_factory(alice)
    bob_sio = sio_factory(bob)
    alice_sio.emit('join_room', {'code': code}, namespace='/ws')
    bob_sio.emit('join_room', {'code': code}, namespace='/ws')
    bob_sio.get_received('/ws')

    alice_sio.emit('chat', {'code': code, 'message': '  good luck  '}, namespace='/ws')
    chat = received(bob_sio, 'chat')
    assert chat == [{'author': {'id': str(alice.user['id']), 'name': 'Alice'}, 'message': 'good luck'}]

    bob_sio.emit('ping', {'t': 1}, namespace='/ws')
    assert received(bob_sio, 'pong') == [{'t': 1}]


def test_bare_code_payloads(sio_factory, alice, bob):
    code = alice.post('/api/games/ttt').get_json()['code']
    bob_sio = sio_factory(bob)
    bob_sio.emit('join_room', code, namespace='/ws')
    bob_sio.emit('take_seat', code, namespace='/ws')
    assert 'error' not in names(bob_sio)
    state = bob.get(f'/api/games/ttt/{code}').get_json()
    assert state['seats']['O']['name'] == 'Bob'
    assert state['phase'] == 'active'

    # Anything else is reported, not raised
    bob_sio.emit('resign', 42, namespace='/ws')
    errors = received(bob_sio, 'error')
    assert errors == [{'error': 'code is required', 'code': 'error'}]


def test_chat_requires_joining_the_room(sio_factory, alice, bob):
    code = alice.post('/api/games/ttt').get_json()['code']
    alice_sio = sio_factory(alice)
    bob_sio = sio_factory(bob)
    alice_sio.emit('join_room', {'code': code}, namespace='/ws')
    alice_sio.get_received('/ws')

    bob_sio.get_received('/ws')
    bob_sio.emit('chat', {'code': code, 'message': 'hello from outside'}, namespace='/ws')
    errors = received(bob_sio, 'error')
    assert errors[0]['code'] == 'not_in_room'
    assert 'chat' not in names(alice_sio)
