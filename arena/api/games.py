from flask import Blueprint, jsonify, request, current_app
from flask_login import current_user, login_required
from arena.errors import ArenaError, SessionNotFound
from arena.services.sessions import Phase


games = Blueprint('games', __name__)


def _arena():
    return current_app.extensions['arena']


def _archive():
    return _arena().coordinator.archive


@games.errorhandler(ArenaError)
def handle_arena_error(exc):
    return jsonify(exc.to_dict()), exc.status_code


@games.route('/archive', methods=['GET'])
def list_archived_games():
    user_id = request.args.get('user_id')
    if not user_id:
        return jsonify({'error': 'user_id is required'}), 400
    return jsonify(_archive().for_user(user_id))


@games.route('/archive/<int:record_id>', methods=['GET'])
def get_archived_game(record_id):
    record = _archive().get(record_id)
    if record is None:
        return jsonify({'error': 'Game not found'}), 404
    return jsonify(record)


@games.route('/<string:kind>', methods=['GET'])
def list_open_games(kind):
    coordinator = _arena().coordinator
    coordinator.rules_for(kind)
    listing = []
    for session in _arena().registry.list(kind):
        try:
            listing.append(coordinator.snapshot(session.code, kind))
        except SessionNotFound:
            continue
    return jsonify(listing)


@games.route('/<string:kind>', methods=['POST'])
@login_required
def create_game(kind):
    data = request.get_json(silent=True) or {}
    session = _arena().coordinator.create_session(
        kind, current_user.identity, current_user.name, seat=data.get('seat')
    )
    return jsonify({
        'message': 'New game created!',
        'code': session.code,
        'seat': session.seat_of(current_user.identity),
    }), 201


@games.route('/<string:kind>/queue', methods=['POST'])
@login_required
def join_queue(kind):
    result = _arena().queue_for(kind).join(current_user.identity, current_user.name)
    return jsonify(result)


@games.route('/<string:kind>/queue', methods=['GET'])
@login_required
def queue_status(kind):
    return jsonify(_arena().queue_for(kind).status(current_user.identity))


@games.route('/<string:kind>/queue', methods=['DELETE'])
@login_required
def leave_queue(kind):
    removed = _arena().queue_for(kind).leave(current_user.identity)
    return jsonify({'status': 'left' if removed else 'idle'})


@games.route('/<string:kind>/<string:code>', methods=['GET'])
def get_game_state(kind, code):
    _arena().coordinator.rules_for(kind)
    return jsonify(_arena().coordinator.snapshot(code, kind))


@games.route('/<string:kind>/<string:code>/join', methods=['POST'])
@login_required
def join_as_player(kind, code):
    data = request.get_json(silent=True) or {}
    coordinator = _arena().coordinator
    coordinator.rules_for(kind)
    seat = coordinator.take_seat(code, current_user.identity, current_user.name, seat=data.get('seat'), kind=kind)
    return jsonify({'success': True, 'seat': seat, 'session': coordinator.snapshot(code, kind)})


@games.route('/<string:kind>/<string:code>/move', methods=['POST'])
@login_required
def make_move(kind, code):
    data = request.get_json(silent=True) or {}
    # Accept {"action": {...}} as well as a bare move body like {"from": "e2", "to": "e4"}
    action = data['action'] if 'action' in data else data
    coordinator = _arena().coordinator
    coordinator.rules_for(kind)
    applied = coordinator.submit_action(code, current_user.identity, action, kind=kind)
    return jsonify({'success': True, 'action': applied, 'session': coordinator.snapshot(code, kind)})


@games.route('/<string:kind>/<string:code>/resign', methods=['POST'])
@login_required
def resign(kind, code):
    result = _arena().coordinator.resign(code, current_user.identity, kind=kind)
    return jsonify({'success': True, 'result': result})


@games.route('/<string:kind>/<string:code>/draw', methods=['POST'])
@login_required
def draw(kind, code):
    data = request.get_json(silent=True) or {}
    response = data.get('response', 'offer')
    coordinator = _arena().coordinator
    if response == 'offer':
        coordinator.offer_draw(code, current_user.identity, kind=kind)
    elif response in ('accept', 'decline'):
        coordinator.respond_draw(code, current_user.identity, response == 'accept', kind=kind)
    else:
        return jsonify({'error': 'response must be offer, accept or decline', 'code': 'bad_request'}), 400
    return jsonify({'success': True, 'session': coordinator.snapshot(code, kind)})


@games.route('/<string:kind>/<string:code>/claim', methods=['POST'])
@login_required
def claim_abandoned(kind, code):
    data = request.get_json(silent=True) or {}
    result = _arena().coordinator.claim_abandonment(code, current_user.identity, data.get('outcome'), kind=kind)
    return jsonify({'success': True, 'result': result})


@games.route('/<string:kind>/<string:code>/continue', methods=['POST'])
@login_required
def continue_session(kind, code):
    snapshot = _arena().coordinator.continue_session(code, current_user.identity, kind=kind)
    return jsonify(snapshot)


@games.route('/<string:kind>/<string:code>/end', methods=['POST'])
@login_required
def end_session(kind, code):
    _arena().coordinator.end_session(code, current_user.identity, kind=kind)
    return jsonify({'success': True, 'code': code.upper()})


@games.route('/bots', methods=['GET'])
def bot_status():
    bots = _arena().bots
    return jsonify({'active_bots': bots.active_bots(), 'battles': len(bots.battles()), 'profiles': bots.profiles()})


@games.route('/<string:kind>/bot', methods=['POST'])
@login_required
def create_bot_game(kind):
    data = request.get_json(silent=True) or {}
    session = _arena().bots.create_vs_bot(
        kind, current_user.identity, current_user.name,
        seat=data.get('seat'), style=data.get('style') or 'heuristic',
    )
    return jsonify({
        'message': 'New game against a bot created!',
        'code': session.code,
        'seat': session.seat_of(current_user.identity),
        'session': _arena().coordinator.snapshot(session.code, kind),
    }), 201


@games.route('/<string:kind>/<string:code>/bot', methods=['POST'])
@login_required
def add_bot(kind, code):
    data = request.get_json(silent=True) or {}
    _arena().coordinator.rules_for(kind)
    seat = _arena().bots.add_bot(code, data.get('style') or 'heuristic', kind=kind)
    return jsonify({'success': True, 'seat': seat, 'session': _arena().coordinator.snapshot(code, kind)})


@games.route('/battle', methods=['GET'])
def list_battles():
    return jsonify(_arena().bots.battles())


@games.route('/battle/profiles', methods=['GET'])
def battle_profiles():
    return jsonify([p for p in _arena().bots.profiles() if p['style'] != 'heuristic'])


@games.route('/battle', methods=['POST'])
def start_battle():
    data = request.get_json(silent=True) or {}
    delay = data.get('move_delay')
    if delay is not None and (isinstance(delay, bool) or not isinstance(delay, (int, float))):
        return jsonify({'error': 'move_delay must be a number', 'code': 'bad_request'}), 400
    session = _arena().bots.start_battle(data.get('white'), data.get('black'), delay)
    snapshot = _arena().coordinator.snapshot(session.code, 'chess')
    return jsonify({
        'message': 'Bot battle started!',
        'code': session.code,
        'white': snapshot['seats']['white']['name'],
        'black': snapshot['seats']['black']['name'],
    }), 201


@games.route('/battle/<string:code>', methods=['DELETE'])
def stop_battle(code):
    _arena().bots.stop_battle(code)
    return jsonify({'success': True, 'code': code.upper()})


@games.route('/battle/<string:code>/check', methods=['GET'])
def check_battle(code):
    session = _arena().registry.peek(code.upper())
    if session is None:
        return jsonify({'code': code.upper(), 'exists': False, 'running': False})
    return jsonify({
        'code': session.code,
        'exists': True,
        'running': _arena().bots.is_battle(session.code) and session.phase == Phase.ACTIVE,
        'phase': session.phase.value,
    })
