from flask_socketio import emit
from flask import current_app, request
from flask_login import current_user
from arena import socketio
from arena.errors import ArenaError, NotInRoom
from typing import Dict, Set, Tuple
import threading


NAMESPACE = '/ws'

# sid -> codes joined on that socket; (code, identity) -> open sockets
_sid_rooms: Dict[str, Set[str]] = {}
_presence: Dict[Tuple[str, str], int] = {}
_presence_lock = threading.Lock()


def _get_sid() -> str:
    return request.sid  # type: ignore[attr-defined]


def _arena():
    return current_app.extensions['arena']


def _payload(data) -> dict:
    """Events carry a dict; a bare string is taken as the session code."""
    if isinstance(data, dict):
        return data
    if isinstance(data, str):
        return {'code': data}
    return {}


def _code_from(data: dict) -> str:
    code = data.get('code')
    if not code or not isinstance(code, str):
        raise ArenaError('code is required')
    return code.upper()


def _identity():
    if not current_user.is_authenticated:
        raise ArenaError('Not authenticated')
    return current_user.identity, current_user.name


def socket_handler(fn):
    """Report ArenaErrors to the calling socket only."""
    def wrapper(data=None):
        try:
            return fn(_payload(data))
        except ArenaError as exc:
            emit('error', exc.to_dict())
    wrapper.__name__ = fn.__name__
    return wrapper


def handle_connect():
    emit('connected', {'message': 'Connected to /ws'})


def handle_disconnect(*_args):
    sid = _get_sid()
    with _presence_lock:
        codes = _sid_rooms.pop(sid, set())
    if not codes or not current_user.is_authenticated:
        return
    for code in codes:
        _release(code, current_user.identity)


def _release(code: str, identity: str) -> None:
    with _presence_lock:
        key = (code, identity)
        _presence[key] = max(0, _presence.get(key, 0) - 1)
        remaining = _presence[key]
        if not remaining:
            _presence.pop(key, None)
    if remaining:
        return
    try:
        _arena().coordinator.leave_room(code, identity)
    except ArenaError:
        # Session already gone
        pass


@socket_handler
def handle_join_room(data):
    code = _code_from(data)
    identity, name = _identity()
    arena = _arena()
    arena.registry.get(code)
    sid = _get_sid()
    with _presence_lock:
        rooms = _sid_rooms.setdefault(sid, set())
        if code not in rooms:
            rooms.add(code)
            _presence[(code, identity)] = _presence.get((code, identity), 0) + 1
    arena.coordinator.broadcaster.subscribe(sid, code)
    emit('joined', {'code': code})
    arena.coordinator.join_room(code, identity, name)


@socket_handler
def handle_leave_room(data):
    code = _code_from(data)
    identity, _ = _identity()
    sid = _get_sid()
    with _presence_lock:
        joined = code in _sid_rooms.get(sid, set())
        if joined:
            _sid_rooms[sid].discard(code)
    _arena().coordinator.broadcaster.unsubscribe(sid, code)
    emit('left', {'code': code})
    if joined:
        _release(code, identity)


@socket_handler
def handle_take_seat(data):
    code = _code_from(data)
    identity, name = _identity()
    _arena().coordinator.take_seat(code, identity, name, seat=data.get('seat'))


@socket_handler
def handle_submit_action(data):
    code = _code_from(data)
    identity, _ = _identity()
    _arena().coordinator.submit_action(code, identity, data.get('action'))


@socket_handler
def handle_resign(data):
    code = _code_from(data)
    identity, _ = _identity()
    _arena().coordinator.resign(code, identity)


@socket_handler
def handle_offer_draw(data):
    code = _code_from(data)
    identity, _ = _identity()
    _arena().coordinator.offer_draw(code, identity)


@socket_handler
def handle_respond_draw(data):
    code = _code_from(data)
    identity, _ = _identity()
    _arena().coordinator.respond_draw(code, identity, bool(data.get('accept')))


@socket_handler
def handle_claim_abandonment(data):
    code = _code_from(data)
    identity, _ = _identity()
    _arena().coordinator.claim_abandonment(code, identity, data.get('outcome'))


@socket_handler
def handle_end_session(data):
    code = _code_from(data)
    identity, _ = _identity()
    _arena().coordinator.end_session(code, identity)


@socket_handler
def handle_continue_session(data):
    code = _code_from(data)
    identity, _ = _identity()
    _arena().coordinator.continue_session(code, identity)


@socket_handler
def handle_chat(data):
    code = _code_from(data)
    identity, name = _identity()
    message = str(data.get('message') or '').strip()[:500]
    if not message:
        return
    with _presence_lock:
        joined = code in _sid_rooms.get(_get_sid(), set())
    if not joined:
        raise NotInRoom()
    _arena().registry.get(code)
    _arena().coordinator.broadcaster.publish(code, 'chat', {'author': {'id': identity, 'name': name}, 'message': message})


def handle_ping(data=None):
    emit('pong', data or {})


def register_socketio_handlers() -> None:
    """Register Socket.IO event handlers on namespace '/ws'."""
    socketio.on_event('connect', handle_connect, namespace=NAMESPACE)
    socketio.on_event('disconnect', handle_disconnect, namespace=NAMESPACE)
    socketio.on_event('join_room', handle_join_room, namespace=NAMESPACE)
    socketio.on_event('leave_room', handle_leave_room, namespace=NAMESPACE)
    socketio.on_event('take_seat', handle_take_seat, namespace=NAMESPACE)
    socketio.on_event('submit_action', handle_submit_action, namespace=NAMESPACE)
    socketio.on_event('resign', handle_resign, namespace=NAMESPACE)
    socketio.on_event('offer_draw', handle_offer_draw, namespace=NAMESPACE)
    socketio.on_event('respond_draw', handle_respond_draw, namespace=NAMESPACE)
    socketio.on_event('claim_abandonment', handle_claim_abandonment, namespace=NAMESPACE)
    socketio.on_event('end_session', handle_end_session, namespace=NAMESPACE)
    socketio.on_event('continue_session', handle_continue_session, namespace=NAMESPACE)
    socketio.on_event('chat', handle_chat, namespace=NAMESPACE)
    socketio.on_event('ping', handle_ping, namespace=NAMESPACE)
