NAMESPACE = '/ws'


def room_for(code: str) -> str:
    return f"game:{code.upper()}"


class RoomBroadcaster:
    """Publish/subscribe over Flask-SocketIO rooms named ``game:<CODE>``.

    Goes through the SocketIO object and its server rather than the
    request-bound helpers, so timers running as background tasks can publish
    and close rooms too.
    """

    def __init__(self, socketio, namespace: str = NAMESPACE):
        self.socketio = socketio
        self.namespace = namespace

    def publish(self, code: str, event: str, payload) -> None:
        self.socketio.emit(event, payload, to=room_for(code), namespace=self.namespace)

    def subscribe(self, sid: str, code: str) -> None:
        self.socketio.server.enter_room(sid, room_for(code), namespace=self.namespace)

    def unsubscribe(self, sid: str, code: str) -> None:
        self.socketio.server.leave_room(sid, room_for(code), namespace=self.namespace)

    def close_room(self, code: str) -> None:
        self.socketio.close_room(room_for(code), namespace=self.namespace)
