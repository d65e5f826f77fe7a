import logging
import os
import random
import sys
import pytest

# Ensure the project root (containing the `arena` package and config.py) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from arena import create_app, db, socketio
from arena.services.sessions import SessionRegistry, build_arena
from arena.services.sessions.rules import ChessRules, RPSRules, TicTacToeRules
from arena.services.sessions.timers import ManualScheduler


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    CORS_ORIGINS = ['http://localhost:3000']
    SESSION_CODE_LENGTH = 6
    CHESS_MOVE_TIMEOUT_SEC = 0
    CHESS_TIMEOUT_POLICY = 'random'
    RPS_ROUND_SEC = 3
    RPS_WINNING_SCORE = 2
    RPS_MAX_ROUNDS = 3
    TTT_TURN_SEC = 5
    ABANDON_GRACE_SEC = 60
    ABANDON_TEARDOWN_SEC = 300
    FINISHED_SESSION_TTL_SEC = 3600


class RecordingBroadcaster:
    """Stands in for the Socket.IO rooms; keeps every published event in order."""

    def __init__(self):
        self.events = []
        self.closed = []
        self.subscriptions = set()

    def publish(self, code, event, payload):
        self.events.append((code, event, payload))

    def subscribe(self, sid, code):
        self.subscriptions.add((sid, code))

    def unsubscribe(self, sid, code):
        self.subscriptions.discard((sid, code))

    def close_room(self, code):
        self.closed.append(code)

    def names(self, code=None):
        return [name for c, name, _ in self.events if code is None or c == code]

    def of(self, name, code=None):
        return [payload for c, n, payload in self.events if n == name and (code is None or c == code)]

    def clear(self):
        self.events.clear()


class FakeArchive:
    def __init__(self):
        self.saved = []

    def save(self, session):
        self.saved.append((session.code, session.result))
        return len(self.saved)


@pytest.fixture()
def scheduler():
    return ManualScheduler()


@pytest.fixture()
def broadcaster():
    return RecordingBroadcaster()


@pytest.fixture()
def archive():
    return FakeArchive()


@pytest.fixture()
def hub(scheduler, broadcaster, archive):
    rules = {
        'chess': ChessRules(turn_duration=30, timeout_policy='random'),
        'rps': RPSRules(turn_duration=3),
        'ttt': TicTacToeRules(turn_duration=5),
    }
    return build_arena(
        SessionRegistry(rng=random.Random(7)),
        broadcaster,
        scheduler,
        rules,
        archive=archive,
        logger=logging.getLogger('arena-tests'),
        abandon_grace=60,
        abandon_teardown=300,
        strict=True,
        rng=random.Random(42),
    )


@pytest.fixture()
def coordinator(hub):
    return hub.coordinator


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import arena.models  # noqa: F401
        db.create_all()
    # Each test client request must get its own context (and its own logged-in user)
    yield application
    with application.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def app_scheduler(flask_app):
    return flask_app.extensions['arena'].coordinator.scheduler


def login_guest(client, name):
    res = client.post('/api/auth/guest', json={'name': name})
    assert res.status_code in (200, 201)
    return res.get_json()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def alice(flask_app):
    c = flask_app.test_client()
    c.user = login_guest(c, 'Alice')
    return c


@pytest.fixture()
def bob(flask_app):
    c = flask_app.test_client()
    c.user = login_guest(c, 'Bob')
    return c


@pytest.fixture()
def sio_factory(flask_app):
    clients = []

    def _make(http_client=None):
        test_client = socketio.test_client(
            flask_app,
            flask_test_client=http_client or flask_app.test_client(),
            namespace='/ws'
        )
        clients.append(test_client)
        return test_client

    yield _make
    for test_client in clients:
        try:
            if test_client.is_connected('/ws'):
                test_client.disconnect(namespace='/ws')
        except Exception:
            pass
