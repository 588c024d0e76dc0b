import os
import random
import sys
import pytest

# Ensure the backend root (containing the `trackguess` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from trackguess import create_app, db, socketio
from trackguess.services.games.events import RoomEvents
from trackguess.services.games.track_source import StaticTrackSource, TrackDescriptor

HALO = TrackDescriptor('t-halo', 'Halo', 'Beyoncé', album_art='https://img.example/halo.jpg', duration_ms=261000)
SELF_TITLED = TrackDescriptor('t-weezer', 'Weezer', 'Weezer', duration_ms=200000)

# Identities with a linked music account
HOSTS = {'host', 'host2'}


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    LOG_LEVEL = 'DEBUG'
    REVEAL_DELAY_SEC = 3
    GAME_END_DELAY_SEC = 5
    MATCH_THRESHOLD = 0.70
    LEADERBOARD_SIZE = 10


class RecordingEvents(RoomEvents):
    """RoomEvents that also keeps every emission for assertions."""

    def __init__(self, socketio):
        super().__init__(socketio)
        self.emitted = []

    def _emit(self, room_code, name, payload):
        self.emitted.append((room_code, name, payload))
        super()._emit(room_code, name, payload)

    def names(self, room_code=None):
        return [name for code, name, _ in self.emitted if room_code is None or code == room_code]

    def payloads(self, name):
        return [payload for _, n, payload in self.emitted if n == name]


@pytest.fixture()
def track_source():
    return StaticTrackSource([HALO], owners=HOSTS, rng=random.Random(7))


@pytest.fixture()
def flask_app(track_source):
    application = create_app(TestConfig, track_source=track_source)
    application.extensions['trackguess'].events = RecordingEvents(socketio)
    with application.app_context():
        # Ensure models are imported so tables are created
        import trackguess.models  # noqa: F401
        db.create_all()
        yield application
        application.extensions['trackguess'].scheduler.shutdown()
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def orchestrator(flask_app):
    return flask_app.extensions['trackguess']


@pytest.fixture()
def events(orchestrator):
    return orchestrator.events


@pytest.fixture()
def scheduler(orchestrator):
    return orchestrator.scheduler


@pytest.fixture()
def make_room(orchestrator):
    """Create a room hosted by ``host`` and enroll ``guests``; returns its code."""

    def _make(host='host', guests=('alice',), **settings):
        payload = {'total_rounds': 1, 'song_source': 'liked_songs'}
        payload.update(settings)
        result = orchestrator.create_room(host, payload, display_name=host.title())
        assert result.success, result.error_code
        code = result.value['room_code']
        for guest in guests:
            joined = orchestrator.join_room(code, guest, display_name=guest.title())
            assert joined.success, joined.error_code
        return code

    return _make


@pytest.fixture()
def started_room(orchestrator, make_room):
    """A room already playing round 1."""

    def _start(**kwargs):
        code = make_room(**kwargs)
        started = orchestrator.start_game(code, kwargs.get('host', 'host'))
        assert started.success, started.error_code
        return code

    return _start


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    if test_client.is_connected('/ws'):
        test_client.disconnect(namespace='/ws')
