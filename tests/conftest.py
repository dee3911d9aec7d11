import os
import sys
import pytest
from flask import g

# Ensure the project root (containing the `quizarena` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from quizarena import create_app, db, socketio, bridge as quiz_bridge
from quizarena.services.timers import Scheduler, TimerHandle


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    LOG_LEVEL = 'DEBUG'
    DEFAULT_MAX_PLAYERS = 4
    DEFAULT_NUM_QUESTIONS = 5
    DEFAULT_TIME_LIMIT_SEC = 30
    POINTS_PER_CORRECT = 10
    ANSWER_REVEAL_DELAY_SEC = 1
    PROFILE_CREATE_DELAY_SEC = 0


# Five medium science questions, two medium history, one easy geography
TEST_BANK = [
    ('science', 'medium', f'Science question {i}?', ['A', 'B', 'C', 'D'], 'A')
    for i in range(1, 6)
] + [
    ('history', 'medium', 'History question 1?', ['W', 'X', 'Y', 'Z'], 'X'),
    ('history', 'medium', 'History question 2?', ['W', 'X', 'Y', 'Z'], 'Y'),
    ('geography', 'easy', 'Geography question 1?', ['N', 'S', 'E', 'W'], 'N'),
]


class ManualScheduler(Scheduler):
    """Deterministic scheduler: time only moves when a test calls advance()."""

    def __init__(self):
        self.now = 0.0
        self._timers = []  # [due, interval or None, callback, handle]

    def every(self, interval, callback, name='interval'):
        handle = TimerHandle(name)
        self._timers.append([self.now + interval, interval, callback, handle])
        return handle

    def call_later(self, delay, callback, name='delay'):
        handle = TimerHandle(name)
        self._timers.append([self.now + delay, None, callback, handle])
        return handle

    def advance(self, seconds):
        target = self.now + seconds
        while True:
            due = [t for t in self._timers if not t[3].cancelled and t[0] <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t[0])
            self.now = timer[0]
            if timer[1] is None:
                self._timers.remove(timer)
            else:
                timer[0] += timer[1]
            timer[2]()
        self.now = target
        self._timers = [t for t in self._timers if not t[3].cancelled]

    @property
    def active(self):
        return [t[3].name for t in self._timers if not t[3].cancelled]


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)

    @application.teardown_request
    def forget_login_user(exc):
        # One app context spans the whole test, so g outlives each request and
        # Flask-Login would keep serving the previous client's user
        g.pop('_login_user', None)

    with application.app_context():
        # Ensure models are imported so tables are created
        import quizarena.models  # noqa: F401
        db.create_all()
        yield application
        for controller in application.extensions.get('quiz_games', {}).values():
            controller.close()
        quiz_bridge.reset()
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def bridge(flask_app):
    return quiz_bridge


@pytest.fixture()
def questions(flask_app):
    from quizarena.seed import seed_questions
    return [q.to_dict() for q in seed_questions(TEST_BANK)]


@pytest.fixture()
def make_user(flask_app):
    from quizarena.seed import seed_users

    def _make(username, password='password'):
        user = seed_users([username], password)[0]
        return {'id': user.id, 'username': user.username}

    return _make


@pytest.fixture()
def scheduler():
    return ManualScheduler()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def user_client(flask_app):
    """Factory: a fresh test client registered and logged in as ``username``."""

    def _client(username, password='password'):
        test_client = flask_app.test_client()
        res = test_client.post('/register', json={'username': username, 'password': password})
        assert res.status_code == 201, res.get_json()
        test_client.user = res.get_json()['user']
        return test_client

    return _client


@pytest.fixture()
def sio_client(flask_app, user_client):
    http_client = user_client('socketeer')
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=http_client,
        namespace='/ws'
    )
    test_client.user = http_client.user
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass
