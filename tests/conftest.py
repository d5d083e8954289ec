import os
import sys
import pytest

# Ensure the project root (containing the `blitz` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from blitz import create_app, db, socketio


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    WTF_CSRF_ENABLED = False
    BCRYPT_LOG_ROUNDS = 4
    QUESTION_DURATION_SEC = 20
    LEADERBOARD_LIMIT = 10
    SCORE_POLICY = 'overwrite'
    ROUND_IDLE_TTL_SEC = 1800
    LOG_LEVEL = 'DEBUG'
    CORS_ORIGINS = []


WEEK_ONE = [
    {'week': 1, 'text': 'What number did Jerry Rice wear?', 'difficulty': 'easy', 'correct_answers': ['80']},
    {'week': 1, 'text': 'Who has the most Super Bowl wins as a player?', 'difficulty': 'medium',
     'correct_answers': ['Tom Brady', 'Brady']},
    {'week': 1, 'text': 'Which team went 17-0 in 1972?', 'difficulty': 'hard',
     'correct_answers': ['Miami Dolphins', 'Dolphins']},
]

WEEK_TWO = [
    {'week': 2, 'text': 'What is the answer?', 'difficulty': 'easy', 'correct_answers': ['42']},
]


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        import blitz.models  # noqa: F401
        db.create_all()
        yield application
        application.extensions['blitz_rounds'].clear()
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def runner(flask_app):
    return flask_app.test_cli_runner()


@pytest.fixture()
def rounds(flask_app):
    return flask_app.extensions['blitz_rounds']


@pytest.fixture()
def seeded(flask_app):
    from blitz.services.trivia.store import load_questions
    return load_questions(WEEK_ONE + WEEK_TWO)


@pytest.fixture()
def register(client):
    def _register(username='alice', email=None, password='secret123'):
        res = client.post('/api/auth/register', json={
            'username': username,
            'email': email or f'{username}@example.com',
            'password': password,
        })
        assert res.status_code == 201
        return res.get_json()['user']
    return _register


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass
