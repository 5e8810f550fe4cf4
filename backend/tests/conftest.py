import itertools
import os
import sys
from decimal import Decimal

import pytest
from flask import g

# Ensure the backend root (containing the `bingo` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from bingo import create_app, db, socketio
from bingo.models import GameMode, Room, User
from bingo.services.games import ledger, scheduler, sessions


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    WTF_CSRF_ENABLED = False
    BCRYPT_LOG_ROUNDS = 4
    LOG_LEVEL = 'INFO'
    STARTING_BALANCE = '0.00'
    WIN_POINTS = 10
    DEFAULT_ENTRY_COST = '10.00'
    DEFAULT_MIN_PLAYERS = 3
    DEFAULT_MAX_PLAYERS = 10
    DEFAULT_BALL_INTERVAL_SEC = 5
    RESUME_DRAWS_ON_START = False
    ENABLE_SCHEDULER_IN_TESTS = False


class Chooser:
    """Random source that always picks a given number."""

    def __init__(self, number):
        self.number = number

    def choice(self, seq):
        assert self.number in seq, f"{self.number} already called"
        return self.number


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)

    @application.before_request
    def forget_cached_user():
        # Requests share the fixture app context, so g would keep the last login
        g.pop('_login_user', None)

    with application.app_context():
        # Ensure models are imported so tables are created
        import bingo.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def threaded_app(tmp_path):
    """App on a file database that several threads can use at once."""
    class ThreadedConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'bingo.db'}"
        SQLALCHEMY_ENGINE_OPTIONS = {'connect_args': {'check_same_thread': False, 'timeout': 30}}

    application = create_app(ThreadedConfig)
    with application.app_context():
        import bingo.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


@pytest.fixture(autouse=True)
def reset_draws():
    yield
    # Game ids repeat across tests, so no timer may outlive its test
    for game_id in list(scheduler._draw_tasks):
        scheduler.stop_draws(game_id)


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


@pytest.fixture()
def make_user(flask_app):
    counter = itertools.count(1)

    def _make(balance='100.00', role='player', full_name=None):
        n = next(counter)
        amount = Decimal(balance)
        user = User(email=f'user{n}@test.local', full_name=full_name or f'User {n}', role=role,
                    balance=amount, starting_balance=amount)
        user.set_password('password')
        db.session.add(user)
        db.session.commit()
        return user

    return _make


@pytest.fixture()
def admin(make_user):
    return make_user(balance='0.00', role='admin', full_name='Admin')


@pytest.fixture()
def players(make_user):
    return [make_user() for _ in range(3)]


@pytest.fixture()
def make_room(flask_app, admin):
    counter = itertools.count(1)

    def _make(pattern='horizontal_line', min_players=3, max_players=10, entry_cost='10.00', interval=5):
        n = next(counter)
        mode = GameMode(name=f'Mode {n}', pattern_type=pattern, max_players=max(max_players, 10),
                        ball_interval_seconds=interval, created_by=admin.id)
        db.session.add(mode)
        db.session.flush()
        room = Room(name=f'Room {n}', game_mode_id=mode.id, min_players=min_players, max_players=max_players,
                    default_entry_cost=Decimal(entry_cost), created_by=admin.id)
        db.session.add(room)
        db.session.commit()
        return room

    return _make


@pytest.fixture()
def seat(flask_app):
    """Join ``users`` to ``room`` (optionally paying) and return the game id."""
    def _seat(room, users, pay=False):
        game_id = None
        for user in users:
            game_id = sessions.join_room(user, room.id).game_id
        if pay:
            for user in users:
                ledger.purchase_entry(game_id, user.id)
        return game_id

    return _seat


@pytest.fixture()
def started_game(make_room, seat, players, admin):
    room = make_room()
    game_id = seat(room, players, pay=True)
    sessions.start_game(admin, game_id)
    return game_id


@pytest.fixture()
def call_numbers(flask_app):
    def _call(game_id, numbers):
        return [scheduler.draw_next(game_id, Chooser(n)) for n in numbers]

    return _call


@pytest.fixture()
def login(flask_app):
    """Return a test client logged in as ``user``."""
    def _login(user):
        user_client = flask_app.test_client()
        res = user_client.post('/login', json={'email': user.email, 'password': 'password'})
        assert res.status_code == 200, res.get_json()
        return user_client

    return _login
