import random
from decimal import Decimal

import pytest
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from bingo import db, socketio
from bingo.errors import NotWinner, ResourceExhausted, StateConflict
from bingo.models import CalledNumber, Game
from bingo.services.games import ledger, scheduler
from bingo.services.games.cards import letter_for


def _game(game_id):
    db.session.expire_all()
    return db.session.get(Game, game_id)


def test_draws_are_unique_and_gapless(started_game):
    rng = random.Random(3)
    drawn = [scheduler.draw_next(started_game, rng) for _ in range(75)]

    numbers = [c.number for c in drawn]
    assert sorted(numbers) == list(range(1, 76))
    assert [c.order for c in drawn] == list(range(1, 76))
    assert all(c.letter == letter_for(c.number) for c in drawn)
    assert _game(started_game).current_ball == numbers[-1]


def test_exhausted_pool_finishes_without_winner(started_game, players):
    rng = random.Random(11)
    for _ in range(75):
        scheduler.draw_next(started_game, rng)

    with pytest.raises(ResourceExhausted):
        scheduler.draw_next(started_game, rng)

    game = _game(started_game)
    assert game.status == 'finished'
    assert game.winner_id is None
    assert game.prize_pool == Decimal('30.00')
    assert CalledNumber.query.filter_by(game_id=started_game).count() == 75
    with pytest.raises(NotWinner):
        ledger.claim_prize(started_game, players[0].id)


def test_waiting_game_is_not_drawn(make_room, players, seat):
    game_id = seat(make_room(), players)
    with pytest.raises(StateConflict):
        scheduler.draw_next(game_id)
    assert CalledNumber.query.count() == 0


def test_failed_commit_does_not_advance(started_game, monkeypatch):
    def fail_commit():
        raise SQLAlchemyError('write failed')

    monkeypatch.setattr(db.session(), 'commit', fail_commit)
    with pytest.raises(SQLAlchemyError):
        scheduler.draw_next(started_game)
    monkeypatch.undo()

    assert CalledNumber.query.filter_by(game_id=started_game).count() == 0
    assert _game(started_game).current_ball is None

    called = scheduler.draw_next(started_game)
    assert called.order == 1


def test_one_timer_per_game(flask_app, started_game, monkeypatch):
    spawned = []
    monkeypatch.setitem(flask_app.config, 'ENABLE_SCHEDULER_IN_TESTS', True)
    monkeypatch.setattr(socketio, 'start_background_task', lambda fn, *args: spawned.append(args))

    assert scheduler.start_draws(flask_app, started_game) is True
    assert scheduler.start_draws(flask_app, started_game) is False
    assert scheduler.is_drawing(started_game)
    assert len(spawned) == 1

    assert scheduler.pause_draws(flask_app, started_game) is True
    assert not scheduler.is_drawing(started_game)
    assert scheduler.pause_draws(flask_app, started_game) is False

    assert scheduler.resume_draws(flask_app, started_game) is True
    assert scheduler.is_drawing(started_game)
    assert len(spawned) == 2
    # The paused task was cancelled, the new one was not
    assert spawned[0][1].cancelled.is_set()
    assert not spawned[1][1].cancelled.is_set()


def test_timer_disabled_in_tests_by_default(flask_app, started_game):
    assert scheduler.start_draws(flask_app, started_game) is False
    assert not scheduler.is_drawing(started_game)


def test_timer_not_started_for_finished_game(flask_app, started_game, monkeypatch):
    monkeypatch.setitem(flask_app.config, 'ENABLE_SCHEDULER_IN_TESTS', True)
    ledger.finish_without_winner(started_game)
    assert scheduler.start_draws(flask_app, started_game) is False


def test_worker_draws_until_exhausted(flask_app, started_game):
    db.session.commit()
    task = scheduler.DrawTask(started_game, 0, random.Random(5))
    scheduler._draw_tasks[started_game] = task

    scheduler._run_draws(flask_app, task)

    game = _game(started_game)
    assert game.status == 'finished' and game.winner_id is None
    orders = [o for (o,) in db.session.query(CalledNumber.order).filter_by(game_id=started_game)]
    assert sorted(orders) == list(range(1, 76))
    assert not scheduler.is_drawing(started_game)


def test_recover_restarts_in_progress_games(flask_app, started_game, monkeypatch):
    spawned = []
    monkeypatch.setitem(flask_app.config, 'ENABLE_SCHEDULER_IN_TESTS', True)
    monkeypatch.setattr(socketio, 'start_background_task', lambda fn, *args: spawned.append(args))

    assert scheduler.recover_draws(flask_app) == 1
    assert scheduler.is_drawing(started_game)
    assert scheduler.recover_draws(flask_app) == 0


def test_game_lock_is_released_after_draw(started_game):
    scheduler.draw_next(started_game)
    assert started_game not in scheduler._game_locks


def test_worker_retries_after_failed_commit(flask_app, started_game, monkeypatch):
    db.session.commit()
    real_commit = Session.commit
    failures = []

    def flaky_commit(self):
        if not failures:
            failures.append(1)
            raise SQLAlchemyError('write failed')
        return real_commit(self)

    # Each tick opens its own app context and session
    monkeypatch.setattr(Session, 'commit', flaky_commit)
    task = scheduler.DrawTask(started_game, 0, random.Random(7))
    scheduler._draw_tasks[started_game] = task

    scheduler._run_draws(flask_app, task)
    monkeypatch.undo()

    assert failures == [1]
    game = _game(started_game)
    assert game.status == 'finished' and game.winner_id is None
    orders = sorted(o for (o,) in db.session.query(CalledNumber.order).filter_by(game_id=started_game))
    assert orders == list(range(1, 76))
    assert not scheduler.is_drawing(started_game)
