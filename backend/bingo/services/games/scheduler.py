import random
import threading
import weakref
from typing import Dict, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from bingo import db, socketio
from bingo.errors import NotFound, ResourceExhausted, StateConflict
from bingo.models import CalledNumber, Game
from .cards import HIGHEST_NUMBER, LOWEST_NUMBER, letter_for
from .events import publish_called_number, publish_game
from . import ledger

POOL_SIZE = HIGHEST_NUMBER - LOWEST_NUMBER + 1

_system_random = random.SystemRandom()


class DrawTask:
    """One server-owned draw timer for one game."""

    def __init__(self, game_id: int, interval: int, rng: random.Random):
        self.game_id = game_id
        self.interval = interval
        self.rng = rng
        self.cancelled = threading.Event()


# Registry of live timers: at most one per game id
_draw_tasks: Dict[int, DrawTask] = {}
_registry_lock = threading.Lock()
# Serializes "read called set -> pick -> persist -> advance pointer" per game.
# An entry lives only while some draw holds its lock.
_game_locks: "weakref.WeakValueDictionary[int, threading.Lock]" = weakref.WeakValueDictionary()


def _game_lock(game_id: int) -> threading.Lock:
    with _registry_lock:
        lock = _game_locks.get(game_id)
        if lock is None:
            lock = _game_locks[game_id] = threading.Lock()
        return lock


def draw_next(game_id: int, rng: Optional[random.Random] = None) -> CalledNumber:
    """Call one unused number for an in-progress game.

    - Raises StateConflict if the game is not in progress
    - On a full pool, finishes the game without a winner and raises ResourceExhausted
    - A failed commit rolls back both the called-number row and the
      current-ball pointer, so the same sequence slot is retried next time
    """
    rng = rng or _system_random
    with _game_lock(game_id):
        game = Game.query.filter_by(id=game_id).with_for_update().first()
        if game is None or game.status != 'in_progress':
            db.session.rollback()
            if game is None:
                raise NotFound('Game', game_id)
            raise StateConflict(f"Game {game_id} is not in progress")

        called = {n for (n,) in db.session.query(CalledNumber.number).filter(CalledNumber.game_id == game_id)}
        if len(called) >= POOL_SIZE:
            db.session.rollback()
            game = ledger.finish_without_winner(game_id)
            publish_game(game)
            raise ResourceExhausted(f"All {POOL_SIZE} numbers have been called for game {game_id}")

        remaining = [n for n in range(LOWEST_NUMBER, HIGHEST_NUMBER + 1) if n not in called]
        number = rng.choice(remaining)
        last_order = db.session.query(func.max(CalledNumber.order)).filter(CalledNumber.game_id == game_id).scalar()
        called_number = CalledNumber(
            game_id=game_id,
            number=number,
            letter=letter_for(number),
            order=(last_order or 0) + 1,
        )
        try:
            db.session.add(called_number)
            game.current_ball = number
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise

    publish_called_number(called_number)
    publish_game(game)
    return called_number


def start_draws(app, game_id: int, rng: Optional[random.Random] = None) -> bool:
    """Start the draw timer for the given game.

    - No-ops in TESTING mode unless ENABLE_SCHEDULER_IN_TESTS is set
    - Ensures a single timer per game id
    - Each tick waits the game's ball interval, so a resumed game
      restarts its interval from zero
    """
    if app.config.get('TESTING') and not app.config.get('ENABLE_SCHEDULER_IN_TESTS'):
        return False

    with app.app_context():
        game = Game.query.filter_by(id=game_id).first()
        if not game or game.status != 'in_progress':
            return False
        interval = int(game.ball_interval_seconds)

    with _registry_lock:
        if game_id in _draw_tasks:
            app.logger.info(f"[draw-skip] game={game_id} already scheduled")
            return False
        task = DrawTask(game_id, interval, rng or _system_random)
        _draw_tasks[game_id] = task

    app.logger.info(f"[draw-start] game={game_id} interval={interval}s")
    socketio.start_background_task(_run_draws, app, task)
    return True


def stop_draws(game_id: int) -> bool:
    """Cancel the pending timer, if any. Mutates no game state."""
    with _registry_lock:
        task = _draw_tasks.pop(game_id, None)
    if task is None:
        return False
    task.cancelled.set()
    return True


def pause_draws(app, game_id: int) -> bool:
    paused = stop_draws(game_id)
    app.logger.info(f"[draw-pause] game={game_id} was_running={paused}")
    return paused


def resume_draws(app, game_id: int, rng: Optional[random.Random] = None) -> bool:
    return start_draws(app, game_id, rng)


def is_drawing(game_id: int) -> bool:
    with _registry_lock:
        return game_id in _draw_tasks


def recover_draws(app) -> int:
    """Restart timers for games persisted as in progress (after a restart)."""
    with app.app_context():
        game_ids = [gid for (gid,) in db.session.query(Game.id).filter(Game.status == 'in_progress')]
    started = sum(1 for gid in game_ids if start_draws(app, gid))
    app.logger.info(f"[draw-recover] in_progress={len(game_ids)} started={started}")
    return started


def _run_draws(app, task: DrawTask) -> None:
    try:
        while not task.cancelled.wait(task.interval):
            with app.app_context():
                try:
                    called = draw_next(task.game_id, task.rng)
                except ResourceExhausted:
                    app.logger.info(f"[draw-stop] game={task.game_id} pool exhausted")
                    return
                except (StateConflict, NotFound) as exc:
                    app.logger.info(f"[draw-stop] game={task.game_id} {exc}")
                    return
                except SQLAlchemyError as exc:
                    # Same slot is retried on the next tick
                    app.logger.warning(f"[draw-retry] game={task.game_id} {exc}")
                    continue
                app.logger.info(
                    f"[draw] game={task.game_id} order={called.order} ball={called.letter}{called.number}"
                )
    finally:
        with _registry_lock:
            if _draw_tasks.get(task.game_id) is task:
                del _draw_tasks[task.game_id]
