"""Room -> game -> participant lifecycle.

Composes the card, pattern, ledger and draw services and publishes every
state change into the Socket.IO feed. Callers pass the acting user; admin
operations check the role themselves so that both HTTP and CLI callers are
covered.
"""
import random
from typing import Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from bingo import db
from bingo.auth import ensure_admin
from bingo.database import transactional
from bingo.errors import InvalidClaim, NotFound, ResourceExhausted, StateConflict, ValidationError
from bingo.models import (
    OPEN_STATUSES,
    BingoCard,
    CalledNumber,
    Game,
    GameParticipant,
    Room,
    utcnow,
)
from . import ledger
from .cards import letter_for
from .events import publish_game, publish_participants
from .patterns import is_winner
from .scheduler import draw_next, is_drawing, pause_draws, resume_draws, start_draws, stop_draws


def _get_game(game_id) -> Game:
    game = db.session.get(Game, game_id)
    if game is None:
        raise NotFound('Game', game_id)
    return game


def _card_of(game_id, user_id, lock=False) -> BingoCard:
    query = BingoCard.query.filter_by(game_id=game_id, user_id=user_id)
    if lock:
        query = query.with_for_update()
    card = query.first()
    if card is None:
        raise NotFound('Card', user_id)
    return card


def _called_set(game_id):
    return {n for (n,) in db.session.query(CalledNumber.number).filter(CalledNumber.game_id == game_id)}


def _open_game_for(room: Room) -> Game:
    """Return the room's open game, creating one if there is none.

    Two first joiners may both try to create; the partial unique index on
    open games lets exactly one insert through and the other re-reads.
    """
    game = room.open_game()
    if game is not None:
        return game
    mode = room.game_mode
    game = Game(
        room_id=room.id,
        game_mode_id=mode.id,
        pattern_type=mode.pattern_type,
        ball_interval_seconds=mode.ball_interval_seconds,
        entry_cost=room.default_entry_cost,
        status='waiting',
    )
    db.session.add(game)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        game = room.open_game()
        if game is None:
            raise
        return game
    current_app.logger.info(f"[game-create] room={room.id} game={game.id} entry_cost={game.entry_cost}")
    publish_game(game)
    return game


def join_room(user, room_id) -> GameParticipant:
    room = db.session.get(Room, room_id)
    if room is None:
        raise NotFound('Room', room_id)
    if not room.is_active or room.game_mode is None or not room.game_mode.active:
        raise StateConflict(f"Room {room_id} is not accepting players")

    game = _open_game_for(room)
    existing = GameParticipant.query.filter_by(game_id=game.id, user_id=user.id).first()
    if existing is not None:
        return existing

    # Lock the game row so that capacity is checked against a stable count
    Game.query.filter_by(id=game.id).with_for_update().first()
    count = GameParticipant.query.filter_by(game_id=game.id).count()
    if count >= room.max_players:
        db.session.rollback()
        raise StateConflict(f"Room {room_id} is full", max_players=room.max_players)

    participant = GameParticipant(game_id=game.id, user_id=user.id)
    db.session.add(participant)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        participant = GameParticipant.query.filter_by(game_id=game.id, user_id=user.id).first()
        if participant is None:
            raise
        return participant

    current_app.logger.info(f"[join] room={room_id} game={game.id} user={user.id} players={count + 1}")
    publish_participants(game)
    return participant


def purchase_entry(user, game_id, rng: Optional[random.Random] = None):
    receipt = ledger.purchase_entry(game_id, user.id, rng)
    game = _get_game(game_id)
    publish_participants(game)
    publish_game(game)
    return receipt


@transactional
def _begin(game_id) -> None:
    game = Game.query.filter_by(id=game_id).with_for_update().first()
    if game is None:
        raise NotFound('Game', game_id)
    if game.status != 'waiting':
        raise StateConflict(f"Game {game_id} is {game.status}; only waiting games can start")
    count = GameParticipant.query.filter_by(game_id=game_id).count()
    required = game.room.min_players
    if count < required:
        raise StateConflict(f"Game {game_id} needs {required} players", participants=count, required=required)
    started = Game.query.filter(Game.id == game_id, Game.status == 'waiting').update(
        {Game.status: 'in_progress', Game.started_at: utcnow()}, synchronize_session=False)
    if started != 1:
        raise StateConflict(f"Game {game_id} was started concurrently")


def start_game(admin, game_id) -> Game:
    ensure_admin(admin)
    _begin(game_id)
    game = _get_game(game_id)
    current_app.logger.info(f"[game-start] game={game_id} by={admin.id}")
    publish_game(game)
    start_draws(current_app._get_current_object(), game_id)
    return game


@transactional
def mark_number(user, game_id, number) -> BingoCard:
    """Mark a called number on the user's card. Marking twice is a no-op."""
    if isinstance(number, bool) or not isinstance(number, int):
        raise ValidationError(f"Invalid number: {number!r}")
    letter_for(number)
    game = _get_game(game_id)
    if game.status != 'in_progress':
        raise StateConflict(f"Game {game_id} is not in progress")
    card = _card_of(game_id, user.id, lock=True)
    if not card.contains(number):
        raise ValidationError(f"{number} is not on this card")
    if number not in _called_set(game_id):
        raise StateConflict(f"{number} has not been called")
    card.mark(number)
    return card


def claim_bingo(user, game_id) -> Game:
    """Validate the user's card against the called numbers and settle the win."""
    game = _get_game(game_id)
    if game.status != 'in_progress':
        raise StateConflict(f"Game {game_id} is not in progress")
    card = _card_of(game_id, user.id)
    called = _called_set(game_id)
    # Only marks that were actually called count
    marked = [n for n in card.marked if n in called]
    pattern = game.pattern_type
    if not is_winner(card.grid, marked, pattern):
        raise InvalidClaim(pattern=pattern)

    game = ledger.finish_with_winner(game_id, user.id, pattern)
    stop_draws(game_id)
    current_app.logger.info(f"[bingo] game={game_id} winner={user.id} pattern={pattern}")
    publish_game(game)
    publish_participants(game)
    return game


def _user_id(value, field) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a user id")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a user id")


def force_finish(admin, game_id, winner_id=None) -> Game:
    ensure_admin(admin)
    if winner_id is not None:
        game = ledger.finish_with_winner(game_id, _user_id(winner_id, 'winner_id'))
    else:
        game = ledger.finish_without_winner(game_id)
    stop_draws(game_id)
    publish_game(game)
    publish_participants(game)
    return game


def claim_prize(user, game_id):
    receipt = ledger.claim_prize(game_id, user.id)
    publish_game(_get_game(game_id))
    return receipt


def draw_now(admin, game_id, rng: Optional[random.Random] = None) -> CalledNumber:
    ensure_admin(admin)
    try:
        return draw_next(game_id, rng)
    except ResourceExhausted:
        stop_draws(game_id)
        raise


def _ensure_running(game_id) -> Game:
    game = _get_game(game_id)
    if game.status != 'in_progress':
        raise StateConflict(f"Game {game_id} is not in progress")
    return game


def pause(admin, game_id) -> dict:
    ensure_admin(admin)
    _ensure_running(game_id)
    pause_draws(current_app._get_current_object(), game_id)
    return {'game_id': game_id, 'drawing': is_drawing(game_id)}


def resume(admin, game_id) -> dict:
    ensure_admin(admin)
    _ensure_running(game_id)
    resume_draws(current_app._get_current_object(), game_id)
    return {'game_id': game_id, 'drawing': is_drawing(game_id)}


def refund(admin, game_id):
    receipt = ledger.refund_entries(admin, game_id)
    publish_game(_get_game(game_id))
    return receipt


# ---- read models ----

def game_state(game_id, viewer=None) -> dict:
    game = _get_game(game_id)
    state = game.to_dict(include_players=True)
    state['called_numbers'] = [c.to_dict() for c in game.called_numbers()]
    state['drawing'] = is_drawing(game_id)
    if viewer is not None:
        card = BingoCard.query.filter_by(game_id=game_id, user_id=viewer.id).first()
        state['card'] = card.to_dict() if card else None
    return state


def lobby_rooms() -> list:
    rooms = Room.query.filter_by(is_active=True).order_by(Room.id).all()
    lobby = []
    for room in rooms:
        if room.game_mode is None or not room.game_mode.active:
            continue
        data = room.to_dict()
        game = room.open_game()
        data['open_game'] = game.to_dict(include_players=False) if game else None
        data['player_count'] = len(game.participants) if game else 0
        lobby.append(data)
    return lobby


def open_games() -> list:
    games = Game.query.filter(Game.status.in_(OPEN_STATUSES)).order_by(Game.created_at, Game.id).all()
    return [g.to_dict(include_players=False) for g in games]
