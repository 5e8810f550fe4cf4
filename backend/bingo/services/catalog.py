"""Operator-managed game modes and rooms."""
from decimal import Decimal

from flask import current_app
from sqlalchemy.exc import IntegrityError

from bingo import db
from bingo.auth import ensure_admin
from bingo.database import transactional
from bingo.errors import NotFound, StateConflict, ValidationError
from bingo.models import Game, GameMode, Room
from bingo.services.games.ledger import to_amount
from bingo.services.games.patterns import PATTERN_TYPES

MODE_FIELDS = ('name', 'description', 'pattern_type', 'max_players', 'ball_interval_seconds', 'active')
ROOM_FIELDS = ('name', 'game_mode_id', 'min_players', 'max_players', 'default_entry_cost', 'is_active')


def _name(value) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError('name is required')
    if len(value.strip()) > 64:
        raise ValidationError('name must be at most 64 characters')
    return value.strip()


def _int(value, field, minimum) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer")
    if number < minimum:
        raise ValidationError(f"{field} must be at least {minimum}")
    return number


def _flag(value, field) -> bool:
    if not isinstance(value, bool):
        raise ValidationError(f"{field} must be true or false")
    return value


def _flush_unique(entity) -> None:
    try:
        db.session.flush()
    except IntegrityError:
        raise ValidationError(f"{entity} name already exists")


def _mode(mode_id) -> GameMode:
    mode = db.session.get(GameMode, mode_id)
    if mode is None:
        raise NotFound('GameMode', mode_id)
    return mode


def _room(room_id) -> Room:
    room = db.session.get(Room, room_id)
    if room is None:
        raise NotFound('Room', room_id)
    return room


def _has_open_game(room_id) -> bool:
    return Game.query.filter(Game.room_id == room_id, Game.status != 'finished').first() is not None


# ---- game modes ----

def list_modes():
    return GameMode.query.order_by(GameMode.id).all()


def _apply_mode(mode: GameMode, data: dict) -> None:
    if 'name' in data:
        mode.name = _name(data['name'])
    if 'description' in data:
        mode.description = data['description'] or None
    if 'pattern_type' in data:
        if data['pattern_type'] not in PATTERN_TYPES:
            raise ValidationError(f"Unknown pattern type: {data['pattern_type']!r}", allowed=list(PATTERN_TYPES))
        mode.pattern_type = data['pattern_type']
    if 'max_players' in data:
        mode.max_players = _int(data['max_players'], 'max_players', 2)
    if 'ball_interval_seconds' in data:
        mode.ball_interval_seconds = _int(data['ball_interval_seconds'], 'ball_interval_seconds', 1)
    if 'active' in data:
        mode.active = _flag(data['active'], 'active')


@transactional
def create_mode(admin, data: dict) -> GameMode:
    ensure_admin(admin)
    for field in ('name', 'pattern_type'):
        if field not in data:
            raise ValidationError(f"{field} is required")
    mode = GameMode(
        max_players=int(current_app.config.get('DEFAULT_MAX_PLAYERS', 10)),
        ball_interval_seconds=int(current_app.config.get('DEFAULT_BALL_INTERVAL_SEC', 5)),
        created_by=admin.id,
    )
    _apply_mode(mode, data)
    db.session.add(mode)
    _flush_unique('Game mode')
    current_app.logger.info(f"[catalog] mode created id={mode.id} pattern={mode.pattern_type}")
    return mode


@transactional
def update_mode(admin, mode_id, data: dict) -> GameMode:
    ensure_admin(admin)
    mode = _mode(mode_id)
    _apply_mode(mode, data)
    # Rooms may not allow more players than their mode
    largest = db.session.query(db.func.max(Room.max_players)).filter(Room.game_mode_id == mode.id).scalar()
    if largest is not None and largest > mode.max_players:
        raise ValidationError(f"A room of this mode allows {largest} players", max_players=mode.max_players)
    _flush_unique('Game mode')
    return mode


@transactional
def delete_mode(admin, mode_id) -> None:
    ensure_admin(admin)
    mode = _mode(mode_id)
    if Room.query.filter_by(game_mode_id=mode.id).first() is not None:
        raise StateConflict('Game mode is used by rooms')
    if Game.query.filter_by(game_mode_id=mode.id).first() is not None:
        raise StateConflict('Game mode has game history; deactivate it instead')
    db.session.delete(mode)
    current_app.logger.info(f"[catalog] mode deleted id={mode_id}")


# ---- rooms ----

def list_rooms():
    return Room.query.order_by(Room.id).all()


def _apply_room(room: Room, data: dict) -> None:
    if 'name' in data:
        room.name = _name(data['name'])
    if 'game_mode_id' in data:
        room.game_mode = _mode(data['game_mode_id'])
    if 'min_players' in data:
        room.min_players = _int(data['min_players'], 'min_players', 2)
    if 'max_players' in data:
        room.max_players = _int(data['max_players'], 'max_players', 2)
    if 'default_entry_cost' in data:
        cost = to_amount(data['default_entry_cost'])
        if cost <= Decimal('0'):
            raise ValidationError('default_entry_cost must be greater than zero')
        room.default_entry_cost = cost
    if 'is_active' in data:
        room.is_active = _flag(data['is_active'], 'is_active')

    if room.min_players > room.max_players:
        raise ValidationError('min_players cannot exceed max_players')
    if room.game_mode is not None and room.max_players > room.game_mode.max_players:
        raise ValidationError(f"max_players cannot exceed the mode limit of {room.game_mode.max_players}")


@transactional
def create_room(admin, data: dict) -> Room:
    ensure_admin(admin)
    for field in ('name', 'game_mode_id'):
        if field not in data:
            raise ValidationError(f"{field} is required")
    room = Room(
        min_players=int(current_app.config.get('DEFAULT_MIN_PLAYERS', 3)),
        max_players=int(current_app.config.get('DEFAULT_MAX_PLAYERS', 10)),
        default_entry_cost=Decimal(str(current_app.config.get('DEFAULT_ENTRY_COST', '10.00'))),
        created_by=admin.id,
    )
    _apply_room(room, data)
    db.session.add(room)
    _flush_unique('Room')
    current_app.logger.info(f"[catalog] room created id={room.id} mode={room.game_mode_id}")
    return room


@transactional
def update_room(admin, room_id, data: dict) -> Room:
    """Edit a room. While a game is open only ``is_active`` may change."""
    ensure_admin(admin)
    room = _room(room_id)
    if set(data) - {'is_active'} and _has_open_game(room.id):
        raise StateConflict('Room has an open game; only is_active can change')
    _apply_room(room, data)
    _flush_unique('Room')
    return room


@transactional
def delete_room(admin, room_id) -> None:
    ensure_admin(admin)
    room = _room(room_id)
    if _has_open_game(room.id):
        raise StateConflict('Room has an open game')
    if Game.query.filter_by(room_id=room.id).first() is not None:
        raise StateConflict('Room has game history; deactivate it instead')
    db.session.delete(room)
    current_app.logger.info(f"[catalog] room deleted id={room_id}")
