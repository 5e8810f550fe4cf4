from bingo import db, bcrypt
from flask_login import UserMixin
from datetime import datetime, timezone
from decimal import Decimal
import json

GAME_STATUSES = ('waiting', 'in_progress', 'finished')
OPEN_STATUSES = ('waiting', 'in_progress')
ROLES = ('player', 'admin')
TRANSACTION_TYPES = ('deposit', 'entry_fee', 'prize_win', 'refund')
# Transaction amounts are stored as magnitudes; the type carries the sign.
DEBIT_TYPES = ('entry_fee',)

Money = db.Numeric(12, 2)


def utcnow():
    return datetime.now(timezone.utc)


def _money(value):
    return float(value) if value is not None else None


def _ts(value):
    return value.isoformat() if value else None


class User(UserMixin, db.Model):
    __tablename__ = 'user_profile'
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    full_name = db.Column(db.String(120), nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    role = db.Column(db.String(16), nullable=False, default='player')
    balance = db.Column(Money, nullable=False, default=Decimal('0'))
    starting_balance = db.Column(Money, nullable=False, default=Decimal('0'))
    points = db.Column(db.Integer, nullable=False, default=0)
    wins = db.Column(db.Integer, nullable=False, default=0)
    games_played = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    @property
    def is_admin(self):
        return self.role == 'admin'

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'full_name': self.full_name,
            'phone': self.phone,
            'role': self.role,
            'balance': _money(self.balance),
            'points': self.points,
            'wins': self.wins,
            'games_played': self.games_played,
            'created_at': _ts(self.created_at),
            'updated_at': _ts(self.updated_at),
        }


class GameMode(db.Model):
    __tablename__ = 'game_mode'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), unique=True, nullable=False)
    description = db.Column(db.Text, nullable=True)
    pattern_type = db.Column(db.String(32), nullable=False)
    max_players = db.Column(db.Integer, nullable=False, default=10)
    ball_interval_seconds = db.Column(db.Integer, nullable=False, default=5)
    active = db.Column(db.Boolean, nullable=False, default=True)
    created_by = db.Column(db.Integer, db.ForeignKey('user_profile.id'), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'pattern': {'type': self.pattern_type},
            'max_players': self.max_players,
            'ball_interval_seconds': self.ball_interval_seconds,
            'active': self.active,
            'created_by': self.created_by,
            'created_at': _ts(self.created_at),
        }


class Room(db.Model):
    __tablename__ = 'room'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), unique=True, nullable=False)
    game_mode_id = db.Column(db.Integer, db.ForeignKey('game_mode.id'), nullable=False)
    min_players = db.Column(db.Integer, nullable=False, default=3)
    max_players = db.Column(db.Integer, nullable=False, default=10)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    default_entry_cost = db.Column(Money, nullable=False, default=Decimal('10.00'))
    created_by = db.Column(db.Integer, db.ForeignKey('user_profile.id'), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    game_mode = db.relationship('GameMode')

    def open_game(self):
        return Game.query.filter(Game.room_id == self.id, Game.status.in_(OPEN_STATUSES)).first()

    def to_dict(self, include_mode=True):
        data = {
            'id': self.id,
            'name': self.name,
            'game_mode_id': self.game_mode_id,
            'min_players': self.min_players,
            'max_players': self.max_players,
            'is_active': self.is_active,
            'default_entry_cost': _money(self.default_entry_cost),
            'created_by': self.created_by,
            'created_at': _ts(self.created_at),
        }
        if include_mode and self.game_mode:
            data['game_mode'] = self.game_mode.to_dict()
        return data


class Game(db.Model):
    __tablename__ = 'game'
    id = db.Column(db.Integer, primary_key=True)
    room_id = db.Column(db.Integer, db.ForeignKey('room.id'), nullable=False, index=True)
    # Snapshot of the room/mode at creation; later edits do not reach this game
    game_mode_id = db.Column(db.Integer, db.ForeignKey('game_mode.id'), nullable=False)
    pattern_type = db.Column(db.String(32), nullable=False)
    ball_interval_seconds = db.Column(db.Integer, nullable=False)
    entry_cost = db.Column(Money, nullable=False)
    status = db.Column(db.String(16), nullable=False, default='waiting')  # waiting, in_progress, finished
    current_ball = db.Column(db.Integer, nullable=True)
    prize_pool = db.Column(Money, nullable=False, default=Decimal('0'))
    winner_id = db.Column(db.Integer, db.ForeignKey('user_profile.id'), nullable=True)
    win_pattern = db.Column(db.String(32), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    finished_at = db.Column(db.DateTime(timezone=True), nullable=True)

    room = db.relationship('Room')
    participants = db.relationship('GameParticipant', back_populates='game', order_by='GameParticipant.id')

    __table_args__ = (
        # At most one open game per room
        db.Index(
            'uq_game_open_room', 'room_id', unique=True,
            postgresql_where=db.text("status <> 'finished'"),
            sqlite_where=db.text("status <> 'finished'"),
        ),
    )

    @property
    def is_open(self):
        return self.status in OPEN_STATUSES

    def called_numbers(self):
        return CalledNumber.query.filter_by(game_id=self.id).order_by(CalledNumber.order).all()

    def to_dict(self, include_players=True):
        data = {
            'id': self.id,
            'room_id': self.room_id,
            'game_mode_id': self.game_mode_id,
            'pattern': {'type': self.pattern_type},
            'ball_interval_seconds': self.ball_interval_seconds,
            'status': self.status,
            'current_ball': self.current_ball,
            'entry_cost': _money(self.entry_cost),
            'prize_pool': _money(self.prize_pool),
            'winner_id': self.winner_id,
            'win_pattern': self.win_pattern,
            'created_at': _ts(self.created_at),
            'started_at': _ts(self.started_at),
            'finished_at': _ts(self.finished_at),
        }
        if include_players:
            data['participants'] = [p.to_dict() for p in self.participants]
        return data


class GameParticipant(db.Model):
    __tablename__ = 'game_participant'
    id = db.Column(db.Integer, primary_key=True)
    game_id = db.Column(db.Integer, db.ForeignKey('game.id'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user_profile.id'), nullable=False)
    joined_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    # Lobby clients read this flag; joining counts as ready
    is_ready = db.Column(db.Boolean, nullable=False, default=True)
    paid_entry = db.Column(db.Boolean, nullable=False, default=False)

    game = db.relationship('Game', back_populates='participants')
    user = db.relationship('User')

    __table_args__ = (
        db.UniqueConstraint('game_id', 'user_id', name='uq_participant_game_user'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'game_id': self.game_id,
            'user_id': self.user_id,
            'joined_at': _ts(self.joined_at),
            'is_ready': self.is_ready,
            'paid_entry': self.paid_entry,
            'full_name': self.user.full_name if self.user else None,
            'wins': self.user.wins if self.user else 0,
        }


class BingoCard(db.Model):
    __tablename__ = 'bingo_card'
    id = db.Column(db.Integer, primary_key=True)
    game_id = db.Column(db.Integer, db.ForeignKey('game.id'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user_profile.id'), nullable=False)
    numbers = db.Column(db.Text, nullable=False)  # JSON-encoded 5x5 grid, row-major
    marked_numbers = db.Column(db.Text, nullable=False, default='[]')  # JSON-encoded list, in marking order
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        db.UniqueConstraint('game_id', 'user_id', name='uq_card_game_user'),
    )

    @property
    def grid(self):
        return json.loads(self.numbers)

    @property
    def marked(self):
        return json.loads(self.marked_numbers or '[]')

    def contains(self, number):
        return any(number in row for row in self.grid)

    def mark(self, number):
        """Append ``number`` to the marks; returns False if it was already marked."""
        marked = self.marked
        if number in marked:
            return False
        marked.append(number)
        self.marked_numbers = json.dumps(marked)
        return True

    def to_dict(self):
        return {
            'id': self.id,
            'game_id': self.game_id,
            'user_id': self.user_id,
            'numbers': self.grid,
            'marked_numbers': self.marked,
            'created_at': _ts(self.created_at),
        }


class CalledNumber(db.Model):
    __tablename__ = 'called_number'
    id = db.Column(db.Integer, primary_key=True)
    game_id = db.Column(db.Integer, db.ForeignKey('game.id'), nullable=False, index=True)
    number = db.Column(db.Integer, nullable=False)
    letter = db.Column(db.String(1), nullable=False)
    order = db.Column(db.Integer, nullable=False)
    called_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        db.UniqueConstraint('game_id', 'number', name='uq_called_game_number'),
        db.UniqueConstraint('game_id', 'order', name='uq_called_game_order'),
        db.CheckConstraint('number >= 1 AND number <= 75', name='ck_called_number_range'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'game_id': self.game_id,
            'number': self.number,
            'letter': self.letter,
            'order': self.order,
            'called_at': _ts(self.called_at),
        }


class Transaction(db.Model):
    __tablename__ = 'ledger_transaction'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user_profile.id'), nullable=False, index=True)
    game_id = db.Column(db.Integer, db.ForeignKey('game.id'), nullable=True)
    type = db.Column(db.String(16), nullable=False)  # deposit, entry_fee, prize_win, refund
    amount = db.Column(Money, nullable=False)
    balance_after = db.Column(Money, nullable=False)
    description = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        db.CheckConstraint('amount > 0', name='ck_transaction_amount_positive'),
    )

    @property
    def signed_amount(self):
        return -self.amount if self.type in DEBIT_TYPES else self.amount

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'game_id': self.game_id,
            'type': self.type,
            'amount': _money(self.amount),
            'balance_after': _money(self.balance_after),
            'description': self.description,
            'created_at': _ts(self.created_at),
        }
