from decimal import Decimal

from flask import current_app
from sqlalchemy.exc import IntegrityError

from bingo import db
from bingo.auth import ensure_admin
from bingo.database import transactional
from bingo.errors import NotAuthorized, NotFound, ValidationError
from bingo.models import ROLES, User


def _text(value, field, required=True, limit=120):
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(f"{field} is required")
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    if len(value.strip()) > limit:
        raise ValidationError(f"{field} must be at most {limit} characters")
    return value.strip()


@transactional
def register(email, password, full_name, phone=None) -> User:
    """Create a player account holding the configured starting balance."""
    email = _text(email, 'email').lower()
    if '@' not in email:
        raise ValidationError('email is invalid')
    if not isinstance(password, str) or len(password) < 6:
        raise ValidationError('password must be at least 6 characters')
    starting = Decimal(str(current_app.config.get('STARTING_BALANCE', '0'))).quantize(Decimal('0.01'))
    user = User(
        email=email,
        full_name=_text(full_name, 'full_name'),
        phone=_text(phone, 'phone', required=False, limit=32),
        role='player',
        balance=starting,
        starting_balance=starting,
    )
    user.set_password(password)
    db.session.add(user)
    try:
        db.session.flush()
    except IntegrityError:
        raise ValidationError('Email already registered')
    current_app.logger.info(f"[account] registered user={user.id}")
    return user


def authenticate(email, password) -> User:
    if not isinstance(email, str) or not isinstance(password, str):
        raise NotAuthorized('Invalid credentials')
    user = User.query.filter_by(email=email.strip().lower()).first()
    if user is None or not user.check_password(password):
        raise NotAuthorized('Invalid credentials')
    return user


@transactional
def update_own_profile(user, full_name=None, phone=None) -> User:
    """Players may edit their name and phone; balance and stats are not writable here."""
    if full_name is not None:
        user.full_name = _text(full_name, 'full_name')
    if phone is not None:
        user.phone = _text(phone, 'phone', required=False, limit=32)
    return user


@transactional
def admin_update_profile(admin, user_id, full_name=None, phone=None, role=None) -> User:
    ensure_admin(admin)
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFound('User', user_id)
    if role is not None:
        if role not in ROLES:
            raise ValidationError(f"Unknown role: {role!r}", allowed=list(ROLES))
        user.role = role
    if full_name is not None:
        user.full_name = _text(full_name, 'full_name')
    if phone is not None:
        user.phone = _text(phone, 'phone', required=False, limit=32)
    current_app.logger.info(f"[account] profile user={user_id} edited by={admin.id}")
    return user


def list_users():
    return User.query.order_by(User.id).all()
