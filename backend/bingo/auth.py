from functools import wraps

from flask_login import current_user, login_required

from bingo.errors import NotAuthorized


def ensure_admin(user) -> None:
    """Raise NotAuthorized unless ``user`` holds the admin role."""
    if user is None or not getattr(user, 'is_admin', False):
        raise NotAuthorized('Administrator privilege required')


def admin_required(view):
    """Route decorator: logged in *and* admin."""
    @wraps(view)
    @login_required
    def wrapper(*args, **kwargs):
        ensure_admin(current_user)
        return view(*args, **kwargs)

    return wrapper
