from functools import wraps

from flask import current_app

from bingo import db


def transactional(func):
    """Run ``func`` as one unit of work on ``db.session``.

    The session is committed when ``func`` returns and rolled back when it
    raises; the exception is re-raised for the caller. Functions decorated
    with this must not commit on their own.
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            result = func(*args, **kwargs)
            db.session.commit()
            return result
        except Exception as exc:
            current_app.logger.info(f"[rollback] {func.__name__}: {exc}")
            db.session.rollback()
            raise

    return wrapper
