"""Domain errors raised by the game session engine.

Each error names one failure kind. The HTTP layer turns any of them into a
tagged failure envelope, using ``kind`` and ``status_code``.
"""


class BingoError(Exception):
    """Base class for every domain error."""
    status_code = 400

    def __init__(self, message=None, **details):
        self.message = message or self.default_message()
        self.details = details
        super().__init__(self.message)

    @property
    def kind(self):
        return type(self).__name__

    def default_message(self):
        return self.kind

    def to_dict(self):
        payload = {'kind': self.kind, 'message': self.message}
        if self.details:
            payload['details'] = self.details
        return payload


class ValidationError(BingoError):
    """Malformed input, e.g. a non-positive amount."""
    status_code = 400


class StateConflict(BingoError):
    """Operation is not valid for the current state of the entity."""
    status_code = 409


class InvalidClaim(StateConflict):
    """Bingo claim whose card does not satisfy the game's pattern."""

    def default_message(self):
        return 'Card does not satisfy the winning pattern'


class InsufficientBalance(BingoError):
    status_code = 402

    def default_message(self):
        return 'Insufficient balance'


class AlreadyPaid(StateConflict):

    def default_message(self):
        return 'Entry already paid'


class AlreadyClaimed(StateConflict):

    def default_message(self):
        return 'Nothing to claim'


NothingToClaim = AlreadyClaimed


class NotAuthorized(BingoError):
    status_code = 403

    def default_message(self):
        return 'Not authorized'


class NotWinner(NotAuthorized):

    def default_message(self):
        return 'Only the winner may claim the prize'


class NotFound(BingoError):
    status_code = 404

    def __init__(self, entity, ident=None):
        self.entity = entity
        self.ident = ident
        super().__init__(f"{entity} {ident} not found" if ident is not None else f"{entity} not found")


class ResourceExhausted(BingoError):
    """All 75 numbers have been called."""
    status_code = 409

    def default_message(self):
        return 'Number pool exhausted'
