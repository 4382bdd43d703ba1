"""
Error taxonomy for the slot exchange engine.
Raised by the services and translated to HTTP responses in main.py.
"""


class ExchangeError(Exception):
    """Base class for every failure the engine reports to a caller."""

    kind = "internal"
    status_code = 500

    def __init__(self, reason: str, **details):
        super().__init__(reason)
        self.reason = reason
        self.details = details

    def to_dict(self) -> dict:
        body = {"error": self.kind, "detail": self.reason}
        body.update(self.details)
        return body


class NotFound(ExchangeError):
    """Referenced slot, request or party does not exist."""

    kind = "not_found"
    status_code = 404


class Forbidden(ExchangeError):
    """Caller is authenticated but not allowed to act on this entity."""

    kind = "forbidden"
    status_code = 403


class InvalidRequest(ExchangeError):
    """Well-formed call that would break a business rule."""

    kind = "invalid_request"
    status_code = 400


class Conflict(ExchangeError):
    """Transaction lost a race. Re-read state before trying again."""

    kind = "conflict"
    status_code = 409


class Internal(ExchangeError):
    """Store or transport failure."""

    kind = "internal"
    status_code = 500
