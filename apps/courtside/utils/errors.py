"""
Domain errors raised by the service layer.

Services raise these (they are ValueErrors, so existing ``except ValueError``
handlers keep working); routes translate them to HTTP status codes.
"""


class CourtsideError(ValueError):
    """Base class for domain failures surfaced to the caller."""

    status_code = 400


class NotFoundError(CourtsideError):
    """Referenced user, post, stat, request or friendship does not exist."""

    status_code = 404


class InvalidRequestError(CourtsideError):
    """Friend request violates a structural rule (self-request, duplicate, already friends)."""

    status_code = 400


class InvalidStatError(CourtsideError):
    """Match report violates a structural rule (reporting against yourself)."""

    status_code = 400


class ForbiddenError(CourtsideError):
    """Caller does not own the entity being mutated."""

    status_code = 403


class ConflictError(CourtsideError):
    """A concurrent mutation already produced the row this one tried to write."""

    status_code = 409
