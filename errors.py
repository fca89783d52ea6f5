"""Exceptions raised by the dispatch core.

Each carries the HTTP status the API layer answers with.
"""


class RideServiceError(Exception):
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__doc__ or ""


class Conflict(RideServiceError):
    """The ride or driver is not in the state this operation expects."""
    status_code = 409


class NotFound(RideServiceError):
    """Referenced ride or driver does not exist."""
    status_code = 404


class Unauthorized(RideServiceError):
    """Caller is not allowed to act on this ride."""
    status_code = 403


class StoreUnavailable(RideServiceError):
    """The database could not be reached. Safe to retry."""
    status_code = 503


class Unauthenticated(RideServiceError):
    """Caller identity missing."""
    status_code = 401
