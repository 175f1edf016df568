"""
Error taxonomy for the scheduling core.

Every error carries the HTTP status it maps to and whether the caller may
safely retry. The API layer renders them as {"error": message}.
"""


class WaitwiseError(Exception):
    """Base class for all domain errors."""
    status_code: int = 500
    retryable: bool = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidRequest(WaitwiseError):
    """Missing or malformed required input (shop id, service ids, date...)."""
    status_code = 400


class InvalidServiceSet(WaitwiseError):
    """A requested service does not exist or belongs to another shop."""
    status_code = 400


class NotFound(WaitwiseError):
    status_code = 404


class ConflictAlreadyServing(WaitwiseError):
    """The barber already has a client in progress."""
    status_code = 409


class InvalidTransition(WaitwiseError):
    """Status change not allowed from the entity's current status."""
    status_code = 409


class InvalidConfiguration(WaitwiseError):
    """Stored shop data is malformed (e.g. opening hours not HH:MM)."""
    status_code = 500


class NotifierFailure(WaitwiseError):
    status_code = 502
    retryable = True


class UpstreamFetchFailure(WaitwiseError):
    """A read from the store failed; the whole computation is aborted."""
    status_code = 503
    retryable = True


class StoreWriteFailure(WaitwiseError):
    """A write to the store failed (network, constraint violation)."""
    status_code = 503
    retryable = True
