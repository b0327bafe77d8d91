"""Domain exceptions raised by services and translated by the HTTP layer.

Services never raise `HTTPException`; controllers in `fittrack.main` map
these classes onto status codes.
"""


class InvalidInput(ValueError):
    """Request data failed validation; nothing was written."""


class AuthError(ValueError):
    """Bad credentials, or a reset code that is wrong or expired."""


class Conflict(ValueError):
    """A unique field (email, username) is already taken."""


class NotFound(LookupError):
    """The record does not exist or is not owned by the caller."""


class PersistenceError(RuntimeError):
    """A datastore operation failed and its transaction was rolled back.

    The original exception is available both as `cause` and through the
    usual `__cause__` chaining.
    """

    def __init__(self, message: str, cause: BaseException = None):
        super().__init__(message)
        self.cause = cause


class DietGenerationError(RuntimeError):
    """The diet-plan model could not be reached or returned unusable JSON."""


class DietResponseParseError(DietGenerationError):
    """The model answered, but not with a usable JSON plan."""
