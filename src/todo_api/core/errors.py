"""Error taxonomy for Todo API.

Every error carries an HTTP status and a message that is safe to show to
the caller. ``StoreFailure`` wraps database errors; its message is generic
and the original exception is only logged.
"""


class TodoApiError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(TodoApiError):
    """Entity id has no matching row."""

    status_code = 404


class InvalidReferenceError(TodoApiError):
    """A referenced category, user, tag, note or todo does not exist."""

    status_code = 400


class ValidationFailure(TodoApiError):
    status_code = 400


class SelfDependencyError(ValidationFailure):
    def __init__(self, message: str = "A todo cannot depend on itself"):
        super().__init__(message)


class CircularDependencyError(ValidationFailure):
    def __init__(self, message: str = "Circular dependency detected"):
        super().__init__(message)


class StoreFailure(TodoApiError):
    status_code = 500
