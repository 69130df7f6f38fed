"""
Error kinds raised while handling registry actions and request bodies.

Every error carries a stable ``kind`` plus the HTTP status it maps to
when strict status reporting is enabled. By default the users endpoint
reports all of them as 500.
"""


class ActionError(Exception):
    """Base class for failures surfaced to API callers."""

    kind = "error"
    title = "Bad request"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ActionError):
    """A required field is missing or a field value is invalid."""

    kind = "validation_error"
    title = "Validation error"


class NotFoundError(ActionError):
    """No user with the requested id exists."""

    kind = "not_found"
    title = "Not found"
    status_code = 404


class UnknownActionError(ActionError):
    """The ``action`` discriminator is not add, update or delete."""

    kind = "unknown_action"
    title = "Unknown action"


class MalformedRequestError(ActionError):
    """The request body is missing or could not be parsed."""

    kind = "malformed_request"
    title = "Malformed request"
