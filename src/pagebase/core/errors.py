"""Failure reasons raised by the stores.

The HTTP layer maps each class to a status code; the stores never
format responses themselves.
"""


class StoreError(Exception):
    """Base class for all store failures."""

    code = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(StoreError):
    """Input is malformed or references something that does not exist."""

    code = "validation_error"


class ConflictError(ValidationError):
    """A uniqueness rule would be violated."""

    code = "conflict"


class NotFoundError(StoreError):
    """An entity id does not resolve, or not under the expected parent."""

    code = "not_found"


class ViewNotFoundError(NotFoundError):
    """A view is missing or belongs to a different database."""

    code = "view_not_found"


class InternalError(StoreError):
    """Storage or serialization failure. The message is kept opaque."""

    code = "internal_error"
