"""Domain exceptions raised by services and mapped to HTTP errors in `main`."""


class NotFoundError(LookupError):
    """A referenced user, course, quiz, attempt or assignment does not exist."""


class ForbiddenError(PermissionError):
    """The caller is authenticated but may not perform the operation."""


class ConflictError(ValueError):
    """The operation conflicts with the current state of a record."""
