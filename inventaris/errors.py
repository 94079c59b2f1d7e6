"""Domain errors raised by the core and mapped to HTTP responses in main."""


class InventarisError(Exception):
    """Base class for errors carrying a user-facing message."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(InventarisError):
    """Bad input, illegal transition, insufficient stock."""

    status_code = 400


class UnauthorizedError(InventarisError):
    status_code = 401


class ForbiddenError(InventarisError):
    status_code = 403


class NotFoundError(InventarisError):
    status_code = 404
