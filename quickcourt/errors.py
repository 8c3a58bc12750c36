class BookingError(Exception):
    """Base for request-scoped errors raised by the booking model."""

    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationError(BookingError):
    status_code = 400


class AuthorizationError(BookingError):
    status_code = 403


class NotFoundError(BookingError):
    status_code = 404


class ConflictError(BookingError):
    """An active booking already holds part of the requested time range."""

    status_code = 409


class StateError(BookingError):
    status_code = 409
