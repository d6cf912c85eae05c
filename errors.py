"""Typed failures raised by the stores and mapped to HTTP responses in main."""


class AppError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self):
        return {"message": self.message}


class Unauthenticated(AppError):
    status_code = 401
    default_message = "Unauthorized access"


class Forbidden(AppError):
    status_code = 403
    default_message = "Forbidden access"


class NotFound(AppError):
    status_code = 404
    default_message = "Not found"


class InvalidQuery(AppError):
    status_code = 400
    default_message = "Invalid query"


class InvalidInput(AppError):
    status_code = 400
    default_message = "Invalid input"


class AlreadyClaimed(AppError):
    status_code = 400
    default_message = "Unable to confirm donation. It may have already been claimed."


class GatewayError(AppError):
    status_code = 502
    default_message = "Payment gateway error"


class StoreUnavailable(AppError):
    status_code = 500
    default_message = "Database not available"
