# /wetreat/utils/errors.py
"""
Application error types.

Every error raised by controllers and services derives from AppError and
carries the HTTP status and a stable machine-readable code. The handlers
in error_handlers.py turn them into JSON responses.
"""


class AppError(Exception):
    """Base class: message, code and HTTP status."""
    code = 'UNKNOWN'
    message = 'Unknown error'
    http_status = 400

    def __init__(self, message=None, code=None, http_status=None):
        super().__init__(message or self.message)
        self.message = message or self.message
        self.code = code or self.code
        if http_status is not None:
            self.http_status = http_status

    def to_dict(self):
        return {'error': self.message, 'code': self.code}


class ValidationError(AppError):
    """Malformed or missing input."""
    code = 'VALIDATION_ERROR'
    message = 'Validation failed'
    http_status = 400


class AuthenticationError(AppError):
    code = 'INVALID_CREDENTIALS'
    message = 'Invalid email or password'
    http_status = 401


class ForbiddenError(AppError):
    """Unrecognized or unauthorized role."""
    code = 'FORBIDDEN'
    message = 'Forbidden'
    http_status = 403


class PaymentNotConfirmedError(ForbiddenError):
    code = 'PAYMENT_NOT_CONFIRMED'
    message = 'Payment not confirmed. PDF cannot be generated.'


class NotFoundError(AppError):
    code = 'NOT_FOUND'
    message = 'Resource not found'
    http_status = 404


class ConflictError(AppError):
    code = 'CONFLICT'
    message = 'Resource already exists'
    http_status = 409


class StoreError(AppError):
    """Persistence failure. The message sent to clients is always generic."""
    code = 'STORE_ERROR'
    message = 'Internal server error'
    http_status = 500


class UpstreamAssetError(AppError):
    """A remote asset could not be fetched. Never leaves the renderer."""
    code = 'UPSTREAM_ASSET'
    message = 'Remote asset unavailable'
    http_status = 502
