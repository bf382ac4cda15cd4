from typing import Optional


class QcmError(Exception):
    """Base class for every error raised by the questionnaire."""


class ConfigurationError(QcmError):
    """Missing or placeholder endpoint, key or database URL."""


class ValidationError(QcmError):
    """User input rejected locally, the user is asked again."""


class InvalidEmail(ValidationError):
    pass


class EmptyMessage(ValidationError):
    pass


class MessageTooLong(ValidationError):
    def __init__(self, max_length: int):
        super().__init__(f"Message trop long (max {max_length} caractères)")
        self.max_length = max_length


class SessionNotActive(QcmError):
    pass


class DuplicateCompletedSession(QcmError):
    pass


class RequestTimeout(QcmError):
    pass


class ProxyError(QcmError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class BackendError(QcmError):
    pass


class EdgeError(QcmError):
    """
    Errors raised while handling a request in the edge proxy. Each one maps
    to an HTTP status and an `error` field in the JSON body.
    """

    status_code = 500

    def __init__(self, error: str, message: Optional[str] = None):
        super().__init__(error)
        self.error = error
        self.message = message


class OriginRejected(EdgeError):
    status_code = 403


class RateLimited(EdgeError):
    status_code = 429


class MethodNotAllowed(EdgeError):
    status_code = 405


class InvalidRequest(EdgeError):
    status_code = 400


class UpstreamError(EdgeError):
    status_code = 500
