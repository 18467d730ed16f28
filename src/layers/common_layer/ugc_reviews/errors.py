from enum import Enum


class ErrorKind(str, Enum):
    INVALID_REQUEST = "invalid_request"
    INVALID_TOKEN = "invalid_token"
    MISSING_FIELDS = "missing_fields"
    INVALID_RATING = "invalid_rating"
    INVALID_IMAGE = "invalid_image"
    IMAGE_TOO_LARGE = "image_too_large"
    NOT_FOUND = "not_found"
    UNKNOWN_ACTION = "unknown_action"
    DUPLICATE_CODE = "duplicate_code"
    ALREADY_USED = "already_used"
    CONFLICT = "conflict"
    UNAUTHORIZED = "unauthorized"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    SERVER_ERROR = "server_error"


STATUS_CODES = {
    ErrorKind.INVALID_REQUEST: 422,
    ErrorKind.INVALID_TOKEN: 401,
    ErrorKind.MISSING_FIELDS: 400,
    ErrorKind.INVALID_RATING: 400,
    ErrorKind.INVALID_IMAGE: 400,
    ErrorKind.IMAGE_TOO_LARGE: 413,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.UNKNOWN_ACTION: 400,
    ErrorKind.DUPLICATE_CODE: 500,
    ErrorKind.ALREADY_USED: 409,
    ErrorKind.CONFLICT: 409,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.UPSTREAM_UNAVAILABLE: 503,
    ErrorKind.SERVER_ERROR: 500,
}


def status_for(kind: ErrorKind) -> int:
    return STATUS_CODES.get(kind, 500)


class AppError(Exception):
    """Base class for errors surfaced at the Lambda boundary."""

    def __init__(self, message, status_code=500, error_code=ErrorKind.SERVER_ERROR):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = ErrorKind(error_code)


class UpstreamUnavailableError(AppError):
    """A collaborator (store, image host, mail API) failed or timed out."""

    def __init__(self, message="Upstream service unavailable", service=None):
        super().__init__(message, 503, ErrorKind.UPSTREAM_UNAVAILABLE)
        self.service = service
