"""Error taxonomy for the catalog backend.

Every error carries the HTTP status it maps to and a stable error code that
clients can switch on. The FastAPI handlers in ``backend.main`` render them
as ``ErrorResponse`` bodies.
"""


class CatalogError(Exception):
    """Base class for errors surfaced to API clients."""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(CatalogError):
    """Missing or malformed input, or a domain rule violation."""

    status_code = 400
    code = "VALIDATION_ERROR"


class NotFound(CatalogError):
    """The requested record does not exist."""

    status_code = 404
    code = "NOT_FOUND"


class UploadError(CatalogError):
    """The upload gate rejected a file part (type, count, malformed body)."""

    status_code = 400
    code = "UPLOAD_ERROR"


class FileTooLarge(UploadError):
    """A single uploaded file exceeded the per-file size limit."""

    status_code = 413
    code = "FILE_TOO_LARGE"


class PayloadTooLarge(UploadError):
    """The whole request body exceeded the configured limit."""

    status_code = 413
    code = "PAYLOAD_TOO_LARGE"


class Unauthorized(CatalogError):
    """A privileged endpoint was called without valid admin credentials."""

    status_code = 401
    code = "UNAUTHORIZED"
