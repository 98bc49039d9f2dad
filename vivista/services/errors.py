"""Domain errors raised by the services. vivista.main maps them to HTTP status codes."""


class VivistaError(Exception):
    status_code = 500
    detail = "Something went wrong while processing this request"

    def __init__(self, detail: str | None = None):
        super().__init__(detail or self.detail)
        if detail:
            self.detail = detail


class Conflict(VivistaError):
    status_code = 409
    detail = "This user already exists"


class Unauthorized(VivistaError):
    status_code = 401
    detail = "Invalid or expired token"


class Forbidden(VivistaError):
    # Ownership failures look like any other auth failure to the client
    status_code = 401
    detail = "Not allowed"


class NotFound(VivistaError):
    status_code = 404
    detail = "Not found"


class InvalidAssetId(VivistaError):
    status_code = 400
    detail = "Invalid video id"


class InvalidExtraIndex(VivistaError):
    status_code = 400
    detail = "Invalid extra file index"


class StorageFailure(VivistaError):
    status_code = 500
    detail = "Something went wrong while saving this file"


class MetaDecodeError(ValueError):
    """Metadata document could not be decoded (strict mode only)."""
