"""
Domain exceptions raised by the placement services

Routers let these propagate; main.py renders them with the same envelope as
HTTP errors.
"""


class PlacementError(Exception):
    """Base class for errors surfaced to API callers"""

    status_code = 500
    error = "placement_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class GenerationFailed(PlacementError):
    """Test generation produced no usable structure; nothing was persisted"""

    status_code = 502
    error = "generation_failed"


class NotFound(PlacementError):
    status_code = 404
    error = "not_found"


class Forbidden(PlacementError):
    status_code = 403
    error = "forbidden"


class TypeMismatch(PlacementError):
    """Question does not belong to the attempt's test"""

    status_code = 400
    error = "type_mismatch"


class ModerationRejected(PlacementError):
    status_code = 422
    error = "moderation_rejected"


class ModerationUnavailable(PlacementError):
    status_code = 502
    error = "moderation_unavailable"


class GenerationClientError(Exception):
    """Upstream generation call failed after retries"""


class GenerationTimeout(GenerationClientError):
    """Caller deadline expired before the generation call finished"""
