"""Error handling services for API endpoints.

Translates ``ApiError`` and upstream transport failures into the JSON error
shape returned by every route.
"""

import logging
from dataclasses import dataclass
from typing import Any

import httpx
from fastapi.responses import JSONResponse

from ccrouter.core.error_types import ApiError, ErrorType

logger = logging.getLogger(__name__)


def _error_body(error_type: str, message: str) -> dict[str, Any]:
    return {"type": "error", "error": {"type": error_type, "message": message}}


@dataclass(frozen=True, slots=True)
class ErrorResponseBuilder:
    """Centralized builder for consistent error responses across all endpoints.

    Error response format:
    {
        "type": "error",
        "error": {
            "type": "<error_type>",
            "message": "<error_message>"
        }
    }
    """

    @staticmethod
    def from_api_error(error: ApiError) -> JSONResponse:
        """Build a response carrying the error's own status code and error code."""
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    @staticmethod
    def invalid_request(message: str) -> JSONResponse:
        """Build a 400 Bad Request error response for invalid client input."""
        return JSONResponse(
            status_code=400, content=_error_body(ErrorType.INVALID_REQUEST.value, message)
        )

    @staticmethod
    def not_found(message: str, error_type: ErrorType = ErrorType.PROVIDER_NOT_FOUND) -> JSONResponse:
        """Build a 404 Not Found error response."""
        return JSONResponse(status_code=404, content=_error_body(error_type.value, message))

    @staticmethod
    def upstream_error(exception: Exception, context: str | None = None) -> JSONResponse:
        """Build a 502 Bad Gateway or 504 Gateway Timeout error response.

        Automatically detects timeout errors and returns appropriate status code.
        """
        if isinstance(exception, httpx.TimeoutException):
            message = "Upstream request timed out"
            if context:
                message += f" while {context}"
            message += ". Consider increasing API_TIMEOUT_MS."
            return JSONResponse(
                status_code=504, content=_error_body(ErrorType.UPSTREAM_TIMEOUT.value, message)
            )

        message = "Upstream service error"
        if context:
            message += f" while {context}"
        content = _error_body(ErrorType.UPSTREAM_ERROR.value, message)
        content["error"]["details"] = str(exception)
        return JSONResponse(status_code=502, content=content)

    @staticmethod
    def internal_error(message: str, error_type: str = ErrorType.API_ERROR.value) -> JSONResponse:
        """Build a 500 Internal Server Error response."""
        return JSONResponse(status_code=500, content=_error_body(error_type, message))


def build_error_response(exception: Exception, context: str | None = None) -> JSONResponse:
    """Map any exception escaping a route into an error response."""
    if isinstance(exception, ApiError):
        logger.warning(f"Request failed: {exception.message} ({exception.status_code})")
        return ErrorResponseBuilder.from_api_error(exception)
    if isinstance(exception, httpx.HTTPError):
        logger.error(f"Upstream transport error: {exception}", exc_info=True)
        return ErrorResponseBuilder.upstream_error(exception, context)
    logger.error(f"Unexpected error: {exception}", exc_info=True)
    return ErrorResponseBuilder.internal_error(str(exception) or exception.__class__.__name__)
