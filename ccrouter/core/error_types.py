"""Error taxonomy for the gateway.

Provides the error codes used in JSON error bodies and the ``ApiError``
exception that carries an HTTP status through the request pipeline.
"""

from enum import Enum


class ErrorType(str, Enum):
    """Error codes surfaced in error responses and used for fallback decisions.

    Only ``PROVIDER_RESPONSE_ERROR`` triggers the fallback coordinator.
    """

    # Client input
    INVALID_REQUEST = "invalid_request"

    # Provider registry
    PROVIDER_NOT_FOUND = "provider_not_found"
    PROVIDER_EXISTS = "provider_exists"

    # Upstream
    PROVIDER_RESPONSE_ERROR = "provider_response_error"  # Upstream non-2xx
    UPSTREAM_TIMEOUT = "upstream_timeout"
    UPSTREAM_ERROR = "upstream_error"

    # Internal subsystems
    TOKENIZER_ERROR = "tokenizer_error"
    ROUTER_ERROR = "router_error"
    STREAMING_ERROR = "streaming_error"

    # Catch-all
    API_ERROR = "api_error"


class ApiError(Exception):
    """Exception carrying an HTTP status code and an error code.

    Attributes:
        message: Human-readable error message
        status_code: HTTP status to report to the client
        code: Error code from ``ErrorType``
    """

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        code: ErrorType | str = ErrorType.API_ERROR,
    ) -> None:
        self.message = message
        self.status_code = status_code
        self.code = ErrorType(code) if code in ErrorType._value2member_map_ else code
        super().__init__(message)

    @property
    def code_value(self) -> str:
        return self.code.value if isinstance(self.code, ErrorType) else str(self.code)

    @property
    def is_provider_response_error(self) -> bool:
        return self.code == ErrorType.PROVIDER_RESPONSE_ERROR

    def to_dict(self) -> dict[str, object]:
        return {"type": "error", "error": {"type": self.code_value, "message": self.message}}

