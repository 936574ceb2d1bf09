"""Dashwatch Error System.

Provides structured error handling with:
- Numeric error codes for programmatic handling
- Transient vs permanent classification for retry decisions
- The HTTP status of failed API calls
"""


from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Numeric error codes organized by category.

    Format: XYYY where X = category, YYY = specific error

    Categories:
        1xxx - API errors
        2xxx - Tree errors
        5xxx - Configuration errors
        7xxx - Network errors
        9xxx - Internal errors
    """

    # 1xxx - API Errors
    API_REQUEST_FAILED = 1001
    API_NOT_FOUND = 1002
    API_INVALID_RESPONSE = 1003
    API_SERVER_ERROR = 1004

    # 2xxx - Tree Errors
    TREE_NOT_A_DIRECTORY = 2001

    # 5xxx - Configuration Errors
    CONFIG_INVALID = 5001

    # 7xxx - Network Errors
    NETWORK_UNREACHABLE = 7001
    NETWORK_TIMEOUT = 7002

    # 9xxx - Internal Errors
    INTERNAL_ERROR = 9001

    @property
    def category(self) -> str:
        """Get the error category name."""
        prefix = self.value // 1000
        return {
            1: "api",
            2: "tree",
            5: "config",
            7: "network",
            9: "internal",
        }.get(prefix, "unknown")

    @property
    def is_transient(self) -> bool:
        """Whether this error type is worth retrying."""
        return self in {
            ErrorCode.API_SERVER_ERROR,
            ErrorCode.NETWORK_UNREACHABLE,
            ErrorCode.NETWORK_TIMEOUT,
        }


ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.API_REQUEST_FAILED: "{detail}",
    ErrorCode.API_NOT_FOUND: "{detail}",
    ErrorCode.API_INVALID_RESPONSE: "{detail}",
    ErrorCode.API_SERVER_ERROR: "{detail}",
    ErrorCode.TREE_NOT_A_DIRECTORY: "'{path}' is not a directory.",
    ErrorCode.CONFIG_INVALID: "Invalid configuration for '{key}': {detail}",
    ErrorCode.NETWORK_UNREACHABLE: "Network error: cannot reach {host} ({detail})",
    ErrorCode.NETWORK_TIMEOUT: "Network timeout: request to {host} timed out.",
    ErrorCode.INTERNAL_ERROR: "Unexpected error: {detail}",
}


class DashwatchError(Exception):
    """Base error type for all Dashwatch errors.

    Example:
        >>> err = DashwatchError(
        ...     code=ErrorCode.NETWORK_TIMEOUT,
        ...     context={"host": "localhost:3000"},
        ... )
        >>> err.message
        'Network timeout: request to localhost:3000 timed out.'
    """

    def __init__(
        self,
        code: ErrorCode,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ):
        self.code = code
        self.context = context or {}
        self.cause = cause
        super().__init__(self.message)

    @property
    def message(self) -> str:
        """Get the formatted user-friendly message."""
        template = ERROR_MESSAGES.get(self.code, "An error occurred: {detail}")
        try:
            return template.format(**self.context)
        except KeyError:
            return template

    @property
    def is_transient(self) -> bool:
        return self.code.is_transient

    @property
    def category(self) -> str:
        return self.code.category

    @property
    def error_id(self) -> str:
        """Get the error ID string (e.g., 'DW-1002')."""
        return f"DW-{self.code.value}"

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, context={self.context!r})"

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dict for logging/CLI JSON output."""
        return {
            "error_id": self.error_id,
            "code": self.code.value,
            "category": self.category,
            "message": self.message,
            "transient": self.is_transient,
            "context": self.context,
        }


class ApiError(DashwatchError):
    """A failed HTTP call against the automation service.

    ``status`` is the HTTP status code, or ``None`` when the request never got
    a response. Retry decisions key off it: 5xx is transient, anything else
    with a status is permanent.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        *,
        status: int | None = None,
        url: str = "",
        cause: Exception | None = None,
    ):
        self.status = status
        super().__init__(
            code=code,
            context={"detail": message, "status": status, "url": url},
            cause=cause,
        )

    @property
    def message(self) -> str:
        """The server's ``error`` text, the reason phrase, or the transport failure."""
        return self.context["detail"]

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["status"] = self.status
        return data


def api_error_for_status(status: int, message: str, url: str = "") -> ApiError:
    """Create an ApiError with the code matching an HTTP status."""
    if status == 404:
        code = ErrorCode.API_NOT_FOUND
    elif 500 <= status < 600:
        code = ErrorCode.API_SERVER_ERROR
    else:
        code = ErrorCode.API_REQUEST_FAILED
    return ApiError(code, message, status=status, url=url)


def config_error(key: str, detail: str) -> DashwatchError:
    """Create a configuration error."""
    return DashwatchError(
        code=ErrorCode.CONFIG_INVALID,
        context={"key": key, "detail": detail},
    )
