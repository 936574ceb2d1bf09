"""Foundation - errors, logging and configuration shared by every module."""

from dashwatch.foundation.errors import (
    ApiError,
    DashwatchError,
    ErrorCode,
    api_error_for_status,
    config_error,
)

__all__ = [
    "ApiError",
    "DashwatchError",
    "ErrorCode",
    "api_error_for_status",
    "config_error",
]
