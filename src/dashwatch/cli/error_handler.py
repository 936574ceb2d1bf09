"""CLI Error Handler.

Turns errors reaching the command line into either a one-line rich message
(default) or a JSON object on stderr (``--json``), then exits with code 1.
"""

import json
import sys
from typing import NoReturn

from rich.console import Console
from rich.text import Text

from dashwatch.foundation.errors import DashwatchError, ErrorCode

_ICONS = {
    "api": "🌐",
    "tree": "📁",
    "config": "⚙️",
    "network": "📡",
}

_HINTS: dict[ErrorCode, str] = {
    ErrorCode.NETWORK_UNREACHABLE: "Is the service running? Check api.base_url or DASHWATCH_API_BASE_URL",
    ErrorCode.NETWORK_TIMEOUT: "Raise api.timeout_s or check the service's load",
    ErrorCode.API_INVALID_RESPONSE: "Check api.api_prefix; the endpoint answered with something other than JSON",
    ErrorCode.CONFIG_INVALID: "Fix the value in .dashwatch/config.yaml or the DASHWATCH_* variable",
}


def as_dashwatch_error(error: BaseException) -> DashwatchError:
    """Wrap anything that is not already a DashwatchError."""
    if isinstance(error, DashwatchError):
        return error
    return DashwatchError(
        code=ErrorCode.INTERNAL_ERROR,
        context={"detail": str(error) or type(error).__name__},
        cause=error if isinstance(error, Exception) else None,
    )


def handle_error(error: BaseException, json_output: bool = False) -> NoReturn:
    """Report an error and exit.

    Args:
        error: The error to report
        json_output: Emit a JSON object on stderr instead of rich text

    Raises:
        SystemExit: Always exits with code 1
    """
    wrapped = as_dashwatch_error(error)

    if json_output:
        error_dict = wrapped.to_dict()
        if wrapped.cause:
            error_dict["cause"] = str(wrapped.cause)
        print(json.dumps(error_dict, default=str), file=sys.stderr)
        sys.exit(1)

    _print_human_error(wrapped)
    sys.exit(1)


def _print_human_error(error: DashwatchError) -> None:
    console = Console(stderr=True)

    header = Text()
    header.append(f"{_ICONS.get(error.category, '❌')} ", style="bold")
    header.append(error.error_id, style="bold red")
    header.append(f" {error.message}")
    console.print(header)

    hint = _HINTS.get(error.code)
    if hint:
        console.print(f"  [dim]{hint}[/]")
