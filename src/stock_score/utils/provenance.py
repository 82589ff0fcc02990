"""Response metadata and error envelopes."""

from typing import Any

from stock_score import SCHEMA_VERSION, SERVER_VERSION


def build_meta(tool: str, duration_ms: float | None = None) -> dict[str, Any]:
    """
    Build standard metadata block for responses.

    Args:
        tool: Name of the tool producing this response
        duration_ms: Execution time in milliseconds (optional)

    Returns:
        Metadata dict with version info
    """
    meta: dict[str, Any] = {
        "server_version": SERVER_VERSION,
        "schema_version": SCHEMA_VERSION,
        "tool": tool,
    }
    if duration_ms is not None:
        meta["duration_ms"] = round(duration_ms, 1)
    return meta


def build_error_response(
    error_type: str,
    message: str,
    stock_code: str | None = None,
    tool: str = "error",
) -> dict[str, Any]:
    """
    Build standardized error response.

    Args:
        error_type: invalid_request, data_unavailable or cancelled
        message: Human-readable error message
        stock_code: Stock code that caused the error (if applicable)
        tool: Tool that failed, echoed in meta

    Returns:
        Error response dict
    """
    response: dict[str, Any] = {
        "error": True,
        "error_type": error_type,
        "message": message,
        "meta": build_meta(tool),
    }

    if stock_code is not None:
        response["stock_code"] = stock_code

    return response
