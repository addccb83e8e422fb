"""
Upstream Error Mapping
======================

Translates the upstream exchange's error envelopes into the uniform
``NormalizedError`` shape returned to callers.

The lookup table is built once at import and exposed read-only, so
concurrent requests can consult it without locking.

Upstream envelopes seen in the wild:
    {"code": -2, "msg": "Account has insufficient balance"}
    {"code": 0, "data": {"code": 3203, "errorData": "..."}}
    {"status": "ERROR", "data": {"code": "027037"}}
"""

import re
import time
from types import MappingProxyType
from typing import Any, Mapping

from ..models import (
    ErrorData,
    ErrorDetails,
    ErrorMappingEntry,
    NormalizedError,
)


UNKNOWN_CODE = "UNKNOWN"
PROXY_ERROR_CODE = -9999


ERROR_MAP: Mapping[str, ErrorMappingEntry] = MappingProxyType({
    "-1": ErrorMappingEntry(
        type="AUTHENTICATION",
        category="AUTH_ERROR",
        message="Invalid API key or signature",
        suggestion="Check API credentials in TokoCrypto settings",
    ),
    "-2": ErrorMappingEntry(
        type="INSUFFICIENT_BALANCE",
        category="BALANCE_ERROR",
        message="Insufficient funds",
        suggestion="Deposit more funds to your account",
    ),
    "3203": ErrorMappingEntry(
        type="INVALID_PARAMETER",
        category="PARAM_ERROR",
        message="Incorrect order quantity",
        suggestion="Quantity must match stepSize precision",
    ),
    "3204": ErrorMappingEntry(
        type="INVALID_PARAMETER",
        category="PARAM_ERROR",
        message="Minimum notional not met",
        suggestion="Increase order size to meet 20,000 IDR minimum",
    ),
    "027037": ErrorMappingEntry(
        type="TOKOCRYPTO_ERROR",
        category="TOKOCRYPTO_ERROR",
        message="TokoCrypto internal error",
        suggestion=(
            "Check: API key active, account verified, IP whitelisted, "
            "sufficient balance"
        ),
    ),
    "-1003": ErrorMappingEntry(
        type="RATE_LIMIT_EXCEEDED",
        category="RATE_LIMIT",
        message="Too many requests",
        suggestion="Wait 60 seconds before retrying",
    ),
    "4001": ErrorMappingEntry(
        type="MARKET_CLOSED",
        category="MARKET_ERROR",
        message="Trading suspended",
        suggestion="Market maintenance in progress, try again later",
    ),
    "4002": ErrorMappingEntry(
        type="INVALID_SYMBOL",
        category="MARKET_ERROR",
        message="Symbol not found",
        suggestion="Check available trading pairs at /open/v1/common/symbols",
    ),
})


def _now_ms() -> int:
    return int(time.time() * 1000)


def _code_to_str(value: Any) -> str:
    """Render a code the way the upstream prints it (3203.0 -> '3203')."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def lookup(code: str) -> ErrorMappingEntry:
    """
    Look up a code in the static table.

    Misses synthesize an UNKNOWN entry that names the code, so callers always
    get a usable category and suggestion.
    """
    entry = ERROR_MAP.get(code)
    if entry is not None:
        return entry

    return ErrorMappingEntry(
        type="UNKNOWN",
        category="UNKNOWN_ERROR",
        message=f"Unmapped error code: {code}",
        suggestion="Contact support with this error code",
    )


def extract_error_code(body: Any) -> str:
    """
    Pull the error code from ``body.code`` then ``body.data.code``.

    Returns:
        The code as a string, or "UNKNOWN" when neither is present.
    """
    if not isinstance(body, dict):
        return UNKNOWN_CODE

    if body.get("code") is not None:
        return _code_to_str(body["code"])

    data = body.get("data")
    if isinstance(data, dict) and data.get("code") is not None:
        return _code_to_str(data["code"])

    return UNKNOWN_CODE


def extract_error_message(body: Any) -> str:
    """Pull the error text from ``body.msg`` then ``body.data.errorData``."""
    if not isinstance(body, dict):
        return ""

    message = body.get("msg")
    if not message:
        data = body.get("data")
        if isinstance(data, dict):
            message = data.get("errorData")

    return str(message) if message else ""


def parse_numeric_code(code: str) -> int:
    """Integer value of a plain decimal code string, -1 for anything else."""
    if not re.fullmatch(r"[+-]?[0-9]+", code):
        return -1
    return int(code)


def transform_error_response(body: Any) -> NormalizedError:
    """
    Reshape an upstream error body into a NormalizedError.

    Args:
        body: Parsed upstream body (dict for JSON, str otherwise)

    Returns:
        NormalizedError carrying the mapped entry and the verbatim body
    """
    error_code = extract_error_code(body)
    error_msg = extract_error_message(body)
    mapped = lookup(error_code)

    error_data = mapped.message
    if error_msg:
        error_data = f"{mapped.message} - {error_msg}"

    return NormalizedError(
        code=parse_numeric_code(error_code),
        msg=f"{mapped.category}: {mapped.message}",
        data=ErrorData(
            status="ERROR",
            type=mapped.type,
            code=error_code,
            errorData=error_data,
            details=ErrorDetails(
                reason=error_msg or f"TokoCrypto error code {error_code}",
                suggestion=mapped.suggestion,
                originalResponse=body,
            ),
        ),
        timestamp=_now_ms(),
    )


def upstream_unreachable_error(timed_out: bool, timeout_seconds: float = 30.0) -> NormalizedError:
    """Build the payload for a call that produced no upstream response."""
    if timed_out:
        reason = f"Connection timeout after {timeout_seconds:g} seconds"
        msg = "PROXY_ERROR: Connection timeout"
    else:
        reason = "Network error"
        msg = "PROXY_ERROR: Network error"

    return NormalizedError(
        code=PROXY_ERROR_CODE,
        msg=msg,
        data=ErrorData(
            status="ERROR",
            type="UPSTREAM_ERROR",
            code="PROXY_001",
            errorData="Could not reach TokoCrypto API servers",
            details=ErrorDetails(
                reason=reason,
                suggestion="TokoCrypto may be experiencing issues. Try again later.",
            ),
        ),
        timestamp=_now_ms(),
    )


def internal_error(reason: str) -> NormalizedError:
    """Build the payload for a failure inside the relay itself."""
    return NormalizedError(
        code=PROXY_ERROR_CODE,
        msg="PROXY_ERROR: Internal server error",
        data=ErrorData(
            status="ERROR",
            type="INTERNAL_ERROR",
            code="PROXY_002",
            errorData=f"Proxy server error: {reason}",
            details=ErrorDetails(
                reason=reason,
                suggestion="Contact system administrator",
            ),
        ),
        timestamp=_now_ms(),
    )
