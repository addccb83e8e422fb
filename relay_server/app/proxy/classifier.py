"""
Upstream Response Classification
================================

Pure decision over one relay attempt. Precedence, first match wins:

1. No response received             -> UNREACHABLE
2. HTTP status other than 200,
   body ``code`` present and not 0,
   or body ``status == "ERROR"``     -> LOGICAL_ERROR
3. Anything else                     -> SUCCESS
"""

import json
from enum import Enum
from typing import Any, Optional


class Verdict(str, Enum):
    SUCCESS = "success"
    LOGICAL_ERROR = "logical_error"
    UNREACHABLE = "unreachable"


def _has_error_code(body: Any) -> bool:
    if not isinstance(body, dict) or "code" not in body:
        return False
    code = body["code"]
    # bool is an int subclass; False must not count as code 0
    return isinstance(code, bool) or code != 0


def _has_error_status(body: Any) -> bool:
    return isinstance(body, dict) and body.get("status") == "ERROR"


def classify(
    transport_succeeded: bool,
    status_code: Optional[int] = None,
    body: Any = None,
) -> Verdict:
    """
    Classify an upstream exchange.

    Args:
        transport_succeeded: False when no response was received at all
        status_code: Upstream HTTP status
        body: Parsed upstream body (see parse_upstream_body)

    Returns:
        Verdict for the relay lifecycle to act on
    """
    if not transport_succeeded:
        return Verdict.UNREACHABLE

    if status_code != 200 or _has_error_code(body) or _has_error_status(body):
        return Verdict.LOGICAL_ERROR

    return Verdict.SUCCESS


def is_json_content_type(content_type: Optional[str]) -> bool:
    if not content_type:
        return False
    media_type = content_type.split(";", 1)[0].strip().lower()
    return media_type == "application/json" or media_type.endswith("+json")


def parse_upstream_body(content_type: Optional[str], content: bytes) -> Any:
    """
    Parse an upstream body for classification.

    JSON content types decode to Python values; anything else, or JSON that
    fails to decode, is returned as text. An empty body is None.
    """
    if not content:
        return None

    if is_json_content_type(content_type):
        try:
            return json.loads(content)
        except (ValueError, UnicodeDecodeError):
            pass

    return content.decode("utf-8", errors="replace")
