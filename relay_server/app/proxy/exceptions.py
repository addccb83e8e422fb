"""
Relay exceptions.

RelayError subclasses end up as an INTERNAL_ERROR payload (HTTP 500).
Network failures are not represented: they come from httpx and are
classified as unreachable instead.
"""


class RelayError(Exception):
    """Base class for failures inside the relay itself."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class MisconfiguredTargetError(RelayError):
    """TARGET_URL is unset, so no outbound URL can be built."""

    def __init__(self):
        super().__init__("TARGET_URL is not configured")


class MalformedInboundError(RelayError):
    """The inbound request cannot be turned into an outbound one."""


class CallerDisconnected(Exception):
    """The inbound connection closed before the upstream answered."""


class UpstreamDeadlineExceeded(Exception):
    """The upstream call as a whole outlived its deadline."""

    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Upstream call exceeded {timeout_seconds:g} seconds")
