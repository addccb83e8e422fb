"""
Outbound Request Builder
========================

Turns an inbound request into the request the relay sends upstream.

Header Policies:
----------------
- synthetic:   drop every caller header, present a fixed browser-like
               baseline, carry over only the API-key header and Content-Type
- transparent: keep caller headers, strip host/content-length and every
               identity-revealing header, backfill browser defaults, pin
               Accept-Encoding to codings the relay can decode

Both policies are pure functions selected once from HEADER_MODE. Whichever
runs, identity-revealing headers are removed again before the request leaves.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Dict, Mapping, Optional
from urllib.parse import parse_qsl, urlencode

import httpx

from ..config import IDENTITY_HEADERS, HeaderMode, Settings
from .exceptions import MalformedInboundError, MisconfiguredTargetError


FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
BODYLESS_METHODS = frozenset({"GET", "HEAD"})

DEFAULT_ACCEPT = "application/json, text/plain, */*"
DEFAULT_ACCEPT_LANGUAGE = "en-US,en;q=0.9,id;q=0.8"
DEFAULT_ACCEPT_ENCODING = "gzip, deflate"

# Recomputed by the transport for the outbound request.
TRANSPARENT_DROPPED_HEADERS = frozenset({"host", "content-length"})


# ============================================================================
# Request Models
# ============================================================================

@dataclass(frozen=True)
class InboundRequest:
    """
    Snapshot of the caller's request.

    Attributes:
        method: Upper-case HTTP method
        path: Raw request path, percent-encoding as received
        query_string: Raw query string without the leading '?'
        headers: Header mapping; keys are lower-cased on construction
        body: Raw body bytes (empty when the caller sent none)
    """

    method: str
    path: str
    query_string: str = ""
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""

    def __post_init__(self):
        object.__setattr__(self, "method", self.method.upper())
        object.__setattr__(
            self,
            "headers",
            MappingProxyType({k.lower(): v for k, v in self.headers.items()}),
        )

    @property
    def content_type(self) -> Optional[str]:
        return self.headers.get("content-type")


@dataclass(frozen=True)
class OutboundRequest:
    method: str
    url: str
    headers: Dict[str, str]
    content: Optional[bytes] = None


HeaderBuilder = Callable[[InboundRequest, Settings], Dict[str, str]]


# ============================================================================
# URL Construction
# ============================================================================

def build_target_url(target_url: Optional[str], path: str, query_string: str = "") -> str:
    """
    Append the inbound path and raw query to the upstream base URL.

    Nothing is re-encoded; the query string is appended exactly as received.

    Raises:
        MisconfiguredTargetError: If target_url is empty
    """
    if not target_url:
        raise MisconfiguredTargetError()

    url = f"{target_url.rstrip('/')}{path}"
    if query_string:
        url = f"{url}?{query_string}"
    return url


# ============================================================================
# Header Policies
# ============================================================================

def strip_identity_headers(headers: Dict[str, str]) -> Dict[str, str]:
    return {k: v for k, v in headers.items() if k.lower() not in IDENTITY_HEADERS}


def synthetic_identity_headers(inbound: InboundRequest, settings: Settings) -> Dict[str, str]:
    """
    Build headers that make the relay look like an ordinary browser client.

    Only the configured API-key header and Content-Type are taken from the
    caller.
    """
    headers = {
        "User-Agent": settings.USER_AGENT,
        "Accept": DEFAULT_ACCEPT,
        "Accept-Language": DEFAULT_ACCEPT_LANGUAGE,
        "Accept-Encoding": DEFAULT_ACCEPT_ENCODING,
        "Connection": "keep-alive",
    }

    api_key = inbound.headers.get(settings.API_KEY_HEADER.lower())
    if api_key:
        headers[settings.API_KEY_HEADER] = api_key

    if inbound.content_type:
        headers["Content-Type"] = inbound.content_type

    return headers


def _target_origin(target_url: Optional[str]) -> Optional[str]:
    if not target_url:
        return None
    url = httpx.URL(target_url)
    origin = f"{url.scheme}://{url.host}"
    if url.port:
        origin = f"{origin}:{url.port}"
    return origin


def transparent_forward_headers(inbound: InboundRequest, settings: Settings) -> Dict[str, str]:
    """
    Forward caller headers minus anything that discloses the caller.

    user-agent, accept, origin and referer are backfilled only when absent.
    accept-encoding is always replaced with codings the relay can decode, so
    the body it inspects and relays is never left compressed.
    """
    headers = {
        name: value
        for name, value in inbound.headers.items()
        if name not in TRANSPARENT_DROPPED_HEADERS and name not in IDENTITY_HEADERS
    }

    headers.setdefault("user-agent", settings.USER_AGENT)
    headers.setdefault("accept", DEFAULT_ACCEPT)
    headers["accept-encoding"] = DEFAULT_ACCEPT_ENCODING

    origin = _target_origin(settings.TARGET_URL)
    if origin:
        headers.setdefault("origin", origin)
        headers.setdefault("referer", f"{origin}/")

    return headers


HEADER_BUILDERS: Mapping[HeaderMode, HeaderBuilder] = MappingProxyType({
    HeaderMode.SYNTHETIC: synthetic_identity_headers,
    HeaderMode.TRANSPARENT: transparent_forward_headers,
})


# ============================================================================
# Body Construction
# ============================================================================

def _is_form(content_type: Optional[str]) -> bool:
    if not content_type:
        return False
    return content_type.split(";", 1)[0].strip().lower() == FORM_CONTENT_TYPE


def build_body(inbound: InboundRequest) -> Optional[bytes]:
    """
    Choose the outbound body.

    GET/HEAD never carry one. Form bodies are parsed and re-serialized as a
    URL-encoded string; everything else is passed through byte for byte.

    Raises:
        MalformedInboundError: If a form body is not valid UTF-8
    """
    if inbound.method in BODYLESS_METHODS or not inbound.body:
        return None

    if not _is_form(inbound.content_type):
        return inbound.body

    try:
        text = inbound.body.decode("utf-8")
    except UnicodeDecodeError as e:
        raise MalformedInboundError(f"Form body is not valid UTF-8: {e}") from e

    pairs = parse_qsl(text, keep_blank_values=True)
    if not pairs:
        return None

    return urlencode(pairs).encode("ascii")


# ============================================================================
# Assembly
# ============================================================================

def build_outbound_request(inbound: InboundRequest, settings: Settings) -> OutboundRequest:
    """
    Assemble the full outbound call description.

    Args:
        inbound: Caller's request snapshot
        settings: Application settings (target URL, header mode, API-key header)

    Returns:
        OutboundRequest ready for httpx

    Raises:
        MisconfiguredTargetError: If TARGET_URL is unset
        MalformedInboundError: If the body cannot be rebuilt
    """
    url = build_target_url(settings.TARGET_URL, inbound.path, inbound.query_string)
    header_builder = HEADER_BUILDERS[settings.HEADER_MODE]
    headers = strip_identity_headers(header_builder(inbound, settings))

    return OutboundRequest(
        method=inbound.method,
        url=url,
        headers=headers,
        content=build_body(inbound),
    )
