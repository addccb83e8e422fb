"""
Relay Routes - Upstream Request Forwarding
==========================================

This module implements the relay lifecycle: snapshot the inbound request,
build the outbound one, make a single upstream call and shape the result
for the caller.

Lifecycle:
----------
1. Read the inbound request (raw path, raw query, headers, full body)
2. Build the outbound request (URL, header policy, body)
3. Call the upstream once; redirects followed, every status returned
4. Classify: success, logical error, or unreachable
5. Relay the body unchanged, or return a NormalizedError

Endpoints:
----------
- ANY /proxy:       Backward-compatible entry point, identical to the catch-all
                    (any method, extension methods included)
- ANY /{full_path}: Catch-all relay

All responses carry ``Access-Control-Allow-Origin: *``.
"""

import asyncio
import logging
import time
from typing import Optional
from urllib.parse import quote

import httpx
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response
from starlette.routing import request_response
from starlette.types import Receive, Scope, Send

from ..config import Settings
from ..models import NormalizedError
from .classifier import Verdict, classify, parse_upstream_body
from .error_map import internal_error, transform_error_response, upstream_unreachable_error
from .exceptions import CallerDisconnected, RelayError, UpstreamDeadlineExceeded
from .outbound import InboundRequest, OutboundRequest, build_outbound_request

logger = logging.getLogger(__name__)

# Create router
proxy_router = APIRouter()

CORS_HEADERS = {"Access-Control-Allow-Origin": "*"}

# How often a pending upstream call checks whether the caller went away.
DISCONNECT_POLL_SECONDS = 0.5

# Status codes that must not carry a response body.
BODYLESS_STATUSES = frozenset({204, 304})

CLIENT_CLOSED_REQUEST = 499


# ============================================================================
# Dependencies
# ============================================================================

def get_relay_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_upstream_client(request: Request) -> httpx.AsyncClient:
    """
    Get the shared upstream HTTP client from app state.

    Raises:
        RelayError: If the lifespan has not created a client
    """
    client = getattr(request.app.state, "upstream_client", None)
    if client is None:
        raise RelayError("Upstream client not initialized")
    return client


# ============================================================================
# Request / Response Helpers
# ============================================================================

async def read_inbound(request: Request) -> InboundRequest:
    """
    Snapshot the caller's request.

    The raw path from the ASGI scope is used so percent-encoding reaches the
    upstream exactly as received.
    """
    raw_path = request.scope.get("raw_path")
    if raw_path:
        path = raw_path.split(b"?", 1)[0].decode("latin-1")
    else:
        path = quote(request.url.path)

    query_string = request.scope.get("query_string", b"").decode("latin-1")

    return InboundRequest(
        method=request.method,
        path=path,
        query_string=query_string,
        headers=dict(request.headers),
        body=await request.body(),
    )


def error_response(error: NormalizedError, status_code: int) -> Response:
    if status_code in BODYLESS_STATUSES or status_code < 200:
        return Response(status_code=status_code, headers=CORS_HEADERS)
    return JSONResponse(
        status_code=status_code,
        content=error.to_payload(),
        headers=CORS_HEADERS,
    )


def success_response(upstream: httpx.Response) -> Response:
    """Relay the upstream body byte for byte with its content type."""
    headers = {
        "Content-Type": upstream.headers.get("content-type", "application/json"),
        **CORS_HEADERS,
    }
    content = b"" if upstream.status_code in BODYLESS_STATUSES else upstream.content
    return Response(
        content=content,
        status_code=upstream.status_code,
        headers=headers,
    )


async def send_upstream(
    request: Request,
    client: httpx.AsyncClient,
    outbound: OutboundRequest,
    timeout_seconds: float,
) -> httpx.Response:
    """
    Make the single upstream call under one overall deadline, abandoning it
    if the caller disconnects.

    httpx timeouts apply per connect/read/write step, so an upstream that
    trickles bytes would never trip them; the deadline here bounds the call
    from first byte sent to last byte read.

    Raises:
        CallerDisconnected: If the inbound connection closed first
        UpstreamDeadlineExceeded: If the call outlived timeout_seconds
        httpx.RequestError: On timeout or network failure
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout_seconds
    send_task = asyncio.ensure_future(
        client.request(
            outbound.method,
            outbound.url,
            headers=outbound.headers,
            content=outbound.content,
        )
    )
    try:
        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise UpstreamDeadlineExceeded(timeout_seconds)
            done, _ = await asyncio.wait(
                {send_task}, timeout=min(DISCONNECT_POLL_SECONDS, remaining)
            )
            if done:
                return send_task.result()
            if await request.is_disconnected():
                raise CallerDisconnected()
    finally:
        if not send_task.done():
            send_task.cancel()


# ============================================================================
# Relay Endpoint
# ============================================================================

async def relay(request: Request) -> Response:
    """
    Relay one inbound request to the upstream.

    Every outcome is a response: mapped upstream errors keep the upstream
    status, unreachable upstreams get 503 and relay failures get 500.
    """
    settings = get_relay_settings(request)
    started = time.perf_counter()

    try:
        inbound = await read_inbound(request)

        logger.info(
            "Incoming relay request",
            extra={
                "method": inbound.method,
                "path": inbound.path,
                "query": inbound.query_string,
                "api_key_present": settings.API_KEY_HEADER.lower() in inbound.headers,
            }
        )

        outbound = build_outbound_request(inbound, settings)
        client = get_upstream_client(request)

        logger.info(f"Making {outbound.method} request to: {outbound.url}")

        upstream: Optional[httpx.Response] = None
        timed_out = False
        try:
            upstream = await send_upstream(
                request, client, outbound, settings.UPSTREAM_TIMEOUT_SECONDS
            )
        except (httpx.TimeoutException, UpstreamDeadlineExceeded) as e:
            timed_out = True
            logger.error(f"Upstream timeout: {e!r}", extra={"url": outbound.url})
        except httpx.RequestError as e:
            logger.error(f"Upstream network error: {e!r}", extra={"url": outbound.url})

        body = None
        if upstream is not None:
            body = parse_upstream_body(upstream.headers.get("content-type"), upstream.content)

        verdict = classify(
            transport_succeeded=upstream is not None,
            status_code=upstream.status_code if upstream is not None else None,
            body=body,
        )

        if verdict is Verdict.UNREACHABLE:
            return error_response(
                upstream_unreachable_error(timed_out, settings.UPSTREAM_TIMEOUT_SECONDS),
                503,
            )

        elapsed_ms = round((time.perf_counter() - started) * 1000, 1)

        if verdict is Verdict.LOGICAL_ERROR:
            logger.warning(
                f"Error response from upstream: {upstream.status_code}",
                extra={"elapsed_ms": elapsed_ms, "url": outbound.url}
            )
            return error_response(transform_error_response(body), upstream.status_code)

        logger.info(
            f"Response status: {upstream.status_code}",
            extra={"elapsed_ms": elapsed_ms, "preview": upstream.text[:200]}
        )
        return success_response(upstream)

    except CallerDisconnected:
        logger.warning("Caller disconnected, upstream call cancelled")
        return Response(status_code=CLIENT_CLOSED_REQUEST)

    except RelayError as e:
        logger.error(f"Relay error: {e.message}", extra={"path": request.url.path})
        return error_response(internal_error(e.message), 500)

    except Exception as e:
        logger.error(
            f"Unexpected error in relay: {e}",
            exc_info=True,
            extra={"path": request.url.path, "method": request.method}
        )
        return error_response(internal_error(str(e)), 500)


class AnyMethodEndpoint:
    """
    Wrap a request handler as a plain ASGI app.

    Starlette limits function endpoints without a method list to GET, while
    class-based ASGI endpoints match every method, including extension
    methods such as PROPFIND or PURGE.
    """

    def __init__(self, endpoint):
        self.endpoint = endpoint
        self.app = request_response(endpoint)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        await self.app(scope, receive, send)


proxy_router.add_route("/proxy", AnyMethodEndpoint(relay), include_in_schema=False)
proxy_router.add_route("/{full_path:path}", AnyMethodEndpoint(relay), include_in_schema=False)
