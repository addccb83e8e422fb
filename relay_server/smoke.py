"""
Smoke client that plays the internal backend.

Posts a sample order through the relay's /proxy path and prints what comes
back, so a fresh deployment can be checked end to end:

    python -m relay_server.smoke --url http://localhost:3000/proxy
"""

import argparse
import asyncio
import json
import logging
import sys
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_PROXY_URL = "http://localhost:3000/proxy"


def sample_order() -> Dict[str, Any]:
    return {
        "nama": "Backend A",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "message": "Testing proxy from backend A to C",
        "data": {
            "orderId": "12345",
            "amount": 150000,
            "currency": "IDR",
            "items": [
                {"id": 1, "name": "Product A", "qty": 2},
                {"id": 2, "name": "Product B", "qty": 1},
            ],
        },
    }


async def send_sample_order(
    proxy_url: str,
    api_key: str = "test-api-key-123",
    client: Optional[httpx.AsyncClient] = None,
) -> Dict[str, Any]:
    """
    Send the sample order through the relay.

    Args:
        proxy_url: Relay URL, normally ending in /proxy
        api_key: Value for the X-API-Key header
        client: Optional client to reuse; a short-lived one is opened otherwise

    Returns:
        Dict with status, elapsed_ms and the decoded body

    Raises:
        httpx.RequestError: If the relay cannot be reached
    """
    headers = {
        "Content-Type": "application/json",
        "X-API-Key": api_key,
        "X-Request-ID": f"req-{int(time.time() * 1000)}",
    }

    started = time.perf_counter()
    if client is None:
        async with httpx.AsyncClient(timeout=35.0) as own_client:
            response = await own_client.post(proxy_url, json=sample_order(), headers=headers)
    else:
        response = await client.post(proxy_url, json=sample_order(), headers=headers)
    elapsed_ms = round((time.perf_counter() - started) * 1000)

    try:
        body = response.json()
    except ValueError:
        body = response.text

    return {
        "status": response.status_code,
        "elapsed_ms": elapsed_ms,
        "body": body,
    }


def main(argv: Optional[list] = None) -> int:
    parser = argparse.ArgumentParser(description="Send a sample order through the relay")
    parser.add_argument("--url", default=DEFAULT_PROXY_URL, help="Relay /proxy URL")
    parser.add_argument("--api-key", default="test-api-key-123", help="X-API-Key value")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(message)s", stream=sys.stdout)

    logger.info(f"Sending request to relay: {args.url}")
    try:
        result = asyncio.run(send_sample_order(args.url, args.api_key))
    except httpx.RequestError as e:
        logger.error(f"Relay unreachable: {e!r}")
        return 1

    logger.info(f"Status: {result['status']}  Duration: {result['elapsed_ms']}ms")
    logger.info(json.dumps(result["body"], indent=2, ensure_ascii=False))

    if result["status"] >= 400:
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
