"""
Proxy Package
=============

This package implements the relay that forwards inbound requests to the
third-party API and normalizes its error responses.

Main Components:
----------------
- outbound.py:   Outbound Request Builder (URL, header policies, body)
- classifier.py: Three-way verdict over an upstream exchange
- error_map.py:  Static upstream error table and NormalizedError builders
- routes.py:     FastAPI router with the /proxy and catch-all relay endpoints

Usage:
------
    from relay_server.app.proxy import proxy_router
    app.include_router(proxy_router)
"""

from .routes import proxy_router

__all__ = ["proxy_router"]
