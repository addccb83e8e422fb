"""
Relay Server Application
========================

FastAPI service that relays requests from an internal backend to a
third-party API under a synthetic client identity, and reshapes the
upstream's error envelopes into a uniform NormalizedError body.

Subpackages:
    - proxy: Outbound request builder, response classifier, error mapping
             and the relay routes
"""
