"""Endpoint URL validation shared by the remote service clients."""

from __future__ import annotations

import httpx

from zwallet.errors.chain_errors import InvalidEndpoint


def validate_endpoint(endpoint: str) -> str:
    """Check that *endpoint* is an absolute http(s) URL and return it without a trailing slash.

    Raises:
        InvalidEndpoint: If the URL is malformed; no connection is attempted.
    """
    if not endpoint or not endpoint.strip():
        raise InvalidEndpoint(endpoint, "empty URL")
    try:
        url = httpx.URL(endpoint.strip())
    except httpx.InvalidURL as exc:
        raise InvalidEndpoint(endpoint, str(exc)) from exc
    if url.scheme not in ("http", "https"):
        raise InvalidEndpoint(endpoint, "scheme must be http or https")
    if not url.host:
        raise InvalidEndpoint(endpoint, "missing host")
    return str(url).rstrip("/")
