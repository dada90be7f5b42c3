"""Shared request helpers for the provider's HTTP boundary.

Every provider call goes through ``provider_request`` so error envelopes are
parsed one way: ``{"error": {"code", "message"}}`` or the OAuth
``{"error", "error_description"}`` form.
"""

from __future__ import annotations

import httpx

from onboard_engine.errors import ProviderError, TransportError


def bearer(access_token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {access_token}"}


def parse_error_envelope(response: httpx.Response) -> ProviderError | None:
    """Return the provider error carried by ``response``, or None if it has no envelope."""
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    error = body.get("error")
    if isinstance(error, dict) and error.get("code"):
        return ProviderError(
            str(error["code"]), str(error.get("message", "")), response.status_code
        )
    if isinstance(error, str) and error:
        return ProviderError(error, str(body.get("error_description", "")), response.status_code)
    return None


async def provider_request(
    client: httpx.AsyncClient, method: str, url: str, **kwargs
) -> httpx.Response:
    """Send a request and raise unless the provider answered 2xx.

    Raises ProviderError for a well-formed error envelope and TransportError
    for network faults or error responses without one.
    """
    try:
        response = await client.request(method, url, **kwargs)
    except httpx.HTTPError as exc:
        raise TransportError(f"{method} {url} failed: {exc}") from exc
    if response.is_success:
        return response
    error = parse_error_envelope(response)
    if error is not None:
        raise error
    raise TransportError(f"{method} {url} returned HTTP {response.status_code} without an error body")


async def provider_json(
    client: httpx.AsyncClient, method: str, url: str, **kwargs
) -> dict:
    response = await provider_request(client, method, url, **kwargs)
    try:
        body = response.json()
    except ValueError as exc:
        raise TransportError(f"{method} {url} returned a non-JSON body") from exc
    if not isinstance(body, dict):
        raise TransportError(f"{method} {url} returned an unexpected JSON payload")
    return body
