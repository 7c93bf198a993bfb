"""
Shared HTTP plumbing for provider adapters.

Adapters never see raw httpx exceptions or status codes; they get the
gateway error taxonomy instead.
"""

from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import httpx

from gateway.core.config import settings
from gateway.core.errors import AuthenticationError, NetworkError, ProviderError


@asynccontextmanager
async def provider_client(client: Optional[httpx.AsyncClient] = None):
    """Yield the injected client, or a short-lived one with the provider timeout."""
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=settings.PROVIDER_TIMEOUT_SECONDS) as owned:
        yield owned


async def send_request(client: httpx.AsyncClient, method: str, url: str, provider: str,
                       **kwargs) -> httpx.Response:
    try:
        return await client.request(method, url, **kwargs)
    except httpx.RequestError as exc:
        raise NetworkError(
            f"Network error connecting to {provider}",
            {"reason": str(exc) or exc.__class__.__name__},
        ) from exc


def response_json(response: httpx.Response) -> Dict[str, Any]:
    """Response body as a dict; empty for non-JSON bodies."""
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {"data": data}


def ensure_success(response: httpx.Response, provider: str, message: Optional[str] = None):
    """Raise AuthenticationError for 401/403 and ProviderError for any other non-2xx."""
    if response.is_success:
        return

    details = {"status_code": response.status_code}
    body = response_json(response)
    if body:
        details["response"] = body

    message = message or f"{provider} returned status {response.status_code}: {response.reason_phrase}"
    if response.status_code in (401, 403):
        raise AuthenticationError(message, details)
    raise ProviderError(message, details)
