from __future__ import annotations

import httpx

from ..errors import TransientNetworkError


async def send(client: httpx.AsyncClient, method: str, url: str, **kwargs) -> httpx.Response:
    """Issue a request, turning timeouts, resets, 429 and 5xx into TransientNetworkError.

    Other statuses are returned to the caller to interpret.
    """
    try:
        r = await client.request(method, url, **kwargs)
    except httpx.TimeoutException as exc:
        raise TransientNetworkError(f"{method} {url} timed out") from exc
    except httpx.TransportError as exc:
        raise TransientNetworkError(f"{method} {url} failed: {exc}") from exc
    if r.status_code == 429 or r.status_code >= 500:
        raise TransientNetworkError(f"{method} {url} returned {r.status_code}")
    return r
