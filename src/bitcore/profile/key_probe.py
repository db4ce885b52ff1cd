"""Upstream validity probes for stored API keys."""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import requests
from pydantic import BaseModel, ConfigDict

PROBE_TIMEOUT_SECONDS = 7.0

_ENDPOINTS: dict[str, tuple[str, Callable[[str], dict[str, str]]]] = {
    "venice": (
        "https://api.venice.ai/api/v1/models",
        lambda key: {"Authorization": f"Bearer {key}"},
    ),
    "brave": (
        "https://api.search.brave.com/res/v1/status",
        lambda key: {"X-Subscription-Token": key},
    ),
    "github": (
        "https://api.github.com/user",
        lambda key: {
            "Authorization": f"Bearer {key}",
            "Accept": "application/vnd.github+json",
        },
    ),
}


class KeyCheck(BaseModel):
    """Result of probing one service key."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    service: str
    valid: bool
    detail: str


def probe_api_key_sync(
    service: str,
    key: str,
    *,
    timeout: float = PROBE_TIMEOUT_SECONDS,
    http: requests.Session | None = None,
) -> KeyCheck:
    """Call the service's cheapest authenticated endpoint.

    Args:
        service: Service identifier.
        key: API key value.
        timeout: Request timeout in seconds.
        http: Optional requests session.

    Returns:
        Probe outcome; transport failures are reported, not raised.
    """
    endpoint = _ENDPOINTS.get(service)
    if endpoint is None:
        return KeyCheck(service=service, valid=False, detail="No probe endpoint for service.")
    url, headers = endpoint
    client = http or requests
    try:
        response = client.get(url, headers=headers(key), timeout=timeout)
    except requests.Timeout:
        return KeyCheck(service=service, valid=False, detail=f"Timed out after {timeout:g}s")
    except requests.RequestException as exc:
        return KeyCheck(service=service, valid=False, detail=f"Connection error: {exc}")
    if response.ok:
        return KeyCheck(service=service, valid=True, detail="Valid")
    return KeyCheck(
        service=service,
        valid=False,
        detail=f"Invalid (HTTP {response.status_code})",
    )


async def probe_api_key(service: str, key: str) -> KeyCheck:
    """Run :func:`probe_api_key_sync` off the event loop."""
    return await asyncio.to_thread(probe_api_key_sync, service, key)
