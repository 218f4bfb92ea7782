"""Shared httpx client construction.

Every outbound call the gateway makes (blob store, version discovery, sidecar,
AI and media endpoints) goes through a client built here so none of them can
block a tenant indefinitely.
"""

import httpx

DEFAULT_TIMEOUT = 20.0


def build_client(
    timeout: float = DEFAULT_TIMEOUT,
    transport: httpx.AsyncBaseTransport | None = None,
    **kwargs,
) -> httpx.AsyncClient:
    """Create an AsyncClient with a bounded timeout."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout),
        transport=transport,
        follow_redirects=True,
        **kwargs,
    )


def extract_field(payload, path: str):
    """Resolve a dotted path ("result.downloadUrl", "items.0.url") in a JSON payload.

    Returns None when any segment is missing.
    """
    current = payload
    for part in path.split("."):
        if isinstance(current, dict):
            current = current.get(part)
        elif isinstance(current, list) and part.isdigit():
            index = int(part)
            current = current[index] if index < len(current) else None
        else:
            return None
        if current is None:
            return None
    return current
