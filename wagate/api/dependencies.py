"""FastAPI dependencies"""

import asyncio
import os
import signal
from collections.abc import Callable
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from wagate.core.logging import log
from wagate.gateway import Gateway


def get_gateway(request: Request) -> Gateway:
    """Process-scoped gateway built in the app lifespan."""
    gateway = getattr(request.app.state, "gateway", None)
    if gateway is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Gateway is not ready",
        )
    return gateway


async def restart_process(delay: float = 1.0) -> None:
    """Send SIGTERM to our own pid so uvicorn shuts down gracefully.

    Coming back up with the deployed credentials is left to the process
    supervisor (systemd, docker restart policy, pm2); run bare, the service
    just exits.
    """
    await asyncio.sleep(delay)
    log.warning("Restarting process to load the deployed session")
    os.kill(os.getpid(), signal.SIGTERM)


def get_restarter(request: Request) -> Callable:
    return getattr(request.app.state, "restart", restart_process)


def verify_sidecar_key(
    gateway: Annotated[Gateway, Depends(get_gateway)],
    x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
) -> None:
    """Reject sidecar callbacks that do not carry the shared API key."""
    if not x_api_key or x_api_key != gateway.api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )


# Type aliases for dependencies
GatewayDep = Annotated[Gateway, Depends(get_gateway)]
RestarterDep = Annotated[Callable, Depends(get_restarter)]
SidecarAuth = Depends(verify_sidecar_key)
