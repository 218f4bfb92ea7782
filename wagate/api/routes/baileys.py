"""Baileys sidecar callbacks

The sidecar posts every protocol event for a tenant here; the event is emitted
on that tenant's live connection, where the manager and router are listening.
"""

from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel

from wagate.api.dependencies import GatewayDep, SidecarAuth
from wagate.core.logging import log

router = APIRouter(dependencies=[SidecarAuth])

EVENTS = ("connection.update", "creds.update", "keys.update", "messages.upsert")


class SidecarEvent(BaseModel):
    sessionId: str
    event: str
    data: Any = None
    connectionId: str | None = None


@router.post("/events")
async def handle_event(body: SidecarEvent, gateway: GatewayDep):
    """Forward one protocol event to the tenant's connection."""
    if body.event not in EVENTS:
        return {"status": "ignored", "reason": f"unsupported event {body.event}"}

    connection = gateway.sessions.get(body.sessionId)
    if connection is None:
        log.debug(f"{body.event} for tenant {body.sessionId} without a live connection")
        return {"status": "ignored", "reason": "no live connection"}

    if body.connectionId and body.connectionId != connection.connection_id:
        log.debug(f"Dropped {body.event} from superseded connection of {body.sessionId}")
        return {"status": "ignored", "reason": "stale connection"}

    await connection.events.emit(body.event, body.data)
    return {"status": "received"}
