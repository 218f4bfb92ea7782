"""Health, status and time routes"""

from datetime import datetime
from zoneinfo import ZoneInfo

from fastapi import APIRouter

from wagate.api.dependencies import GatewayDep

router = APIRouter()


@router.get("/status/{tenant_id}")
async def tenant_status(tenant_id: str, gateway: GatewayDep):
    """Connection state, pairing QR and feature flags for one tenant."""
    return gateway.manager.status(tenant_id)


@router.get("/nairobi-time")
async def nairobi_time(gateway: GatewayDep):
    now = datetime.now(ZoneInfo(gateway.timezone))
    return {
        "time": now.strftime("%H:%M:%S"),
        "date": f"{now:%A}, {now.day} {now:%B %Y}",
        "timezone": gateway.timezone,
    }
