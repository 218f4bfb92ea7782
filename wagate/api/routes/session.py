"""Verification and session bootstrap routes"""

from fastapi import APIRouter, BackgroundTasks, HTTPException, status
from pydantic import BaseModel, Field

from wagate.api.dependencies import GatewayDep, RestarterDep
from wagate.core.exceptions import DownloadError, FormatError, VerificationRequiredError
from wagate.core.logging import log
from wagate.sessions.reference import has_strict_prefix

router = APIRouter()


class VerifyChannelRequest(BaseModel):
    sessionId: str | None = None


class VerifyChannelResponse(BaseModel):
    success: bool
    verified: bool
    message: str


class CheckVerificationResponse(BaseModel):
    verified: bool
    channelLink: str


class SetSessionRequest(BaseModel):
    """``SESSION_ID`` is the reference token, ``sessionId`` the verified id."""
    SESSION_ID: str | None = None
    sessionId: str | None = None
    tenantId: str | None = Field(default=None, description="Defaults to the single-tenant id")


class DeployRequest(BaseModel):
    sessionId: str | None = None


@router.post("/verify-channel", response_model=VerifyChannelResponse)
async def verify_channel(request: VerifyChannelRequest, gateway: GatewayDep):
    """Mark a session id as having followed the channel."""
    if not request.sessionId:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Session ID required")

    gateway.verifications.verify(request.sessionId)
    return VerifyChannelResponse(
        success=True,
        verified=True,
        message="Verification complete. You may now deploy your bot.",
    )


@router.get("/check-verification/{session_id}", response_model=CheckVerificationResponse)
async def check_verification(session_id: str, gateway: GatewayDep):
    return CheckVerificationResponse(
        verified=gateway.verifications.is_verified(session_id),
        channelLink=gateway.verifications.channel_link,
    )


@router.post("/set-session")
async def set_session(request: SetSessionRequest, gateway: GatewayDep):
    """Download credentials for a verified session and start the tenant."""
    if not gateway.verifications.is_verified(request.sessionId):
        raise VerificationRequiredError(gateway.verifications.channel_link)

    if not request.SESSION_ID:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="SESSION_ID required")

    tenant_id = request.tenantId or gateway.default_tenant
    if not await gateway.set_session(request.SESSION_ID, tenant_id):
        raise DownloadError("could not fetch credentials", {"tenant": tenant_id})

    log.info(f"Session set for tenant {tenant_id}")
    return {"success": True}


@router.post("/deploy")
async def deploy(
    request: DeployRequest,
    background_tasks: BackgroundTasks,
    gateway: GatewayDep,
    restart: RestarterDep,
):
    """Persist a new session token, fetch its credentials, then restart.

    The restart terminates the process; it only comes back with the new
    session when a supervisor restarts it.
    """
    token = (request.sessionId or "").strip()
    if not has_strict_prefix(token, gateway.deploy_marker):
        raise FormatError(f"Session ID must start with {gateway.deploy_marker}")

    tenant_id = gateway.default_tenant
    reference = gateway.resolver.parse(token)
    await gateway.resolver.remember_token(tenant_id, token)
    if not await gateway.resolver.fetch_and_persist(tenant_id, reference):
        raise DownloadError("could not fetch credentials", {"tenant": tenant_id})

    background_tasks.add_task(restart)
    log.info(f"Deployed new session for tenant {tenant_id}; restart scheduled")
    return {"success": True, "message": "Session deployed. Restarting..."}
