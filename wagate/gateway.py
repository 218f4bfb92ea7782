"""Process-scoped gateway registry.

Everything with per-process state (session store, verification set, feature
timers, connection records) hangs off one ``Gateway`` built at startup and
passed by reference, so a test can build a fresh one.
"""

import time
from dataclasses import dataclass, field
from functools import partial

from wagate.commands.registry import CommandTable, build_command_table
from wagate.core.logging import log
from wagate.features.scheduler import FeatureScheduler
from wagate.relays.ai_chat import AIChatRelay
from wagate.relays.endpoints import EndpointDescriptor, load_endpoints
from wagate.relays.media import MediaDownloadRelay
from wagate.routing.router import EventRouter
from wagate.routing.status import StatusReactor
from wagate.routing.view_once import ViewOnceCache, ViewOnceCapture
from wagate.sessions.blob_store import MegaBlobStore
from wagate.sessions.manager import ConnectionManager, FixedBackoff
from wagate.sessions.resolver import CredentialResolver, TenantPaths
from wagate.sessions.store import SessionStore
from wagate.sessions.verification import VerificationRegistry
from wagate.whatsapp.baileys import VERSION_URL, BaileysConnectionFactory, fetch_latest_version


@dataclass
class Gateway:
    paths: TenantPaths
    sessions: SessionStore
    verifications: VerificationRegistry
    features: FeatureScheduler
    resolver: CredentialResolver
    manager: ConnectionManager
    router: EventRouter
    commands: CommandTable
    default_tenant: str = "default"
    api_key: str = ""
    deploy_marker: str = "CLOUD-AI~"
    timezone: str = "Africa/Nairobi"
    started_at: float = field(default_factory=time.monotonic)

    async def set_session(self, token: str, tenant_id: str | None = None) -> bool:
        """Resolve a session reference and start the tenant. False on download failure."""
        tenant_id = tenant_id or self.default_tenant
        if not await self.resolver.fetch_and_persist(tenant_id, token):
            return False
        await self.manager.start(tenant_id, False)
        return True

    async def restore_sessions(self, session_token: str = "") -> list[str]:
        """Start every tenant that already has credentials on disk."""
        if session_token and not self.paths.has_credentials(self.default_tenant):
            log.info(f"Resolving configured SESSION_ID for tenant {self.default_tenant}")
            await self.resolver.fetch_and_persist(self.default_tenant, session_token)

        tenants = self.paths.restorable_tenants()
        for tenant_id in tenants:
            await self.manager.start(tenant_id, False)
        if tenants:
            log.info(f"Restored {len(tenants)} session(s): {', '.join(tenants)}")
        return tenants

    async def shutdown(self) -> None:
        await self.manager.shutdown()
        await self.router.drain()


def build_gateway(settings) -> Gateway:
    """Wire the gateway from a dynaconf settings object."""
    timeout = float(settings.HTTP_TIMEOUT)
    paths = TenantPaths(settings.SESSIONS_DIR)
    sessions = SessionStore()
    started_at = time.monotonic()

    features = FeatureScheduler(
        sessions,
        defaults=dict(settings.get("FEATURES", {})),
        always_online_interval=float(settings.get("ALWAYS_ONLINE_INTERVAL", 20.0)),
        auto_presence_interval=float(settings.get("AUTO_PRESENCE_INTERVAL", 30.0)),
        presence_pulse=float(settings.get("PRESENCE_PULSE", 3.0)),
    )

    search = settings.get("SEARCH_ENDPOINT")
    media = MediaDownloadRelay(
        search_endpoint=EndpointDescriptor.from_config(search),
        audio_endpoints=load_endpoints(settings.get("AUDIO_ENDPOINTS")),
        video_endpoints=load_endpoints(settings.get("VIDEO_ENDPOINTS")),
        timeout=timeout,
    )
    commands = build_command_table(features, media, started_at)

    router = EventRouter(
        commands=commands,
        features=features,
        ai_chat=AIChatRelay(load_endpoints(settings.get("AI_ENDPOINTS")), timeout=timeout),
        status=StatusReactor(
            emojis=list(settings.get("STATUS_EMOJIS", [])),
            delay=float(settings.get("STATUS_REACT_DELAY", 1.0)),
        ),
        view_once=ViewOnceCapture(ViewOnceCache(int(settings.VIEW_ONCE_CACHE_SIZE))),
        owner_number=str(settings.OWNER_NUMBER or ""),
        ignore_groups=bool(settings.get("IGNORE_GROUPS", True)),
        max_concurrent_batches=int(settings.MAX_CONCURRENT_BATCHES),
    )

    factory = BaileysConnectionFactory(
        base_url=settings.BAILEYS_SERVICE_URL,
        api_key=settings.BAILEYS_API_KEY,
        browser=list(settings.get("BROWSER", ["Safari", "1.0"])),
        timeout=timeout,
    )
    version_provider = partial(
        fetch_latest_version,
        url=settings.get("BAILEYS_VERSION_URL") or VERSION_URL,
        default=list(settings.get("DEFAULT_WA_VERSION", [])) or None,
        timeout=timeout,
    )

    manager = ConnectionManager(
        paths=paths,
        sessions=sessions,
        factory=factory,
        features=features,
        version_provider=version_provider,
        on_messages=router.on_messages_upsert,
        backoff=FixedBackoff(float(settings.RECONNECT_DELAY)),
        max_attempts=int(settings.RECONNECT_MAX_ATTEMPTS),
        channel_jid=settings.get("CHANNEL_JID", ""),
        channel_name=settings.get("CHANNEL_NAME", ""),
    )

    return Gateway(
        paths=paths,
        sessions=sessions,
        verifications=VerificationRegistry(settings.get("REQUIRED_CHANNEL", "")),
        features=features,
        resolver=CredentialResolver(
            paths,
            MegaBlobStore(timeout=timeout),
            markers=list(settings.get("SESSION_MARKERS", ["CLOUD-AI~", "Demo-Slayer~"])),
        ),
        manager=manager,
        router=router,
        commands=commands,
        default_tenant=settings.DEFAULT_TENANT,
        api_key=settings.BAILEYS_API_KEY,
        deploy_marker=settings.get("DEPLOY_MARKER", "CLOUD-AI~"),
        timezone=settings.get("TIMEZONE", "Africa/Nairobi"),
        started_at=started_at,
    )
