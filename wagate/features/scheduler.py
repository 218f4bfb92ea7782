"""Per-tenant toggleable background presence loops."""

import asyncio
import random

from wagate.core.logging import log
from wagate.sessions.store import SessionStore

ALWAYS_ONLINE = "alwaysonline"
AUTO_TYPING = "autotyping"
AUTO_RECORDING = "autorecording"
AI_CHAT = "deepseek"

PERIODIC_FEATURES = (ALWAYS_ONLINE, AUTO_TYPING, AUTO_RECORDING)
FEATURES = (*PERIODIC_FEATURES, AI_CHAT)

PRESENCE_FOR = {
    AUTO_TYPING: "composing",
    AUTO_RECORDING: "recording",
}


class FeatureScheduler:
    """Owns the feature flags and the timer task behind each periodic feature.

    Flags outlive a connection; timers do not. ``suspend`` cancels a tenant's
    timers when its connection closes and ``resume`` restarts the enabled ones
    on the next open. Timers only run between a ``resume`` and the following
    ``suspend``, so enabling a feature while CONNECTING just sets the flag. A failing loop body is logged and the loop keeps going.
    """

    def __init__(
        self,
        sessions: SessionStore,
        defaults: dict[str, bool] | None = None,
        always_online_interval: float = 20.0,
        auto_presence_interval: float = 30.0,
        presence_pulse: float = 3.0,
        rng: random.Random | None = None,
    ):
        self.sessions = sessions
        self.defaults = {name: False for name in FEATURES}
        self.defaults.update({k.lower(): bool(v) for k, v in (defaults or {}).items() if k.lower() in FEATURES})
        self.intervals = {
            ALWAYS_ONLINE: always_online_interval,
            AUTO_TYPING: auto_presence_interval,
            AUTO_RECORDING: auto_presence_interval,
        }
        self.presence_pulse = presence_pulse
        self.rng = rng or random.Random()
        self._flags: dict[str, dict[str, bool]] = {}
        self._tasks: dict[tuple[str, str], asyncio.Task] = {}
        self._open: set[str] = set()

    def _tenant_flags(self, tenant_id: str) -> dict[str, bool]:
        if tenant_id not in self._flags:
            self._flags[tenant_id] = dict(self.defaults)
        return self._flags[tenant_id]

    def is_enabled(self, tenant_id: str, feature: str) -> bool:
        return self._tenant_flags(tenant_id).get(feature, False)

    def enabled_features(self, tenant_id: str) -> dict[str, bool]:
        return dict(self._tenant_flags(tenant_id))

    def active_timers(self, tenant_id: str) -> list[str]:
        return [
            feature for (tenant, feature), task in self._tasks.items()
            if tenant == tenant_id and not task.done()
        ]

    def enable(self, tenant_id: str, feature: str) -> None:
        if feature not in FEATURES:
            raise ValueError(f"Unknown feature: {feature}")
        self._tenant_flags(tenant_id)[feature] = True
        if feature in PERIODIC_FEATURES and tenant_id in self._open:
            self._start_timer(tenant_id, feature)
        log.info(f"Feature {feature} enabled for tenant {tenant_id}")

    def disable(self, tenant_id: str, feature: str) -> None:
        if feature not in FEATURES:
            raise ValueError(f"Unknown feature: {feature}")
        self._tenant_flags(tenant_id)[feature] = False
        task = self._tasks.pop((tenant_id, feature), None)
        if task:
            task.cancel()
        log.info(f"Feature {feature} disabled for tenant {tenant_id}")

    def resume(self, tenant_id: str) -> list[str]:
        """Mark the tenant open and start timers for every enabled periodic feature."""
        self._open.add(tenant_id)
        started = []
        for feature in PERIODIC_FEATURES:
            if self.is_enabled(tenant_id, feature):
                self._start_timer(tenant_id, feature)
                started.append(feature)
        return started

    async def suspend(self, tenant_id: str) -> None:
        """Cancel the tenant's timers and wait until they have stopped."""
        self._open.discard(tenant_id)
        tasks = [
            self._tasks.pop(key) for key in list(self._tasks)
            if key[0] == tenant_id
        ]
        await self._cancel(tasks)

    async def shutdown(self) -> None:
        self._open.clear()
        tasks = list(self._tasks.values())
        self._tasks.clear()
        await self._cancel(tasks)

    async def _cancel(self, tasks: list[asyncio.Task]) -> None:
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _start_timer(self, tenant_id: str, feature: str) -> None:
        previous = self._tasks.pop((tenant_id, feature), None)
        if previous:
            previous.cancel()
        self._tasks[(tenant_id, feature)] = asyncio.create_task(
            self._loop(tenant_id, feature),
            name=f"{feature}:{tenant_id}",
        )

    async def _loop(self, tenant_id: str, feature: str) -> None:
        interval = self.intervals[feature]
        while True:
            await asyncio.sleep(interval)
            try:
                await self.tick(tenant_id, feature)
            except Exception:
                log.exception(f"{feature} tick failed for tenant {tenant_id}")

    async def tick(self, tenant_id: str, feature: str) -> str | None:
        """Run one iteration of a feature body. Returns the chat pulsed, if any."""
        connection = self.sessions.get(tenant_id)
        if connection is None:
            return None

        if feature == ALWAYS_ONLINE:
            await connection.send_presence_update("available")
            return None

        chats = connection.private_chats_awaiting_reply()
        if not chats:
            return None
        jid = self.rng.choice(chats)
        await connection.send_presence_update(PRESENCE_FOR[feature], jid)
        await asyncio.sleep(self.presence_pulse)
        await connection.send_presence_update("paused", jid)
        return jid
