"""Feature flags and presence timers"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from wagate.features.scheduler import ALWAYS_ONLINE, AUTO_RECORDING, AUTO_TYPING, AI_CHAT, FeatureScheduler
from wagate.whatsapp.messages import InboundMessage
from tests.conftest import text_message


@pytest.fixture
def scheduler(gateway, connection):
    gateway.sessions.put("default", connection)
    gateway.features.resume("default")
    return gateway.features


class TestToggles:
    @pytest.mark.anyio
    async def test_enable_twice_keeps_one_timer(self, scheduler):
        scheduler.enable("default", ALWAYS_ONLINE)
        first = scheduler._tasks[("default", ALWAYS_ONLINE)]
        scheduler.enable("default", ALWAYS_ONLINE)

        assert scheduler.active_timers("default") == [ALWAYS_ONLINE]
        assert scheduler._tasks[("default", ALWAYS_ONLINE)] is not first
        await scheduler.shutdown()

    @pytest.mark.anyio
    async def test_disable_when_off_is_noop(self, scheduler):
        scheduler.disable("default", AUTO_TYPING)
        scheduler.disable("default", AUTO_TYPING)
        assert not scheduler.is_enabled("default", AUTO_TYPING)
        assert scheduler.active_timers("default") == []

    @pytest.mark.anyio
    async def test_flag_without_connection_starts_no_timer(self, scheduler):
        scheduler.enable("offline-tenant", AUTO_RECORDING)
        assert scheduler.is_enabled("offline-tenant", AUTO_RECORDING)
        assert scheduler.active_timers("offline-tenant") == []

    def test_ai_chat_default_comes_from_config(self, scheduler):
        assert scheduler.is_enabled("default", AI_CHAT)
        assert not scheduler.is_enabled("default", ALWAYS_ONLINE)

    def test_unknown_feature_rejected(self, scheduler):
        with pytest.raises(ValueError):
            scheduler.enable("default", "teleport")

    @pytest.mark.anyio
    async def test_suspend_and_resume(self, scheduler):
        scheduler.enable("default", ALWAYS_ONLINE)
        scheduler.enable("default", AUTO_TYPING)

        await scheduler.suspend("default")
        assert scheduler.active_timers("default") == []

        assert scheduler.resume("default") == [ALWAYS_ONLINE, AUTO_TYPING]
        assert sorted(scheduler.active_timers("default")) == [ALWAYS_ONLINE, AUTO_TYPING]
        await scheduler.shutdown()

    @pytest.mark.anyio
    async def test_enable_before_open_only_sets_flag(self, gateway, connection):
        features = gateway.features
        gateway.sessions.put("default", connection)

        features.enable("default", ALWAYS_ONLINE)
        assert features.is_enabled("default", ALWAYS_ONLINE)
        assert features.active_timers("default") == []

        assert features.resume("default") == [ALWAYS_ONLINE]
        assert features.active_timers("default") == [ALWAYS_ONLINE]

        await features.suspend("default")
        features.enable("default", AUTO_TYPING)
        assert features.active_timers("default") == []
        await features.shutdown()


class TestTick:
    @pytest.mark.anyio
    async def test_always_online_sends_available(self, scheduler, connection):
        await scheduler.tick("default", ALWAYS_ONLINE)
        assert connection.presence == [("available", None)]

    @pytest.mark.anyio
    async def test_typing_pulses_a_private_chat(self, scheduler, connection):
        connection.record_chat(InboundMessage(text_message("hi", sender="254722000000@s.whatsapp.net")))
        connection.record_chat(InboundMessage({
            "key": {"remoteJid": "1203630@g.us", "fromMe": False, "id": "G1"},
            "message": {"conversation": "group"},
        }))

        jid = await scheduler.tick("default", AUTO_TYPING)

        assert jid == "254722000000@s.whatsapp.net"
        assert connection.presence == [("composing", jid), ("paused", jid)]

    @pytest.mark.anyio
    async def test_recording_without_chats_does_nothing(self, scheduler, connection):
        assert await scheduler.tick("default", AUTO_RECORDING) is None
        assert connection.presence == []

    @pytest.mark.anyio
    async def test_tick_without_connection(self, scheduler):
        assert await scheduler.tick("nobody", ALWAYS_ONLINE) is None


class TestLoop:
    @pytest.mark.anyio
    async def test_failing_tick_keeps_loop_running(self, gateway, connection):
        connection.send_presence_update = AsyncMock(side_effect=RuntimeError("socket closed"))
        gateway.sessions.put("default", connection)
        features = FeatureScheduler(gateway.sessions, always_online_interval=0.001)
        features.resume("default")
        features.enable("default", ALWAYS_ONLINE)

        await asyncio.sleep(0.05)

        task = features._tasks[("default", ALWAYS_ONLINE)]
        assert connection.send_presence_update.await_count >= 2
        assert not task.done()
        await features.shutdown()
        assert task.cancelled()
