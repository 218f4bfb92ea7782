"""Stateless utility commands: ping, uptime, features"""

import time

from wagate.commands.base import BaseCommand, CommandContext
from wagate.features.scheduler import FEATURES, FeatureScheduler


def format_duration(seconds: float) -> str:
    seconds = int(max(seconds, 0))
    days, seconds = divmod(seconds, 86400)
    hours, seconds = divmod(seconds, 3600)
    minutes, seconds = divmod(seconds, 60)
    return f"{days}d {hours}h {minutes}m {seconds}s"


class PingCommand(BaseCommand):
    name = "ping"
    description = "Round-trip latency of an outbound send"

    async def execute(self, ctx: CommandContext) -> None:
        started = time.perf_counter()
        await ctx.reply("🏓 Pinging...")
        latency_ms = (time.perf_counter() - started) * 1000
        await ctx.reply(f"🏓 *Pong!* {latency_ms:.2f} ms")


class UptimeCommand(BaseCommand):
    name = "uptime"
    description = "How long the gateway process has been running"

    def __init__(self, started_at: float | None = None):
        self.started_at = started_at if started_at is not None else time.monotonic()

    async def execute(self, ctx: CommandContext) -> None:
        uptime = format_duration(time.monotonic() - self.started_at)
        await ctx.reply(f"⏱️ *Uptime:* {uptime}")


class FeaturesCommand(BaseCommand):
    name = "features"
    description = "Show toggle states for this bot"

    def __init__(self, features: FeatureScheduler):
        self.features = features

    async def execute(self, ctx: CommandContext) -> None:
        flags = self.features.enabled_features(ctx.tenant_id)
        lines = ["*⚙️ Features*"]
        for name in FEATURES:
            state = "✅ on" if flags.get(name) else "❌ off"
            lines.append(f"• {name}: {state}")
        lines.append("")
        lines.append("_Toggle with `<feature> on` / `<feature> off`_")
        await ctx.reply("\n".join(lines))
