"""Owner-only feature toggle commands"""

from wagate.commands.base import BaseCommand, CommandContext
from wagate.features.scheduler import FeatureScheduler

LABELS = {
    "alwaysonline": "Always online",
    "autotyping": "Auto typing",
    "autorecording": "Auto recording",
    "deepseek": "AI chat",
}


class ToggleCommand(BaseCommand):
    privileged = True

    def __init__(self, features: FeatureScheduler, feature: str, enable: bool):
        self.features = features
        self.feature = feature
        self.enable = enable
        self.name = f"{feature} {'on' if enable else 'off'}"
        self.description = f"{'Enable' if enable else 'Disable'} {LABELS.get(feature, feature)}"

    async def execute(self, ctx: CommandContext) -> None:
        if self.enable:
            self.features.enable(ctx.tenant_id, self.feature)
        else:
            self.features.disable(ctx.tenant_id, self.feature)
        label = LABELS.get(self.feature, self.feature)
        await ctx.reply(f"{'✅' if self.enable else '🛑'} {label} {'enabled' if self.enable else 'disabled'}")
