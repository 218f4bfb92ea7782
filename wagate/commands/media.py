"""Prefix commands that fetch media: ``play <query>`` and ``video <query>``"""

from wagate.commands.base import BaseCommand, CommandContext
from wagate.relays.media import AUDIO, VIDEO, MediaDownloadRelay


class PlayCommand(BaseCommand):
    name = "play"
    description = "Search and send audio"
    kind = AUDIO

    def __init__(self, relay: MediaDownloadRelay):
        self.relay = relay

    async def execute(self, ctx: CommandContext) -> None:
        await self.relay.handle(ctx, ctx.args, self.kind)


class VideoCommand(PlayCommand):
    name = "video"
    description = "Search and send video"
    kind = VIDEO
