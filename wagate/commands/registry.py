"""Command table: literal commands plus ``<prefix> <args>`` commands."""

from wagate.commands.base import BaseCommand
from wagate.commands.media import PlayCommand, VideoCommand
from wagate.commands.toggles import ToggleCommand
from wagate.commands.utility import FeaturesCommand, PingCommand, UptimeCommand
from wagate.features.scheduler import FEATURES, FeatureScheduler
from wagate.relays.media import MediaDownloadRelay


class CommandTable:
    """Registry for matching inbound text to commands."""

    def __init__(self):
        self._literal: dict[str, BaseCommand] = {}
        self._prefix: dict[str, BaseCommand] = {}

    def add(self, command: BaseCommand) -> None:
        self._literal[command.name] = command

    def add_prefix(self, command: BaseCommand) -> None:
        self._prefix[command.name] = command

    def match(self, text: str | None) -> tuple[BaseCommand, str] | None:
        """Match trimmed, case-folded text. Returns ``(command, args)``."""
        if not text:
            return None
        stripped = text.strip()
        normalized = " ".join(stripped.casefold().split())
        if normalized in self._literal:
            return self._literal[normalized], ""

        head, _, rest = stripped.partition(" ")
        command = self._prefix.get(head.casefold())
        if command is not None:
            return command, rest.strip()
        return None

    def names(self) -> list[str]:
        return sorted([*self._literal, *(f"{p} <query>" for p in self._prefix)])


def build_command_table(
    features: FeatureScheduler,
    media: MediaDownloadRelay,
    started_at: float | None = None,
) -> CommandTable:
    table = CommandTable()
    table.add(PingCommand())
    table.add(UptimeCommand(started_at))
    table.add(FeaturesCommand(features))
    for feature in FEATURES:
        table.add(ToggleCommand(features, feature, True))
        table.add(ToggleCommand(features, feature, False))
    table.add_prefix(PlayCommand(media))
    table.add_prefix(VideoCommand(media))
    return table
