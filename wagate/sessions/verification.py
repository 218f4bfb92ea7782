"""Channel-follow verification gate."""


class VerificationRegistry:
    """Session reference ids that passed the channel-follow step.

    Append-only for the process lifetime; nothing expires.
    """

    def __init__(self, required_channel: str = ""):
        self.required_channel = required_channel
        self._verified: set[str] = set()

    @property
    def channel_link(self) -> str:
        return f"https://whatsapp.com/channel/{self.required_channel}"

    def verify(self, session_id: str) -> None:
        self._verified.add(session_id)

    def is_verified(self, session_id: str | None) -> bool:
        return bool(session_id) and session_id in self._verified

    def __len__(self) -> int:
        return len(self._verified)
