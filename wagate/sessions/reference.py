"""Session reference tokens: ``<MARKER>~<blobId>#<decryptionKey>``."""

from dataclasses import dataclass

from wagate.core.exceptions import FormatError

DEFAULT_MARKERS: tuple[str, ...] = ("CLOUD-AI~", "Demo-Slayer~")


@dataclass(frozen=True)
class SessionReference:
    marker: str
    blob_id: str
    decryption_key: str

    @property
    def link(self) -> str:
        return f"https://mega.nz/file/{self.blob_id}#{self.decryption_key}"


def parse_reference(token: str, markers: tuple[str, ...] | list[str] = DEFAULT_MARKERS) -> SessionReference:
    """Split a session reference into its blob id and decryption key.

    The first recognised marker wins; the blob id ends at the first ``#``
    after it and everything past that ``#`` is the key.
    """
    if not isinstance(token, str):
        raise FormatError()

    token = token.strip()
    for marker in markers:
        if marker in token:
            _, _, part = token.partition(marker)
            blob_id, sep, key = part.partition("#")
            if not sep or not blob_id or not key:
                raise FormatError("Session ID must look like <MARKER>~<fileId>#<key>")
            return SessionReference(marker=marker, blob_id=blob_id, decryption_key=key)

    raise FormatError()


def has_strict_prefix(token: str, marker: str) -> bool:
    """Deploy only accepts tokens that start with the marker literally."""
    return isinstance(token, str) and token.startswith(marker) and len(token) > len(marker)
