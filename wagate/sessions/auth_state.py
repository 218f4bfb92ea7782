"""Multi-file credential state, laid out like Baileys ``useMultiFileAuthState``.

``creds.json`` holds the account credentials; every signal key lives in its own
``<type>-<id>.json`` file. The protocol layer raises deltas for both and they
must reach disk in order, so every write for a tenant goes through one lock.
"""

import asyncio
import json
import os
import tempfile
from pathlib import Path
from typing import Any

from wagate.core.logging import log

CREDS_FILE = "creds.json"

# Longest first so "sender-key-memory" is not read as a "sender-key" entry
KEY_TYPES = (
    "app-state-sync-version",
    "app-state-sync-key",
    "sender-key-memory",
    "lid-mapping",
    "sender-key",
    "device-list",
    "pre-key",
    "session",
    "tctoken",
)


def fix_file_name(name: str) -> str:
    return name.replace("/", "__").replace(":", "-")


def write_bytes_atomic(path: Path, data: bytes) -> None:
    """Replace path with data; readers see the old file or the new one, never a prefix."""
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


def _write_json_atomic(path: Path, data: Any) -> None:
    write_bytes_atomic(path, json.dumps(data).encode("utf-8"))


def _read_json(path: Path) -> Any | None:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except json.JSONDecodeError as e:
        log.warning(f"Ignoring unreadable credential file {path.name}: {e}")
        return None


class MultiFileAuthState:
    """Durable, incrementally updated credential state for one tenant."""

    def __init__(self, folder: Path, creds: dict[str, Any]):
        self.folder = folder
        self.creds = creds
        self._lock = asyncio.Lock()

    @classmethod
    async def load(cls, folder: str | Path) -> "MultiFileAuthState":
        """Load state from ``folder``, creating it (and empty creds) if absent."""
        folder = Path(folder)
        folder.mkdir(parents=True, exist_ok=True)
        creds = _read_json(folder / CREDS_FILE)
        if not isinstance(creds, dict):
            creds = {}
        return cls(folder, creds)

    @property
    def is_registered(self) -> bool:
        """True once the state holds a paired identity."""
        return bool(self.creds.get("me"))

    def _key_path(self, key_type: str, key_id: str) -> Path:
        return self.folder / fix_file_name(f"{key_type}-{key_id}.json")

    def read_keys(self) -> dict[str, dict[str, Any]]:
        """Collect every persisted signal key as ``{type: {id: value}}``."""
        keys: dict[str, dict[str, Any]] = {}
        for path in sorted(self.folder.glob("*.json")):
            if path.name == CREDS_FILE:
                continue
            key_type = next((t for t in KEY_TYPES if path.stem.startswith(f"{t}-")), None)
            if key_type is None:
                continue
            key_id = path.stem[len(key_type) + 1:]
            value = _read_json(path)
            if value is not None:
                keys.setdefault(key_type, {})[key_id.replace("__", "/")] = value
        return keys

    async def apply_creds_update(self, delta: dict[str, Any]) -> None:
        """Merge a credential delta and flush creds.json."""
        async with self._lock:
            self.creds.update(delta or {})
            await asyncio.to_thread(_write_json_atomic, self.folder / CREDS_FILE, self.creds)

    async def apply_keys_update(self, data: dict[str, dict[str, Any]]) -> None:
        """Write or delete key files; a ``None`` value deletes the key."""
        async with self._lock:
            for key_type, entries in (data or {}).items():
                for key_id, value in (entries or {}).items():
                    path = self._key_path(key_type, key_id)
                    if value is None:
                        path.unlink(missing_ok=True)
                    else:
                        await asyncio.to_thread(_write_json_atomic, path, value)

    async def wait_idle(self) -> None:
        """Return once no credential write is in flight."""
        async with self._lock:
            pass
