"""Credential resolver: session reference → bytes on disk for a tenant."""

import asyncio
import json
import re
from pathlib import Path

from wagate.core.exceptions import DownloadError, FormatError
from wagate.core.logging import log
from wagate.sessions.auth_state import CREDS_FILE, write_bytes_atomic
from wagate.sessions.blob_store import BlobStore
from wagate.sessions.reference import DEFAULT_MARKERS, SessionReference, parse_reference

TENANT_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]{0,63}$")
SESSION_TOKEN_FILE = "session_id.txt"


class TenantPaths:
    """Maps tenant ids to their storage slot under the sessions root."""

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def ensure_root(self) -> Path:
        """Create the sessions root. Startup cannot continue without it."""
        self.root.mkdir(parents=True, exist_ok=True)
        return self.root

    def slot(self, tenant_id: str) -> Path:
        if not TENANT_ID_PATTERN.match(tenant_id or "") or ".." in tenant_id:
            raise FormatError(f"Invalid tenant id: {tenant_id!r}")
        return self.root / tenant_id

    def ensure_slot(self, tenant_id: str) -> Path:
        path = self.slot(tenant_id)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def has_credentials(self, tenant_id: str) -> bool:
        return (self.slot(tenant_id) / CREDS_FILE).is_file()

    def restorable_tenants(self) -> list[str]:
        """Tenants whose slot already holds a creds.json."""
        if not self.root.is_dir():
            return []
        return sorted(
            p.name for p in self.root.iterdir()
            if p.is_dir() and TENANT_ID_PATTERN.match(p.name) and (p / CREDS_FILE).is_file()
        )


def check_credentials(data: bytes) -> None:
    try:
        creds = json.loads(data)
    except (UnicodeDecodeError, ValueError) as e:
        raise DownloadError("blob is not valid JSON") from e
    if not isinstance(creds, dict):
        raise DownloadError("blob is not a credential object")


class CredentialResolver:
    """Exchange a session reference for raw credential bytes in the tenant slot."""

    def __init__(
        self,
        paths: TenantPaths,
        blob_store: BlobStore,
        markers: tuple[str, ...] | list[str] = DEFAULT_MARKERS,
    ):
        self.paths = paths
        self.blob_store = blob_store
        self.markers = tuple(markers)

    def parse(self, token: str) -> SessionReference:
        return parse_reference(token, self.markers)

    async def fetch_and_persist(self, tenant_id: str, token: str | SessionReference) -> bool:
        """Download the blob and overwrite the tenant's creds.json.

        A malformed token raises FormatError; download and write failures are
        logged and reported as False so the HTTP layer can answer 500. Bytes
        that are not a JSON object never replace the existing creds.json.
        """
        reference = token if isinstance(token, SessionReference) else self.parse(token)
        slot = self.paths.ensure_slot(tenant_id)

        try:
            data = await self.blob_store.fetch(reference.blob_id, reference.decryption_key)
            check_credentials(data)
            await asyncio.to_thread(write_bytes_atomic, slot / CREDS_FILE, data)
        except (DownloadError, OSError) as e:
            log.error(f"Session download failed for tenant {tenant_id}: {e}")
            return False

        log.info(f"Stored credentials for tenant {tenant_id} from blob {reference.blob_id}")
        return True

    async def remember_token(self, tenant_id: str, token: str) -> Path:
        """Persist the raw token next to the credentials (deploy flow)."""
        path = self.paths.ensure_slot(tenant_id) / SESSION_TOKEN_FILE
        await asyncio.to_thread(path.write_text, token.strip(), "utf-8")
        return path
