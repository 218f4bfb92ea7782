"""Baileys sidecar client.

The Node Baileys process owns the WebSocket to WhatsApp. This module speaks to
it over HTTP (``/sessions/{tenant}/...``) and the sidecar posts protocol events
back to ``/baileys/events``.
"""

import base64
from typing import Any

import httpx

from wagate.core.exceptions import GatewayConnectionError
from wagate.core.http import DEFAULT_TIMEOUT, build_client
from wagate.core.logging import log
from wagate.sessions.auth_state import MultiFileAuthState
from wagate.whatsapp.connection import Connection, ConnectionFactory

DEFAULT_VERSION = [2, 3000, 1015901307]
VERSION_URL = "https://raw.githubusercontent.com/WhiskeySockets/Baileys/master/src/Defaults/baileys-version.json"


def encode_binary(value: Any) -> Any:
    """Wrap bytes as ``{"base64": ...}`` so message content survives JSON."""
    if isinstance(value, (bytes, bytearray)):
        return {"base64": base64.b64encode(bytes(value)).decode("ascii")}
    if isinstance(value, dict):
        return {k: encode_binary(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [encode_binary(v) for v in value]
    return value


async def fetch_latest_version(
    url: str = VERSION_URL,
    default: list[int] | None = None,
    timeout: float = DEFAULT_TIMEOUT,
    transport: httpx.AsyncBaseTransport | None = None,
) -> list[int]:
    """Ask for the current WhatsApp Web version, falling back to ``default``."""
    default = list(default or DEFAULT_VERSION)
    try:
        async with build_client(timeout, transport) as client:
            response = await client.get(url)
            response.raise_for_status()
            version = response.json().get("version")
    except (httpx.HTTPError, ValueError, AttributeError) as e:
        log.warning(f"Version discovery failed, using {default}: {e}")
        return default

    if not isinstance(version, list) or len(version) != 3 or not all(isinstance(v, int) for v in version):
        log.warning(f"Version discovery returned {version!r}, using {default}")
        return default
    return version


class BaileysServiceConnection(Connection):
    """Connection backed by a session in the Baileys sidecar."""

    def __init__(
        self,
        tenant_id: str,
        auth_state: MultiFileAuthState,
        version: list[int],
        base_url: str,
        api_key: str,
        print_qr: bool = False,
        browser: list[str] | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(tenant_id)
        self.auth_state = auth_state
        self.version = version
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.print_qr = print_qr
        self.browser = [tenant_id, *(browser or ["Safari", "1.0"])]
        self.timeout = timeout
        self.transport = transport

    def _headers(self) -> dict:
        return {
            "X-API-Key": self.api_key,
            "Content-Type": "application/json",
        }

    async def _request(self, path: str, payload: dict[str, Any] | None = None) -> httpx.Response:
        url = f"{self.base_url}/sessions/{self.tenant_id}/{path}"
        try:
            async with build_client(self.timeout, self.transport) as client:
                response = await client.post(url, json=payload or {}, headers=self._headers())
                response.raise_for_status()
                return response
        except httpx.HTTPError as e:
            raise GatewayConnectionError(self.tenant_id, f"{path}: {e}") from e

    async def connect(self) -> None:
        await self._request("start", {
            "connectionId": self.connection_id,
            "version": self.version,
            "creds": self.auth_state.creds,
            "keys": self.auth_state.read_keys(),
            "printQRInTerminal": self.print_qr,
            "browser": self.browser,
        })
        log.info(f"Baileys session requested for tenant {self.tenant_id} (version {self.version})")

    async def close(self) -> None:
        try:
            await self._request("close")
        except GatewayConnectionError as e:
            log.warning(f"Close request failed for tenant {self.tenant_id}: {e.message}")

    async def _send(self, jid: str, content: dict[str, Any], options: dict[str, Any]) -> dict[str, Any]:
        response = await self._request("send", {
            "jid": jid,
            "content": encode_binary(content),
            "options": encode_binary(options),
        })
        return response.json().get("key") or {}

    async def read_messages(self, keys: list[dict[str, Any]]) -> None:
        await self._request("read", {"keys": keys})

    async def send_presence_update(self, presence: str, jid: str | None = None) -> None:
        await self._request("presence", {"presence": presence, "jid": jid})

    async def download_media(self, message: dict[str, Any]) -> bytes:
        response = await self._request("media", {"message": message})
        return response.content


class BaileysConnectionFactory(ConnectionFactory):
    def __init__(
        self,
        base_url: str,
        api_key: str,
        browser: list[str] | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url
        self.api_key = api_key
        self.browser = browser
        self.timeout = timeout
        self.transport = transport

    def create(self, tenant_id, auth_state, version, print_qr=False) -> BaileysServiceConnection:
        return BaileysServiceConnection(
            tenant_id=tenant_id,
            auth_state=auth_state,
            version=version,
            base_url=self.base_url,
            api_key=self.api_key,
            print_qr=print_qr,
            browser=self.browser,
            timeout=self.timeout,
            transport=self.transport,
        )
