"""Encrypted credential blob download.

The default store resolves public MEGA file links: the API hands back a
temporary download URL and the body is AES-128-CTR encrypted with a key folded
from the 256-bit link key. The last two key words carry a chunked CBC-MAC of
the plaintext, checked after decryption.
"""

import base64
import struct
from abc import ABC, abstractmethod
from itertools import count

import httpx
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from wagate.core.exceptions import DownloadError
from wagate.core.http import DEFAULT_TIMEOUT, build_client
from wagate.core.logging import log

MEGA_API_URL = "https://g.api.mega.co.nz/cs"


class BlobStore(ABC):
    """Fetch-by-reference store returning opaque bytes."""

    @abstractmethod
    async def fetch(self, blob_id: str, decryption_key: str) -> bytes:
        """Return the decrypted blob or raise DownloadError."""


def _b64url_decode(data: str) -> bytes:
    data = data.replace(",", "").strip()
    return base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))


def _key_words(decryption_key: str) -> tuple[int, ...]:
    try:
        raw = _b64url_decode(decryption_key)
    except (ValueError, TypeError) as e:
        raise DownloadError("decryption key is not valid base64") from e
    if len(raw) != 32:
        raise DownloadError(f"decryption key must be 32 bytes, got {len(raw)}")
    return struct.unpack(">8I", raw)


def derive_file_key(decryption_key: str) -> tuple[bytes, bytes]:
    """Fold a MEGA file key into (aes_key, initial_counter)."""
    words = _key_words(decryption_key)
    aes_key = struct.pack(
        ">4I",
        words[0] ^ words[4],
        words[1] ^ words[5],
        words[2] ^ words[6],
        words[3] ^ words[7],
    )
    counter = struct.pack(">4I", words[4], words[5], 0, 0)
    return aes_key, counter


def decrypt_blob(data: bytes, decryption_key: str) -> bytes:
    aes_key, counter = derive_file_key(decryption_key)
    decryptor = Cipher(algorithms.AES(aes_key), modes.CTR(counter)).decryptor()
    return decryptor.update(data) + decryptor.finalize()


def chunk_bounds(size: int):
    """MEGA chunking: 128 KiB growing by 128 KiB up to 1 MiB, then fixed."""
    position, length = 0, 0x20000
    while position + length < size:
        yield position, length
        position += length
        if length < 0x100000:
            length += 0x20000
    yield position, size - position


def _cbc_mac(aes_key: bytes, iv: bytes, data: bytes) -> bytes:
    # Last CBC block over zero padded input
    if not data:
        return iv
    if len(data) % 16:
        data += b"\x00" * (16 - len(data) % 16)
    encryptor = Cipher(algorithms.AES(aes_key), modes.CBC(iv)).encryptor()
    return (encryptor.update(data) + encryptor.finalize())[-16:]


def compute_meta_mac(plaintext: bytes, aes_key: bytes, nonce: bytes) -> tuple[int, int]:
    """Condensed MAC of a decrypted file, comparable with link key words 6 and 7."""
    chunk_macs = b"".join(
        _cbc_mac(aes_key, nonce + nonce, plaintext[start:start + length])
        for start, length in chunk_bounds(len(plaintext))
    )
    file_mac = struct.unpack(">4I", _cbc_mac(aes_key, b"\x00" * 16, chunk_macs))
    return file_mac[0] ^ file_mac[1], file_mac[2] ^ file_mac[3]


def verify_blob(plaintext: bytes, decryption_key: str) -> None:
    """Raise DownloadError when the decrypted bytes do not match the link key MAC."""
    words = _key_words(decryption_key)
    aes_key, counter = derive_file_key(decryption_key)
    if compute_meta_mac(plaintext, aes_key, counter[:8]) != (words[6], words[7]):
        raise DownloadError("MAC mismatch, wrong key or corrupted download")


class MegaBlobStore(BlobStore):
    """Download and decrypt public MEGA files."""

    def __init__(
        self,
        api_url: str = MEGA_API_URL,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_url = api_url
        self.timeout = timeout
        self.transport = transport
        self._seq = count(1)

    async def _resolve_download_url(self, client: httpx.AsyncClient, blob_id: str) -> str:
        response = await client.post(
            self.api_url,
            params={"id": next(self._seq)},
            json=[{"a": "g", "g": 1, "p": blob_id}],
        )
        response.raise_for_status()
        payload = response.json()

        # The API answers with a bare negative int (or [int]) on error
        if isinstance(payload, int):
            raise DownloadError(f"MEGA API error {payload}", {"blob_id": blob_id})
        if not isinstance(payload, list) or not payload:
            raise DownloadError("unexpected MEGA API response", {"blob_id": blob_id})
        entry = payload[0]
        if isinstance(entry, int):
            raise DownloadError(f"MEGA API error {entry}", {"blob_id": blob_id})

        url = entry.get("g") if isinstance(entry, dict) else None
        if not url:
            raise DownloadError("file has no download URL", {"blob_id": blob_id})
        return url

    async def fetch(self, blob_id: str, decryption_key: str) -> bytes:
        # Validate the key before any network round trip
        derive_file_key(decryption_key)

        try:
            async with build_client(self.timeout, self.transport) as client:
                url = await self._resolve_download_url(client, blob_id)
                response = await client.get(url)
                response.raise_for_status()
                encrypted = response.content
        except httpx.HTTPError as e:
            log.error(f"Blob fetch failed for {blob_id}: {e}")
            raise DownloadError(str(e), {"blob_id": blob_id}) from e

        data = decrypt_blob(encrypted, decryption_key)
        try:
            verify_blob(data, decryption_key)
        except DownloadError:
            log.error(f"Blob {blob_id} failed integrity check")
            raise
        log.info(f"Fetched credential blob {blob_id} ({len(data)} bytes)")
        return data
