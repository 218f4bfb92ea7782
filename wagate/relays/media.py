"""Media download relay: search, announce, convert, deliver"""

from typing import Any

import httpx

from wagate.commands.base import CommandContext
from wagate.core.exceptions import UpstreamAPIError
from wagate.core.http import DEFAULT_TIMEOUT, build_client
from wagate.core.logging import log
from wagate.relays.endpoints import EndpointDescriptor

AUDIO = "audio"
VIDEO = "video"

MIMETYPES = {
    AUDIO: "audio/mpeg",
    VIDEO: "video/mp4",
}

NO_RESULTS_TEXT = "❌ No results found for *{query}*"
FAILURE_TEXT = "⚠️ Download failed. Please try again later."


def _author(result: dict[str, Any]) -> str:
    author = result.get("author") or result.get("channel") or ""
    if isinstance(author, dict):
        return author.get("name", "")
    return str(author)


class MediaDownloadRelay:
    def __init__(
        self,
        search_endpoint: EndpointDescriptor,
        audio_endpoints: list[EndpointDescriptor],
        video_endpoints: list[EndpointDescriptor],
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.search_endpoint = search_endpoint
        self.converters = {
            AUDIO: list(audio_endpoints),
            VIDEO: list(video_endpoints),
        }
        self.timeout = timeout
        self.transport = transport

    async def search(self, query: str) -> dict[str, Any] | None:
        """Top search result, or None if there is none or the search failed."""
        try:
            async with build_client(self.timeout, self.transport) as client:
                response = await client.get(self.search_endpoint.build_url(query=query))
                response.raise_for_status()
                results = self.search_endpoint.extract(response.json())
        except (httpx.HTTPError, ValueError) as e:
            log.warning(f"Video search failed for {query!r}: {e}")
            return None

        if not isinstance(results, list) or not results:
            return None
        top = results[0]
        return top if isinstance(top, dict) and top.get("url") else None

    async def convert(self, url: str, kind: str) -> str:
        """Walk the converter list until one yields a direct media URL."""
        async with build_client(self.timeout, self.transport) as client:
            for endpoint in self.converters[kind]:
                try:
                    response = await client.get(endpoint.build_url(url=url))
                    if response.status_code != 200:
                        raise UpstreamAPIError(endpoint.host, f"HTTP {response.status_code}")
                    direct = endpoint.extract(response.json())
                except (httpx.HTTPError, ValueError, UpstreamAPIError) as e:
                    log.warning(f"{kind} converter {endpoint.host} failed: {e}")
                    continue
                if isinstance(direct, str) and direct.startswith("http"):
                    return direct
                log.warning(f"{kind} converter {endpoint.host} returned no media URL")
        raise UpstreamAPIError("media-converter", f"no {kind} converter succeeded")

    def announcement(self, result: dict[str, Any], kind: str) -> dict[str, Any]:
        lines = [
            f"🎵 *{result.get('title', 'Unknown title')}*" if kind == AUDIO else f"🎬 *{result.get('title', 'Unknown title')}*",
            f"⏱️ Duration: {result.get('timestamp') or result.get('duration') or '-'}",
            f"👀 Views: {result.get('views', '-')}",
            f"👤 Author: {_author(result) or '-'}",
            f"🔗 {result['url']}",
            "",
            f"_Downloading {kind}..._",
        ]
        caption = "\n".join(lines)
        thumbnail = result.get("thumbnail") or result.get("image")
        if thumbnail:
            return {"image": {"url": thumbnail}, "caption": caption}
        return {"text": caption}

    async def handle(self, ctx: CommandContext, query: str, kind: str) -> bool:
        query = query.strip()
        if not query:
            await ctx.reply(f"Usage: *{'play' if kind == AUDIO else 'video'} <search terms>*")
            return False

        result = await self.search(query)
        if result is None:
            await ctx.reply(NO_RESULTS_TEXT.format(query=query))
            return False

        try:
            await ctx.send(self.announcement(result, kind))
            direct = await self.convert(result["url"], kind)
            title = result.get("title", "media")
            if kind == AUDIO:
                content = {"audio": {"url": direct}, "mimetype": MIMETYPES[AUDIO], "fileName": f"{title}.mp3"}
            else:
                content = {"video": {"url": direct}, "mimetype": MIMETYPES[VIDEO], "caption": title}
            await ctx.send(content)
        except Exception as e:
            log.error(f"{kind} download for {query!r} failed: {e}")
            await ctx.reply(FAILURE_TEXT)
            return False
        return True
