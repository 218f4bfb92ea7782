"""AI chat relay: ranked fallback across remote text endpoints.

Each endpoint is tried once per question, in order. The first non-empty reply
wins; nothing is retried.
"""

import httpx

from wagate.commands.base import CommandContext
from wagate.core.exceptions import UpstreamAPIError
from wagate.core.http import DEFAULT_TIMEOUT, build_client
from wagate.core.logging import log
from wagate.relays.endpoints import EndpointDescriptor

FAILURE_TEXT = "❌ The AI service is unavailable right now. Please try again later."
FAILURE_REACTION = "❌"


class AIChatRelay:
    def __init__(
        self,
        endpoints: list[EndpointDescriptor],
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.endpoints = list(endpoints)
        self.timeout = timeout
        self.transport = transport

    async def _query(self, client: httpx.AsyncClient, endpoint: EndpointDescriptor, text: str) -> str:
        response = await client.get(endpoint.build_url(query=text))
        if response.status_code != 200:
            raise UpstreamAPIError(endpoint.host, f"HTTP {response.status_code}")
        try:
            reply = endpoint.extract(response.json())
        except ValueError as e:
            raise UpstreamAPIError(endpoint.host, "invalid JSON") from e
        if not isinstance(reply, str) or not reply.strip():
            raise UpstreamAPIError(endpoint.host, f"missing '{endpoint.field}'")
        return reply.strip()

    async def ask(self, text: str) -> str | None:
        """Return the first non-empty reply, or None when every endpoint failed."""
        async with build_client(self.timeout, self.transport) as client:
            for endpoint in self.endpoints:
                try:
                    return await self._query(client, endpoint, text)
                except UpstreamAPIError as e:
                    log.warning(f"AI endpoint skipped: {e.message}")
                except httpx.HTTPError as e:
                    log.warning(f"AI endpoint {endpoint.host} unreachable: {e}")
        return None

    async def handle(self, ctx: CommandContext, text: str) -> bool:
        reply = await self.ask(text)
        if reply:
            await ctx.reply(reply)
            return True

        log.error(f"All {len(self.endpoints)} AI endpoints failed for tenant {ctx.tenant_id}")
        await ctx.reply(FAILURE_TEXT)
        await ctx.react(FAILURE_REACTION)
        return False
