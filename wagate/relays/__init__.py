"""Relays to third-party AI and media endpoints"""

from wagate.relays.ai_chat import AIChatRelay
from wagate.relays.endpoints import EndpointDescriptor, load_endpoints
from wagate.relays.media import MediaDownloadRelay

__all__ = ["AIChatRelay", "EndpointDescriptor", "MediaDownloadRelay", "load_endpoints"]
