"""Inbound event routing"""

from wagate.routing.router import EventRouter

__all__ = ["EventRouter"]
