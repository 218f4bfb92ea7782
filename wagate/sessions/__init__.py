"""Tenant session lifecycle: credentials, store and verification"""

from wagate.sessions.reference import SessionReference, parse_reference
from wagate.sessions.store import SessionStore
from wagate.sessions.verification import VerificationRegistry

__all__ = ["SessionReference", "parse_reference", "SessionStore", "VerificationRegistry"]
