"""Application settings"""

from wagate.config.settings import settings, validate_settings, PROJECT_ROOT

__all__ = ["settings", "validate_settings", "PROJECT_ROOT"]
