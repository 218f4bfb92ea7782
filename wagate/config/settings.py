"""Dynaconf settings configuration"""

from pathlib import Path
from dynaconf import Dynaconf, Validator

PROJECT_ROOT = Path(__file__).parent.parent.parent
CONFIG_DIR = PROJECT_ROOT / "config"

settings = Dynaconf(
    envvar_prefix="WAGATE",
    settings_files=[
        str(CONFIG_DIR / "settings.toml"),
        str(CONFIG_DIR / "settings.local.toml"),
        str(CONFIG_DIR / ".secrets.toml"),
    ],
    environments=True,
    env_switcher="WAGATE_ENV",
)

settings.validators.register(
    Validator("APP_NAME", default="wa-session-gateway"),
    Validator("DEBUG", default=False, is_type_of=bool),
    Validator("LOG_FORMAT", default="pretty", is_in=["pretty", "json"]),
    Validator("SESSIONS_DIR", default="sessions"),
    Validator("DEFAULT_TENANT", default="default"),
    Validator("SESSION_ID", default=""),
    Validator("OWNER_NUMBER", default=""),
    Validator("BAILEYS_SERVICE_URL", must_exist=True),
    Validator("BAILEYS_API_KEY", must_exist=True, len_min=8),
    Validator("HTTP_TIMEOUT", default=20.0, gt=0),
    Validator("RECONNECT_DELAY", default=10.0, gte=0),
    Validator("RECONNECT_MAX_ATTEMPTS", default=0, gte=0),
    Validator("MAX_CONCURRENT_BATCHES", default=16, gt=0),
    Validator("VIEW_ONCE_CACHE_SIZE", default=256, gt=0),
    Validator("AUTO_RESTORE", default=True, is_type_of=bool),
    Validator("SESSION_MARKERS", default=["CLOUD-AI~", "Demo-Slayer~"], len_min=1),
    Validator("DEPLOY_MARKER", default="CLOUD-AI~"),
    Validator("BAILEYS_VERSION_URL", default=""),
    Validator("DEFAULT_WA_VERSION", default=[2, 3000, 1015901307]),
    Validator("STATUS_REACT_DELAY", default=1.0, gte=0),
    Validator("ALWAYS_ONLINE_INTERVAL", default=20.0, gt=0),
    Validator("AUTO_PRESENCE_INTERVAL", default=30.0, gt=0),
    Validator("PRESENCE_PULSE", default=3.0, gte=0),
    Validator("CHANNEL_JID", default=""),
    Validator("CHANNEL_NAME", default=""),
    Validator("REQUIRED_CHANNEL", default=""),
    Validator("TIMEZONE", default="Africa/Nairobi"),
    Validator("SEARCH_ENDPOINT", must_exist=True),
)


def validate_settings():
    """Validate all settings on startup."""
    settings.validators.validate()
