import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import FrozenSet, Optional

from va_gateway.errors import ConfigError
from va_gateway.utils.logger import get_logger
from va_gateway.utils.secrets import get_secret_json

logger = get_logger("va_gateway.config")

DEFAULT_TASK_TRACKER_BASE_URL = "https://api.clickup.com/api/v2"

# Secrets Manager keys that may fill settings left unset by the environment.
_SECRET_FIELDS = {
    "session_signing_secret": "session_signing_secret",
    "stripe_webhook_secret": "stripe_webhook_secret",
    "task_tracker_token": "task_tracker_token",
}


@dataclass(frozen=True)
class Settings:
    """
    Immutable per-container configuration.

    Every field is optional at load time; routes call `require()` for the
    bindings they cannot run without, so a missing secret only disables the
    routes that need it.
    """

    object_store_bucket: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    session_signing_secret: Optional[str] = None
    cors_allowed_origins: FrozenSet[str] = field(default_factory=frozenset)
    login_redirect_url: str = "/dashboard"
    login_confirm_url: Optional[str] = None
    task_tracker_token: Optional[str] = None
    task_tracker_base_url: str = DEFAULT_TASK_TRACKER_BASE_URL
    task_tracker_support_list_id: Optional[str] = None
    task_tracker_accounts_list_id: Optional[str] = None
    aws_region: str = "us-east-1"

    def require(self, name: str) -> str:
        value = getattr(self, name)
        if not value:
            msg = f"Missing required setting: {name.upper()}"
            logger.error("config.missing", extra={"setting": name.upper()})
            raise ConfigError(msg)
        return value

    @property
    def projection_enabled(self) -> bool:
        return bool(self.task_tracker_token)


def _split_origins(raw: Optional[str]) -> FrozenSet[str]:
    if not raw:
        return frozenset()
    return frozenset(o.strip().rstrip("/") for o in raw.split(",") if o.strip())


def load_settings(environ=None) -> Settings:
    """
    Build Settings from environment variables.

    When VA_SECRET_NAME is set, the named Secrets Manager secret (a JSON
    object) supplies any secret the environment leaves empty.
    """
    env = os.environ if environ is None else environ

    values = {
        "object_store_bucket": env.get("OBJECT_STORE_BUCKET") or None,
        "stripe_webhook_secret": env.get("STRIPE_WEBHOOK_SECRET") or None,
        "session_signing_secret": env.get("SESSION_SIGNING_SECRET") or None,
        "cors_allowed_origins": _split_origins(env.get("CORS_ALLOWED_ORIGINS")),
        "login_redirect_url": env.get("LOGIN_REDIRECT_URL") or "/dashboard",
        "login_confirm_url": env.get("LOGIN_CONFIRM_URL") or None,
        "task_tracker_token": env.get("TASK_TRACKER_TOKEN") or None,
        "task_tracker_base_url": (
            env.get("TASK_TRACKER_BASE_URL") or DEFAULT_TASK_TRACKER_BASE_URL
        ).rstrip("/"),
        "task_tracker_support_list_id": env.get("TASK_TRACKER_SUPPORT_LIST_ID") or None,
        "task_tracker_accounts_list_id": env.get("TASK_TRACKER_ACCOUNTS_LIST_ID") or None,
        "aws_region": env.get("AWS_REGION", "us-east-1"),
    }

    secret_name = env.get("VA_SECRET_NAME")
    if secret_name:
        secret = get_secret_json(secret_name, values["aws_region"])
        for secret_key, setting in _SECRET_FIELDS.items():
            if not values[setting] and secret.get(secret_key):
                values[setting] = secret[secret_key]

    settings = Settings(**values)
    logger.info(
        "config.loaded",
        extra={
            "bucket": settings.object_store_bucket,
            "cors_origins": sorted(settings.cors_allowed_origins),
            "projection_enabled": settings.projection_enabled,
            "webhook_secret_present": bool(settings.stripe_webhook_secret),
            "signing_secret_present": bool(settings.session_signing_secret),
        },
    )
    return settings


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Settings for this container, loaded once on first use."""
    return load_settings()
