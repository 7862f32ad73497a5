"""Gateway settings.

Plain values come from environment variables. Secrets come from the
environment first and, when SSM_ENABLED is set, fall back to SSM Parameter
Store under /stars/{ENVIRONMENT}/...
"""

import logging
import os
from collections.abc import Mapping
from functools import lru_cache

from pydantic import BaseModel, ConfigDict, Field

from shared.models.errors import ConfigurationError
from shared.services.ssm_service import SSMService, get_ssm_service, parameter_path

logger = logging.getLogger(__name__)

DEFAULT_WATA_PUBLIC_KEY_URL = "https://api.wata.pro/api/h2h/public-key"
DEFAULT_FRAGMENT_API_URL = "https://api.fragment-api.com/v1"
DEFAULT_TELEGRAM_API_URL = "https://api.telegram.org"

# field name -> (environment variable, SSM name relative to /stars/{env}/)
SECRET_SOURCES: dict[str, tuple[str, str]] = {
    "kassa_api_key": ("KASSA_API_KEY", "kassa/api_key"),
    "payid19_private_key": ("PAYID19_PRIVATE_KEY", "payid19/private_key"),
    "wata_public_key_pem": ("WATA_PUBLIC_KEY_PEM", "wata/public_key_pem"),
    "fragment_api_key": ("FRAGMENT_API_KEY", "fragment/api_key"),
    "fragment_phone_number": ("FRAGMENT_PHONE_NUMBER", "fragment/phone_number"),
    "fragment_mnemonics": ("FRAGMENT_MNEMONICS", "fragment/mnemonics"),
    "fragment_jwt_token": ("FRAGMENT_JWT_TOKEN", "fragment/jwt_token"),
    "telegram_bot_token": ("TELEGRAM_BOT_TOKEN", "telegram/bot_token"),
    "admin_api_token": ("ADMIN_API_TOKEN", "admin/api_token"),
}

_TRUTHY = {"1", "true", "yes", "on"}


class Settings(BaseModel):
    """Resolved gateway configuration."""

    model_config = ConfigDict(frozen=True)

    environment: str = "dev"
    log_level: str = "INFO"

    # Provider secrets
    kassa_api_key: str | None = Field(default=None, repr=False)
    payid19_private_key: str | None = Field(default=None, repr=False)
    payid19_process_test_webhooks: bool = False
    wata_public_key_url: str = DEFAULT_WATA_PUBLIC_KEY_URL
    wata_public_key_pem: str | None = None

    # Fragment
    fragment_api_url: str = DEFAULT_FRAGMENT_API_URL
    fragment_api_key: str | None = Field(default=None, repr=False)
    fragment_phone_number: str | None = Field(default=None, repr=False)
    fragment_mnemonics: str | None = Field(default=None, repr=False)
    fragment_jwt_token: str | None = Field(default=None, repr=False)

    # Telegram
    telegram_api_url: str = DEFAULT_TELEGRAM_API_URL
    telegram_bot_token: str | None = Field(default=None, repr=False)

    # Admin API
    admin_api_token: str | None = Field(default=None, repr=False)

    # Local state
    transaction_log_dir: str = "logs"
    dedup_ttl_seconds: float = Field(default=3600, gt=0)

    def require(self, field: str) -> str:
        """Return a configured value or raise ConfigurationError.

        Args:
            field: Settings attribute name, e.g. "kassa_api_key"

        Raises:
            ConfigurationError: If the value is unset or empty
        """
        value = getattr(self, field)
        if not value:
            env_name = SECRET_SOURCES.get(field, (field.upper(), ""))[0]
            raise ConfigurationError(f"{env_name} is not configured")
        return value


def _resolve_secrets(
    environ: Mapping[str, str],
    environment: str,
    ssm: SSMService | None,
) -> dict[str, str]:
    secrets: dict[str, str] = {}
    for field, (env_name, ssm_name) in SECRET_SOURCES.items():
        value = environ.get(env_name)
        if not value and ssm is not None:
            value = ssm.get_optional_parameter(parameter_path(environment, ssm_name))
        if value:
            secrets[field] = value
    return secrets


def load_settings(
    environ: Mapping[str, str] | None = None,
    ssm: SSMService | None = None,
) -> Settings:
    """Build Settings from the environment, with optional SSM fallback.

    Args:
        environ: Variables to read (defaults to os.environ)
        ssm: SSM service for secrets missing from the environment. When not
            given, SSM is consulted only if SSM_ENABLED is truthy.

    Returns:
        Resolved settings.
    """
    environ = os.environ if environ is None else environ
    environment = environ.get("ENVIRONMENT", "dev")

    if ssm is None and environ.get("SSM_ENABLED", "").lower() in _TRUTHY:
        ssm = get_ssm_service()

    values: dict[str, object] = {"environment": environment}
    plain = {
        "log_level": "LOG_LEVEL",
        "wata_public_key_url": "WATA_PUBLIC_KEY_URL",
        "fragment_api_url": "FRAGMENT_API_URL",
        "telegram_api_url": "TELEGRAM_API_URL",
        "transaction_log_dir": "TRANSACTION_LOG_DIR",
        "dedup_ttl_seconds": "DEDUP_TTL_SECONDS",
    }
    for field, env_name in plain.items():
        if environ.get(env_name):
            values[field] = environ[env_name]
    values["payid19_process_test_webhooks"] = (
        environ.get("PAYID19_PROCESS_TEST_WEBHOOKS", "").lower() in _TRUTHY
    )
    values.update(_resolve_secrets(environ, environment, ssm))

    settings = Settings.model_validate(values)
    missing = [env for field, (env, _) in SECRET_SOURCES.items() if getattr(settings, field) is None]
    if missing:
        logger.info("Unset secrets: %s", ", ".join(sorted(missing)))
    return settings


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get process-wide settings (resolved once)."""
    return load_settings()
