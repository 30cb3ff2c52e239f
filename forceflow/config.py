"""Configuration settings for the ForceFlow ingestion service."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from functools import lru_cache

import boto3
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger("forceflow.config")

# Shared SSM client for secret reads. Default to a region so imports do not
# fail in environments without AWS configuration (e.g. CI test runners).
_ssm_client = boto3.client(
    "ssm",
    region_name=os.getenv("AWS_REGION") or os.getenv("AWS_DEFAULT_REGION") or "eu-west-2",
)


def _get_bool(env_var: str, default: bool = False) -> bool:
    """Parse an environment variable into a boolean with a default."""

    value = os.getenv(env_var)
    if value is None:
        return default

    return value.lower() in {"1", "true", "yes", "on"}


def _get_list(env_var: str) -> tuple[str, ...]:
    """Parse a comma-separated environment variable into a tuple of tokens."""

    value = os.getenv(env_var)
    if not value:
        return ()
    return tuple(token.strip().upper() for token in value.split(",") if token.strip())


def _read_ssm_parameter(name: str, label: str) -> str:
    try:
        response = _ssm_client.get_parameter(Name=name, WithDecryption=True)
        value = response.get("Parameter", {}).get("Value")
    except (ClientError, BotoCoreError) as exc:  # pragma: no cover - AWS error passthrough
        logger.error("Failed to load %s from SSM: %s", label, exc)
        raise RuntimeError(f"Unable to load {label} from SSM") from exc

    if not value:
        logger.error("Received empty %s from SSM", label)
        raise RuntimeError(f"{label} not configured in SSM")

    return value


@lru_cache(maxsize=1)
def get_opensky_client_secret() -> str:
    """Fetch the OpenSky OAuth2 client secret from AWS SSM Parameter Store.

    The value is cached in-memory to avoid repeated SSM calls.
    """

    return _read_ssm_parameter("/forceflow/opensky/client_secret", "OpenSky client secret")


@lru_cache(maxsize=1)
def get_api_key_pepper() -> str:
    """Fetch the API key pepper from AWS SSM Parameter Store."""

    return _read_ssm_parameter("/forceflow/api_key_pepper", "API key pepper")


@dataclass
class Settings:
    """Application configuration loaded from environment variables."""

    forceflow_env: str = os.getenv("FORCEFLOW_ENV", "local")
    log_level: str = os.getenv("FORCEFLOW_LOG_LEVEL", "INFO")
    use_ssm: bool = _get_bool("FORCEFLOW_USE_SSM", default=True)

    # OpenSky feed
    opensky_base_url: str = os.getenv("OPENSKY_BASE_URL", "https://opensky-network.org/api")
    opensky_token_url: str = os.getenv(
        "OPENSKY_TOKEN_URL",
        "https://auth.opensky-network.org/auth/realms/opensky-network/protocol/openid-connect/token",
    )
    opensky_client_id: str | None = os.getenv("OPENSKY_CLIENT_ID")
    opensky_client_secret: str | None = os.getenv("OPENSKY_CLIENT_SECRET")
    opensky_username: str | None = os.getenv("OPENSKY_USERNAME")
    opensky_password: str | None = os.getenv("OPENSKY_PASSWORD")
    opensky_timeout: float = float(os.getenv("OPENSKY_TIMEOUT", "30.0"))
    opensky_token_timeout: float = float(os.getenv("OPENSKY_TOKEN_TIMEOUT", "10.0"))
    token_refresh_margin_seconds: float = float(
        os.getenv("OPENSKY_TOKEN_REFRESH_MARGIN_SECONDS", "300")
    )
    user_agent: str = os.getenv("FORCEFLOW_USER_AGENT", "ForceFlow-UK/1.0")

    # Region of interest
    bounds_lamin: float = float(os.getenv("FORCEFLOW_BOUNDS_LAMIN", "49.5"))
    bounds_lamax: float = float(os.getenv("FORCEFLOW_BOUNDS_LAMAX", "61.0"))
    bounds_lomin: float = float(os.getenv("FORCEFLOW_BOUNDS_LOMIN", "-11.0"))
    bounds_lomax: float = float(os.getenv("FORCEFLOW_BOUNDS_LOMAX", "2.0"))

    # Record freshness window
    max_future_skew_seconds: float = float(os.getenv("FORCEFLOW_MAX_FUTURE_SKEW_SECONDS", "60"))
    max_record_age_hours: float = float(os.getenv("FORCEFLOW_MAX_RECORD_AGE_HOURS", "24"))

    # Classification overrides; empty means the built-in prefix tables
    military_hex_prefixes: tuple[str, ...] = field(
        default_factory=lambda: _get_list("FORCEFLOW_MILITARY_HEX_PREFIXES")
    )
    military_callsign_prefixes: tuple[str, ...] = field(
        default_factory=lambda: _get_list("FORCEFLOW_MILITARY_CALLSIGN_PREFIXES")
    )

    # Scheduling
    ingestion_enabled: bool = _get_bool("FORCEFLOW_INGESTION_ENABLED", default=False)
    ingestion_interval_seconds: float = float(os.getenv("FORCEFLOW_INGESTION_INTERVAL_SECONDS", "10"))
    ingestion_initial_delay_seconds: float = float(
        os.getenv("FORCEFLOW_INGESTION_INITIAL_DELAY_SECONDS", "5")
    )
    tempo_enabled: bool = _get_bool("FORCEFLOW_TEMPO_ENABLED", default=False)
    tempo_interval_seconds: float = float(os.getenv("FORCEFLOW_TEMPO_INTERVAL_SECONDS", "3600"))

    # API key authentication
    api_key_pepper: str = os.getenv("FORCEFLOW_API_KEY_PEPPER", "")
    require_api_key: bool = _get_bool(
        "REQUIRE_API_KEY",
        default=os.getenv("FORCEFLOW_ENV", "local").lower() in {"prod", "production"},
    )

    @property
    def bounds(self) -> dict[str, float]:
        return {
            "lamin": self.bounds_lamin,
            "lamax": self.bounds_lamax,
            "lomin": self.bounds_lomin,
            "lomax": self.bounds_lomax,
        }


settings = Settings()

# Secrets missing from the environment are filled from SSM when allowed
if settings.use_ssm:
    if settings.opensky_client_id and not settings.opensky_client_secret:
        try:
            settings.opensky_client_secret = get_opensky_client_secret()
        except RuntimeError:
            logger.warning("OpenSky client secret not available at import time")

    if not settings.api_key_pepper:
        try:
            settings.api_key_pepper = get_api_key_pepper()
        except RuntimeError:
            logger.warning("API key pepper not available at import time")

__all__ = ["settings", "Settings", "get_opensky_client_secret", "get_api_key_pepper"]
