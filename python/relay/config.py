"""Environment-driven settings (pydantic-settings).

Required everywhere: DATABASE_URL, AUTH_JWKS_URL, AUTH_ISSUER, AUTH_AUDIENCES.
Required in staging and prod: RELAY_INTERNAL_SECRET, which the web tier sends
as X-Relay-Internal.

Upstream forwarding (debug mode) is tuned with UPSTREAM_API_URL,
UPSTREAM_API_VERSION, UPSTREAM_BETA, PROXY_TIMEOUT_S and
PROXY_CONNECT_TIMEOUT_S. The credential vault reads its keys
(RELAY_KEY_ENCRYPTION_KEY[_V<n>]) itself; see relay.services.crypto.
"""

from enum import Enum
from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    LOCAL = "local"
    TEST = "test"
    STAGING = "staging"
    PROD = "prod"


INTERNAL_ENVIRONMENTS = frozenset({Environment.STAGING, Environment.PROD})

_REQUIRED_AUTH = {
    "AUTH_JWKS_URL": "auth_jwks_url",
    "AUTH_ISSUER": "auth_issuer",
    "AUTH_AUDIENCES": "auth_audiences",
}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    relay_env: Environment = Field(default=Environment.LOCAL, alias="RELAY_ENV")
    database_url: str = Field(alias="DATABASE_URL")
    relay_internal_secret: str | None = Field(default=None, alias="RELAY_INTERNAL_SECRET")
    log_json: bool = Field(default=True, alias="LOG_JSON")

    auth_jwks_url: str | None = Field(default=None, alias="AUTH_JWKS_URL")
    auth_issuer: str | None = Field(default=None, alias="AUTH_ISSUER")
    auth_audiences: str | None = Field(default=None, alias="AUTH_AUDIENCES")

    upstream_api_url: str = Field(default="https://api.anthropic.com", alias="UPSTREAM_API_URL")
    upstream_api_version: str = Field(default="2023-06-01", alias="UPSTREAM_API_VERSION")
    upstream_beta: str = Field(default="ccr-byoc-2025-07-29", alias="UPSTREAM_BETA")
    proxy_timeout_s: float = Field(default=60.0, alias="PROXY_TIMEOUT_S")
    proxy_connect_timeout_s: float = Field(default=10.0, alias="PROXY_CONNECT_TIMEOUT_S")

    @model_validator(mode="after")
    def _check_required(self) -> "Settings":
        missing = [env for env, attr in _REQUIRED_AUTH.items() if not getattr(self, attr)]
        if missing:
            raise ValueError(
                f"Missing required auth settings: {', '.join(missing)}. "
                "Point these at your identity provider's JWKS endpoint."
            )
        if self.requires_internal_header and not self.relay_internal_secret:
            raise ValueError(
                f"RELAY_INTERNAL_SECRET is required for RELAY_ENV={self.relay_env.value}"
            )
        return self

    @property
    def requires_internal_header(self) -> bool:
        return self.relay_env in INTERNAL_ENVIRONMENTS

    @property
    def audience_list(self) -> list[str]:
        """AUTH_AUDIENCES split on commas, blanks dropped."""
        return [aud.strip() for aud in (self.auth_audiences or "").split(",") if aud.strip()]

    @property
    def normalized_issuer(self) -> str | None:
        return self.auth_issuer.rstrip("/") if self.auth_issuer else None

    @property
    def normalized_upstream_url(self) -> str:
        return self.upstream_api_url.rstrip("/")


@lru_cache
def get_settings() -> Settings:
    """Settings for this process, loaded on first use.

    Raises:
        ValidationError: If required settings are missing or invalid.
    """
    return Settings()


def clear_settings_cache() -> None:
    get_settings.cache_clear()
