"""
Settings — process configuration from environment variables.

    settings = Settings.from_env()          # os.environ
    settings = Settings.from_env({...})     # explicit mapping (tests)

Secrets come only from the environment. Missing required variables raise
ConfigError naming every missing one at once.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from datetime import timedelta

from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError

from orderflow._errors import ConfigError
from orderflow.idempotency import OnCacheError, Policy


REQUIRED = ("DATABASE_URL", "REDIS_URL", "RAZORPAY_KEY_ID", "RAZORPAY_KEY_SECRET")

_OPTIONAL = {
    "RAZORPAY_WEBHOOK_SECRET": "razorpay_webhook_secret",
    "CURRENCY": "currency",
    "IDEMPOTENCY_TTL_SECONDS": "idempotency_ttl_seconds",
    "IDEMPOTENCY_ON_CACHE_ERROR": "idempotency_on_cache_error",
    "CACHE_TIMEOUT_SECONDS": "cache_timeout_seconds",
    "STORE_TIMEOUT_SECONDS": "store_timeout_seconds",
    "GATEWAY_TIMEOUT_SECONDS": "gateway_timeout_seconds",
    "GATEWAY_BASE_URL": "gateway_base_url",
    "LOG_LEVEL": "log_level",
    "LOG_JSON": "log_json",
}


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    database_url: str
    redis_url: str
    razorpay_key_id: str
    razorpay_key_secret: SecretStr
    razorpay_webhook_secret: SecretStr | None = None

    currency: str = Field(default="INR", min_length=3, max_length=3)
    idempotency_ttl_seconds: float = Field(default=60, gt=0)
    idempotency_on_cache_error: OnCacheError = OnCacheError.FAIL_CLOSED
    cache_timeout_seconds: float = Field(default=2, gt=0)
    store_timeout_seconds: float = Field(default=5, gt=0)
    gateway_timeout_seconds: float = Field(default=10, gt=0)
    gateway_base_url: str = "https://api.razorpay.com"

    log_level: str = "INFO"
    log_json: bool = True

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        env = os.environ if environ is None else environ

        missing = [name for name in REQUIRED if not env.get(name)]
        if missing:
            raise ConfigError(
                f"missing required environment variables: {', '.join(missing)}"
            )

        values: dict[str, object] = {name.lower(): env[name] for name in REQUIRED}
        for name, field in _OPTIONAL.items():
            raw = env.get(name)
            if raw:
                values[field] = raw

        try:
            return cls.model_validate(values)
        except ValidationError as e:
            raise ConfigError(f"invalid settings: {e}") from e

    @property
    def webhook_secret(self) -> str | None:
        if self.razorpay_webhook_secret is None:
            return None
        return self.razorpay_webhook_secret.get_secret_value() or None

    def idempotency_policy(self) -> Policy:
        return (
            Policy()
            .with_ttl(seconds=self.idempotency_ttl_seconds)
            .with_cache_timeout(seconds=self.cache_timeout_seconds)
            .with_on_cache_error(self.idempotency_on_cache_error)
        )

    @property
    def store_timeout(self) -> timedelta:
        return timedelta(seconds=self.store_timeout_seconds)


__all__ = ("Settings", "REQUIRED")
