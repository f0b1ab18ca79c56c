from datetime import timedelta

import pytest

from orderflow._errors import ConfigError
from orderflow.config import REQUIRED, Settings
from orderflow.idempotency import OnCacheError

ENV = {
    "DATABASE_URL": "postgresql+asyncpg://app@db/orders",
    "REDIS_URL": "redis://cache:6379/0",
    "RAZORPAY_KEY_ID": "rzp_test_key",
    "RAZORPAY_KEY_SECRET": "shh",
}


class TestFromEnv:
    def test_defaults(self):
        settings = Settings.from_env(ENV)
        assert settings.currency == "INR"
        assert settings.webhook_secret is None
        assert settings.store_timeout == timedelta(seconds=5)
        policy = settings.idempotency_policy()
        assert policy.ttl == timedelta(seconds=60)
        assert policy.cache_timeout == timedelta(seconds=2)
        assert policy.on_cache_error is OnCacheError.FAIL_CLOSED

    def test_all_missing_names_are_reported(self):
        with pytest.raises(ConfigError) as exc:
            Settings.from_env({"DATABASE_URL": "sqlite+aiosqlite://"})
        message = str(exc.value)
        for name in REQUIRED[1:]:
            assert name in message
        assert "DATABASE_URL" not in message

    def test_empty_value_counts_as_missing(self):
        with pytest.raises(ConfigError):
            Settings.from_env({**ENV, "RAZORPAY_KEY_SECRET": ""})

    def test_optional_overrides(self):
        settings = Settings.from_env(
            {
                **ENV,
                "RAZORPAY_WEBHOOK_SECRET": "whsec",
                "IDEMPOTENCY_TTL_SECONDS": "30",
                "IDEMPOTENCY_ON_CACHE_ERROR": "fail_open",
                "STORE_TIMEOUT_SECONDS": "1.5",
                "LOG_JSON": "false",
            }
        )
        assert settings.webhook_secret == "whsec"
        assert settings.idempotency_policy().ttl == timedelta(seconds=30)
        assert settings.idempotency_on_cache_error is OnCacheError.FAIL_OPEN
        assert settings.store_timeout == timedelta(seconds=1.5)
        assert settings.log_json is False

    def test_bad_values_raise_config_error(self):
        for key, value in [
            ("IDEMPOTENCY_TTL_SECONDS", "-1"),
            ("IDEMPOTENCY_ON_CACHE_ERROR", "maybe"),
            ("CURRENCY", "RUPEES"),
        ]:
            with pytest.raises(ConfigError):
                Settings.from_env({**ENV, key: value})

    def test_secrets_are_not_in_repr(self):
        settings = Settings.from_env({**ENV, "RAZORPAY_WEBHOOK_SECRET": "whsec"})
        assert "shh" not in repr(settings)
        assert "whsec" not in repr(settings)
