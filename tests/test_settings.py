import pytest

from coursepay.errors import ConfigError
from coursepay.settings import Settings


def test_missing_secret_key_refuses_to_load():
    with pytest.raises(ConfigError):
        Settings.from_env({})
    with pytest.raises(ConfigError):
        Settings.from_env({"STRIPE_SECRET_KEY": "   "})


def test_defaults():
    s = Settings.from_env({"STRIPE_SECRET_KEY": "sk_test_abc"})
    assert s.port == 3000
    assert s.allowed_origins == ("*",)
    assert s.tax_rate == pytest.approx(0.10)
    assert s.stripe_webhook_secret is None
    assert s.mode == "TEST"
    assert s.is_development


def test_reads_environment():
    s = Settings.from_env({
        "STRIPE_SECRET_KEY": "sk_live_abc",
        "STRIPE_PUBLISHABLE_KEY": "pk_live_abc",
        "STRIPE_WEBHOOK_SECRET": "whsec_x",
        "PORT": "8080",
        "FRONTEND_URL": "https://a.example.com, https://b.example.com",
        "APP_ENV": "Production",
        "SUCCESS_URL": "https://a.example.com/ok",
    })
    assert s.is_live and s.mode == "LIVE"
    assert s.port == 8080
    assert s.allowed_origins == ("https://a.example.com", "https://b.example.com")
    assert s.app_env == "production"
    assert not s.is_development
    assert s.success_url == "https://a.example.com/ok"
    assert s.cancel_url is None


def test_bad_number_is_config_error():
    with pytest.raises(ConfigError):
        Settings.from_env({"STRIPE_SECRET_KEY": "sk_test_abc", "PORT": "eighty"})


def test_settings_are_immutable():
    s = Settings.from_env({"STRIPE_SECRET_KEY": "sk_test_abc"})
    with pytest.raises(Exception):
        s.port = 1
