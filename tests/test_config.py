"""Tests for configuration loading."""

import json

import pytest

from mcp_gorgias.config import ENV_VARS, ConfigError, GorgiasConfig, load_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Start every test without GORGIAS_* variables."""
    for name in [*ENV_VARS, "GORGIAS_CONFIG_FILE"]:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def required_env(monkeypatch):
    monkeypatch.setenv("GORGIAS_DOMAIN", "acme")
    monkeypatch.setenv("GORGIAS_USERNAME", "agent@acme.com")
    monkeypatch.setenv("GORGIAS_API_KEY", "super-secret-key")


def test_load_from_environment(required_env, monkeypatch):
    monkeypatch.setenv("GORGIAS_RATE_LIMIT", "30")
    monkeypatch.setenv("GORGIAS_TIMEOUT", "5000")

    config = load_config()

    assert config.domain == "acme"
    assert config.username == "agent@acme.com"
    assert config.api_key.get_secret_value() == "super-secret-key"
    assert config.rate_limit == 30
    assert config.timeout == 5.0
    assert config.base_url == "https://acme.gorgias.com/api"


def test_defaults(required_env):
    config = load_config()

    assert config.timeout_ms == 30000
    assert config.rate_limit == 40
    assert config.rate_limit_window_ms == 20000
    assert config.retry_attempts == 3
    assert config.retry_delay_ms == 1000
    assert config.debug is False


def test_missing_required_settings_are_named():
    with pytest.raises(ConfigError) as exc_info:
        load_config()

    message = str(exc_info.value)
    assert "domain" in message
    assert "username" in message
    assert "api_key" in message


def test_file_overrides_environment(required_env, tmp_path):
    config_file = tmp_path / "gorgias.json"
    config_file.write_text(json.dumps({"domain": "other", "rateLimit": 10, "retryAttempts": 5}))

    config = load_config(config_file)

    assert config.domain == "other"
    assert config.rate_limit == 10
    assert config.retry_attempts == 5
    assert config.username == "agent@acme.com"


def test_file_from_environment_variable(tmp_path, monkeypatch):
    config_file = tmp_path / "gorgias.json"
    config_file.write_text(json.dumps({"domain": "acme", "username": "a@acme.com", "apiKey": "k"}))
    monkeypatch.setenv("GORGIAS_CONFIG_FILE", str(config_file))

    assert load_config().username == "a@acme.com"


def test_unreadable_file(tmp_path):
    with pytest.raises(ConfigError, match="Error reading config file"):
        load_config(tmp_path / "missing.json")


def test_file_must_hold_object(tmp_path):
    config_file = tmp_path / "gorgias.json"
    config_file.write_text("[1, 2]")

    with pytest.raises(ConfigError, match="JSON object"):
        load_config(config_file)


def test_invalid_value_does_not_leak_secret(required_env, monkeypatch):
    monkeypatch.setenv("GORGIAS_RATE_LIMIT", "not-a-number")

    with pytest.raises(ConfigError) as exc_info:
        load_config()

    assert "rate_limit" in str(exc_info.value)
    assert "super-secret-key" not in str(exc_info.value)
    assert exc_info.value.__cause__ is None


@pytest.mark.parametrize(
    "domain", ["acme", "ACME", "acme.gorgias.com", "https://acme.gorgias.com", "https://acme.gorgias.com/"]
)
def test_domain_normalization(domain):
    config = GorgiasConfig(domain=domain, username="u@acme.com", api_key="k")

    assert config.domain == "acme"


@pytest.mark.parametrize("domain", ["acme.example.com", "acme/api"])
def test_invalid_domain(domain):
    with pytest.raises(ValueError):
        GorgiasConfig(domain=domain, username="u@acme.com", api_key="k")


def test_api_key_hidden_in_repr():
    config = GorgiasConfig(domain="acme", username="u@acme.com", api_key="super-secret-key")

    assert "super-secret-key" not in repr(config)
    assert "super-secret-key" not in str(config.model_dump())
