from __future__ import annotations

import pytest

from paywall.app.config import load_paywall_config


def test_defaults_target_local_sandbox() -> None:
    config = load_paywall_config({})

    assert config.backend_url == ""
    assert config.uses_remote_backend is False
    assert config.request_timeout_seconds == 15.0
    assert config.enable_promo_codes is True
    assert config.effective_cache_ttl_seconds == 300
    assert config.result_reset_delay_seconds == 2.0
    assert config.session_store == "memory"
    assert config.db_config["port"] == 5432


def test_overrides_are_parsed() -> None:
    config = load_paywall_config(
        {
            "PAYWALL_BACKEND_URL": "https://api.example.com/",
            "PAYWALL_API_KEY": "secret",
            "PAYWALL_REQUEST_TIMEOUT": "0.01",
            "PAYWALL_ENABLE_PROMO_CODES": "off",
            "PAYWALL_PROMO_CACHE_TTL": "60",
            "PAYWALL_RESULT_RESET_DELAY": "0",
            "PAYWALL_DEBUG": "yes",
            "PAYWALL_SESSION_STORE": "Postgres",
            "DB_PORT": "6543",
        }
    )

    assert config.backend_url == "https://api.example.com"
    assert config.uses_remote_backend is True
    assert config.request_timeout_seconds == 0.1
    assert config.enable_promo_codes is False
    assert config.promo_cache_ttl_seconds == 60
    assert config.result_reset_delay_seconds == 0.0
    assert config.debug is True
    assert config.session_store == "postgres"
    assert config.db_config["port"] == 6543


def test_disabling_cache_zeroes_ttl() -> None:
    config = load_paywall_config({"PAYWALL_CACHE_PROMO_CODES": "false", "PAYWALL_PROMO_CACHE_TTL": "120"})

    assert config.effective_cache_ttl_seconds == 0


def test_unrecognised_values_fall_back() -> None:
    config = load_paywall_config({"PAYWALL_ENABLE_PROMO_CODES": "maybe", "PAYWALL_SESSION_STORE": "redis"})

    assert config.enable_promo_codes is True
    assert config.session_store == "memory"


def test_non_numeric_values_are_rejected() -> None:
    with pytest.raises(ValueError) as exc:
        load_paywall_config({"PAYWALL_PROMO_CACHE_TTL": "five"})

    assert "'five'" in str(exc.value)
