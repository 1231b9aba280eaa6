"""Paywall configuration helpers."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional
import os

SESSION_STORE_MEMORY = "memory"
SESSION_STORE_POSTGRES = "postgres"


@dataclass(frozen=True)
class PaywallConfig:
    """Configuration for the paywall engine and its collaborators."""

    backend_url: str
    api_key: str
    request_timeout_seconds: float
    enable_promo_codes: bool
    cache_promo_codes: bool
    promo_cache_ttl_seconds: int
    result_reset_delay_seconds: float
    debug: bool
    session_store: str
    db_config: Dict[str, Any] = field(default_factory=dict)

    @property
    def uses_remote_backend(self) -> bool:
        return bool(self.backend_url)

    @property
    def effective_cache_ttl_seconds(self) -> int:
        """TTL handed to the validation cache; zero disables caching."""

        return self.promo_cache_ttl_seconds if self.cache_promo_codes else 0


def _to_bool(value: Optional[str], *, default: bool) -> bool:
    if value is None:
        return default
    lowered = value.strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    return default


def _to_int(value: Optional[str], *, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected integer value, got {value!r}") from exc


def _to_float(value: Optional[str], *, default: float) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected float value, got {value!r}") from exc


def load_paywall_config(env: Optional[Mapping[str, str]] = None) -> PaywallConfig:
    """Load :class:`PaywallConfig` from environment variables."""

    env_mapping = os.environ if env is None else env

    backend_url = (env_mapping.get("PAYWALL_BACKEND_URL") or "").strip().rstrip("/")
    api_key = (env_mapping.get("PAYWALL_API_KEY") or "").strip()
    request_timeout = max(0.1, _to_float(env_mapping.get("PAYWALL_REQUEST_TIMEOUT"), default=15.0))

    enable_promo_codes = _to_bool(env_mapping.get("PAYWALL_ENABLE_PROMO_CODES"), default=True)
    cache_promo_codes = _to_bool(env_mapping.get("PAYWALL_CACHE_PROMO_CODES"), default=True)
    cache_ttl = max(0, _to_int(env_mapping.get("PAYWALL_PROMO_CACHE_TTL"), default=300))
    reset_delay = max(0.0, _to_float(env_mapping.get("PAYWALL_RESULT_RESET_DELAY"), default=2.0))
    debug = _to_bool(env_mapping.get("PAYWALL_DEBUG"), default=False)

    session_store = (env_mapping.get("PAYWALL_SESSION_STORE") or SESSION_STORE_MEMORY).strip().lower()
    if session_store not in {SESSION_STORE_MEMORY, SESSION_STORE_POSTGRES}:
        session_store = SESSION_STORE_MEMORY

    db_config = dict(
        host=env_mapping.get("DB_HOST", "127.0.0.1"),
        port=_to_int(env_mapping.get("DB_PORT"), default=5432),
        dbname=env_mapping.get("DB_NAME", "paywall_db"),
        user=env_mapping.get("DB_USER", "paywall_user"),
        password=env_mapping.get("DB_PASSWORD", "paywall_pass"),
    )

    return PaywallConfig(
        backend_url=backend_url,
        api_key=api_key,
        request_timeout_seconds=request_timeout,
        enable_promo_codes=enable_promo_codes,
        cache_promo_codes=cache_promo_codes,
        promo_cache_ttl_seconds=cache_ttl,
        result_reset_delay_seconds=reset_delay,
        debug=debug,
        session_store=session_store,
        db_config=db_config,
    )


__all__ = [
    "PaywallConfig",
    "SESSION_STORE_MEMORY",
    "SESSION_STORE_POSTGRES",
    "load_paywall_config",
]
