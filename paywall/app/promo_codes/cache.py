"""Time-bounded memoization of promo code validations."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional, Protocol

from .models import PromoCodeValidation

DEFAULT_TTL_SECONDS = 300


def validation_cache_key(code: str, plan_id: Optional[str], user_id: Optional[str]) -> str:
    """Composite key for a validation of ``code`` against a plan and user."""

    return f"code:{code}|plan:{plan_id or '-'}|user:{user_id or '-'}"


class ValidationCache(Protocol):
    """Cache operations used by the promo code engine."""

    def get(self, key: str) -> Optional[PromoCodeValidation]:
        ...

    def set(self, key: str, value: PromoCodeValidation) -> None:
        ...

    def clear(self) -> None:
        ...


@dataclass(frozen=True)
class _CacheEntry:
    value: PromoCodeValidation
    inserted_at: datetime

    def age(self, now: datetime) -> timedelta:
        return now - self.inserted_at


class PromoValidationCache:
    """In-memory validation cache with a fixed TTL measured from insertion.

    An entry whose age exceeds the TTL is purged on lookup and never
    returned. A TTL of zero disables caching: every lookup misses.
    """

    def __init__(
        self,
        *,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if ttl_seconds < 0:
            raise ValueError("ttl_seconds must be >= 0")
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._entries: Dict[str, _CacheEntry] = {}

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def get(self, key: str) -> Optional[PromoCodeValidation]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._ttl <= timedelta(0) or entry.age(self._clock()) > self._ttl:
            self._entries.pop(key, None)
            return None
        return entry.value

    def set(self, key: str, value: PromoCodeValidation) -> None:
        self._entries[key] = _CacheEntry(value=value, inserted_at=self._clock())

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


__all__ = [
    "DEFAULT_TTL_SECONDS",
    "PromoValidationCache",
    "ValidationCache",
    "validation_cache_key",
]
