"""Fixed-window counters in the shared cache.

The counter lives under ``key``; the window end is stored next to it under
``<key>:expires_at`` because Django's cache API cannot report a key's TTL on
every backend.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import math
import time
from dataclasses import dataclass

from django.conf import settings
from django.core.cache import cache

from voting.exceptions import TransientInfraError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    ttl: int


def _now() -> float:
    return time.time()


def _expiry_key(key: str) -> str:
    return f"{key}:expires_at"


def check_rate_limit(key: str, limit: int, window_seconds: int) -> RateLimitResult:
    """Count one request against ``key`` and report whether it fits the window.

    Every call increments, including calls on a key that is already over its
    limit, so callers must only call this for real requests.
    """
    if limit < 0 or window_seconds <= 0:
        raise ValueError("limit must be >= 0 and window_seconds must be positive")

    now = _now()
    try:
        if cache.add(key, 0, timeout=window_seconds):
            cache.set(_expiry_key(key), now + window_seconds, timeout=window_seconds)

        try:
            count = int(cache.incr(key))
        except ValueError:
            # The window expired between add() and incr(); start a fresh one.
            cache.set(key, 1, timeout=window_seconds)
            cache.set(_expiry_key(key), now + window_seconds, timeout=window_seconds)
            count = 1

        expires_at = cache.get(_expiry_key(key))
        if expires_at is None:
            # The counter outlived its window; this request opens a new one.
            expires_at = now + window_seconds
            cache.set(key, 1, timeout=window_seconds)
            cache.set(_expiry_key(key), expires_at, timeout=window_seconds)
            count = 1

        left = float(expires_at) - now
        # Some backends drop the expiry on incr(); re-apply exactly what is left
        # of the window so the counter never outlives its window marker.
        cache.touch(key, max(0.001, left))
        ttl = max(1, math.ceil(left))
    except Exception as exc:
        logger.exception("Rate limit counter store unavailable key=%s", key)
        raise TransientInfraError("Rate limit store unavailable.") from exc

    if count > limit:
        return RateLimitResult(allowed=False, remaining=0, ttl=ttl)
    return RateLimitResult(allowed=True, remaining=limit - count, ttl=ttl)


def reset_rate_limit(key: str) -> None:
    try:
        cache.delete_many([key, _expiry_key(key)])
    except Exception as exc:
        logger.exception("Rate limit counter store unavailable key=%s", key)
        raise TransientInfraError("Rate limit store unavailable.") from exc


def emit_rate_limit_denial_log(*, scope: str, subject: str, limit: int, window_seconds: int, ttl: int) -> None:
    secret = str(settings.SECRET_KEY).encode("utf-8")
    log_payload: dict[str, str | int] = {
        "event": "ballotbox.security.rate_limit.denied",
        "component": "auth",
        "outcome": "denied",
        "scope": scope,
        "limit": limit,
        "window_seconds": window_seconds,
        "retry_after": ttl,
    }
    if subject:
        log_payload["subject_hash"] = hmac.new(
            key=secret,
            msg=subject.encode("utf-8"),
            digestmod=hashlib.sha256,
        ).hexdigest()

    logger.warning("Rate limit denied", extra=log_payload)
