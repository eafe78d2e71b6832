"""Redis-backed login rate limiting and per-account lockout.

Every Redis failure fails open: a throttling outage must not become an auth outage.
"""
from __future__ import annotations

import logging

import redis
from redis.exceptions import RedisError

from ..config import settings
from ..domain_errors import RateLimited

logger = logging.getLogger(__name__)


class LoginThrottle:
    def __init__(self, client=None):
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = redis.from_url(settings.REDIS_URL, decode_responses=True)
        return self._client

    def _incr_with_ttl(self, key: str, ttl_seconds: int) -> tuple[int, int]:
        """
        Increment a Redis counter and ensure it has an expiry.
        Returns (value, ttl_remaining_seconds).
        """
        value = self.client.incr(key)
        if value == 1:
            self.client.expire(key, ttl_seconds)
        ttl = self.client.ttl(key)
        if ttl is None or ttl < 0:
            ttl = ttl_seconds
        return int(value), int(ttl)

    def enforce(self, *, ip: str, identifier: str | None) -> None:
        """Raise RateLimited when the IP is over its budget or the account is locked."""
        try:
            # Hard per-IP limit (password spraying protection).
            attempts, ttl = self._incr_with_ttl(f"auth:rl:login:ip:{ip}", 60)
            if attempts > settings.AUTH_LOGIN_IP_LIMIT_PER_MINUTE:
                raise RateLimited(
                    code="LOGIN_RATE_LIMITED",
                    message="Too many login attempts. Try again later.",
                    details={"retry_after": ttl},
                )

            if identifier:
                lock_ttl = self.client.ttl(f"auth:lock:login:user:{identifier.lower()}")
                if lock_ttl and lock_ttl > 0:
                    raise RateLimited(
                        code="LOGIN_RATE_LIMITED",
                        message="Account temporarily locked due to failed logins. Try again later.",
                        details={"retry_after": int(lock_ttl)},
                    )
        except RedisError:
            logger.exception("Redis error during login rate limiting (fail-open)")

    def register_failure(self, *, identifier: str | None) -> None:
        """Count a failed login; lock the account once the threshold is reached."""
        if not identifier:
            return
        key = identifier.lower()
        try:
            fails, _ = self._incr_with_ttl(
                f"auth:fail:login:user:{key}",
                settings.AUTH_LOGIN_USER_LOCK_SECONDS,
            )
            if fails >= settings.AUTH_LOGIN_USER_FAIL_THRESHOLD:
                self.client.set(
                    f"auth:lock:login:user:{key}",
                    "1",
                    ex=settings.AUTH_LOGIN_USER_LOCK_SECONDS,
                )
                logger.warning("Login locked for %s after %s failures", key, fails)
        except RedisError:
            logger.exception("Redis error during login failure tracking (fail-open)")

    def clear(self, *, identifier: str | None) -> None:
        if not identifier:
            return
        key = identifier.lower()
        try:
            self.client.delete(f"auth:fail:login:user:{key}")
            self.client.delete(f"auth:lock:login:user:{key}")
        except RedisError:
            logger.exception("Redis error during login failure cleanup (ignored)")


_throttle: LoginThrottle | None = None


def get_login_throttle() -> LoginThrottle:
    """FastAPI dependency; tests override it with an in-memory client."""
    global _throttle
    if _throttle is None:
        _throttle = LoginThrottle()
    return _throttle
