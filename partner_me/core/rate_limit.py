"""Rate limiting primitives.

Two families live here:

* a fixed-window IP limiter guarding every HTTP request in production;
* sliding-window limiters with named rules for submission and upload flows.
  A limiter is an explicit object handed to routes through FastAPI
  dependencies, so callers and tests can substitute their own.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from functools import lru_cache
import math
from threading import Lock
import time
from typing import Callable, Deque, Dict, Optional, Protocol, Sequence, Tuple
import uuid

from partner_me.core.config import get_settings
from partner_me.core.logger import get_logger
from partner_me.storage.redis_client import get_client


logger = get_logger("partner_me.rate_limit")


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_seconds: int


class IPRateLimiter(Protocol):
    def check(self, *, ip: str) -> RateLimitDecision:
        """Return a decision for this IP."""


class InMemoryIPRateLimiter:
    def __init__(self, *, requests_per_window: int, window_seconds: int) -> None:
        if requests_per_window <= 0:
            raise ValueError("requests_per_window must be positive")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")

        self._limit = requests_per_window
        self._window = window_seconds
        self._lock = Lock()
        self._store: Dict[Tuple[str, int], int] = {}

    def check(self, *, ip: str) -> RateLimitDecision:
        now = int(time.time())
        window_id = now // self._window
        reset_seconds = self._window - (now % self._window)
        key = (ip, window_id)

        with self._lock:
            stale_keys = [item for item in self._store if item[1] < window_id - 1]
            for stale in stale_keys:
                self._store.pop(stale, None)

            count = int(self._store.get(key, 0)) + 1
            self._store[key] = count

        return RateLimitDecision(
            allowed=count <= self._limit,
            limit=self._limit,
            remaining=max(self._limit - count, 0),
            reset_seconds=reset_seconds,
        )


class RedisIPRateLimiter:
    def __init__(self, *, requests_per_window: int, window_seconds: int) -> None:
        if requests_per_window <= 0:
            raise ValueError("requests_per_window must be positive")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")

        self._limit = requests_per_window
        self._window = window_seconds
        self._redis = get_client()

    def check(self, *, ip: str) -> RateLimitDecision:
        now = int(time.time())
        window_id = now // self._window
        reset_seconds = self._window - (now % self._window)
        key = f"partner_me:ratelimit:ip:{ip}:{window_id}"

        try:
            count = int(self._redis.incr(key))
            if count == 1:
                self._redis.expire(key, self._window + 1)
        except Exception as exc:
            logger.warning("ip_rate_limit_backend_unavailable", error=str(exc))
            return RateLimitDecision(
                allowed=True,
                limit=self._limit,
                remaining=self._limit,
                reset_seconds=reset_seconds,
            )

        return RateLimitDecision(
            allowed=count <= self._limit,
            limit=self._limit,
            remaining=max(self._limit - count, 0),
            reset_seconds=reset_seconds,
        )


@lru_cache(maxsize=1)
def get_ip_rate_limiter() -> IPRateLimiter:
    settings = get_settings()
    if settings.is_production:
        return RedisIPRateLimiter(
            requests_per_window=settings.ip_rate_limit_requests_per_window,
            window_seconds=settings.ip_rate_limit_window_seconds,
        )
    return InMemoryIPRateLimiter(
        requests_per_window=settings.ip_rate_limit_requests_per_window,
        window_seconds=settings.ip_rate_limit_window_seconds,
    )


@dataclass(frozen=True)
class RateLimitRule:
    limit: int
    window_seconds: int
    message: str

    def __post_init__(self) -> None:
        if self.limit <= 0:
            raise ValueError("limit must be positive")
        if self.window_seconds <= 0:
            raise ValueError("window_seconds must be positive")


@dataclass(frozen=True)
class RateLimitCheck:
    allowed: bool
    reason: Optional[str] = None
    retry_after: Optional[int] = None


ALLOWED = RateLimitCheck(allowed=True)


def _retry_after(oldest: float, window_seconds: int, now: float) -> int:
    return max(int(math.ceil(oldest + window_seconds - now)), 1)


def _evaluate(rules: Sequence[RateLimitRule], timestamps: Sequence[float], now: float) -> RateLimitCheck:
    for rule in rules:
        in_window = [stamp for stamp in timestamps if stamp > now - rule.window_seconds]
        if len(in_window) >= rule.limit:
            return RateLimitCheck(
                allowed=False,
                reason=rule.message,
                retry_after=_retry_after(min(in_window), rule.window_seconds, now),
            )
    return ALLOWED


class SlidingWindowRateLimiter(Protocol):
    name: str

    def check(self, identifier: str) -> RateLimitCheck:
        """Return whether one more attempt is allowed for the identifier."""

    def record(self, identifier: str) -> None:
        """Record one attempt; never raises."""


class InMemorySlidingWindowLimiter:
    def __init__(
        self,
        *,
        name: str,
        rules: Sequence[RateLimitRule],
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not rules:
            raise ValueError("at least one rule is required")
        self.name = name
        self._rules = tuple(rules)
        self._horizon = max(rule.window_seconds for rule in self._rules)
        self._clock = clock
        self._lock = Lock()
        self._attempts: Dict[str, Deque[float]] = {}

    def _prune(self, now: float) -> None:
        cutoff = now - self._horizon
        for identifier in list(self._attempts):
            attempts = self._attempts[identifier]
            while attempts and attempts[0] <= cutoff:
                attempts.popleft()
            if not attempts:
                del self._attempts[identifier]

    def check(self, identifier: str) -> RateLimitCheck:
        now = self._clock()
        with self._lock:
            self._prune(now)
            timestamps = tuple(self._attempts.get(identifier, ()))
        return _evaluate(self._rules, timestamps, now)

    def record(self, identifier: str) -> None:
        now = self._clock()
        with self._lock:
            self._attempts.setdefault(identifier, deque()).append(now)

    def tracked_identifiers(self) -> int:
        with self._lock:
            self._prune(self._clock())
            return len(self._attempts)

    def reset(self) -> None:
        with self._lock:
            self._attempts.clear()


class RedisSlidingWindowLimiter:
    def __init__(
        self,
        *,
        name: str,
        rules: Sequence[RateLimitRule],
        redis_client=None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not rules:
            raise ValueError("at least one rule is required")
        self.name = name
        self._rules = tuple(rules)
        self._horizon = max(rule.window_seconds for rule in self._rules)
        self._redis = redis_client if redis_client is not None else get_client()
        self._clock = clock

    def _key(self, identifier: str) -> str:
        return f"partner_me:ratelimit:{self.name}:{identifier}"

    def check(self, identifier: str) -> RateLimitCheck:
        now = self._clock()
        key = self._key(identifier)
        try:
            self._redis.zremrangebyscore(key, 0, now - self._horizon)
            entries = self._redis.zrangebyscore(key, now - self._horizon, "+inf", withscores=True)
        except Exception as exc:
            logger.warning("rate_limit_backend_unavailable", limiter=self.name, error=str(exc))
            return ALLOWED
        return _evaluate(self._rules, [float(score) for _member, score in entries], now)

    def record(self, identifier: str) -> None:
        now = self._clock()
        key = self._key(identifier)
        try:
            self._redis.zadd(key, {f"{now:.6f}:{uuid.uuid4().hex}": now})
            self._redis.expire(key, self._horizon + 1)
        except Exception as exc:
            logger.warning("rate_limit_record_failed", limiter=self.name, error=str(exc))


def submission_rules() -> Tuple[RateLimitRule, ...]:
    settings = get_settings()
    return (
        RateLimitRule(
            limit=settings.submission_limit_per_hour,
            window_seconds=3600,
            message=(
                "Submission rate limit exceeded. "
                f"Maximum {settings.submission_limit_per_hour} submissions per hour."
            ),
        ),
        RateLimitRule(
            limit=settings.submission_limit_per_day,
            window_seconds=86400,
            message=(
                "Submission rate limit exceeded. "
                f"Maximum {settings.submission_limit_per_day} submissions per 24 hours."
            ),
        ),
    )


def upload_rules() -> Tuple[RateLimitRule, ...]:
    settings = get_settings()
    return (
        RateLimitRule(
            limit=settings.max_uploads_per_minute,
            window_seconds=60,
            message=f"Upload rate limit exceeded. Maximum {settings.max_uploads_per_minute} uploads per minute.",
        ),
        RateLimitRule(
            limit=settings.max_uploads_per_hour,
            window_seconds=3600,
            message=f"Upload rate limit exceeded. Maximum {settings.max_uploads_per_hour} uploads per hour.",
        ),
    )


def _build_limiter(name: str, rules: Sequence[RateLimitRule]) -> SlidingWindowRateLimiter:
    if get_settings().is_production:
        return RedisSlidingWindowLimiter(name=name, rules=rules)
    return InMemorySlidingWindowLimiter(name=name, rules=rules)


@lru_cache(maxsize=1)
def get_submission_rate_limiter() -> SlidingWindowRateLimiter:
    return _build_limiter("submission", submission_rules())


@lru_cache(maxsize=1)
def get_upload_rate_limiter() -> SlidingWindowRateLimiter:
    return _build_limiter("upload", upload_rules())


def reset_rate_limiter_cache() -> None:
    get_ip_rate_limiter.cache_clear()
    get_submission_rate_limiter.cache_clear()
    get_upload_rate_limiter.cache_clear()
