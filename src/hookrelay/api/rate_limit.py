"""Per-user rate limiting for the management API.

Management routes and the event intake are limited separately
(``rate_limit_default`` vs ``rate_limit_events`` requests per window). The
limiter is built once by ``create_app`` and kept on ``app.state.rate_limiter``.
"""

import time
from abc import ABC, abstractmethod
from collections import defaultdict, deque
from typing import TYPE_CHECKING, Any

from fastapi import Request, Response
from pydantic import BaseModel, ConfigDict, Field

from hookrelay.exceptions import ConfigurationError, RateLimitError
from hookrelay.logging import get_logger

from .auth import CurrentUser

if TYPE_CHECKING:
    from hookrelay.config import Settings

logger = get_logger(__name__)

# redis is an optional extra; RedisRateLimiter refuses to start without it
try:
    import redis

    REDIS_AVAILABLE = True
except ImportError:
    REDIS_AVAILABLE = False

EVENTS_ENDPOINT = "events"


class RateLimitInfo(BaseModel):
    """Limit state returned to the client as X-RateLimit-* headers."""

    model_config = ConfigDict(extra="forbid")

    limit: int = Field(ge=0)
    remaining: int = Field(ge=0)
    reset_at: int = Field(description="Unix time when the current window ends")


class RateLimiter(ABC):
    @abstractmethod
    def check_rate_limit(self, key: str, endpoint: str, limit: int) -> RateLimitInfo:
        """Count one request for ``key`` on ``endpoint``.

        Raises:
            RateLimitError: If ``limit`` requests were already made this window.
        """


class InMemoryRateLimiter(RateLimiter):
    """Sliding-window limiter held in process memory.

    Each API instance counts on its own; use RedisRateLimiter when running
    more than one.
    """

    def __init__(self, window_seconds: int = 60) -> None:
        self.window_seconds = window_seconds
        self._hits: defaultdict[tuple[str, str], deque[float]] = defaultdict(deque)

    def check_rate_limit(self, key: str, endpoint: str, limit: int) -> RateLimitInfo:
        now = time.time()
        hits = self._hits[(key, endpoint)]
        while hits and hits[0] <= now - self.window_seconds:
            hits.popleft()

        if len(hits) >= limit:
            retry_after = max(int(hits[0] + self.window_seconds - now), 1)
            logger.warning(
                "Rate limit exceeded",
                key=key,
                endpoint=endpoint,
                limit=limit,
                retry_after=retry_after,
            )
            raise RateLimitError(retry_after)

        hits.append(now)
        return RateLimitInfo(
            limit=limit,
            remaining=limit - len(hits),
            reset_at=int(hits[0] + self.window_seconds),
        )


class RedisRateLimiter(RateLimiter):
    """Fixed-window counter shared by all API instances through Redis.

    One key per (caller, endpoint, window) is incremented and expires with
    the window. Requires the ``redis`` extra: ``pip install hookrelay[redis]``.
    """

    key_prefix = "hookrelay:ratelimit:"

    def __init__(
        self,
        redis_url: str,
        window_seconds: int = 60,
        client: Any | None = None,
    ) -> None:
        self.window_seconds = window_seconds
        if client is None:
            client = self._connect(redis_url)
        self._redis = client

    @staticmethod
    def _connect(redis_url: str) -> Any:
        if not REDIS_AVAILABLE:
            raise ImportError("Redis is not installed. Install with: pip install hookrelay[redis]")
        client = redis.Redis.from_url(redis_url, decode_responses=True)
        try:
            client.ping()
        except redis.ConnectionError as e:
            raise ConfigurationError(f"Failed to connect to Redis at {redis_url}: {e}") from e
        logger.info("Redis rate limiter connected", redis_url=redis_url)
        return client

    def check_rate_limit(self, key: str, endpoint: str, limit: int) -> RateLimitInfo:
        now = time.time()
        window = int(now // self.window_seconds)
        reset_at = (window + 1) * self.window_seconds
        redis_key = f"{self.key_prefix}{key}:{endpoint}:{window}"

        pipe = self._redis.pipeline()
        pipe.incr(redis_key)
        pipe.expire(redis_key, self.window_seconds + 1)
        count = int(pipe.execute()[0])

        if count > limit:
            retry_after = max(int(reset_at - now), 1)
            logger.warning(
                "Rate limit exceeded",
                key=key,
                endpoint=endpoint,
                limit=limit,
                retry_after=retry_after,
                backend="redis",
            )
            raise RateLimitError(retry_after)

        return RateLimitInfo(limit=limit, remaining=limit - count, reset_at=reset_at)


def build_rate_limiter(settings: "Settings") -> RateLimiter:
    """Redis limiter when ``rate_limit_redis_url`` is set, in-memory otherwise."""
    if settings.rate_limit_redis_url:
        return RedisRateLimiter(settings.rate_limit_redis_url, settings.rate_limit_window_seconds)
    logger.info("Using in-memory rate limiter (per process)")
    return InMemoryRateLimiter(settings.rate_limit_window_seconds)


def extract_client_ip(request: Request, *, trust_proxy_headers: bool = False) -> str:
    """Best-effort client address, prefixed ``ip:`` so it never collides with a user ID.

    Only enable ``trust_proxy_headers`` behind a proxy you control.
    """
    if trust_proxy_headers:
        forwarded_for = request.headers.get("x-forwarded-for", "")
        client_ip = forwarded_for.split(",")[0].strip()
        if client_ip:
            return f"ip:{client_ip}"

        real_ip = (request.headers.get("x-real-ip") or "").strip()
        if real_ip:
            return f"ip:{real_ip}"

    if request.client and request.client.host:
        return f"ip:{request.client.host}"
    return "ip:unknown"


class RateLimitDependency:
    """Route dependency that counts the request against the caller's limit.

    Returns None when rate limiting is disabled.

    Usage:
        EventsRateLimit = Annotated[
            RateLimitInfo | None, Depends(RateLimitDependency("events"))
        ]
    """

    def __init__(self, endpoint: str, limit: int | None = None) -> None:
        self.endpoint = endpoint
        self.limit = limit

    async def __call__(self, request: Request, user: CurrentUser) -> RateLimitInfo | None:
        settings: Settings = request.app.state.settings
        if not settings.rate_limit_enabled:
            return None

        key = user.user_id or extract_client_ip(
            request, trust_proxy_headers=settings.rate_limit_trust_proxy_headers
        )
        limit = self.limit
        if limit is None:
            limit = (
                settings.rate_limit_events
                if self.endpoint == EVENTS_ENDPOINT
                else settings.rate_limit_default
            )

        limiter: RateLimiter = request.app.state.rate_limiter
        return limiter.check_rate_limit(key, self.endpoint, limit)


def add_rate_limit_headers(response: Response, rate_info: RateLimitInfo | None) -> None:
    if rate_info is None:
        return
    response.headers["X-RateLimit-Limit"] = str(rate_info.limit)
    response.headers["X-RateLimit-Remaining"] = str(rate_info.remaining)
    response.headers["X-RateLimit-Reset"] = str(rate_info.reset_at)
