"""
Rate Limiting Middleware

Per-client rate limiting of the credential endpoints using Redis.

ARCHITECTURE: token bucket per (client IP, endpoint) stored in Redis, so
limits hold across worker processes. Only endpoints that accept a
password or trigger a reset email are limited; everything else passes
straight through.

TRADEOFF: if Redis is unreachable the limiter lets requests through
(fail open). Sign-in stays available; brute-force protection is reduced
until Redis is back.
"""
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from typing import Iterable, Optional
import redis
import time

from orgauth.config import get_settings
from orgauth.utils.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()

LIMITED_PATHS = (
    "/api/v1/auth/sign-in",
    "/api/v1/auth/sign-up",
    "/api/v1/auth/password-reset/request",
    "/api/v1/auth/password-reset/confirm",
    "/api/v1/invitations/lookup",
)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Token bucket rate limiter per client IP.

    redis_client may be injected (tests pass an in-memory double); otherwise
    one is created from REDIS_URL.
    """

    def __init__(
        self,
        app,
        redis_client: Optional["redis.Redis"] = None,
        limited_paths: Iterable[str] = LIMITED_PATHS,
        rate_per_minute: Optional[int] = None,
        burst: Optional[int] = None,
        enabled: Optional[bool] = None,
    ):
        super().__init__(app)

        self.limited_paths = tuple(limited_paths)
        self.rate_per_minute = rate_per_minute or settings.RATE_LIMIT_PER_MINUTE
        self.burst = burst or settings.RATE_LIMIT_BURST
        self.enabled = settings.RATE_LIMIT_ENABLED if enabled is None else enabled

        self.redis_client = redis_client
        self.redis_available = redis_client is not None

        if self.enabled and redis_client is None:
            try:
                self.redis_client = redis.from_url(
                    settings.REDIS_URL,
                    decode_responses=True,
                    socket_connect_timeout=5
                )
                # Test connection
                self.redis_client.ping()
                self.redis_available = True
                logger.info("Redis connection established for rate limiting")
            except (redis.ConnectionError, redis.TimeoutError) as e:
                logger.error(f"Redis connection failed: {e}")
                self.redis_available = False

    async def dispatch(self, request: Request, call_next):
        if not self.enabled or request.method != "POST" or request.url.path not in self.limited_paths:
            return await call_next(request)

        if not self.redis_available:
            logger.warning("Rate limiting disabled - Redis unavailable")
            return await call_next(request)

        client_ip = self._get_client_identifier(request)
        allowed, retry_after = self._check_rate_limit(f"{client_ip}:{request.url.path}")

        if not allowed:
            logger.warning(
                f"Rate limit exceeded on {request.url.path}",
                extra={"reason": "rate_limited"}
            )
            return JSONResponse(
                status_code=429,
                content={
                    "detail": "Rate limit exceeded. Please try again later.",
                    "type": "rate_limit_exceeded",
                    "retry_after": retry_after
                },
                headers={"Retry-After": str(retry_after)}
            )

        return await call_next(request)

    def _check_rate_limit(self, identifier: str) -> tuple[bool, int]:
        """
        Check if request is allowed under rate limit.

        Returns: (allowed: bool, retry_after: int)

        Uses token bucket algorithm:
        - Bucket holds max tokens (burst capacity)
        - Tokens added at fixed rate
        - Each request consumes one token
        """
        key = f"rate_limit:{identifier}"
        key_timestamp = f"{key}:timestamp"
        refill_per_second = self.rate_per_minute / 60.0

        try:
            current_tokens = self.redis_client.get(key)
            last_update = self.redis_client.get(key_timestamp)

            now = time.time()

            if current_tokens is None:
                # First request - initialize bucket
                self.redis_client.setex(key, 60, self.burst - 1)
                self.redis_client.setex(key_timestamp, 60, now)
                return True, 0

            current_tokens = float(current_tokens)
            last_update = float(last_update) if last_update else now

            elapsed = now - last_update
            new_tokens = min(self.burst, current_tokens + elapsed * refill_per_second)

            if new_tokens >= 1:
                new_tokens -= 1
                self.redis_client.setex(key, 60, new_tokens)
                self.redis_client.setex(key_timestamp, 60, now)
                return True, 0

            tokens_needed = 1 - new_tokens
            retry_after = int((tokens_needed / refill_per_second) + 1)
            return False, retry_after

        except redis.RedisError as e:
            logger.error(f"Redis error in rate limiting: {e}")
            # Graceful degradation - allow request if Redis fails
            return True, 0

    def _get_client_identifier(self, request: Request) -> str:
        """
        Client IP used as the bucket key.

        NOTE: behind a proxy this is the proxy's address unless uvicorn runs
        with --proxy-headers.
        """
        return request.client.host if request.client else "unknown"
