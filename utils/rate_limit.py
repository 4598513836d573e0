import json
from time import time
from typing import Dict, Iterable, Optional, Tuple
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
import logging

import redis.asyncio as redis
from redis.exceptions import RedisError

from config import settings

logger = logging.getLogger(__name__)

# Credential endpoints of the client portal
PORTAL_CREDENTIAL_PATHS = (
    "/api/client-portal/login",
    "/api/client-portal/forgot-password",
    "/api/client-portal/reset-password",
)


def _build_redis_client() -> Optional["redis.Redis"]:
    if not settings.redis_url:
        logger.info("REDIS_URL not set. Using in-memory rate limiting.")
        return None
    # Supports redis:// and redis://:password@host:port
    return redis.from_url(settings.redis_url, decode_responses=True)


class RateLimiterMiddleware(BaseHTTPMiddleware):
    """
    Distributed rate limiter using Redis (with fallback to in-memory).
    Uses Token Bucket Algorithm, one bucket per client IP and path.
    Only requests whose path is in `paths` are counted.
    """

    def __init__(
        self,
        app,
        requests_per_minute: int = 30,
        paths: Iterable[str] = PORTAL_CREDENTIAL_PATHS,
        redis_client: Optional["redis.Redis"] = None,
        trust_forwarded_for: Optional[bool] = None,
    ):
        super().__init__(app)
        self.capacity = requests_per_minute
        self.refill_time_window = 60.0
        self.paths = frozenset(paths)
        # Fallback: in-memory storage (key -> (tokens, last_refill_ts))
        self._buckets: Dict[str, Tuple[float, float]] = {}
        self._redis = redis_client if redis_client is not None else _build_redis_client()
        # None: decided per request from settings
        self.trust_forwarded_for = trust_forwarded_for

    def _trusts_forwarded_for(self) -> bool:
        if self.trust_forwarded_for is not None:
            return self.trust_forwarded_for
        return settings.trust_forwarded_for or bool(settings.render)

    def _get_client_ip(self, request: Request) -> str:
        xff = request.headers.get("x-forwarded-for")
        if xff and self._trusts_forwarded_for():
            # The last hop is the one appended by the trusted proxy
            return xff.split(",")[-1].strip()
        client = request.client
        return client.host if client else "unknown"

    def _refill(self, tokens: float, last_refill: float, now: float) -> float:
        elapsed = max(0.0, now - last_refill)
        refill = (elapsed / self.refill_time_window) * self.capacity
        return min(self.capacity, tokens + refill)

    async def _check_rate_limit_redis(self, key: str) -> Optional[bool]:
        """
        Check rate limit using Redis.
        Returns True if allowed, False if rate limited, None if Redis failed.
        """
        try:
            now = time()
            bucket_data = await self._redis.get(f"rate_limit:{key}")

            if bucket_data:
                data = json.loads(bucket_data)
                tokens = float(data.get("tokens", 0))
                last_refill = float(data.get("last_refill", now))
            else:
                tokens = float(self.capacity)
                last_refill = now

            tokens = self._refill(tokens, last_refill, now)
            if tokens < 1.0:
                return False

            bucket_data = json.dumps({"tokens": tokens - 1.0, "last_refill": now})
            await self._redis.setex(f"rate_limit:{key}", int(self.refill_time_window) + 10, bucket_data)
            return True

        except RedisError as e:
            logger.warning(f"Redis rate limit check failed: {e}. Falling back to in-memory.")
            return None

    def _check_rate_limit_memory(self, key: str) -> bool:
        now = time()
        tokens, last_refill = self._buckets.get(key, (self.capacity, now))
        tokens = self._refill(tokens, last_refill, now)

        if tokens < 1.0:
            return False

        self._buckets[key] = (tokens - 1.0, now)
        return True

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.url.path not in self.paths:
            return await call_next(request)

        key = f"{self._get_client_ip(request)}:{request.url.path}"

        allowed = None
        if self._redis is not None:
            allowed = await self._check_rate_limit_redis(key)
        if allowed is None:
            allowed = self._check_rate_limit_memory(key)

        if not allowed:
            logger.warning(f"Rate limit exceeded for {key}")
            return JSONResponse(
                status_code=429,
                content={
                    "ok": False,
                    "error": "rate_limited",
                    "message": "Rate limit exceeded. Try again shortly."
                },
            )

        return await call_next(request)
