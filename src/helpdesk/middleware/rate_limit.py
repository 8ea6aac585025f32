"""Rate limiting middleware — fixed window counters per client IP.

Learn: Each IP gets a counter per bucket per window, keyed like
"helpdesk:rl:{ip}:{bucket}:{window}". The credential endpoints
(login/register/refresh) share a stricter "auth" bucket to slow down
password guessing; everything else falls into the "api" bucket.

Counters live in Redis when HELPDESK_REDIS_URL is set, so several app
processes share one budget. Without Redis an in-process counter is used,
which is what tests and single-process dev servers get.
"""

import time
from collections import defaultdict

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

logger = structlog.get_logger()

AUTH_PATHS = ("/api/auth/login", "/api/auth/register", "/api/auth/refresh")


class MemoryCounter:
    """In-process fixed window counter. Not shared between workers."""

    def __init__(self):
        self._hits: dict[str, int] = defaultdict(int)
        self._current_window: int | None = None

    async def hit(self, key: str, window: int, ttl: int) -> int:
        # Drop every counter once the window rolls over.
        if window != self._current_window:
            self._hits.clear()
            self._current_window = window
        self._hits[key] += 1
        return self._hits[key]


class RedisCounter:
    """Shared fixed window counter using INCR + EXPIRE."""

    def __init__(self, redis):
        self.redis = redis

    async def hit(self, key: str, window: int, ttl: int) -> int:
        count = await self.redis.incr(key)
        if count == 1:
            await self.redis.expire(key, ttl)
        return count


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-IP request limits with a stricter bucket for credential endpoints."""

    def __init__(
        self,
        app,
        counter=None,
        window_seconds: int = 60,
        default_limit: int = 100,
        auth_limit: int = 10,
    ):
        super().__init__(app)
        self.counter = counter or MemoryCounter()
        self.window_seconds = window_seconds
        self.default_limit = default_limit
        self.auth_limit = auth_limit

    async def dispatch(self, request: Request, call_next) -> Response:
        client_ip = request.client.host if request.client else "unknown"
        is_auth = request.url.path.startswith(AUTH_PATHS)
        limit = self.auth_limit if is_auth else self.default_limit
        bucket = "auth" if is_auth else "api"

        now = time.time()
        window = int(now // self.window_seconds)
        key = f"helpdesk:rl:{client_ip}:{bucket}:{window}"

        try:
            count = await self.counter.hit(key, window, self.window_seconds * 2)
        except Exception as e:  # backend down: don't block the request
            logger.warning("rate_limit.backend_error", error=str(e))
            return await call_next(request)

        if count > limit:
            retry_after = max(1, int((window + 1) * self.window_seconds - now))
            logger.info("rate_limit.exceeded", ip=client_ip, bucket=bucket, count=count)
            return JSONResponse(
                status_code=429,
                content={
                    "error": "Too many requests, please try again later",
                    "code": "RATE_LIMITED",
                },
                headers={
                    "Retry-After": str(retry_after),
                    "X-RateLimit-Limit": str(limit),
                    "X-RateLimit-Remaining": "0",
                },
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(limit)
        response.headers["X-RateLimit-Remaining"] = str(max(0, limit - count))
        return response
