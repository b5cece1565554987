import time
from dataclasses import dataclass

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response

log = structlog.get_logger()


@dataclass(frozen=True)
class RateLimitRule:
    path: str
    limit: int
    window: int
    method: str | None = None

    def matches(self, path: str, method: str) -> bool:
        if not path.startswith(self.path):
            return False
        return self.method is None or self.method.upper() == method.upper()


# First match wins, so more specific prefixes come before broader ones.
# Limits are per client IP.
RATE_LIMIT_RULES = [
    RateLimitRule("/api/auth/register", limit=3, window=3600),
    RateLimitRule("/api/auth/login", limit=5, window=900),
    RateLimitRule("/api/purchase/checkout", limit=10, window=600),
    RateLimitRule("/api/purchase/process", limit=20, window=600),
    RateLimitRule("/api/assets/upload", limit=20, window=3600),
    RateLimitRule("/api/assets", limit=30, window=60, method="POST"),
    RateLimitRule("/api/assets", limit=120, window=60),
]

# Stripe retries on its own schedule
SKIP_PATHS = {"/health", "/docs", "/openapi.json", "/redoc", "/api/purchase/webhook"}


@dataclass
class WindowCount:
    """Requests seen in the current sliding window for one client and rule."""

    count: int
    rule: RateLimitRule
    reset_at: int

    @property
    def remaining(self) -> int:
        return max(0, self.rule.limit - self.count)

    @property
    def exceeded(self) -> bool:
        return self.count > self.rule.limit

    def apply_headers(self, response: Response) -> None:
        response.headers["X-RateLimit-Limit"] = str(self.rule.limit)
        response.headers["X-RateLimit-Remaining"] = str(self.remaining)
        response.headers["X-RateLimit-Reset"] = str(self.reset_at)


def _find_matching_rule(path: str, method: str) -> RateLimitRule | None:
    return next((rule for rule in RATE_LIMIT_RULES if rule.matches(path, method)), None)


def _client_ip(request: Request) -> str:
    """First hop of X-Forwarded-For, else the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


async def _count_request(redis, key: str, rule: RateLimitRule, member: str) -> WindowCount:
    """Record this request in a Redis sorted set and count the window."""
    now = int(time.time())

    pipe = redis.pipeline()
    pipe.zremrangebyscore(key, 0, now - rule.window)
    pipe.zadd(key, {f"{now}:{member}": now})
    pipe.zcard(key)
    pipe.expire(key, rule.window)
    _, _, count, _ = await pipe.execute()

    return WindowCount(count=count, rule=rule, reset_at=now + rule.window)


def _too_many_requests(window: WindowCount) -> JSONResponse:
    response = JSONResponse(
        status_code=429,
        content={"error": "Too many requests. Please try again later."},
    )
    window.apply_headers(response)
    response.headers["Retry-After"] = str(window.rule.window)
    return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Sliding-window limiter backed by ``app.state.redis``.

    Fails open: when Redis errors the request is served without limits.
    """

    async def dispatch(self, request: Request, call_next):
        if request.url.path in SKIP_PATHS:
            return await call_next(request)

        rule = _find_matching_rule(request.url.path, request.method)
        if rule is None:
            return await call_next(request)

        client_ip = _client_ip(request)
        key = f"ratelimit:{rule.path}:{request.method}:{client_ip}"

        try:
            window = await _count_request(
                request.app.state.redis, key, rule, str(id(request))
            )
        except Exception as exc:
            log.warning("rate_limit_redis_error", error=str(exc), path=request.url.path)
            return await call_next(request)

        if window.exceeded:
            log.warning(
                "rate_limit_exceeded",
                path=request.url.path,
                client_ip=client_ip,
                limit=rule.limit,
                count=window.count,
            )
            return _too_many_requests(window)

        response = await call_next(request)
        window.apply_headers(response)
        return response
