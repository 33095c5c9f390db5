import math
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from fastapi import HTTPException
from starlette.requests import Request
from starlette.responses import Response


@dataclass
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float  # epoch seconds when the current window ends


def client_ip(request: Request) -> str:
    """First x-forwarded-for hop, then x-real-ip, then the socket peer."""
    forwarded = (request.headers.get("x-forwarded-for") or "").split(",")[0].strip()
    if forwarded:
        return forwarded
    real_ip = (request.headers.get("x-real-ip") or "").strip()
    if real_ip:
        return real_ip
    return request.client.host if request.client else "anonymous"


class SimpleRateLimiter:
    """Fixed-window rate limiter; in-memory (per process). Used by API to cap requests per user or client IP.
    Why available: Protects the AI endpoints (and the provider bill) from abuse and ensures fair usage across clients."""

    def __init__(self, max_requests: int, window_seconds: int, clock: Callable[[], float] = time.time):
        """Configure limiter: max_requests per window_seconds per key."""
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.clock = clock
        self.storage: Dict[str, Dict[str, float]] = {}  # key -> {"count", "reset_at"}

    def hit(self, key: str) -> RateLimitResult:
        """Count one request against key and report whether it is within the limit."""
        now = self.clock()
        entry = self.storage.get(key)
        if entry is None or now >= entry["reset_at"]:
            entry = {"count": 0, "reset_at": now + self.window_seconds}
            self.storage[key] = entry

        entry["count"] += 1
        return RateLimitResult(
            allowed=entry["count"] <= self.max_requests,
            limit=self.max_requests,
            remaining=max(0, self.max_requests - int(entry["count"])),
            reset_at=entry["reset_at"],
        )

    def check(
        self,
        request: Request,
        response: Optional[Response] = None,
        *,
        prefix: str = "api",
        identifier: Optional[str] = None,
    ) -> RateLimitResult:
        """Raise 429 if the caller has exceeded the rate limit; otherwise record the request. Sets X-RateLimit-* headers on response."""
        result = self.hit(f"{prefix}:{identifier or client_ip(request)}")
        headers = {
            "X-RateLimit-Limit": str(result.limit),
            "X-RateLimit-Remaining": str(result.remaining),
            "X-RateLimit-Reset": str(math.ceil(result.reset_at)),
        }
        if not result.allowed:
            retry_after = max(1, math.ceil(result.reset_at - self.clock()))
            raise HTTPException(
                status_code=429,
                detail="Rate limit exceeded. Please retry later.",
                headers={**headers, "Retry-After": str(retry_after)},
            )
        if response is not None:
            response.headers.update(headers)
        return result
