"""Client IP resolution and coarse per-IP rate limiting (slowapi).

The OTP endpoints are protected by the abuse guard
(``guest_access.services.abuse_guard``). Scoped action and review endpoints
use this slowapi limiter keyed on the client IP.

Usage in routers:
    from guest_access.core.rate_limiting import limiter

    @router.post("/orders/cancel")
    @limiter.limit(lambda: settings.rate_limit_guest_actions)
    async def cancel_order(request: Request, ...):
        ...
"""

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from guest_access.core.config import settings


def get_client_ip(request: Request) -> str:
    """Resolve the caller's IP address.

    Forwarding headers are only honored when ``TRUST_FORWARDED_HEADERS`` is
    set (the service sits behind a proxy that overwrites them). Otherwise any
    client could pick its own rate limit key.

    Order: first ``X-Forwarded-For`` entry, then ``X-Real-IP``, then the
    socket peer address.
    """
    if settings.trust_forwarded_headers:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            first = forwarded.split(",")[0].strip()
            if first:
                return first
        real_ip = request.headers.get("x-real-ip")
        if real_ip:
            return real_ip.strip()
    return get_remote_address(request) or "unknown"


# Global limiter instance
# In-memory storage suits a single instance; for several instances configure
# Redis storage via RATELIMIT_STORAGE_URL
limiter = Limiter(
    key_func=get_client_ip,
    enabled=settings.rate_limit_enabled,
)


def rate_limit_exceeded_handler(
    _request: Request,
    exc: RateLimitExceeded,
) -> Response:
    """Handle rate limit exceeded errors.

    Returns 429 Too Many Requests with the standard error envelope.

    Args:
        request: The incoming request.
        exc: The rate limit exception.

    Returns:
        JSONResponse with 429 status and retry-after header.
    """
    # slowapi detail looks like "10 per 1 hour"; fall back to 60 seconds
    try:
        retry_after = str(exc.detail.split()[-1])
        int(retry_after.rstrip("s"))
    except (ValueError, AttributeError, IndexError):
        retry_after = "60"

    return JSONResponse(
        status_code=429,
        content={
            "error": {
                "code": "RATE_LIMITED",
                "message": f"Rate limit exceeded: {exc.detail}",
            }
        },
        headers={"Retry-After": retry_after},
    )
