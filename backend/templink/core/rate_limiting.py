"""Rate limiting configuration using slowapi.

Security: Prevents mailbox flooding by limiting how often a client can ask
for activation or password reset emails. Requests are keyed on the client IP.

Usage in routers:
    from templink.core.rate_limiting import limiter

    @router.post("/password-reset")
    @limiter.limit(lambda: settings.rate_limit_link_requests)
    async def request_password_reset(request: Request, ...):
        ...
"""

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from templink.core.config import settings

# Global limiter instance
# Configured with in-memory storage (suitable for single-instance deployment)
# For multi-instance, configure Redis storage via RATELIMIT_STORAGE_URI
limiter = Limiter(
    key_func=get_remote_address,
    enabled=settings.rate_limit_enabled,
)


def rate_limit_exceeded_handler(
    _request: Request,
    exc: RateLimitExceeded,
) -> Response:
    """Handle rate limit exceeded errors.

    Returns 429 Too Many Requests with standard error envelope.

    Args:
        request: The incoming request.
        exc: The rate limit exception.

    Returns:
        JSONResponse with 429 status and retry-after header.
    """
    # Parse retry-after from exception detail (e.g., "5 per 1 hour")
    # Fallback to 60 seconds if parsing fails
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
