import hmac
import math
import time
from typing import Optional
from fastapi import Header, HTTPException, Request
from ..core.rate_limit import RATE_LIMITS
from ..errors import UnauthorizedError
from ..services import AgentGServices


def get_services(request: Request) -> AgentGServices:
    return request.app.state.services


def _client_key(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for", "").split(",")[0].strip()
    return (
        forwarded
        or request.headers.get("x-real-ip")
        or request.headers.get("cf-connecting-ip")
        or (request.client.host if request.client else "unknown")
    )


def rate_limited(action: str, rule_name: str = "read"):
    """Dependency factory: one fixed window per client and action."""
    rule = RATE_LIMITS[rule_name]

    async def dependency(request: Request):
        limiter = get_services(request).rate_limiter
        key = f"{_client_key(request)}:{action}"
        if not limiter.check(key, rule):
            reset_at = limiter.reset_at(key)
            retry_after = max(1, math.ceil(reset_at - time.time()))
            raise HTTPException(
                status_code=429,
                detail={"error": "Too many requests", "code": "RATE_LIMIT_EXCEEDED", "retryAfter": retry_after},
                headers={
                    "Retry-After": str(retry_after),
                    "X-RateLimit-Limit": str(rule.max_requests),
                    "X-RateLimit-Remaining": "0",
                    "X-RateLimit-Reset": str(math.ceil(reset_at)),
                },
            )

    return dependency


def _caller(request: Request, authorization: Optional[str], user_id: Optional[str]) -> Optional[str]:
    secret = get_services(request).config.internal_secret
    if not secret or not authorization or not authorization.startswith("Bearer "):
        return None
    if not hmac.compare_digest(authorization[len("Bearer "):].strip(), secret):
        return None
    return (user_id or "").strip() or None


async def optional_caller(
    request: Request,
    authorization: Optional[str] = Header(default=None),
    x_user_id: Optional[str] = Header(default=None),
) -> Optional[str]:
    return _caller(request, authorization, x_user_id)


async def require_caller(
    request: Request,
    authorization: Optional[str] = Header(default=None),
    x_user_id: Optional[str] = Header(default=None),
) -> str:
    user_id = _caller(request, authorization, x_user_id)
    if not user_id:
        raise UnauthorizedError("Login required")
    return user_id
