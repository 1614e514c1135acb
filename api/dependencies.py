"""Request dependencies: service container, owner auth, rate limits, internal token."""
import hashlib
import hmac
import math
from typing import Optional
from fastapi import Depends, Header, HTTPException, Request, status
from shared.config import config
from shared.models import RateLimitDecision, Severity, ViolationType
from api.services.container import VaultServices, build_services
import logging

logger = logging.getLogger(__name__)

INTERNAL_TOKEN_HASH = hashlib.sha256(config.INTERNAL_SERVICE_TOKEN.encode()).hexdigest()


def get_services(request: Request) -> VaultServices:
    """Service container attached to the app, built on first use."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        services = build_services()
        request.app.state.services = services
    return services


def get_current_owner(
    request: Request,
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
    services: VaultServices = Depends(get_services)
) -> dict:
    """Get current owner from API key."""
    if not x_api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="API key required"
        )

    owner = services.auth.authenticate(x_api_key)
    if not owner:
        services.recorder.record(
            ViolationType.UNAUTHORIZED_ACCESS,
            Severity.LOW,
            None,
            {"reason": "invalid_api_key", "path": request.url.path}
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key"
        )

    return owner


def raise_rate_limited(decision: RateLimitDecision, action: str, now: int):
    """Raise a 429 carrying the window reset time."""
    retry_after = max(0, math.ceil((decision.reset_at - now) / 1000)) if decision.reset_at else 60
    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail={"message": f"Rate limit exceeded for {action}", "reset_at": decision.reset_at},
        headers={"Retry-After": str(retry_after)}
    )


def rate_limited(action: str):
    """Dependency factory: authenticate the owner and count one `action` call."""

    def dependency(
        owner: dict = Depends(get_current_owner),
        services: VaultServices = Depends(get_services)
    ) -> dict:
        decision = services.rate_limiter.check(owner["owner_id"], action)
        if not decision.allowed:
            raise_rate_limited(decision, action, services.rate_limiter.clock())
        return owner

    return dependency


def verify_internal_token(
    x_internal_token: Optional[str] = Header(None, alias="X-Internal-Token"),
    services: VaultServices = Depends(get_services)
) -> bool:
    """Verify internal service token.

    Args:
        x_internal_token: Internal service token from header

    Returns:
        True if valid, raises HTTPException if invalid
    """
    if not x_internal_token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Internal service token required"
        )

    token_hash = hashlib.sha256(x_internal_token.encode()).hexdigest()
    if not hmac.compare_digest(token_hash, INTERNAL_TOKEN_HASH):
        services.recorder.record(
            ViolationType.UNAUTHORIZED_ACCESS,
            Severity.MEDIUM,
            None,
            {"reason": "invalid_internal_token"}
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid internal service token"
        )

    return True
