"""Login route guarded by brute-force lockout."""
from fastapi import APIRouter, Depends, HTTPException, Request, status
from shared.models import LoginRequest, LoginResponse
from api.dependencies import get_services, raise_rate_limited
from api.services.container import VaultServices
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=LoginResponse)
def login(
    body: LoginRequest,
    request: Request,
    services: VaultServices = Depends(get_services)
):
    """Check credentials; repeated failures lock the identifier out."""
    identifier = body.identifier.strip().lower()
    client_ip = request.client.host if request.client else None

    decision = services.rate_limiter.check(identifier, "login")
    if not decision.allowed:
        raise_rate_limited(decision, "login", services.rate_limiter.clock())

    # credentials are not checked while locked out
    owner = None
    if not services.login_guard.is_locked(identifier):
        owner = services.auth.verify_credentials(identifier, body.password)
    outcome = services.login_guard.record_attempt(identifier, owner is not None, ip=client_ip)

    if not outcome.allowed:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={"message": "Too many failed login attempts", "lockout_until": outcome.lockout_until}
        )
    if owner is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials"
        )

    logger.info(f"Login succeeded for owner {owner['owner_id']}")
    return LoginResponse(owner_id=owner["owner_id"], name=owner.get("name") or "")
