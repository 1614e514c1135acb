"""Internal security administration routes."""
from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from shared.models import PolicyUpdate, SecurityMetrics, Violation, ViolationType
from api.dependencies import get_services, verify_internal_token
from api.services.container import VaultServices
from api.services.security import collect_security_metrics
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/security", tags=["security"])


class ViolationListResponse(BaseModel):
    """Response for violation listing."""
    violations: List[Violation]
    total: int


@router.get("/violations", response_model=ViolationListResponse)
def list_violations(
    actor_id: Optional[str] = Query(None),
    violation_type: Optional[ViolationType] = Query(None, alias="type"),
    hours_back: float = Query(24, gt=0, le=24 * 7),
    _: bool = Depends(verify_internal_token),
    services: VaultServices = Depends(get_services)
):
    """
    List recent violations, newest last.

    Headers:
        X-Internal-Token: Internal service authentication token
    """
    violations = services.recorder.get_violations(
        actor_id=actor_id,
        violation_type=violation_type,
        hours_back=hours_back
    )
    return ViolationListResponse(violations=violations, total=len(violations))


@router.get("/metrics", response_model=SecurityMetrics)
def security_metrics(
    hours_back: float = Query(24, gt=0, le=24 * 7),
    _: bool = Depends(verify_internal_token),
    services: VaultServices = Depends(get_services)
):
    """Violation counts plus current lockout and suspicious-IP totals."""
    return collect_security_metrics(services.recorder, services.login_guard, hours_back=hours_back)


@router.get("/policy", response_model=Dict[str, Any])
def get_policy(
    _: bool = Depends(verify_internal_token),
    services: VaultServices = Depends(get_services)
):
    """Current policy snapshot."""
    return services.policy.current.model_dump(mode="json")


@router.put("/policy", response_model=Dict[str, Any])
def update_policy(
    update: PolicyUpdate,
    _: bool = Depends(verify_internal_token),
    services: VaultServices = Depends(get_services)
):
    """Replace policy fields; requests already in flight keep the old snapshot."""
    policy = services.policy.update(**update.model_dump(exclude_unset=True))
    return policy.model_dump(mode="json")
