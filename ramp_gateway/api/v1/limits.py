"""Transaction limits endpoints - read, replace and validate against limits"""

from typing import Optional
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ramp_gateway.api.v1.schemas import (
    LimitValidationRequest,
    LimitValidationResponse,
    LimitsResponse,
    LimitsUpdateRequest,
)
from ramp_gateway.api.dependencies import get_authorizer, get_caller
from ramp_gateway.infrastructure.database.session import get_db
from ramp_gateway.infrastructure.database.repositories import AuditRepository, LimitsRepository
from ramp_gateway.domain.authorization import Action, Authorizer, require
from ramp_gateway.domain.limits import update_limits, validate_transaction
from ramp_gateway.domain.models import TransactionLimits
from ramp_gateway.domain.exceptions import ValidationError

router = APIRouter()


@router.get("/limits", response_model=LimitsResponse)
def get_limits(db: Session = Depends(get_db)):
    """Active limits; built-in defaults until an admin saves the first version"""
    return LimitsResponse.from_domain(LimitsRepository(db).get_current())


@router.put("/limits", response_model=LimitsResponse)
def replace_limits(
    request_body: LimitsUpdateRequest,
    db: Session = Depends(get_db),
    caller: Optional[str] = Depends(get_caller),
    authorizer: Authorizer = Depends(get_authorizer),
):
    """
    Replace the limits (admin only).

    `expected_version` must match the current version; the server assigns the
    next one. A stale version answers 409, broken min/max pairs answer 422.
    """
    require(authorizer, caller, Action.UPDATE_LIMITS)
    try:
        proposed = TransactionLimits(
            on_ramp=request_body.on_ramp.to_domain(),
            off_ramp=request_body.off_ramp.to_domain(),
            is_active=request_body.is_active,
        )
    except ValueError as e:
        raise ValidationError(f"Unsupported token in limits: {e}", code="invalid_limits") from e

    saved = update_limits(
        LimitsRepository(db),
        db,
        AuditRepository(db),
        authorizer,
        proposed,
        caller=caller,
        expected_version=request_body.expected_version,
    )
    return LimitsResponse.from_domain(saved)


@router.post("/limits/validate", response_model=LimitValidationResponse)
def validate_against_limits(request_body: LimitValidationRequest, db: Session = Depends(get_db)):
    result = validate_transaction(
        LimitsRepository(db).get_current(),
        request_body.direction,
        request_body.token,
        request_body.amount,
        request_body.fiat_amount,
    )
    return LimitValidationResponse(is_valid=result.is_valid, errors=result.errors, warnings=result.warnings)
