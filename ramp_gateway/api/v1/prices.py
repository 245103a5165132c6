"""Price endpoints - NGN quotes and the admin overrides that shadow them"""

from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ramp_gateway.api.v1.schemas import (
    PriceOverrideListResponse,
    PriceOverrideRequest,
    PriceOverrideResetResponse,
    PriceOverrideSchema,
    PriceResponse,
)
from ramp_gateway.api.dependencies import get_authorizer, get_caller, get_pricing
from ramp_gateway.infrastructure.database.session import get_db
from ramp_gateway.infrastructure.database.repositories import AuditRepository, PriceOverrideRepository
from ramp_gateway.domain.authorization import Action, Authorizer, require
from ramp_gateway.domain.models import TransactionDirection
from ramp_gateway.domain.pricing import PricingService, reset_price_overrides, set_price_override
from ramp_gateway.domain.tokens import parse_token

router = APIRouter()


# Overrides are registered before /prices/{token} so the literal path wins


@router.get("/prices/overrides", response_model=PriceOverrideListResponse)
def list_overrides(
    db: Session = Depends(get_db),
    caller: Optional[str] = Depends(get_caller),
    authorizer: Authorizer = Depends(get_authorizer),
):
    require(authorizer, caller, Action.VIEW_ADMIN)
    overrides = PriceOverrideRepository(db).list()
    return PriceOverrideListResponse(overrides=[PriceOverrideSchema.from_domain(o) for o in overrides])


@router.put("/prices/overrides", response_model=PriceOverrideSchema)
def put_override(
    request_body: PriceOverrideRequest,
    db: Session = Depends(get_db),
    caller: Optional[str] = Depends(get_caller),
    authorizer: Authorizer = Depends(get_authorizer),
):
    """
    Enable or disable the override for one token and direction (admin only).

    Enabling needs a positive `price`; disabling hands quotes back to the feed.
    """
    require(authorizer, caller, Action.OVERRIDE_PRICES)
    override = set_price_override(
        PriceOverrideRepository(db),
        db,
        AuditRepository(db),
        authorizer,
        parse_token(request_body.token),
        request_body.direction,
        request_body.enabled,
        request_body.price,
        caller=caller,
        reason=request_body.reason,
    )
    return PriceOverrideSchema.from_domain(override)


@router.delete("/prices/overrides", response_model=PriceOverrideResetResponse)
def delete_overrides(
    db: Session = Depends(get_db),
    caller: Optional[str] = Depends(get_caller),
    authorizer: Authorizer = Depends(get_authorizer),
):
    removed = reset_price_overrides(PriceOverrideRepository(db), db, AuditRepository(db), authorizer, caller)
    return PriceOverrideResetResponse(removed=removed)


@router.get("/prices/{token}", response_model=PriceResponse)
async def get_price(
    token: str,
    direction: Optional[TransactionDirection] = Query(None),
    pricing: PricingService = Depends(get_pricing),
):
    """
    Live quote when a feed answers, static fallback tagged degraded otherwise.

    With `direction`, an enabled admin override for that side is returned instead.
    """
    quote = await pricing.get_price(parse_token(token), direction)
    return PriceResponse(
        token=quote.token.value,
        price=quote.price,
        change_24h=quote.change_24h,
        source=quote.source,
        degraded=quote.degraded,
    )
