"""Direction-aware pricing - admin overrides first, then the live feed chain"""

import logging
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Optional

from ramp_gateway.domain.authorization import Action, Authorizer, require
from ramp_gateway.domain.models import PriceOverride, PriceQuote, TokenSymbol, TransactionDirection
from ramp_gateway.domain.ports import AuditTrail, PriceFeed, PriceOverrideStore, UnitOfWork
from ramp_gateway.domain.exceptions import ConcurrentModificationError, ValidationError
from ramp_gateway.utils.date_utils import utc_now

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def override_source(direction: TransactionDirection) -> str:
    return f"{direction.value.lower()}_override"


class PricingService:
    """Quotes a token for one swap direction"""

    def __init__(self, feed: PriceFeed, overrides: PriceOverrideStore):
        self.feed = feed
        self.overrides = overrides

    async def get_price(
        self, token: TokenSymbol, direction: Optional[TransactionDirection] = None
    ) -> PriceQuote:
        """
        An enabled override for (token, direction) wins and is tagged
        `on_ramp_override` or `off_ramp_override`. Without a direction, or
        without an active override, the feed chain answers.
        """
        if direction is not None:
            override = self.overrides.get(token, direction)
            if override is not None and override.is_active:
                logger.info(
                    "Using price override",
                    extra={"token": token.value, "direction": direction.value, "price": str(override.price)},
                )
                return PriceQuote(
                    token=token,
                    price=override.price.quantize(CENT, rounding=ROUND_HALF_UP),
                    change_24h=0.0,
                    source=override_source(direction),
                )
        return await self.feed.get_price(token)


def set_price_override(
    store: PriceOverrideStore,
    uow: UnitOfWork,
    audit: AuditTrail,
    authorizer: Authorizer,
    token: TokenSymbol,
    direction: TransactionDirection,
    enabled: bool,
    price: Optional[Decimal],
    caller: str,
    reason: str = "",
    clock: Callable[[], datetime] = utc_now,
) -> PriceOverride:
    """
    Enable or disable the override for one token and direction.

    Raises:
        AuthorizationError: caller is not an admin
        ValidationError: enabling without a positive price
    """
    require(authorizer, caller, Action.OVERRIDE_PRICES)
    if enabled and (price is None or price <= 0):
        raise ValidationError("A positive price is required to enable an override", code="invalid_price")

    proposed = PriceOverride(
        token=token,
        direction=direction,
        enabled=enabled,
        price=price if enabled else None,
        updated_by=caller,
        updated_at=clock(),
        reason=reason,
    )
    try:
        override = store.save(proposed)
    except ConcurrentModificationError:
        uow.rollback()
        raise
    audit.record(
        caller,
        "price_override_enabled" if enabled else "price_override_disabled",
        {
            "token": token.value,
            "direction": direction.value,
            "price": str(price) if enabled else None,
            "reason": reason or "No reason provided",
        },
    )
    uow.commit()
    logger.info(
        "Price override updated",
        extra={"token": token.value, "direction": direction.value, "enabled": enabled, "updated_by": caller},
    )
    return override


def reset_price_overrides(
    store: PriceOverrideStore,
    uow: UnitOfWork,
    audit: AuditTrail,
    authorizer: Authorizer,
    caller: str,
) -> int:
    """Drop every override so all quotes come from the feed again"""
    require(authorizer, caller, Action.OVERRIDE_PRICES)
    removed = store.clear()
    audit.record(caller, "price_overrides_reset", {"removed": removed})
    uow.commit()
    logger.info("Price overrides reset", extra={"removed": removed, "updated_by": caller})
    return removed
