"""Transaction limit rules - per direction and token min/max windows"""

import logging
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional
from ramp_gateway.domain.authorization import Action, Authorizer, require
from ramp_gateway.domain.models import (
    AmountBounds,
    DirectionLimits,
    LimitValidationResult,
    TokenSymbol,
    TransactionDirection,
    TransactionLimits,
)
from ramp_gateway.domain.ports import AuditTrail, LimitsStore, UnitOfWork
from ramp_gateway.domain.tokens import parse_token
from ramp_gateway.domain.exceptions import ConcurrentModificationError, ValidationError, StateConflictError
from ramp_gateway.utils.date_utils import utc_now

logger = logging.getLogger(__name__)

# Share of the maximum above which the UI nudges the user
NEAR_LIMIT_RATIO = Decimal("0.8")


def _default_direction() -> DirectionLimits:
    return DirectionLimits(
        fiat=AmountBounds(Decimal("1000"), Decimal("1000000")),
        tokens={
            TokenSymbol.SUI: AmountBounds(Decimal("0.1"), Decimal("1000")),
            TokenSymbol.USDC: AmountBounds(Decimal("1"), Decimal("10000")),
            TokenSymbol.USDT: AmountBounds(Decimal("1"), Decimal("10000")),
        },
    )


DEFAULT_TRANSACTION_LIMITS = TransactionLimits(
    on_ramp=_default_direction(),
    off_ramp=_default_direction(),
    is_active=True,
    version=1,
    updated_by="system",
)


def _plain(value: Decimal) -> str:
    """Render 1000 as '1000' and 0.10 as '0.1' (never scientific notation)"""
    text = format(value, "f")
    return text.rstrip("0").rstrip(".") if "." in text else text


def _naira(value: Decimal) -> str:
    return f"₦{value.normalize():,f}" if value != value.to_integral_value() else f"₦{int(value):,}"


def validate_transaction(
    limits: TransactionLimits,
    direction: TransactionDirection,
    token: str | TokenSymbol,
    amount: Decimal,
    fiat_amount: Optional[Decimal] = None,
) -> LimitValidationResult:
    """
    Check a proposed transfer against the active limits.

    Rules:
    - Disabled limits always pass, with a warning
    - amount must be > 0 and within the token window for the direction
    - fiat_amount, when given, must independently sit in the NGN window
    - Amounts above 80% of the applicable maximum add a warning only
    """
    errors: List[str] = []
    warnings: List[str] = []

    if not limits.is_active:
        warnings.append("Transaction limits are currently disabled")
        return LimitValidationResult(is_valid=True, errors=errors, warnings=warnings)

    window = limits.for_direction(direction)

    try:
        symbol = parse_token(token)
    except ValidationError as e:
        errors.append(e.message)
        symbol = None

    if amount <= 0:
        errors.append("Amount must be greater than zero")
    elif symbol is not None:
        bounds = window.tokens.get(symbol)
        if bounds is None:
            errors.append(f"No limits configured for {symbol.value}")
        elif amount < bounds.min:
            errors.append(f"Minimum {symbol.value} amount is {_plain(bounds.min)}")
        elif amount > bounds.max:
            errors.append(f"Maximum {symbol.value} amount is {_plain(bounds.max)}")
        elif amount > bounds.max * NEAR_LIMIT_RATIO:
            warnings.append("Transaction amount is close to the maximum limit")

    if fiat_amount is not None:
        if fiat_amount <= 0:
            errors.append("Naira amount must be greater than zero")
        elif fiat_amount < window.fiat.min:
            errors.append(f"Minimum Naira amount is {_naira(window.fiat.min)}")
        elif fiat_amount > window.fiat.max:
            errors.append(f"Maximum Naira amount is {_naira(window.fiat.max)}")
        elif fiat_amount > window.fiat.max * NEAR_LIMIT_RATIO:
            warnings.append("Naira amount is close to the maximum limit")

    return LimitValidationResult(is_valid=not errors, errors=errors, warnings=warnings)


def validate_limits_config(limits: TransactionLimits) -> List[str]:
    """Return every broken invariant (min >= 0, max > min) in a limits proposal"""
    errors: List[str] = []
    for label, window in (("On-ramp", limits.on_ramp), ("Off-ramp", limits.off_ramp)):
        pairs = [("Naira", window.fiat)] + [
            (token.value, window.tokens.get(token)) for token in TokenSymbol
        ]
        for name, bounds in pairs:
            if bounds is None:
                errors.append(f"{label} limits for {name} are required")
                continue
            if bounds.min < 0:
                errors.append(f"{label} minimum {name} amount must not be negative")
            if bounds.max <= bounds.min:
                errors.append(f"{label} maximum {name} amount must be greater than minimum")
    return errors


def apply_limits_update(
    current: TransactionLimits,
    proposed: TransactionLimits,
    updated_by: str,
    expected_version: int,
    now: datetime,
) -> TransactionLimits:
    """
    Produce the next limits version from an admin proposal.

    Raises:
        StateConflictError: proposal was edited from a stale version
        ValidationError: proposal breaks a min/max invariant
    """
    if expected_version != current.version:
        raise StateConflictError(
            f"Limits changed since version {expected_version} (current {current.version})"
        )

    errors = validate_limits_config(proposed)
    if errors:
        raise ValidationError("; ".join(errors), code="invalid_limits")

    return replace(
        proposed,
        version=current.version + 1,
        updated_by=updated_by,
        last_updated=now,
    )


def update_limits(
    store: LimitsStore,
    uow: UnitOfWork,
    audit: AuditTrail,
    authorizer: Authorizer,
    proposed: TransactionLimits,
    caller: str,
    expected_version: int,
    clock: Callable[[], datetime] = utc_now,
) -> TransactionLimits:
    """Authorize, version and persist an admin limits change"""
    require(authorizer, caller, Action.UPDATE_LIMITS)
    current = store.get_current()
    updated = apply_limits_update(current, proposed, caller, expected_version, clock())
    try:
        saved = store.save(updated)
    except ConcurrentModificationError:
        uow.rollback()
        raise
    audit.record(caller, "limits_updated", {"from_version": current.version, "to_version": saved.version})
    uow.commit()
    logger.info("Transaction limits updated", extra={"version": saved.version, "updated_by": caller})
    return saved
