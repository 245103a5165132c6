"""Capability checks for admin and system actions"""

from enum import Enum
from typing import Iterable, Protocol
from ramp_gateway.domain.exceptions import AuthorizationError


class Action(str, Enum):
    CONFIRM_PAYMENT = "confirm_payment"
    CONFIRM_DEPOSIT = "confirm_deposit"
    COMPLETE_OFF_RAMP = "complete_off_ramp"
    FAIL_TRANSACTION = "fail_transaction"
    UPDATE_LIMITS = "update_limits"
    OVERRIDE_PRICES = "override_prices"
    ACKNOWLEDGE_ALERT = "acknowledge_alert"
    RUN_MONITOR = "run_monitor"
    VIEW_ADMIN = "view_admin"


# Non-human principals may only drive automated flows
SYSTEM_ACTIONS = frozenset(
    {
        Action.CONFIRM_PAYMENT,
        Action.CONFIRM_DEPOSIT,
        Action.COMPLETE_OFF_RAMP,
        Action.FAIL_TRANSACTION,
        Action.RUN_MONITOR,
    }
)


class Authorizer(Protocol):
    def is_authorized(self, caller: str | None, action: Action) -> bool: ...


class AllowListAuthorizer:
    """Admins by wallet address; system principals for automated actions"""

    def __init__(self, admin_addresses: Iterable[str], system_callers: Iterable[str] = ()):
        self.admins = {address.lower() for address in admin_addresses}
        self.system_callers = set(system_callers)

    def is_authorized(self, caller: str | None, action: Action) -> bool:
        if not caller:
            return False
        if caller.lower() in self.admins:
            return True
        return caller in self.system_callers and action in SYSTEM_ACTIONS


def require(authorizer: Authorizer, caller: str | None, action: Action) -> None:
    """Raise before any side effect when caller lacks the capability"""
    if not authorizer.is_authorized(caller, action):
        raise AuthorizationError(f"Caller is not allowed to {action.value}")
