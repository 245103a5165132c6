"""Network fee estimation - configured constants, no chain simulation"""

from decimal import Decimal
from typing import Dict
from ramp_gateway.domain.models import TransactionKind

# Base fee per kind, in SUI:
# - OFF_RAMP: user transfer to treasury + status update + events
# - ON_RAMP_CREDIT / REFUND: single treasury transfer
BASE_GAS_FEES: Dict[TransactionKind, Decimal] = {
    TransactionKind.OFF_RAMP: Decimal("0.01"),
    TransactionKind.ON_RAMP_CREDIT: Decimal("0.005"),
    TransactionKind.REFUND: Decimal("0.005"),
}

GAS_SAFETY_BUFFER = Decimal("0.005")


def estimate_fee(kind: TransactionKind) -> Decimal:
    """
    Estimate the SUI needed to pay gas for a transaction kind.

    Pure function of `kind`: base fee plus a fixed safety buffer.
    OFF_RAMP -> 0.015 SUI.
    """
    return BASE_GAS_FEES[TransactionKind(kind)] + GAS_SAFETY_BUFFER
