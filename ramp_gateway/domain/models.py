"""Domain models - tagged records for swaps, limits, balances and treasury alerts"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional


class TokenSymbol(str, Enum):
    SUI = "SUI"
    USDC = "USDC"
    USDT = "USDT"


class TransactionDirection(str, Enum):
    ON_RAMP = "ON_RAMP"  # NGN -> token
    OFF_RAMP = "OFF_RAMP"  # token -> NGN


class TransactionStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (TransactionStatus.COMPLETED, TransactionStatus.FAILED)


class TransactionKind(str, Enum):
    """What the network fee is being estimated for"""

    OFF_RAMP = "OFF_RAMP"
    ON_RAMP_CREDIT = "ON_RAMP_CREDIT"
    REFUND = "REFUND"


class BalanceState(str, Enum):
    KNOWN_ZERO = "known_zero"
    KNOWN_NONZERO = "known_nonzero"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class TokenBalance:
    """
    Balance of one token for one wallet.

    An unavailable lookup reports amount 0 but available=False, so callers can
    tell an RPC outage apart from an empty wallet.
    """

    token: TokenSymbol
    amount: Decimal
    available: bool = True
    error: Optional[str] = None

    @property
    def state(self) -> BalanceState:
        if not self.available:
            return BalanceState.UNKNOWN
        return BalanceState.KNOWN_ZERO if self.amount == 0 else BalanceState.KNOWN_NONZERO


@dataclass(frozen=True)
class WalletBalances:
    """Ephemeral per-wallet snapshot, recomputed on every validation"""

    address: str
    balances: Dict[TokenSymbol, TokenBalance]

    def amount(self, token: TokenSymbol) -> Decimal:
        balance = self.balances.get(token)
        return balance.amount if balance else Decimal("0")

    def is_available(self, token: TokenSymbol) -> bool:
        balance = self.balances.get(token)
        return balance is not None and balance.available

    def unavailable_tokens(self) -> List[TokenSymbol]:
        return [token for token, balance in self.balances.items() if not balance.available]

    def as_dict(self) -> Dict[str, Decimal]:
        return {token.value.lower(): balance.amount for token, balance in self.balances.items()}


@dataclass(frozen=True)
class AmountBounds:
    """Inclusive [min, max] window for one token or for the fiat leg"""

    min: Decimal
    max: Decimal


@dataclass(frozen=True)
class DirectionLimits:
    fiat: AmountBounds
    tokens: Dict[TokenSymbol, AmountBounds]


@dataclass(frozen=True)
class TransactionLimits:
    """Versioned limits configuration, changed only by admins"""

    on_ramp: DirectionLimits
    off_ramp: DirectionLimits
    is_active: bool = True
    version: int = 1
    updated_by: str = "system"
    last_updated: Optional[datetime] = None

    def for_direction(self, direction: TransactionDirection) -> DirectionLimits:
        return self.on_ramp if direction == TransactionDirection.ON_RAMP else self.off_ramp


@dataclass
class LimitValidationResult:
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


class ValidationFailure(str, Enum):
    UNSUPPORTED_TOKEN = "unsupported_token"
    BALANCE_UNAVAILABLE = "balance_unavailable"
    COMBINED_SHORTFALL = "combined"
    TOKEN_SHORTFALL = "token"
    GAS_SHORTFALL = "gas"


@dataclass(frozen=True)
class RequiredAmounts:
    swap_token: Decimal
    gas_fee: Decimal


@dataclass(frozen=True)
class WalletValidationResult:
    """Output of the off-ramp wallet check"""

    can_proceed: bool
    balances: WalletBalances
    required: RequiredAmounts
    error_message: Optional[str] = None
    failure: Optional[ValidationFailure] = None


@dataclass(frozen=True)
class BankDetails:
    """NGN payout destination for off-ramp"""

    account_number: str
    bank_code: str
    bank_name: str = ""
    account_name: str = ""
    recipient_code: Optional[str] = None  # Paystack recipient, set once created


@dataclass
class Transaction:
    """One on-ramp or off-ramp attempt"""

    id: str
    direction: TransactionDirection
    status: TransactionStatus
    token: TokenSymbol
    token_amount: Decimal
    fiat_amount: Decimal
    exchange_rate: Decimal  # NGN per token at creation
    user_address: str
    created_at: datetime
    updated_at: datetime
    bank_details: Optional[BankDetails] = None
    payment_reference: Optional[str] = None
    price_source: Optional[str] = None
    confirmation_reference: Optional[str] = None  # payment ref (on-ramp) or deposit digest (off-ramp)
    payout_reference: Optional[str] = None
    credit_tx_hash: Optional[str] = None
    failure_reason: Optional[str] = None
    version: int = 1
    confirmed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None


class AlertType(str, Enum):
    LOW_BALANCE = "LOW_BALANCE"
    HIGH_BALANCE = "HIGH_BALANCE"
    FAILED_TRANSACTION_RATE = "FAILED_TRANSACTION_RATE"
    SYSTEM_ERROR = "SYSTEM_ERROR"


class AlertSeverity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


@dataclass(frozen=True)
class TreasuryAlert:
    """Detected threshold breach; only the acknowledge action mutates it"""

    id: str
    type: AlertType
    severity: AlertSeverity
    message: str
    created_at: datetime
    currency: Optional[str] = None
    amount: Optional[Decimal] = None
    threshold: Optional[Decimal] = None
    acknowledged: bool = False
    acknowledged_by: Optional[str] = None
    acknowledged_at: Optional[datetime] = None


@dataclass(frozen=True)
class TreasuryThresholds:
    critical: Decimal
    low: Decimal
    high: Decimal


@dataclass(frozen=True)
class RefundRequest:
    """Value received from a user on a transaction that ended FAILED"""

    id: str
    transaction_id: str
    direction: TransactionDirection
    token: TokenSymbol
    token_amount: Decimal
    fiat_amount: Decimal
    user_address: str
    reason: str
    created_at: datetime
    status: str = "PENDING"


@dataclass(frozen=True)
class PriceOverride:
    """Admin-set NGN price for one token and direction; disabled rows fall back to the feed"""

    token: TokenSymbol
    direction: TransactionDirection
    enabled: bool
    price: Optional[Decimal]
    updated_by: str
    updated_at: datetime
    reason: str = ""

    @property
    def is_active(self) -> bool:
        return self.enabled and self.price is not None and self.price > 0


@dataclass(frozen=True)
class PriceQuote:
    token: TokenSymbol
    price: Decimal  # NGN per token
    change_24h: float
    source: str  # coinmarketcap | coingecko | fallback | on_ramp_override | off_ramp_override
    degraded: bool = False


class PayoutStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    REVERSED = "reversed"


@dataclass(frozen=True)
class PayoutTransfer:
    reference: str
    status: PayoutStatus
    transfer_code: Optional[str] = None
