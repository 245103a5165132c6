"""Pydantic schemas for API request/response validation"""

from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, Field
from typing import Dict, List, Optional

from ramp_gateway.domain.models import (
    AmountBounds,
    DirectionLimits,
    PriceOverride,
    RefundRequest,
    TokenBalance,
    TokenSymbol,
    Transaction,
    TransactionDirection,
    TransactionLimits,
    TreasuryAlert,
)


class ErrorResponse(BaseModel):
    """Body of every domain error response"""

    code: str
    detail: str


# Wallet


class WalletValidationRequest(BaseModel):
    """Request body for POST /v1/wallet/validate"""

    address: str = Field(..., min_length=1, description="Sui wallet address")
    token: str = Field(..., min_length=1, description="Token symbol (SUI, USDC, USDT)")
    amount: Decimal = Field(..., gt=0, description="Token amount to off-ramp")


class RequiredAmountsSchema(BaseModel):
    swap_token: Decimal
    gas_fee: Decimal


class WalletValidationResponse(BaseModel):
    """Response for POST /v1/wallet/validate"""

    can_proceed: bool
    balances: Dict[str, Decimal]
    unavailable_tokens: List[str] = []
    required: RequiredAmountsSchema
    error_message: Optional[str] = None
    failure: Optional[str] = None


class TokenBalanceSchema(BaseModel):
    token: str
    amount: Decimal
    available: bool
    state: str
    error: Optional[str] = None

    @classmethod
    def from_domain(cls, balance: TokenBalance) -> "TokenBalanceSchema":
        return cls(
            token=balance.token.value,
            amount=balance.amount,
            available=balance.available,
            state=balance.state.value,
            error=balance.error,
        )


class WalletBalancesResponse(BaseModel):
    """Response for GET /v1/wallet/{address}/balances"""

    address: str
    balances: List[TokenBalanceSchema]


class GasCheckResponse(BaseModel):
    """Response for GET /v1/wallet/{address}/gas"""

    address: str
    has_sufficient: bool
    sui_balance: Decimal
    estimated_gas_fee: Decimal
    balance_known: bool


# Prices


class PriceResponse(BaseModel):
    """Response for GET /v1/prices/{token}"""

    token: str
    price: Decimal
    currency: str = "NGN"
    change_24h: float
    source: str
    degraded: bool


class PriceOverrideRequest(BaseModel):
    """Request body for PUT /v1/prices/overrides"""

    token: str
    direction: TransactionDirection
    enabled: bool
    price: Optional[Decimal] = Field(None, description="NGN per token; required when enabling")
    reason: str = ""


class PriceOverrideSchema(BaseModel):
    token: str
    direction: TransactionDirection
    enabled: bool
    price: Optional[Decimal] = None
    reason: str
    updated_by: str
    updated_at: datetime

    @classmethod
    def from_domain(cls, override: PriceOverride) -> "PriceOverrideSchema":
        return cls(
            token=override.token.value,
            direction=override.direction,
            enabled=override.enabled,
            price=override.price,
            reason=override.reason,
            updated_by=override.updated_by,
            updated_at=override.updated_at,
        )


class PriceOverrideListResponse(BaseModel):
    overrides: List[PriceOverrideSchema]


class PriceOverrideResetResponse(BaseModel):
    removed: int


# Transactions


class BankDetailsSchema(BaseModel):
    account_number: str = Field(..., description="10-digit NUBAN account number")
    bank_code: str
    bank_name: str = ""
    account_name: str = ""


class CreateTransactionRequest(BaseModel):
    """Request body for POST /v1/transactions"""

    direction: TransactionDirection
    token: str = Field(..., min_length=1)
    token_amount: Decimal = Field(..., gt=0)
    user_address: str = Field(..., min_length=1)
    exchange_rate: Optional[Decimal] = Field(None, gt=0, description="NGN per token; quoted when omitted")
    fiat_amount: Optional[Decimal] = Field(None, gt=0)
    bank_details: Optional[BankDetailsSchema] = None
    payment_reference: Optional[str] = None


class TransactionResponse(BaseModel):
    id: str
    direction: str
    status: str
    token: str
    token_amount: Decimal
    fiat_amount: Decimal
    exchange_rate: Decimal
    user_address: str
    bank_details: Optional[BankDetailsSchema] = None
    payment_reference: Optional[str] = None
    price_source: Optional[str] = None
    confirmation_reference: Optional[str] = None
    payout_reference: Optional[str] = None
    credit_tx_hash: Optional[str] = None
    failure_reason: Optional[str] = None
    version: int
    created_at: datetime
    updated_at: datetime
    confirmed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, txn: Transaction) -> "TransactionResponse":
        bank = txn.bank_details
        return cls(
            id=txn.id,
            direction=txn.direction.value,
            status=txn.status.value,
            token=txn.token.value,
            token_amount=txn.token_amount,
            fiat_amount=txn.fiat_amount,
            exchange_rate=txn.exchange_rate,
            user_address=txn.user_address,
            bank_details=BankDetailsSchema(
                account_number=bank.account_number,
                bank_code=bank.bank_code,
                bank_name=bank.bank_name,
                account_name=bank.account_name,
            )
            if bank
            else None,
            payment_reference=txn.payment_reference,
            price_source=txn.price_source,
            confirmation_reference=txn.confirmation_reference,
            payout_reference=txn.payout_reference,
            credit_tx_hash=txn.credit_tx_hash,
            failure_reason=txn.failure_reason,
            version=txn.version,
            created_at=txn.created_at,
            updated_at=txn.updated_at,
            confirmed_at=txn.confirmed_at,
            completed_at=txn.completed_at,
            failed_at=txn.failed_at,
        )


class TransactionListResponse(BaseModel):
    transactions: List[TransactionResponse]


class ConfirmPaymentRequest(BaseModel):
    """Request body for POST /v1/transactions/{id}/confirm-payment"""

    proof_reference: str = Field(..., min_length=1, description="Gateway payment reference")
    paid_fiat_amount: Optional[Decimal] = Field(None, gt=0)


class ConfirmDepositRequest(BaseModel):
    """Request body for POST /v1/transactions/{id}/confirm-deposit"""

    tx_digest: str = Field(..., min_length=1, description="Sui transaction digest of the deposit")


class RejectRequest(BaseModel):
    reason: str = Field("", max_length=500)


class RefundSchema(BaseModel):
    id: str
    transaction_id: str
    direction: str
    token: str
    token_amount: Decimal
    fiat_amount: Decimal
    user_address: str
    reason: str
    status: str
    created_at: datetime

    @classmethod
    def from_domain(cls, refund: RefundRequest) -> "RefundSchema":
        return cls(
            id=refund.id,
            transaction_id=refund.transaction_id,
            direction=refund.direction.value,
            token=refund.token.value,
            token_amount=refund.token_amount,
            fiat_amount=refund.fiat_amount,
            user_address=refund.user_address,
            reason=refund.reason,
            status=refund.status,
            created_at=refund.created_at,
        )


class RefundListResponse(BaseModel):
    refunds: List[RefundSchema]


# Limits


class BoundsSchema(BaseModel):
    min: Decimal
    max: Decimal


class DirectionLimitsSchema(BaseModel):
    fiat: BoundsSchema
    tokens: Dict[str, BoundsSchema]

    @classmethod
    def from_domain(cls, window: DirectionLimits) -> "DirectionLimitsSchema":
        return cls(
            fiat=BoundsSchema(min=window.fiat.min, max=window.fiat.max),
            tokens={
                token.value: BoundsSchema(min=bounds.min, max=bounds.max)
                for token, bounds in window.tokens.items()
            },
        )

    def to_domain(self) -> DirectionLimits:
        """Unknown token keys raise ValueError, surfaced as a 422 by the router"""
        return DirectionLimits(
            fiat=AmountBounds(self.fiat.min, self.fiat.max),
            tokens={
                TokenSymbol(token.upper()): AmountBounds(bounds.min, bounds.max)
                for token, bounds in self.tokens.items()
            },
        )


class LimitsResponse(BaseModel):
    """Response for GET/PUT /v1/limits"""

    on_ramp: DirectionLimitsSchema
    off_ramp: DirectionLimitsSchema
    is_active: bool
    version: int
    updated_by: str
    last_updated: Optional[datetime] = None

    @classmethod
    def from_domain(cls, limits: TransactionLimits) -> "LimitsResponse":
        return cls(
            on_ramp=DirectionLimitsSchema.from_domain(limits.on_ramp),
            off_ramp=DirectionLimitsSchema.from_domain(limits.off_ramp),
            is_active=limits.is_active,
            version=limits.version,
            updated_by=limits.updated_by,
            last_updated=limits.last_updated,
        )


class LimitsUpdateRequest(BaseModel):
    """Request body for PUT /v1/limits"""

    on_ramp: DirectionLimitsSchema
    off_ramp: DirectionLimitsSchema
    is_active: bool = True
    expected_version: int = Field(..., ge=1, description="Version the admin edited")


class LimitValidationRequest(BaseModel):
    """Request body for POST /v1/limits/validate"""

    direction: TransactionDirection
    token: str
    amount: Decimal
    fiat_amount: Optional[Decimal] = None


class LimitValidationResponse(BaseModel):
    is_valid: bool
    errors: List[str]
    warnings: List[str]


# Treasury


class AlertSchema(BaseModel):
    id: str
    type: str
    severity: str
    message: str
    currency: Optional[str] = None
    amount: Optional[Decimal] = None
    threshold: Optional[Decimal] = None
    acknowledged: bool
    acknowledged_by: Optional[str] = None
    acknowledged_at: Optional[datetime] = None
    created_at: datetime

    @classmethod
    def from_domain(cls, alert: TreasuryAlert) -> "AlertSchema":
        return cls(
            id=alert.id,
            type=alert.type.value,
            severity=alert.severity.value,
            message=alert.message,
            currency=alert.currency,
            amount=alert.amount,
            threshold=alert.threshold,
            acknowledged=alert.acknowledged,
            acknowledged_by=alert.acknowledged_by,
            acknowledged_at=alert.acknowledged_at,
            created_at=alert.created_at,
        )


class AlertListResponse(BaseModel):
    alerts: List[AlertSchema]


class MonitoringResponse(BaseModel):
    """Response for POST /v1/treasury/monitor"""

    alerts_created: List[AlertSchema]
    balances: Dict[str, Decimal]
    failed_currencies: Dict[str, str]
    failed_transactions: int


class WebhookAck(BaseModel):
    status: str  # processed | ignored
    event: str
    transaction_id: Optional[str] = None
