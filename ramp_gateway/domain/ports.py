"""Collaborator interfaces the domain depends on (persistence, chain, payouts, prices)"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Protocol
from ramp_gateway.domain.models import (
    AlertSeverity,
    AlertType,
    PayoutTransfer,
    PriceOverride,
    PriceQuote,
    RefundRequest,
    TokenSymbol,
    Transaction,
    TransactionDirection,
    TransactionLimits,
    TreasuryAlert,
)


class UnitOfWork(Protocol):
    def commit(self) -> None: ...

    def rollback(self) -> None: ...


class TransactionStore(Protocol):
    def add(self, txn: Transaction) -> Transaction: ...

    def get(self, transaction_id: str) -> Optional[Transaction]: ...

    def get_by_payment_reference(self, reference: str) -> Optional[Transaction]: ...

    def get_by_payout_reference(self, reference: str) -> Optional[Transaction]: ...

    def update(self, txn: Transaction, expected_version: int) -> Transaction:
        """Write `txn` only if the stored version still equals expected_version"""
        ...

    def count_failed_since(self, since: datetime) -> int: ...


class LimitsStore(Protocol):
    def get_current(self) -> TransactionLimits: ...

    def save(self, limits: TransactionLimits) -> TransactionLimits: ...


class RefundStore(Protocol):
    def add(self, refund: RefundRequest) -> RefundRequest: ...


class AuditTrail(Protocol):
    def record(
        self,
        actor: str,
        action: str,
        details: Dict[str, Any],
        transaction_id: Optional[str] = None,
    ) -> None: ...


class AlertStore(Protocol):
    def add(self, alert: TreasuryAlert) -> TreasuryAlert: ...

    def get(self, alert_id: str) -> Optional[TreasuryAlert]: ...

    def find_unacknowledged(
        self, alert_type: AlertType, currency: Optional[str], severity: AlertSeverity
    ) -> Optional[TreasuryAlert]: ...

    def latest_unacknowledged(self, alert_type: AlertType) -> Optional[TreasuryAlert]: ...

    def acknowledge(self, alert_id: str, acknowledged_by: str, at: datetime) -> TreasuryAlert: ...


class TreasuryBalances(Protocol):
    async def get_available_balance(self, currency: str) -> Decimal:
        """Raises UpstreamUnavailableError when the source cannot be read"""
        ...


class TokenCreditor(Protocol):
    async def credit_tokens(
        self, address: str, token: TokenSymbol, amount: Decimal, reference: str
    ) -> str:
        """Send tokens from the treasury; returns the chain transaction digest"""
        ...


class PayoutGateway(Protocol):
    async def create_recipient(self, name: str, account_number: str, bank_code: str) -> str: ...

    async def initiate_transfer(
        self, amount: Decimal, recipient_code: str, reason: str, reference: str
    ) -> PayoutTransfer: ...

    async def get_transfer_status(self, reference: str) -> Optional[PayoutTransfer]:
        """None when the gateway has no transfer under this reference"""
        ...

    async def get_balance(self) -> Decimal: ...


class AlertNotifier(Protocol):
    async def notify(self, alert: TreasuryAlert) -> None: ...


class PriceFeed(Protocol):
    async def get_price(self, token: TokenSymbol) -> PriceQuote: ...


class PriceOverrideStore(Protocol):
    def get(self, token: TokenSymbol, direction: TransactionDirection) -> Optional[PriceOverride]: ...

    def list(self) -> List[PriceOverride]: ...

    def save(self, override: PriceOverride) -> PriceOverride:
        """Insert or replace the row for (token, direction)"""
        ...

    def clear(self) -> int: ...
