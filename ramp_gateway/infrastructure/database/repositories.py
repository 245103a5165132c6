"""Data access layer for swaps, limits, alerts, refunds, price overrides and audit entries"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from ramp_gateway.infrastructure.database.models import (
    AuditLogRecord,
    PriceOverrideRecord,
    RampTransaction,
    RefundRequestRecord,
    TransactionLimitsRecord,
    TreasuryAlertRecord,
)
from ramp_gateway.domain.models import (
    AlertSeverity,
    AlertType,
    AmountBounds,
    BankDetails,
    DirectionLimits,
    PriceOverride,
    RefundRequest,
    TokenSymbol,
    Transaction,
    TransactionDirection,
    TransactionLimits,
    TransactionStatus,
    TreasuryAlert,
)
from ramp_gateway.domain.limits import DEFAULT_TRANSACTION_LIMITS
from ramp_gateway.domain.exceptions import ConcurrentModificationError, NotFoundError, ValidationError
from ramp_gateway.utils.date_utils import as_utc

def _bank_to_json(details: Optional[BankDetails]) -> Optional[Dict[str, Any]]:
    if details is None:
        return None
    return {
        "account_number": details.account_number,
        "bank_code": details.bank_code,
        "bank_name": details.bank_name,
        "account_name": details.account_name,
        "recipient_code": details.recipient_code,
    }


def _bank_from_json(data: Optional[Dict[str, Any]]) -> Optional[BankDetails]:
    return BankDetails(**data) if data else None


def _transaction_values(txn: Transaction) -> Dict[str, Any]:
    return {
        "status": txn.status.value,
        "bank_details": _bank_to_json(txn.bank_details),
        "payment_reference": txn.payment_reference,
        "price_source": txn.price_source,
        "confirmation_reference": txn.confirmation_reference,
        "payout_reference": txn.payout_reference,
        "credit_tx_hash": txn.credit_tx_hash,
        "failure_reason": txn.failure_reason,
        "version": txn.version,
        "updated_at": txn.updated_at,
        "confirmed_at": txn.confirmed_at,
        "completed_at": txn.completed_at,
        "failed_at": txn.failed_at,
    }


def _to_transaction(row: RampTransaction) -> Transaction:
    return Transaction(
        id=row.id,
        direction=TransactionDirection(row.direction),
        status=TransactionStatus(row.status),
        token=TokenSymbol(row.token),
        token_amount=row.token_amount,
        fiat_amount=row.fiat_amount,
        exchange_rate=row.exchange_rate,
        user_address=row.user_address,
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
        bank_details=_bank_from_json(row.bank_details),
        payment_reference=row.payment_reference,
        price_source=row.price_source,
        confirmation_reference=row.confirmation_reference,
        payout_reference=row.payout_reference,
        credit_tx_hash=row.credit_tx_hash,
        failure_reason=row.failure_reason,
        version=row.version,
        confirmed_at=as_utc(row.confirmed_at),
        completed_at=as_utc(row.completed_at),
        failed_at=as_utc(row.failed_at),
    )


class TransactionRepository:
    """Repository for swap transactions with optimistic concurrency"""

    def __init__(self, db: Session):
        self.db = db

    def add(self, txn: Transaction) -> Transaction:
        row = RampTransaction(
            id=txn.id,
            direction=txn.direction.value,
            token=txn.token.value,
            token_amount=txn.token_amount,
            fiat_amount=txn.fiat_amount,
            exchange_rate=txn.exchange_rate,
            user_address=txn.user_address,
            created_at=txn.created_at,
            **_transaction_values(txn),
        )
        self.db.add(row)
        try:
            self.db.flush()
        except IntegrityError as e:
            raise ValidationError(
                f"Transaction {txn.id} reuses a payment or payout reference", code="duplicate_reference"
            ) from e
        return txn

    def get(self, transaction_id: str) -> Optional[Transaction]:
        row = (
            self.db.query(RampTransaction)
            .filter(RampTransaction.id == transaction_id)
            .populate_existing()
            .first()
        )
        return _to_transaction(row) if row else None

    def get_by_payment_reference(self, reference: str) -> Optional[Transaction]:
        row = (
            self.db.query(RampTransaction)
            .filter(RampTransaction.payment_reference == reference)
            .populate_existing()
            .first()
        )
        return _to_transaction(row) if row else None

    def get_by_payout_reference(self, reference: str) -> Optional[Transaction]:
        row = (
            self.db.query(RampTransaction)
            .filter(RampTransaction.payout_reference == reference)
            .populate_existing()
            .first()
        )
        return _to_transaction(row) if row else None

    def update(self, txn: Transaction, expected_version: int) -> Transaction:
        """
        Compare-and-set write keyed on (id, version).

        Raises:
            ConcurrentModificationError: another writer bumped the version first
        """
        updated = (
            self.db.query(RampTransaction)
            .filter(RampTransaction.id == txn.id, RampTransaction.version == expected_version)
            .update(_transaction_values(txn), synchronize_session="fetch")
        )
        if updated == 0:
            raise ConcurrentModificationError(
                f"Transaction {txn.id} was modified concurrently (expected version {expected_version})"
            )
        return txn

    def count_failed_since(self, since: datetime) -> int:
        return (
            self.db.query(RampTransaction)
            .filter(
                RampTransaction.status == TransactionStatus.FAILED.value,
                RampTransaction.failed_at >= since,
            )
            .count()
        )

    def list(
        self,
        status: Optional[TransactionStatus] = None,
        direction: Optional[TransactionDirection] = None,
        limit: int = 50,
    ) -> List[Transaction]:
        """Most recent first"""
        query = self.db.query(RampTransaction)
        if status is not None:
            query = query.filter(RampTransaction.status == status.value)
        if direction is not None:
            query = query.filter(RampTransaction.direction == direction.value)
        rows = query.order_by(RampTransaction.created_at.desc()).limit(limit).all()
        return [_to_transaction(row) for row in rows]


def _bounds_to_json(bounds: AmountBounds) -> Dict[str, str]:
    return {"min": format(bounds.min, "f"), "max": format(bounds.max, "f")}


def _bounds_from_json(data: Dict[str, str]) -> AmountBounds:
    return AmountBounds(min=Decimal(data["min"]), max=Decimal(data["max"]))


def _direction_to_json(window: DirectionLimits) -> Dict[str, Any]:
    return {
        "fiat": _bounds_to_json(window.fiat),
        "tokens": {token.value: _bounds_to_json(bounds) for token, bounds in window.tokens.items()},
    }


def _direction_from_json(data: Dict[str, Any]) -> DirectionLimits:
    return DirectionLimits(
        fiat=_bounds_from_json(data["fiat"]),
        tokens={TokenSymbol(token): _bounds_from_json(bounds) for token, bounds in data["tokens"].items()},
    )


class LimitsRepository:
    """Append-only limits history; unique version rejects a concurrent second writer"""

    def __init__(self, db: Session):
        self.db = db

    def get_current(self) -> TransactionLimits:
        row = (
            self.db.query(TransactionLimitsRecord)
            .order_by(TransactionLimitsRecord.version.desc())
            .first()
        )
        if row is None:
            return DEFAULT_TRANSACTION_LIMITS
        return TransactionLimits(
            on_ramp=_direction_from_json(row.on_ramp),
            off_ramp=_direction_from_json(row.off_ramp),
            is_active=row.is_active,
            version=row.version,
            updated_by=row.updated_by,
            last_updated=as_utc(row.last_updated),
        )

    def save(self, limits: TransactionLimits) -> TransactionLimits:
        """
        Insert `limits` as a new version.

        Raises:
            ConcurrentModificationError: the version already exists
        """
        row = TransactionLimitsRecord(
            version=limits.version,
            on_ramp=_direction_to_json(limits.on_ramp),
            off_ramp=_direction_to_json(limits.off_ramp),
            is_active=limits.is_active,
            updated_by=limits.updated_by,
            last_updated=limits.last_updated,
        )
        self.db.add(row)
        try:
            self.db.flush()
        except IntegrityError as e:
            raise ConcurrentModificationError(
                f"Limits version {limits.version} already exists"
            ) from e
        return limits


def _to_alert(row: TreasuryAlertRecord) -> TreasuryAlert:
    return TreasuryAlert(
        id=row.id,
        type=AlertType(row.type),
        severity=AlertSeverity(row.severity),
        message=row.message,
        created_at=as_utc(row.created_at),
        currency=row.currency,
        amount=row.amount,
        threshold=row.threshold,
        acknowledged=row.acknowledged,
        acknowledged_by=row.acknowledged_by,
        acknowledged_at=as_utc(row.acknowledged_at),
    )


def _open_key(alert: TreasuryAlert) -> str:
    key = f"{alert.type.value}:{alert.currency or '-'}:{alert.severity.value}"
    if alert.type == AlertType.FAILED_TRANSACTION_RATE:
        key += f":{alert.created_at:%Y%m%d%H%M}"
    return key


class AlertRepository:
    """Repository for treasury alerts"""

    def __init__(self, db: Session):
        self.db = db

    def add(self, alert: TreasuryAlert) -> TreasuryAlert:
        """
        Insert an alert. A second open alert for the same (type, currency,
        severity) raises ConcurrentModificationError; rate alerts are keyed per
        minute since older ones may legitimately stay open.
        """
        self.db.add(
            TreasuryAlertRecord(
                id=alert.id,
                type=alert.type.value,
                severity=alert.severity.value,
                currency=alert.currency,
                message=alert.message,
                amount=alert.amount,
                threshold=alert.threshold,
                acknowledged=alert.acknowledged,
                open_key=None if alert.acknowledged else _open_key(alert),
                created_at=alert.created_at,
            )
        )
        try:
            self.db.flush()
        except IntegrityError as e:
            raise ConcurrentModificationError(
                f"An open {alert.type.value} alert already exists for {alert.currency or 'all currencies'}"
            ) from e
        return alert

    def get(self, alert_id: str) -> Optional[TreasuryAlert]:
        row = self.db.query(TreasuryAlertRecord).filter(TreasuryAlertRecord.id == alert_id).first()
        return _to_alert(row) if row else None

    def find_unacknowledged(
        self, alert_type: AlertType, currency: Optional[str], severity: AlertSeverity
    ) -> Optional[TreasuryAlert]:
        query = self.db.query(TreasuryAlertRecord).filter(
            TreasuryAlertRecord.type == alert_type.value,
            TreasuryAlertRecord.severity == severity.value,
            TreasuryAlertRecord.acknowledged.is_(False),
        )
        if currency is None:
            query = query.filter(TreasuryAlertRecord.currency.is_(None))
        else:
            query = query.filter(TreasuryAlertRecord.currency == currency)
        row = query.first()
        return _to_alert(row) if row else None

    def latest_unacknowledged(self, alert_type: AlertType) -> Optional[TreasuryAlert]:
        row = (
            self.db.query(TreasuryAlertRecord)
            .filter(
                TreasuryAlertRecord.type == alert_type.value,
                TreasuryAlertRecord.acknowledged.is_(False),
            )
            .order_by(TreasuryAlertRecord.created_at.desc())
            .first()
        )
        return _to_alert(row) if row else None

    def acknowledge(self, alert_id: str, acknowledged_by: str, at: datetime) -> TreasuryAlert:
        row = self.db.query(TreasuryAlertRecord).filter(TreasuryAlertRecord.id == alert_id).first()
        if row is None:
            raise NotFoundError(f"Alert {alert_id} not found")
        row.acknowledged = True
        row.open_key = None
        row.acknowledged_by = acknowledged_by
        row.acknowledged_at = at
        self.db.flush()
        return _to_alert(row)

    def list(self, acknowledged: Optional[bool] = None, limit: int = 50) -> List[TreasuryAlert]:
        """Most recent first"""
        query = self.db.query(TreasuryAlertRecord)
        if acknowledged is not None:
            query = query.filter(TreasuryAlertRecord.acknowledged.is_(acknowledged))
        rows = query.order_by(TreasuryAlertRecord.created_at.desc()).limit(limit).all()
        return [_to_alert(row) for row in rows]


class RefundRepository:
    """Repository for refund requests opened by failed swaps"""

    def __init__(self, db: Session):
        self.db = db

    def add(self, refund: RefundRequest) -> RefundRequest:
        self.db.add(
            RefundRequestRecord(
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
        )
        self.db.flush()
        return refund

    def list(self, status: Optional[str] = None, limit: int = 50) -> List[RefundRequest]:
        query = self.db.query(RefundRequestRecord)
        if status is not None:
            query = query.filter(RefundRequestRecord.status == status)
        rows = query.order_by(RefundRequestRecord.created_at.desc()).limit(limit).all()
        return [
            RefundRequest(
                id=row.id,
                transaction_id=row.transaction_id,
                direction=TransactionDirection(row.direction),
                token=TokenSymbol(row.token),
                token_amount=row.token_amount,
                fiat_amount=row.fiat_amount,
                user_address=row.user_address,
                reason=row.reason,
                created_at=as_utc(row.created_at),
                status=row.status,
            )
            for row in rows
        ]


def _to_override(row: PriceOverrideRecord) -> PriceOverride:
    return PriceOverride(
        token=TokenSymbol(row.token),
        direction=TransactionDirection(row.direction),
        enabled=row.enabled,
        price=row.price,
        updated_by=row.updated_by,
        updated_at=as_utc(row.updated_at),
        reason=row.reason or "",
    )


class PriceOverrideRepository:
    """One row per (token, direction), replaced in place"""

    def __init__(self, db: Session):
        self.db = db

    def _row(self, token: TokenSymbol, direction: TransactionDirection) -> Optional[PriceOverrideRecord]:
        return (
            self.db.query(PriceOverrideRecord)
            .filter(
                PriceOverrideRecord.token == token.value,
                PriceOverrideRecord.direction == direction.value,
            )
            .first()
        )

    def get(self, token: TokenSymbol, direction: TransactionDirection) -> Optional[PriceOverride]:
        row = self._row(token, direction)
        return _to_override(row) if row else None

    def list(self) -> List[PriceOverride]:
        rows = (
            self.db.query(PriceOverrideRecord)
            .order_by(PriceOverrideRecord.token, PriceOverrideRecord.direction)
            .all()
        )
        return [_to_override(row) for row in rows]

    def save(self, override: PriceOverride) -> PriceOverride:
        row = self._row(override.token, override.direction)
        if row is None:
            row = PriceOverrideRecord(token=override.token.value, direction=override.direction.value)
            self.db.add(row)
        row.enabled = override.enabled
        row.price = override.price
        row.reason = override.reason
        row.updated_by = override.updated_by
        row.updated_at = override.updated_at
        try:
            self.db.flush()
        except IntegrityError as e:
            raise ConcurrentModificationError(
                f"{override.direction.value} override for {override.token.value} was created concurrently"
            ) from e
        return override

    def clear(self) -> int:
        return self.db.query(PriceOverrideRecord).delete(synchronize_session=False)


class AuditRepository:
    """Append-only audit trail; entries commit with the change they describe"""

    def __init__(self, db: Session):
        self.db = db

    def record(
        self,
        actor: str,
        action: str,
        details: Dict[str, Any],
        transaction_id: Optional[str] = None,
    ) -> None:
        self.db.add(
            AuditLogRecord(
                actor=actor,
                action=action,
                transaction_id=transaction_id,
                details=details,
            )
        )

    def for_transaction(self, transaction_id: str) -> List[AuditLogRecord]:
        """Oldest first, so the trail reads as a timeline"""
        return (
            self.db.query(AuditLogRecord)
            .filter(AuditLogRecord.transaction_id == transaction_id)
            .order_by(AuditLogRecord.id.asc())
            .all()
        )
