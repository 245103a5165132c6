"""SQLAlchemy ORM models for swaps, limits, alerts, refunds, price overrides and the audit trail"""

import uuid
from decimal import Decimal
from sqlalchemy import Column, String, Boolean, DateTime, Integer, Text, JSON, Index, UniqueConstraint
from sqlalchemy.orm import declarative_base
from sqlalchemy.types import TypeDecorator
from ramp_gateway.utils.date_utils import utc_now

Base = declarative_base()


class DecimalString(TypeDecorator):
    """Exact decimal stored as text so every backend round-trips it unchanged"""

    impl = String(64)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return format(Decimal(value), "f")

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(value)


def _new_id() -> str:
    return str(uuid.uuid4())


class RampTransaction(Base):
    """On-ramp or off-ramp swap; `version` guards concurrent writers"""

    __tablename__ = "ramp_transaction"

    id = Column(String(36), primary_key=True, default=_new_id)
    direction = Column(String(16), nullable=False, index=True)
    status = Column(String(16), nullable=False, index=True)
    token = Column(String(8), nullable=False)
    token_amount = Column(DecimalString, nullable=False)
    fiat_amount = Column(DecimalString, nullable=False)
    exchange_rate = Column(DecimalString, nullable=False)
    user_address = Column(Text, nullable=False, index=True)
    bank_details = Column(JSON, nullable=True)
    payment_reference = Column(String(64), nullable=True, unique=True)
    price_source = Column(String(32), nullable=True)
    confirmation_reference = Column(Text, nullable=True)
    payout_reference = Column(String(64), nullable=True, unique=True)
    credit_tx_hash = Column(Text, nullable=True)
    failure_reason = Column(Text, nullable=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    failed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("ix_ramp_transaction_status_failed_at", "status", "failed_at"),)


class TransactionLimitsRecord(Base):
    """One row per limits version; the highest version is current"""

    __tablename__ = "transaction_limits"

    id = Column(Integer, primary_key=True, autoincrement=True)
    version = Column(Integer, nullable=False, unique=True)
    on_ramp = Column(JSON, nullable=False)
    off_ramp = Column(JSON, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    updated_by = Column(Text, nullable=False)
    last_updated = Column(DateTime(timezone=True), nullable=False, default=utc_now)


class TreasuryAlertRecord(Base):
    """Treasury threshold breach awaiting acknowledgement"""

    __tablename__ = "treasury_alert"

    id = Column(String(36), primary_key=True, default=_new_id)
    type = Column(String(32), nullable=False)
    severity = Column(String(16), nullable=False)
    currency = Column(String(8), nullable=True)
    message = Column(Text, nullable=False)
    amount = Column(DecimalString, nullable=True)
    threshold = Column(DecimalString, nullable=True)
    acknowledged = Column(Boolean, nullable=False, default=False)
    # Set while unacknowledged, cleared on acknowledgement; NULLs never collide
    open_key = Column(String(96), nullable=True, unique=True)
    acknowledged_by = Column(Text, nullable=True)
    acknowledged_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    __table_args__ = (Index("ix_treasury_alert_open", "type", "currency", "severity", "acknowledged"),)


class RefundRequestRecord(Base):
    """Value owed back to a user after a failed swap"""

    __tablename__ = "refund_request"

    id = Column(String(36), primary_key=True, default=_new_id)
    transaction_id = Column(String(36), nullable=False, index=True)
    direction = Column(String(16), nullable=False)
    token = Column(String(8), nullable=False)
    token_amount = Column(DecimalString, nullable=False)
    fiat_amount = Column(DecimalString, nullable=False)
    user_address = Column(Text, nullable=False)
    reason = Column(Text, nullable=False)
    status = Column(String(16), nullable=False, default="PENDING")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)


class PriceOverrideRecord(Base):
    """Admin NGN price for one (token, direction)"""

    __tablename__ = "price_override"

    id = Column(Integer, primary_key=True, autoincrement=True)
    token = Column(String(8), nullable=False)
    direction = Column(String(16), nullable=False)
    enabled = Column(Boolean, nullable=False, default=False)
    price = Column(DecimalString, nullable=True)
    reason = Column(Text, nullable=False, default="")
    updated_by = Column(Text, nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    __table_args__ = (UniqueConstraint("token", "direction", name="uq_price_override_token_direction"),)


class AuditLogRecord(Base):
    """Append-only record of who did what"""

    __tablename__ = "audit_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    actor = Column(Text, nullable=False)
    action = Column(String(64), nullable=False)
    transaction_id = Column(String(36), nullable=True, index=True)
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
