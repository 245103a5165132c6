"""POST /v1/webhooks/paystack - payment and transfer notifications"""

import json
import logging
from decimal import Decimal
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from ramp_gateway.api.v1.schemas import WebhookAck
from ramp_gateway.api.dependencies import get_lifecycle_manager, get_request_id
from ramp_gateway.config import settings
from ramp_gateway.infrastructure.database.session import get_db
from ramp_gateway.infrastructure.database.repositories import AuditRepository
from ramp_gateway.infrastructure.clients.paystack import KOBO_PER_NAIRA, parse_transfer_status, verify_webhook_signature
from ramp_gateway.domain.lifecycle import TransactionLifecycleManager
from ramp_gateway.domain.exceptions import (
    ConcurrentModificationError,
    StateConflictError,
    TransactionNotFoundError,
    ValidationError,
)
from ramp_gateway.infrastructure.observability.metrics import record_transaction

router = APIRouter()

WEBHOOK_CALLER = "system:paystack-webhook"

TRANSFER_EVENTS = ("transfer.success", "transfer.failed", "transfer.reversed")


@router.post("/webhooks/paystack", response_model=WebhookAck)
async def paystack_webhook(
    request: Request,
    db: Session = Depends(get_db),
    manager: TransactionLifecycleManager = Depends(get_lifecycle_manager),
):
    """
    Apply a Paystack event to the matching transaction.

    Events:
    - charge.success -> confirm the on-ramp payment and credit tokens
    - charge.failed -> fail the on-ramp (no refund, nothing was received)
    - transfer.success|failed|reversed -> reconcile the off-ramp payout
    - charge.dispute.create -> audit entry only

    Redeliveries are idempotent. Unknown references and events that no longer
    apply are acknowledged as ignored so Paystack stops retrying.
    """
    request_id = get_request_id(request)
    body = await request.body()
    signature = request.headers.get("x-paystack-signature")

    if not signature:
        raise HTTPException(status_code=400, detail="Missing signature")
    if not verify_webhook_signature(body, signature, settings.paystack_secret_key):
        logging.warning("Rejected Paystack webhook with bad signature", extra={"request_id": request_id})
        raise HTTPException(status_code=401, detail="Invalid signature")

    try:
        payload = json.loads(body)
        event = payload["event"]
        data = payload.get("data") or {}
    except (ValueError, KeyError, TypeError):
        raise HTTPException(status_code=400, detail="Malformed webhook payload")

    reference = data.get("reference")
    audit = AuditRepository(db)
    audit.record(WEBHOOK_CALLER, "webhook_received", {"event": event, "reference": reference})

    try:
        if event == "charge.success":
            txn = manager.transactions.get_by_payment_reference(reference or "")
            if txn is None:
                raise TransactionNotFoundError(f"No transaction for payment reference {reference}")
            paid = Decimal(str(data["amount"])) / KOBO_PER_NAIRA if data.get("amount") is not None else None
            txn = await manager.confirm_on_ramp_payment(
                txn.id, proof_reference=reference, caller=WEBHOOK_CALLER, paid_fiat_amount=paid
            )
        elif event == "charge.failed":
            txn = await manager.fail_payment(
                reference or "", data.get("gateway_response") or "Payment failed", WEBHOOK_CALLER
            )
        elif event in TRANSFER_EVENTS:
            txn = await manager.reconcile_payout(
                reference or "", parse_transfer_status(event.split(".", 1)[1]), WEBHOOK_CALLER
            )
        elif event == "charge.dispute.create":
            audit.record(
                WEBHOOK_CALLER,
                "charge_dispute_opened",
                {"reference": reference, "reason": data.get("reason")},
            )
            db.commit()
            return WebhookAck(status="processed", event=event)
        else:
            db.commit()
            return WebhookAck(status="ignored", event=event)

    except ConcurrentModificationError:
        raise
    except (TransactionNotFoundError, StateConflictError, ValidationError) as e:
        db.rollback()
        audit.record(WEBHOOK_CALLER, "webhook_ignored", {"event": event, "reference": reference, "reason": e.message})
        db.commit()
        logging.info(
            "Paystack webhook ignored",
            extra={"request_id": request_id, "event": event, "reason": e.message},
        )
        return WebhookAck(status="ignored", event=event)

    # Replays change nothing; commit keeps their audit entry
    db.commit()
    record_transaction(txn.direction.value, txn.status.value)
    return WebhookAck(status="processed", event=event, transaction_id=txn.id)
