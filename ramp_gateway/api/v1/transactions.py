"""Swap transaction endpoints - create, inspect and drive the lifecycle"""

import time
from typing import Optional
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from ramp_gateway.api.v1.schemas import (
    ConfirmDepositRequest,
    ConfirmPaymentRequest,
    CreateTransactionRequest,
    RefundListResponse,
    RefundSchema,
    RejectRequest,
    TransactionListResponse,
    TransactionResponse,
)
from ramp_gateway.api.dependencies import (
    get_authorizer,
    get_caller,
    get_lifecycle_manager,
    get_pricing,
    get_request_id,
)
from ramp_gateway.infrastructure.database.session import get_db
from ramp_gateway.infrastructure.database.repositories import RefundRepository, TransactionRepository
from ramp_gateway.domain.authorization import Action, Authorizer, require
from ramp_gateway.domain.lifecycle import TransactionLifecycleManager
from ramp_gateway.domain.pricing import PricingService
from ramp_gateway.domain.models import BankDetails, Transaction, TransactionDirection, TransactionStatus
from ramp_gateway.domain.tokens import parse_token
from ramp_gateway.infrastructure.observability.metrics import record_transaction
from ramp_gateway.infrastructure.observability.logging import log_transition

router = APIRouter()


def _respond(request: Request, txn: Transaction, action: str, start_time: float) -> TransactionResponse:
    duration_ms = (time.time() - start_time) * 1000
    record_transaction(txn.direction.value, txn.status.value)
    log_transition(get_request_id(request), txn.id, action, txn.status.value, duration_ms)
    return TransactionResponse.from_domain(txn)


@router.post("/transactions", response_model=TransactionResponse, status_code=201)
async def create_transaction(
    request_body: CreateTransactionRequest,
    request: Request,
    manager: TransactionLifecycleManager = Depends(get_lifecycle_manager),
    pricing: PricingService = Depends(get_pricing),
):
    """
    Open a PENDING on-ramp or off-ramp.

    Flow:
    1. Quote the NGN rate when the client did not lock one in; an admin
       override for the token and direction beats the live feed
    2. Check bounds, fiat consistency and limits
    3. Off-ramp only: verify live wallet balances (fails closed on RPC outage)
    4. Persist the transaction with its audit entry
    """
    start_time = time.time()
    symbol = parse_token(request_body.token)

    exchange_rate = request_body.exchange_rate
    price_source = "client"
    if exchange_rate is None:
        quote = await pricing.get_price(symbol, request_body.direction)
        exchange_rate, price_source = quote.price, quote.source

    bank = request_body.bank_details
    txn = await manager.create(
        direction=request_body.direction,
        token=symbol,
        token_amount=request_body.token_amount,
        exchange_rate=exchange_rate,
        user_address=request_body.user_address,
        fiat_amount=request_body.fiat_amount,
        bank_details=BankDetails(
            account_number=bank.account_number,
            bank_code=bank.bank_code,
            bank_name=bank.bank_name,
            account_name=bank.account_name,
        )
        if bank
        else None,
        payment_reference=request_body.payment_reference,
        price_source=price_source,
    )
    return _respond(request, txn, "create", start_time)


@router.get("/transactions", response_model=TransactionListResponse)
def list_transactions(
    status: Optional[TransactionStatus] = Query(None),
    direction: Optional[TransactionDirection] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    caller: Optional[str] = Depends(get_caller),
    authorizer: Authorizer = Depends(get_authorizer),
):
    """Admin view of recent transactions, newest first"""
    require(authorizer, caller, Action.VIEW_ADMIN)
    transactions = TransactionRepository(db).list(status=status, direction=direction, limit=limit)
    return TransactionListResponse(
        transactions=[TransactionResponse.from_domain(txn) for txn in transactions]
    )


@router.get("/transactions/{transaction_id}", response_model=TransactionResponse)
def get_transaction(
    transaction_id: str,
    manager: TransactionLifecycleManager = Depends(get_lifecycle_manager),
):
    return TransactionResponse.from_domain(manager.get(transaction_id))


@router.post("/transactions/{transaction_id}/confirm-payment", response_model=TransactionResponse)
async def confirm_payment(
    transaction_id: str,
    request_body: ConfirmPaymentRequest,
    request: Request,
    manager: TransactionLifecycleManager = Depends(get_lifecycle_manager),
    caller: Optional[str] = Depends(get_caller),
):
    """On-ramp: record the NGN payment and credit tokens; replays are idempotent"""
    start_time = time.time()
    txn = await manager.confirm_on_ramp_payment(
        transaction_id,
        proof_reference=request_body.proof_reference,
        caller=caller,
        paid_fiat_amount=request_body.paid_fiat_amount,
    )
    return _respond(request, txn, "confirm_payment", start_time)


@router.post("/transactions/{transaction_id}/confirm-deposit", response_model=TransactionResponse)
async def confirm_deposit(
    transaction_id: str,
    request_body: ConfirmDepositRequest,
    request: Request,
    manager: TransactionLifecycleManager = Depends(get_lifecycle_manager),
    caller: Optional[str] = Depends(get_caller),
):
    """Off-ramp: the user's token transfer to the treasury was observed"""
    start_time = time.time()
    txn = await manager.confirm_off_ramp_deposit(transaction_id, request_body.tx_digest, caller)
    return _respond(request, txn, "confirm_deposit", start_time)


@router.post("/transactions/{transaction_id}/complete", response_model=TransactionResponse)
async def complete_off_ramp(
    transaction_id: str,
    request: Request,
    manager: TransactionLifecycleManager = Depends(get_lifecycle_manager),
    caller: Optional[str] = Depends(get_caller),
):
    """Off-ramp: pay out NGN; a transfer still pending leaves the transaction CONFIRMED"""
    start_time = time.time()
    txn = await manager.complete_off_ramp(transaction_id, caller)
    return _respond(request, txn, "complete", start_time)


@router.post("/transactions/{transaction_id}/reject", response_model=TransactionResponse)
async def reject_transaction(
    transaction_id: str,
    request_body: RejectRequest,
    request: Request,
    manager: TransactionLifecycleManager = Depends(get_lifecycle_manager),
    caller: Optional[str] = Depends(get_caller),
):
    start_time = time.time()
    txn = await manager.reject(transaction_id, request_body.reason, caller)
    return _respond(request, txn, "reject", start_time)


@router.get("/refunds", response_model=RefundListResponse)
def list_refunds(
    status: Optional[str] = Query(None, description="Filter by refund status, e.g. PENDING"),
    db: Session = Depends(get_db),
    caller: Optional[str] = Depends(get_caller),
    authorizer: Authorizer = Depends(get_authorizer),
):
    """Refund requests opened by failed swaps"""
    require(authorizer, caller, Action.VIEW_ADMIN)
    refunds = RefundRepository(db).list(status=status)
    return RefundListResponse(refunds=[RefundSchema.from_domain(refund) for refund in refunds])
