"""Transaction lifecycle - PENDING -> CONFIRMED -> COMPLETED, or -> FAILED"""

import logging
import uuid
from dataclasses import replace
from decimal import Decimal
from typing import Callable, Dict, FrozenSet, Optional
from datetime import datetime

from ramp_gateway.domain.authorization import Action, Authorizer, require
from ramp_gateway.domain.limits import validate_transaction
from ramp_gateway.domain.models import (
    BankDetails,
    PayoutStatus,
    RefundRequest,
    TokenSymbol,
    Transaction,
    TransactionDirection,
    TransactionStatus,
    ValidationFailure,
)
from ramp_gateway.domain.ports import (
    AuditTrail,
    LimitsStore,
    PayoutGateway,
    RefundStore,
    TokenCreditor,
    TransactionStore,
    TreasuryBalances,
    UnitOfWork,
)
from ramp_gateway.domain.tokens import parse_token
from ramp_gateway.domain.wallet_validation import WalletValidationEngine, fiat_matches
from ramp_gateway.domain.exceptions import (
    ConcurrentModificationError,
    InsufficientFundsError,
    PayoutRejectedError,
    StateConflictError,
    TokenCreditError,
    TransactionNotFoundError,
    UpstreamUnavailableError,
    ValidationError,
)
from ramp_gateway.utils.date_utils import utc_now

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: Dict[TransactionStatus, FrozenSet[TransactionStatus]] = {
    TransactionStatus.PENDING: frozenset({TransactionStatus.CONFIRMED, TransactionStatus.FAILED}),
    TransactionStatus.CONFIRMED: frozenset({TransactionStatus.COMPLETED, TransactionStatus.FAILED}),
    TransactionStatus.COMPLETED: frozenset(),
    TransactionStatus.FAILED: frozenset(),
}

FIAT_PRECISION = Decimal("0.01")


def validate_bank_details(details: Optional[BankDetails]) -> BankDetails:
    """NUBAN account numbers are exactly 10 digits; bank code is required"""
    if details is None:
        raise ValidationError("Bank details are required for off-ramp", code="invalid_bank_details")
    if not (details.account_number.isdigit() and len(details.account_number) == 10):
        raise ValidationError("Account number must be 10 digits", code="invalid_bank_details")
    if not details.bank_code.strip():
        raise ValidationError("Bank code is required", code="invalid_bank_details")
    return details


class TransactionLifecycleManager:
    """
    Owns every state change of a swap transaction.

    Each step is a versioned write; the status change, its audit entry and any
    refund request are committed together.
    """

    def __init__(
        self,
        *,
        transactions: TransactionStore,
        refunds: RefundStore,
        audit: AuditTrail,
        uow: UnitOfWork,
        limits: LimitsStore,
        wallet_engine: WalletValidationEngine,
        authorizer: Authorizer,
        treasury: TreasuryBalances,
        creditor: TokenCreditor,
        payouts: PayoutGateway,
        fiat_tolerance: Decimal = Decimal("0.01"),
        clock: Callable[[], datetime] = utc_now,
    ):
        self.transactions = transactions
        self.refunds = refunds
        self.audit = audit
        self.uow = uow
        self.limits = limits
        self.wallet_engine = wallet_engine
        self.authorizer = authorizer
        self.treasury = treasury
        self.creditor = creditor
        self.payouts = payouts
        self.fiat_tolerance = fiat_tolerance
        self.clock = clock

    # ------------------------------------------------------------------ create

    async def create(
        self,
        direction: TransactionDirection,
        token: str | TokenSymbol,
        token_amount: Decimal,
        exchange_rate: Decimal,
        user_address: str,
        fiat_amount: Optional[Decimal] = None,
        bank_details: Optional[BankDetails] = None,
        payment_reference: Optional[str] = None,
        price_source: Optional[str] = None,
    ) -> Transaction:
        """
        Open a PENDING transaction after limit and wallet checks pass.

        Raises:
            ValidationError: bad token, amounts, bank details or limit breach
            InsufficientFundsError: off-ramp wallet cannot cover swap or gas
            UpstreamUnavailableError: off-ramp balances could not be verified
        """
        symbol = parse_token(token)
        if token_amount <= 0:
            raise ValidationError("Amount must be greater than zero", code="invalid_amount")
        if exchange_rate <= 0:
            raise ValidationError("Exchange rate must be greater than zero", code="invalid_amount")
        if not user_address:
            raise ValidationError("User address is required", code="invalid_address")
        if payment_reference and self.transactions.get_by_payment_reference(payment_reference) is not None:
            raise ValidationError(
                f"Payment reference {payment_reference} is already in use", code="duplicate_reference"
            )

        if fiat_amount is None:
            fiat_amount = (token_amount * exchange_rate).quantize(FIAT_PRECISION)
        elif not fiat_matches(token_amount, exchange_rate, fiat_amount, self.fiat_tolerance):
            raise ValidationError(
                "Fiat amount does not match token amount at the quoted exchange rate",
                code="amount_mismatch",
            )

        if direction == TransactionDirection.OFF_RAMP:
            bank_details = validate_bank_details(bank_details)

        limit_result = validate_transaction(
            self.limits.get_current(), direction, symbol, token_amount, fiat_amount
        )
        if not limit_result.is_valid:
            raise ValidationError("; ".join(limit_result.errors), code="limit_exceeded")

        if direction == TransactionDirection.OFF_RAMP:
            wallet = await self.wallet_engine.validate_for_off_ramp(user_address, symbol, token_amount)
            if not wallet.can_proceed:
                if wallet.failure == ValidationFailure.BALANCE_UNAVAILABLE:
                    raise UpstreamUnavailableError(wallet.error_message, service="sui_rpc")
                raise InsufficientFundsError(wallet.error_message, shortfall=wallet.failure.value)
        elif not payment_reference:
            payment_reference = f"ONR_{uuid.uuid4().hex[:20]}"

        now = self.clock()
        txn = Transaction(
            id=str(uuid.uuid4()),
            direction=direction,
            status=TransactionStatus.PENDING,
            token=symbol,
            token_amount=token_amount,
            fiat_amount=fiat_amount,
            exchange_rate=exchange_rate,
            user_address=user_address,
            created_at=now,
            updated_at=now,
            bank_details=bank_details,
            payment_reference=payment_reference,
            price_source=price_source,
        )
        try:
            txn = self.transactions.add(txn)
        except ValidationError:
            self.uow.rollback()
            raise
        self.audit.record(
            user_address,
            "transaction_created",
            {"direction": direction.value, "token": symbol.value, "token_amount": str(token_amount)},
            transaction_id=txn.id,
        )
        self.uow.commit()
        logger.info(
            "Transaction created",
            extra={"transaction_id": txn.id, "direction": direction.value, "token": symbol.value},
        )
        return txn

    # ---------------------------------------------------------------- on-ramp

    async def confirm_on_ramp_payment(
        self,
        transaction_id: str,
        proof_reference: str,
        caller: str,
        paid_fiat_amount: Optional[Decimal] = None,
    ) -> Transaction:
        """
        Record receipt of the NGN payment and credit tokens.

        Replays with the same proof reference return the stored transaction
        without crediting again.
        """
        require(self.authorizer, caller, Action.CONFIRM_PAYMENT)
        txn = self.get(transaction_id)
        if txn.direction != TransactionDirection.ON_RAMP:
            raise ValidationError("Payment confirmation applies to on-ramp only", code="wrong_direction")

        if txn.status in (TransactionStatus.CONFIRMED, TransactionStatus.COMPLETED):
            if txn.confirmation_reference == proof_reference:
                logger.info("Duplicate payment confirmation ignored", extra={"transaction_id": txn.id})
                return txn
            raise StateConflictError(f"Transaction {txn.id} already confirmed with another reference")
        self._ensure_can_move(txn, TransactionStatus.CONFIRMED)

        if not fiat_matches(txn.token_amount, txn.exchange_rate, txn.fiat_amount, self.fiat_tolerance):
            return self._fail(
                txn,
                "Fiat amount does not match token amount at the recorded exchange rate",
                caller,
                refund=paid_fiat_amount is not None,
            )
        if paid_fiat_amount is not None and not self._within_tolerance(paid_fiat_amount, txn.fiat_amount):
            return self._fail(
                txn,
                f"Paid amount {paid_fiat_amount} does not match expected {txn.fiat_amount}",
                caller,
                refund=True,
            )

        txn = self._save(
            txn,
            caller,
            "payment_confirmed",
            status=TransactionStatus.CONFIRMED,
            confirmation_reference=proof_reference,
            confirmed_at=self.clock(),
        )
        self.uow.commit()
        return await self._credit_tokens(txn, caller)

    async def _credit_tokens(self, txn: Transaction, caller: str) -> Transaction:
        try:
            available = await self.treasury.get_available_balance(txn.token.value)
        except UpstreamUnavailableError as e:
            return self._fail(txn, f"Unable to verify treasury balance: {e.message}", caller, refund=True)

        if available < txn.token_amount:
            return self._fail(txn, "Insufficient treasury balance for token crediting", caller, refund=True)

        try:
            tx_hash = await self.creditor.credit_tokens(
                txn.user_address, txn.token, txn.token_amount, reference=txn.id
            )
        except (UpstreamUnavailableError, TokenCreditError) as e:
            return self._fail(txn, f"Token crediting failed: {e.message}", caller, refund=True)

        txn = self._save(
            txn,
            caller,
            "tokens_credited",
            status=TransactionStatus.COMPLETED,
            credit_tx_hash=tx_hash,
            completed_at=self.clock(),
        )
        self.uow.commit()
        return txn

    async def fail_payment(self, payment_reference: str, reason: str, caller: str) -> Transaction:
        """Gateway reported the NGN charge failed; nothing was received"""
        require(self.authorizer, caller, Action.FAIL_TRANSACTION)
        txn = self.transactions.get_by_payment_reference(payment_reference)
        if txn is None:
            raise TransactionNotFoundError(f"No transaction for payment reference {payment_reference}")
        if txn.status == TransactionStatus.FAILED:
            return txn
        if txn.status != TransactionStatus.PENDING:
            raise StateConflictError(f"Transaction {txn.id} is {txn.status.value}, cannot fail payment")
        return self._fail(txn, reason or "Payment failed", caller, refund=False)

    # --------------------------------------------------------------- off-ramp

    async def confirm_off_ramp_deposit(self, transaction_id: str, tx_digest: str, caller: str) -> Transaction:
        """User's token transfer to the treasury was observed on chain"""
        require(self.authorizer, caller, Action.CONFIRM_DEPOSIT)
        txn = self.get(transaction_id)
        if txn.direction != TransactionDirection.OFF_RAMP:
            raise ValidationError("Deposit confirmation applies to off-ramp only", code="wrong_direction")
        if txn.status == TransactionStatus.CONFIRMED and txn.confirmation_reference == tx_digest:
            return txn
        self._ensure_can_move(txn, TransactionStatus.CONFIRMED)

        txn = self._save(
            txn,
            caller,
            "deposit_confirmed",
            status=TransactionStatus.CONFIRMED,
            confirmation_reference=tx_digest,
            confirmed_at=self.clock(),
        )
        self.uow.commit()
        return txn

    async def complete_off_ramp(self, transaction_id: str, caller: str) -> Transaction:
        """
        Pay out NGN for an off-ramp and mark it COMPLETED once the transfer succeeds.

        Flow:
        1. PENDING is first moved to CONFIRMED
        2. An existing payout reference is reconciled instead of paying twice
        3. Payout balance is checked; a shortfall fails the transaction and
           opens a refund request
        4. Transfer is initiated under a deterministic reference
        5. success -> COMPLETED, failed/reversed -> FAILED + refund,
           pending -> stays CONFIRMED until the gateway reports back
        """
        require(self.authorizer, caller, Action.COMPLETE_OFF_RAMP)
        txn = self.get(transaction_id)
        if txn.direction != TransactionDirection.OFF_RAMP:
            raise ValidationError("Payout applies to off-ramp only", code="wrong_direction")
        if txn.status.is_terminal:
            raise StateConflictError(f"Transaction {txn.id} is {txn.status.value} and cannot be paid out")

        if txn.status == TransactionStatus.PENDING:
            txn = self._save(
                txn,
                caller,
                "deposit_confirmed",
                status=TransactionStatus.CONFIRMED,
                confirmed_at=self.clock(),
            )
            self.uow.commit()

        if txn.payout_reference:
            transfer = await self.payouts.get_transfer_status(txn.payout_reference)
            if transfer is not None:
                return self._apply_payout_status(txn, transfer.status, caller)

        try:
            available = await self.payouts.get_balance()
        except UpstreamUnavailableError as e:
            return self._fail(txn, f"Unable to verify payout balance: {e.message}", caller, refund=True)
        if available < txn.fiat_amount:
            return self._fail(txn, "Insufficient treasury funds for payout", caller, refund=True)

        bank = txn.bank_details
        try:
            recipient_code = bank.recipient_code or await self.payouts.create_recipient(
                bank.account_name or txn.user_address, bank.account_number, bank.bank_code
            )
        except (UpstreamUnavailableError, PayoutRejectedError) as e:
            return self._fail(txn, f"Could not register payout recipient: {e.message}", caller, refund=True)

        reference = txn.payout_reference or f"payout_{txn.id}"
        txn = self._save(
            txn,
            caller,
            "payout_initiated",
            payout_reference=reference,
            bank_details=replace(bank, recipient_code=recipient_code),
        )
        self.uow.commit()

        try:
            transfer = await self.payouts.initiate_transfer(
                txn.fiat_amount,
                recipient_code,
                reason=f"Off-ramp {txn.token_amount} {txn.token.value}",
                reference=reference,
            )
        except PayoutRejectedError as e:
            return self._fail(txn, f"Payout rejected: {e.message}", caller, refund=True)

        return self._apply_payout_status(txn, transfer.status, caller)

    async def reconcile_payout(self, payout_reference: str, status: PayoutStatus, caller: str) -> Transaction:
        """Apply a transfer outcome pushed by the payment gateway"""
        require(self.authorizer, caller, Action.COMPLETE_OFF_RAMP)
        txn = self.transactions.get_by_payout_reference(payout_reference)
        if txn is None:
            raise TransactionNotFoundError(f"No transaction for payout reference {payout_reference}")
        if txn.status.is_terminal:
            if (txn.status == TransactionStatus.COMPLETED) != (status == PayoutStatus.SUCCESS):
                logger.warning(
                    "Payout outcome disagrees with terminal transaction",
                    extra={"transaction_id": txn.id, "status": txn.status.value, "payout_status": status.value},
                )
            return txn
        return self._apply_payout_status(txn, status, caller)

    def _apply_payout_status(self, txn: Transaction, status: PayoutStatus, caller: str) -> Transaction:
        if status == PayoutStatus.SUCCESS:
            txn = self._save(
                txn,
                caller,
                "payout_completed",
                status=TransactionStatus.COMPLETED,
                completed_at=self.clock(),
            )
            self.uow.commit()
            return txn
        if status in (PayoutStatus.FAILED, PayoutStatus.REVERSED):
            return self._fail(txn, f"Payout {status.value}", caller, refund=True)
        logger.info("Payout still pending", extra={"transaction_id": txn.id})
        return txn

    # ------------------------------------------------------------------ admin

    async def reject(self, transaction_id: str, reason: str, caller: str) -> Transaction:
        """Explicit admin rejection; value already received becomes a refund request"""
        require(self.authorizer, caller, Action.FAIL_TRANSACTION)
        txn = self.get(transaction_id)
        self._ensure_can_move(txn, TransactionStatus.FAILED)
        return self._fail(
            txn,
            reason or "Rejected by admin",
            caller,
            refund=txn.status == TransactionStatus.CONFIRMED,
        )

    def get(self, transaction_id: str) -> Transaction:
        txn = self.transactions.get(transaction_id)
        if txn is None:
            raise TransactionNotFoundError(f"Transaction {transaction_id} not found")
        return txn

    # -------------------------------------------------------------- internals

    def _within_tolerance(self, actual: Decimal, expected: Decimal) -> bool:
        if expected <= 0:
            return False
        return abs(actual - expected) / expected <= self.fiat_tolerance

    def _ensure_can_move(self, txn: Transaction, target: TransactionStatus) -> None:
        if target not in ALLOWED_TRANSITIONS[txn.status]:
            raise StateConflictError(
                f"Transaction {txn.id} cannot move from {txn.status.value} to {target.value}"
            )

    def _save(self, txn: Transaction, actor: str, action: str, **changes) -> Transaction:
        """Versioned write of `changes`; status changes are checked against the state machine"""
        target = changes.get("status")
        if target is not None and target != txn.status:
            self._ensure_can_move(txn, target)

        updated = replace(txn, version=txn.version + 1, updated_at=self.clock(), **changes)
        try:
            stored = self.transactions.update(updated, expected_version=txn.version)
        except ConcurrentModificationError:
            self.uow.rollback()
            raise

        details = {"from": txn.status.value, "to": stored.status.value}
        if stored.failure_reason and target == TransactionStatus.FAILED:
            details["reason"] = stored.failure_reason
        self.audit.record(actor, action, details, transaction_id=stored.id)
        logger.info(
            "Transaction updated",
            extra={"transaction_id": stored.id, "action": action, **details},
        )
        return stored

    def _fail(self, txn: Transaction, reason: str, actor: str, refund: bool) -> Transaction:
        txn = self._save(
            txn,
            actor,
            "transaction_failed",
            status=TransactionStatus.FAILED,
            failure_reason=reason,
            failed_at=self.clock(),
        )
        if refund:
            self.refunds.add(
                RefundRequest(
                    id=str(uuid.uuid4()),
                    transaction_id=txn.id,
                    direction=txn.direction,
                    token=txn.token,
                    token_amount=txn.token_amount,
                    fiat_amount=txn.fiat_amount,
                    user_address=txn.user_address,
                    reason=reason,
                    created_at=self.clock(),
                )
            )
        self.uow.commit()
        logger.warning(
            "Transaction failed",
            extra={"transaction_id": txn.id, "reason": reason, "refund": refund},
        )
        return txn
