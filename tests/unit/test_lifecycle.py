"""Unit tests for the transaction lifecycle manager"""

import pytest
from decimal import Decimal
from ramp_gateway.domain.exceptions import (
    AuthorizationError,
    InsufficientFundsError,
    StateConflictError,
    TokenCreditError,
    TransactionNotFoundError,
    UpstreamUnavailableError,
    ValidationError,
)
from ramp_gateway.domain.models import (
    BankDetails,
    PayoutStatus,
    PayoutTransfer,
    TokenSymbol,
    TransactionDirection,
    TransactionStatus,
)
from ramp_gateway.infrastructure.database.repositories import AuditRepository, RefundRepository
from tests.helpers import ADMIN, SYSTEM, USER, FakeSuiRpc, FakeTreasury, make_payouts

BANK = BankDetails(account_number="0123456789", bank_code="058", bank_name="GTBank", account_name="Ada Obi")
RATE = Decimal("1650")


async def create_on_ramp(manager, amount=Decimal("2"), **kwargs):
    return await manager.create(
        direction=TransactionDirection.ON_RAMP,
        token="SUI",
        token_amount=amount,
        exchange_rate=RATE,
        user_address=USER,
        **kwargs,
    )


async def create_off_ramp(manager, amount=Decimal("100"), token="USDC", bank=BANK):
    return await manager.create(
        direction=TransactionDirection.OFF_RAMP,
        token=token,
        token_amount=amount,
        exchange_rate=RATE,
        user_address=USER,
        bank_details=bank,
    )


def audit_actions(db, transaction_id):
    return [entry.action for entry in AuditRepository(db).for_transaction(transaction_id)]


# Create


async def test_create_on_ramp_derives_fiat_and_reference(make_manager, db):
    txn = await create_on_ramp(make_manager())

    assert txn.status == TransactionStatus.PENDING
    assert txn.fiat_amount == Decimal("3300.00")
    assert txn.payment_reference.startswith("ONR_")
    assert txn.version == 1
    assert audit_actions(db, txn.id) == ["transaction_created"]


async def test_create_off_ramp_checks_wallet(make_manager, rpc):
    txn = await create_off_ramp(make_manager())

    assert txn.direction == TransactionDirection.OFF_RAMP
    assert txn.bank_details.account_number == "0123456789"
    assert rpc.calls


async def test_create_rejects_limit_breach(make_manager):
    with pytest.raises(ValidationError) as exc_info:
        await create_on_ramp(make_manager(), amount=Decimal("2000"))

    assert exc_info.value.code == "limit_exceeded"


async def test_create_rejects_fiat_mismatch(make_manager):
    with pytest.raises(ValidationError) as exc_info:
        await create_on_ramp(make_manager(), fiat_amount=Decimal("5000"))

    assert exc_info.value.code == "amount_mismatch"


async def test_create_accepts_fiat_within_tolerance(make_manager):
    txn = await create_on_ramp(make_manager(), fiat_amount=Decimal("3310"))

    assert txn.fiat_amount == Decimal("3310")


async def test_create_rejects_non_positive_amount(make_manager):
    with pytest.raises(ValidationError) as exc_info:
        await create_on_ramp(make_manager(), amount=Decimal("0"))

    assert exc_info.value.code == "invalid_amount"


async def test_create_rejects_reused_payment_reference(make_manager, db):
    manager = make_manager()
    first = await create_on_ramp(manager, payment_reference="PAY_DUP")

    with pytest.raises(ValidationError) as exc_info:
        await create_on_ramp(manager, payment_reference="PAY_DUP")

    assert exc_info.value.code == "duplicate_reference"
    assert audit_actions(db, first.id) == ["transaction_created"]


async def test_off_ramp_requires_valid_bank_details(make_manager):
    bad = BankDetails(account_number="12345", bank_code="058")

    with pytest.raises(ValidationError) as exc_info:
        await create_off_ramp(make_manager(), bank=bad)

    assert exc_info.value.code == "invalid_bank_details"


async def test_off_ramp_without_gas_is_insufficient_funds(make_manager):
    manager = make_manager(rpc=FakeSuiRpc({TokenSymbol.SUI: Decimal("0.01"), TokenSymbol.USDC: Decimal("500")}))

    with pytest.raises(InsufficientFundsError) as exc_info:
        await create_off_ramp(manager)

    assert exc_info.value.code == "insufficient_gas"


async def test_off_ramp_with_unreadable_balance_is_upstream_error(make_manager, db):
    manager = make_manager(rpc=FakeSuiRpc({TokenSymbol.SUI: Decimal("10")}, failing=[TokenSymbol.USDC]))

    with pytest.raises(UpstreamUnavailableError):
        await create_off_ramp(manager)

    assert manager.transactions.list() == []


# On-ramp confirmation


async def test_confirm_payment_credits_and_completes(make_manager, creditor, db):
    manager = make_manager()
    txn = await create_on_ramp(manager)

    done = await manager.confirm_on_ramp_payment(txn.id, "PAY_1", SYSTEM, paid_fiat_amount=Decimal("3300"))

    assert done.status == TransactionStatus.COMPLETED
    assert done.credit_tx_hash == "0xcredit"
    assert done.version == 3
    creditor.credit_tokens.assert_awaited_once_with(USER, TokenSymbol.SUI, Decimal("2"), reference=txn.id)
    assert audit_actions(db, txn.id) == ["transaction_created", "payment_confirmed", "tokens_credited"]


async def test_duplicate_confirmation_does_not_credit_twice(make_manager, creditor):
    manager = make_manager()
    txn = await create_on_ramp(manager)

    await manager.confirm_on_ramp_payment(txn.id, "PAY_1", SYSTEM)
    replay = await manager.confirm_on_ramp_payment(txn.id, "PAY_1", SYSTEM)

    assert replay.status == TransactionStatus.COMPLETED
    assert creditor.credit_tokens.await_count == 1


async def test_confirmation_with_other_reference_conflicts(make_manager):
    manager = make_manager()
    txn = await create_on_ramp(manager)
    await manager.confirm_on_ramp_payment(txn.id, "PAY_1", SYSTEM)

    with pytest.raises(StateConflictError):
        await manager.confirm_on_ramp_payment(txn.id, "PAY_2", SYSTEM)


async def test_underpayment_fails_with_refund(make_manager, creditor, db):
    manager = make_manager()
    txn = await create_on_ramp(manager)

    failed = await manager.confirm_on_ramp_payment(txn.id, "PAY_1", SYSTEM, paid_fiat_amount=Decimal("1000"))

    assert failed.status == TransactionStatus.FAILED
    assert "does not match" in failed.failure_reason
    creditor.credit_tokens.assert_not_awaited()
    refunds = RefundRepository(db).list()
    assert len(refunds) == 1
    assert refunds[0].transaction_id == txn.id


async def test_treasury_shortfall_fails_with_refund(make_manager, creditor, db):
    manager = make_manager(treasury=FakeTreasury({"SUI": Decimal("1")}))
    txn = await create_on_ramp(manager)

    failed = await manager.confirm_on_ramp_payment(txn.id, "PAY_1", SYSTEM)

    assert failed.status == TransactionStatus.FAILED
    assert failed.failure_reason == "Insufficient treasury balance for token crediting"
    creditor.credit_tokens.assert_not_awaited()
    assert len(RefundRepository(db).list(status="PENDING")) == 1


async def test_credit_failure_fails_with_refund(make_manager, creditor, db):
    creditor.credit_tokens.side_effect = TokenCreditError("address rejected")
    manager = make_manager()
    txn = await create_on_ramp(manager)

    failed = await manager.confirm_on_ramp_payment(txn.id, "PAY_1", SYSTEM)

    assert failed.status == TransactionStatus.FAILED
    assert "Token crediting failed" in failed.failure_reason
    assert len(RefundRepository(db).list()) == 1


async def test_payment_confirmation_requires_capability(make_manager):
    manager = make_manager()
    txn = await create_on_ramp(manager)

    with pytest.raises(AuthorizationError):
        await manager.confirm_on_ramp_payment(txn.id, "PAY_1", USER)

    assert manager.get(txn.id).status == TransactionStatus.PENDING


async def test_confirm_payment_rejects_off_ramp(make_manager):
    manager = make_manager()
    txn = await create_off_ramp(manager)

    with pytest.raises(ValidationError):
        await manager.confirm_on_ramp_payment(txn.id, "PAY_1", SYSTEM)


async def test_failed_charge_has_no_refund(make_manager, db):
    manager = make_manager()
    txn = await create_on_ramp(manager)

    failed = await manager.fail_payment(txn.payment_reference, "Declined", SYSTEM)
    again = await manager.fail_payment(txn.payment_reference, "Declined", SYSTEM)

    assert failed.status == TransactionStatus.FAILED
    assert again.version == failed.version
    assert RefundRepository(db).list() == []


# Off-ramp payout


async def test_complete_off_ramp_pays_out(make_manager, payouts, db):
    manager = make_manager()
    txn = await create_off_ramp(manager)

    done = await manager.complete_off_ramp(txn.id, SYSTEM)

    assert done.status == TransactionStatus.COMPLETED
    assert done.payout_reference == f"payout_{txn.id}"
    assert done.bank_details.recipient_code == "RCP_test"
    payouts.initiate_transfer.assert_awaited_once()
    assert audit_actions(db, txn.id)[-1] == "payout_completed"


async def test_pending_payout_stays_confirmed_then_reconciles(make_manager, payouts):
    pending = make_payouts(status=PayoutStatus.PENDING)
    manager = make_manager(payouts=pending)
    txn = await create_off_ramp(manager)

    waiting = await manager.complete_off_ramp(txn.id, SYSTEM)
    assert waiting.status == TransactionStatus.CONFIRMED

    pending.get_transfer_status.return_value = PayoutTransfer(
        reference=waiting.payout_reference, status=PayoutStatus.SUCCESS
    )
    done = await manager.complete_off_ramp(txn.id, SYSTEM)

    assert done.status == TransactionStatus.COMPLETED
    assert pending.initiate_transfer.await_count == 1


async def test_failed_payout_opens_refund(make_manager, db):
    manager = make_manager(payouts=make_payouts(status=PayoutStatus.FAILED))
    txn = await create_off_ramp(manager)

    failed = await manager.complete_off_ramp(txn.id, SYSTEM)

    assert failed.status == TransactionStatus.FAILED
    refunds = RefundRepository(db).list()
    assert [r.direction for r in refunds] == [TransactionDirection.OFF_RAMP]


async def test_payout_shortfall_fails_before_transfer(make_manager, db):
    payouts = make_payouts(balance=Decimal("100"))
    manager = make_manager(payouts=payouts)
    txn = await create_off_ramp(manager)

    failed = await manager.complete_off_ramp(txn.id, SYSTEM)

    assert failed.failure_reason == "Insufficient treasury funds for payout"
    payouts.initiate_transfer.assert_not_awaited()
    assert len(RefundRepository(db).list()) == 1


async def test_reconcile_payout_webhook_outcome(make_manager):
    manager = make_manager(payouts=make_payouts(status=PayoutStatus.PENDING))
    txn = await create_off_ramp(manager)
    waiting = await manager.complete_off_ramp(txn.id, SYSTEM)

    reversed_txn = await manager.reconcile_payout(waiting.payout_reference, PayoutStatus.REVERSED, SYSTEM)
    replay = await manager.reconcile_payout(waiting.payout_reference, PayoutStatus.SUCCESS, SYSTEM)

    assert reversed_txn.status == TransactionStatus.FAILED
    assert replay.status == TransactionStatus.FAILED


async def test_reconcile_unknown_reference(make_manager):
    with pytest.raises(TransactionNotFoundError):
        await make_manager().reconcile_payout("payout_missing", PayoutStatus.SUCCESS, SYSTEM)


async def test_deposit_confirmation_is_idempotent(make_manager):
    manager = make_manager()
    txn = await create_off_ramp(manager)

    first = await manager.confirm_off_ramp_deposit(txn.id, "0xdigest", SYSTEM)
    second = await manager.confirm_off_ramp_deposit(txn.id, "0xdigest", SYSTEM)

    assert first.status == TransactionStatus.CONFIRMED
    assert second.version == first.version


# Admin and terminal states


async def test_reject_pending_has_no_refund(make_manager, db):
    manager = make_manager()
    txn = await create_on_ramp(manager)

    rejected = await manager.reject(txn.id, "Suspicious", ADMIN)

    assert rejected.status == TransactionStatus.FAILED
    assert rejected.failure_reason == "Suspicious"
    assert RefundRepository(db).list() == []


async def test_reject_confirmed_opens_refund(make_manager, db):
    manager = make_manager()
    txn = await create_off_ramp(manager)
    await manager.confirm_off_ramp_deposit(txn.id, "0xdigest", SYSTEM)

    await manager.reject(txn.id, "Compliance hold", ADMIN)

    assert len(RefundRepository(db).list()) == 1


async def test_reject_requires_capability(make_manager):
    manager = make_manager()
    txn = await create_on_ramp(manager)

    with pytest.raises(AuthorizationError):
        await manager.reject(txn.id, "nope", USER)


async def test_terminal_transactions_cannot_move(make_manager):
    manager = make_manager()
    txn = await create_on_ramp(manager)
    await manager.confirm_on_ramp_payment(txn.id, "PAY_1", SYSTEM)

    with pytest.raises(StateConflictError):
        await manager.reject(txn.id, "too late", ADMIN)

    paid = await create_off_ramp(manager)
    done = await manager.complete_off_ramp(paid.id, SYSTEM)
    assert done.status == TransactionStatus.COMPLETED
    with pytest.raises(StateConflictError):
        await manager.complete_off_ramp(paid.id, SYSTEM)
    assert manager.get(paid.id).version == done.version

    rejected = await create_off_ramp(manager)
    await manager.confirm_off_ramp_deposit(rejected.id, "0xd", SYSTEM)
    await manager.reject(rejected.id, "cancelled", ADMIN)
    with pytest.raises(StateConflictError):
        await manager.confirm_off_ramp_deposit(rejected.id, "0xd", SYSTEM)
    assert manager.get(rejected.id).status == TransactionStatus.FAILED


async def test_failed_off_ramp_cannot_be_paid(make_manager):
    manager = make_manager()
    txn = await create_off_ramp(manager)
    await manager.reject(txn.id, "cancelled", ADMIN)

    with pytest.raises(StateConflictError):
        await manager.complete_off_ramp(txn.id, SYSTEM)
    with pytest.raises(StateConflictError):
        await manager.confirm_off_ramp_deposit(txn.id, "0xdigest", SYSTEM)


async def test_get_unknown_transaction(make_manager):
    with pytest.raises(TransactionNotFoundError):
        make_manager().get("missing")
