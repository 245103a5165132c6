"""Dependency injection for FastAPI endpoints"""

from typing import Optional
from decimal import Decimal
from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session
from ramp_gateway.config import settings
from ramp_gateway.domain.authorization import AllowListAuthorizer, Authorizer
from ramp_gateway.domain.balances import BalanceOracle
from ramp_gateway.domain.lifecycle import TransactionLifecycleManager
from ramp_gateway.domain.pricing import PricingService
from ramp_gateway.domain.treasury import TreasuryMonitor
from ramp_gateway.domain.wallet_validation import WalletValidationEngine
from ramp_gateway.infrastructure.clients.credit import TokenCreditClient
from ramp_gateway.infrastructure.clients.notifier import WebhookAlertNotifier
from ramp_gateway.infrastructure.clients.paystack import PaystackClient
from ramp_gateway.infrastructure.clients.prices import PriceFeedClient
from ramp_gateway.infrastructure.clients.sui_rpc import SuiRpcClient
from ramp_gateway.infrastructure.clients.treasury_balances import ChainTreasuryBalances
from ramp_gateway.infrastructure.database.repositories import (
    AlertRepository,
    AuditRepository,
    LimitsRepository,
    PriceOverrideRepository,
    RefundRepository,
    TransactionRepository,
)
from ramp_gateway.infrastructure.database.session import get_db


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_caller(x_caller_id: Optional[str] = Header(default=None)) -> Optional[str]:
    """Caller identity for admin and system actions (X-Caller-Id header)"""
    return x_caller_id.strip() if x_caller_id else None


def get_authorizer() -> Authorizer:
    return AllowListAuthorizer(settings.admin_addresses, settings.system_callers)


def get_sui_client() -> SuiRpcClient:
    """Provide Sui JSON-RPC client instance"""
    return SuiRpcClient()


def get_paystack_client() -> PaystackClient:
    """Provide Paystack client instance"""
    return PaystackClient()


def get_price_feed() -> PriceFeedClient:
    return PriceFeedClient()


def get_pricing(
    db: Session = Depends(get_db),
    feed: PriceFeedClient = Depends(get_price_feed),
) -> PricingService:
    """Overrides from this request's session in front of the live feed"""
    return PricingService(feed, PriceOverrideRepository(db))


def get_credit_client() -> TokenCreditClient:
    return TokenCreditClient()


def get_alert_notifier() -> WebhookAlertNotifier:
    return WebhookAlertNotifier()


def get_balance_oracle(rpc: SuiRpcClient = Depends(get_sui_client)) -> BalanceOracle:
    return BalanceOracle(rpc, timeout=settings.http_timeout_seconds)


def get_wallet_engine(oracle: BalanceOracle = Depends(get_balance_oracle)) -> WalletValidationEngine:
    return WalletValidationEngine(oracle)


def get_treasury_balances(
    rpc: SuiRpcClient = Depends(get_sui_client),
    paystack: PaystackClient = Depends(get_paystack_client),
) -> ChainTreasuryBalances:
    return ChainTreasuryBalances(
        rpc, paystack, settings.treasury_address, timeout=settings.http_timeout_seconds
    )


def get_lifecycle_manager(
    db: Session = Depends(get_db),
    wallet_engine: WalletValidationEngine = Depends(get_wallet_engine),
    authorizer: Authorizer = Depends(get_authorizer),
    treasury: ChainTreasuryBalances = Depends(get_treasury_balances),
    creditor: TokenCreditClient = Depends(get_credit_client),
    payouts: PaystackClient = Depends(get_paystack_client),
) -> TransactionLifecycleManager:
    """Wire the lifecycle manager to this request's session"""
    return TransactionLifecycleManager(
        transactions=TransactionRepository(db),
        refunds=RefundRepository(db),
        audit=AuditRepository(db),
        uow=db,
        limits=LimitsRepository(db),
        wallet_engine=wallet_engine,
        authorizer=authorizer,
        treasury=treasury,
        creditor=creditor,
        payouts=payouts,
        fiat_tolerance=Decimal(str(settings.fiat_tolerance)),
    )


def get_treasury_monitor(
    db: Session = Depends(get_db),
    balances: ChainTreasuryBalances = Depends(get_treasury_balances),
    notifier: WebhookAlertNotifier = Depends(get_alert_notifier),
) -> TreasuryMonitor:
    return TreasuryMonitor(
        balances=balances,
        alerts=AlertRepository(db),
        transactions=TransactionRepository(db),
        uow=db,
        notifier=notifier,
        failed_threshold=settings.failed_tx_alert_threshold,
        window_minutes=settings.failed_tx_window_minutes,
    )
