"""Pytest fixtures for testing"""

import pytest
from decimal import Decimal
from typing import Generator
from unittest.mock import AsyncMock
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from ramp_gateway.api.main import create_app
from ramp_gateway.api import dependencies
from ramp_gateway.infrastructure.database.models import Base
from ramp_gateway.infrastructure.database.session import get_db
from ramp_gateway.infrastructure.database.repositories import (
    AlertRepository,
    AuditRepository,
    LimitsRepository,
    RefundRepository,
    TransactionRepository,
)
from ramp_gateway.domain.authorization import AllowListAuthorizer
from ramp_gateway.domain.balances import BalanceOracle
from ramp_gateway.domain.lifecycle import TransactionLifecycleManager
from ramp_gateway.domain.models import TokenSymbol
from ramp_gateway.domain.wallet_validation import WalletValidationEngine
from tests.helpers import ADMIN, SYSTEM, NOW, FakePriceFeed, FakeSuiRpc, FakeTreasury, make_creditor, make_payouts


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def authorizer() -> AllowListAuthorizer:
    return AllowListAuthorizer([ADMIN], ["system:paystack-webhook", SYSTEM])


@pytest.fixture
def rpc() -> FakeSuiRpc:
    """Healthy wallet: 10 SUI, 500 USDC, 0 USDT"""
    return FakeSuiRpc({TokenSymbol.SUI: Decimal("10"), TokenSymbol.USDC: Decimal("500")})


@pytest.fixture
def treasury() -> FakeTreasury:
    return FakeTreasury(
        {
            "SUI": Decimal("500"),
            "USDC": Decimal("5000"),
            "USDT": Decimal("5000"),
            "NAIRA": Decimal("500000"),
        }
    )


@pytest.fixture
def payouts() -> AsyncMock:
    return make_payouts()


@pytest.fixture
def creditor() -> AsyncMock:
    return make_creditor()


@pytest.fixture
def make_manager(db, rpc, authorizer, treasury, creditor, payouts):
    """Build a lifecycle manager on the test session; keyword overrides swap collaborators"""

    def build(**overrides) -> TransactionLifecycleManager:
        wallet_rpc = overrides.pop("rpc", rpc)
        params = dict(
            transactions=TransactionRepository(db),
            refunds=RefundRepository(db),
            audit=AuditRepository(db),
            uow=db,
            limits=LimitsRepository(db),
            wallet_engine=WalletValidationEngine(BalanceOracle(wallet_rpc, timeout=1.0)),
            authorizer=authorizer,
            treasury=treasury,
            creditor=creditor,
            payouts=payouts,
            clock=lambda: NOW,
        )
        params.update(overrides)
        return TransactionLifecycleManager(**params)

    return build


@pytest.fixture
def alerts(db) -> AlertRepository:
    return AlertRepository(db)


@pytest.fixture
def app(db: Session, rpc, treasury, payouts, creditor, authorizer):
    """FastAPI app wired to the test database and fake upstreams"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[dependencies.get_sui_client] = lambda: rpc
    app.dependency_overrides[dependencies.get_treasury_balances] = lambda: treasury
    app.dependency_overrides[dependencies.get_paystack_client] = lambda: payouts
    app.dependency_overrides[dependencies.get_credit_client] = lambda: creditor
    app.dependency_overrides[dependencies.get_price_feed] = lambda: FakePriceFeed()
    app.dependency_overrides[dependencies.get_alert_notifier] = lambda: AsyncMock()
    app.dependency_overrides[dependencies.get_authorizer] = lambda: authorizer
    return app


@pytest.fixture
def client(app) -> TestClient:
    """Create FastAPI test client with test database"""
    return TestClient(app)
