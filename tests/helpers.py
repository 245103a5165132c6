"""Shared fakes and constants for the test suite"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Iterable
from unittest.mock import AsyncMock
from ramp_gateway.domain.exceptions import UpstreamUnavailableError
from ramp_gateway.domain.models import PayoutStatus, PayoutTransfer, PriceQuote, TokenSymbol
from ramp_gateway.domain.tokens import TOKENS, to_minor_units

ADMIN = "0xadmin"
SYSTEM = "system:scheduler"
USER = "0xuser"
NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

_COIN_TYPES = {config.coin_type: symbol for symbol, config in TOKENS.items()}


class FakeSuiRpc:
    """Balances in token units per symbol; listed tokens fail like an RPC outage"""

    def __init__(self, balances: Dict[TokenSymbol, Decimal] | None = None, failing: Iterable[TokenSymbol] = ()):
        self.balances = dict(balances or {})
        self.failing = set(failing)
        self.calls = []

    async def get_balance(self, address: str, coin_type: str) -> int:
        token = _COIN_TYPES[coin_type]
        self.calls.append((address, token))
        if token in self.failing:
            raise UpstreamUnavailableError(f"{token.value} lookup failed", service="sui_rpc")
        return to_minor_units(token, self.balances.get(token, Decimal("0")))

    async def get_latest_checkpoint(self) -> int:
        return 1


class FakeTreasury:
    """Treasury balances per currency; listed currencies raise"""

    def __init__(self, balances: Dict[str, Decimal] | None = None, failing: Iterable[str] = ()):
        self.balances = dict(balances or {})
        self.failing = set(failing)

    async def get_available_balance(self, currency: str) -> Decimal:
        if currency in self.failing:
            raise UpstreamUnavailableError(f"{currency} balance unavailable", service="sui_rpc")
        return self.balances.get(currency, Decimal("0"))


class FakePriceFeed:
    def __init__(self, price: Decimal = Decimal("4850"), source: str = "coingecko", degraded: bool = False):
        self.price = price
        self.source = source
        self.degraded = degraded

    async def get_price(self, token: TokenSymbol) -> PriceQuote:
        return PriceQuote(token=token, price=self.price, change_24h=1.5, source=self.source, degraded=self.degraded)


def make_payouts(status: PayoutStatus = PayoutStatus.SUCCESS, balance: Decimal = Decimal("5000000")) -> AsyncMock:
    payouts = AsyncMock()
    payouts.get_balance.return_value = balance
    payouts.get_transfer_status.return_value = None
    payouts.create_recipient.return_value = "RCP_test"

    async def initiate(amount, recipient_code, reason, reference):
        return PayoutTransfer(reference=reference, status=status, transfer_code="TRF_test")

    payouts.initiate_transfer.side_effect = initiate
    return payouts


def make_creditor(tx_hash: str = "0xcredit") -> AsyncMock:
    creditor = AsyncMock()
    creditor.credit_tokens.return_value = tx_hash
    return creditor
