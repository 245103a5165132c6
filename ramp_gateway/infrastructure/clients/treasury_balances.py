"""Treasury holdings: tokens from the treasury wallet, naira from the payout balance"""

import asyncio
from decimal import Decimal
from ramp_gateway.domain.models import TokenSymbol
from ramp_gateway.domain.tokens import FIAT_CURRENCY, TOKENS, from_minor_units
from ramp_gateway.domain.exceptions import UpstreamUnavailableError, ValidationError
from ramp_gateway.infrastructure.clients.paystack import PaystackClient
from ramp_gateway.infrastructure.clients.sui_rpc import SuiRpcClient


class ChainTreasuryBalances:
    """Reads each treasury currency from its source of record"""

    def __init__(self, rpc: SuiRpcClient, paystack: PaystackClient, treasury_address: str, timeout: float = 8.0):
        self.rpc = rpc
        self.paystack = paystack
        self.treasury_address = treasury_address
        self.timeout = timeout

    async def get_available_balance(self, currency: str) -> Decimal:
        """
        Raises:
            UpstreamUnavailableError: source failed, timed out, or no treasury address is configured
        """
        try:
            if currency == FIAT_CURRENCY:
                return await asyncio.wait_for(self.paystack.get_balance(), timeout=self.timeout)
            return await asyncio.wait_for(self._token_balance(currency), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise UpstreamUnavailableError(
                f"{currency} treasury balance timed out after {self.timeout}s",
                service="paystack" if currency == FIAT_CURRENCY else "sui_rpc",
            ) from e

    async def _token_balance(self, currency: str) -> Decimal:
        try:
            token = TokenSymbol(currency)
        except ValueError:
            raise ValidationError(f"Unknown treasury currency: {currency}") from None
        if not self.treasury_address:
            raise UpstreamUnavailableError("Treasury address is not configured", service="sui_rpc")
        raw = await self.rpc.get_balance(self.treasury_address, TOKENS[token].coin_type)
        return from_minor_units(token, raw)
