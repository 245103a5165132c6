"""Balance oracle - concurrent per-token wallet lookups that never mistake an outage for zero"""

import asyncio
import logging
from decimal import Decimal
from typing import Protocol
from ramp_gateway.domain.models import TokenBalance, TokenSymbol, WalletBalances
from ramp_gateway.domain.tokens import TOKENS, from_minor_units
from ramp_gateway.domain.exceptions import UpstreamUnavailableError

logger = logging.getLogger(__name__)


class BalanceRpc(Protocol):
    async def get_balance(self, address: str, coin_type: str) -> int:
        """Total balance in minor units; raises UpstreamUnavailableError"""
        ...


class BalanceOracle:
    """Reads wallet holdings for every supported token"""

    def __init__(self, rpc: BalanceRpc, timeout: float = 8.0):
        self.rpc = rpc
        self.timeout = timeout

    async def get_balance(self, address: str, token: TokenSymbol) -> TokenBalance:
        """
        Fetch one token balance.

        On RPC failure or timeout returns amount 0 with available=False and
        logs the outage; the caller decides how to treat the unknown.
        """
        config = TOKENS[token]
        try:
            raw = await asyncio.wait_for(
                self.rpc.get_balance(address, config.coin_type),
                timeout=self.timeout,
            )
            return TokenBalance(token=token, amount=from_minor_units(token, raw))
        except asyncio.TimeoutError:
            reason = f"timeout after {self.timeout}s"
        except UpstreamUnavailableError as e:
            reason = e.message
        except (ValueError, TypeError) as e:
            reason = f"invalid balance payload: {e}"

        logger.warning(
            "Balance unavailable",
            extra={"address": address, "token": token.value, "reason": reason},
        )
        return TokenBalance(token=token, amount=Decimal("0"), available=False, error=reason)

    async def get_all_balances(self, address: str) -> WalletBalances:
        """Fan out one lookup per token; a failing token never blocks the others"""
        tokens = list(TOKENS)
        results = await asyncio.gather(
            *(self.get_balance(address, token) for token in tokens),
            return_exceptions=True,
        )

        balances = {}
        for token, result in zip(tokens, results):
            if isinstance(result, BaseException):
                logger.error(
                    "Unexpected balance lookup failure",
                    extra={"address": address, "token": token.value, "reason": repr(result)},
                )
                result = TokenBalance(token=token, amount=Decimal("0"), available=False, error=repr(result))
            balances[token] = result

        return WalletBalances(address=address, balances=balances)
