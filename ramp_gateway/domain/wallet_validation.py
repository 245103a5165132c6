"""Wallet validation engine - the single source of truth for off-ramp balance sufficiency"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from ramp_gateway.domain.balances import BalanceOracle
from ramp_gateway.domain.gas import estimate_fee
from ramp_gateway.domain.models import (
    RequiredAmounts,
    TokenSymbol,
    TransactionKind,
    ValidationFailure,
    WalletBalances,
    WalletValidationResult,
)
from ramp_gateway.domain.tokens import NATIVE_TOKEN, parse_token
from ramp_gateway.domain.exceptions import ValidationError

logger = logging.getLogger(__name__)

BALANCE_UNAVAILABLE_MESSAGE = "Unable to verify wallet balance, please try again shortly"
GAS_SHORTFALL_MESSAGE = "Insufficient gas fee to complete transaction"


@dataclass(frozen=True)
class GasCheck:
    has_sufficient: bool
    sui_balance: Decimal
    estimated_gas_fee: Decimal
    balance_known: bool


def fiat_matches(
    token_amount: Decimal,
    exchange_rate: Decimal,
    fiat_amount: Decimal,
    tolerance: Decimal,
) -> bool:
    """True when fiat_amount is within `tolerance` relative error of token_amount x rate"""
    expected = token_amount * exchange_rate
    if expected <= 0:
        return False
    return abs(fiat_amount - expected) / expected <= tolerance


class WalletValidationEngine:
    """Combines balance oracle, gas estimate and token rules into one decision"""

    def __init__(self, oracle: BalanceOracle):
        self.oracle = oracle

    async def validate_for_off_ramp(
        self,
        address: str,
        token: str | TokenSymbol,
        amount: Decimal,
    ) -> WalletValidationResult:
        """
        Decide whether `address` can send `amount` of `token` to the treasury.

        - Native token: balance must cover amount + gas as one combined need
        - Other tokens: token balance checked first, then SUI for gas; the
          first failing check is the reported reason
        - Any balance needed for the decision that could not be read fails
          closed with BALANCE_UNAVAILABLE
        """
        gas_fee = estimate_fee(TransactionKind.OFF_RAMP)
        required = RequiredAmounts(swap_token=amount, gas_fee=gas_fee)

        try:
            symbol = parse_token(token)
        except ValidationError as e:
            return WalletValidationResult(
                can_proceed=False,
                balances=WalletBalances(address=address, balances={}),
                required=required,
                error_message=e.message,
                failure=ValidationFailure.UNSUPPORTED_TOKEN,
            )

        balances = await self.oracle.get_all_balances(address)
        result = self._decide(symbol, amount, gas_fee, balances, required)

        logger.debug(
            "Wallet balances evaluated",
            extra={
                "address": address,
                "token": symbol.value,
                "amount": str(amount),
                "can_proceed": result.can_proceed,
                "failure": result.failure.value if result.failure else None,
            },
        )
        return result

    def _decide(
        self,
        token: TokenSymbol,
        amount: Decimal,
        gas_fee: Decimal,
        balances: WalletBalances,
        required: RequiredAmounts,
    ) -> WalletValidationResult:
        def fail(failure: ValidationFailure, message: str) -> WalletValidationResult:
            return WalletValidationResult(
                can_proceed=False,
                balances=balances,
                required=required,
                error_message=message,
                failure=failure,
            )

        needed = {token, NATIVE_TOKEN}
        if any(not balances.is_available(t) for t in needed):
            return fail(ValidationFailure.BALANCE_UNAVAILABLE, BALANCE_UNAVAILABLE_MESSAGE)

        if token == NATIVE_TOKEN:
            if balances.amount(token) < amount + gas_fee:
                return fail(
                    ValidationFailure.COMBINED_SHORTFALL,
                    f"Insufficient {token.value} for swap and gas fees",
                )
        else:
            if balances.amount(token) < amount:
                return fail(ValidationFailure.TOKEN_SHORTFALL, f"Insufficient {token.value} for swap")
            if balances.amount(NATIVE_TOKEN) < gas_fee:
                return fail(ValidationFailure.GAS_SHORTFALL, GAS_SHORTFALL_MESSAGE)

        return WalletValidationResult(can_proceed=True, balances=balances, required=required)

    async def has_sufficient_gas_fee(self, address: str) -> GasCheck:
        """Gas-only check used before on-chain actions that move no swap token"""
        gas_fee = estimate_fee(TransactionKind.OFF_RAMP)
        balance = await self.oracle.get_balance(address, NATIVE_TOKEN)
        return GasCheck(
            has_sufficient=balance.available and balance.amount >= gas_fee,
            sui_balance=balance.amount,
            estimated_gas_fee=gas_fee,
            balance_known=balance.available,
        )
