"""Wallet endpoints - off-ramp validation, balances and gas sufficiency"""

from fastapi import APIRouter, Depends, Request

from ramp_gateway.api.v1.schemas import (
    GasCheckResponse,
    RequiredAmountsSchema,
    TokenBalanceSchema,
    WalletBalancesResponse,
    WalletValidationRequest,
    WalletValidationResponse,
)
from ramp_gateway.api.dependencies import get_balance_oracle, get_request_id, get_wallet_engine
from ramp_gateway.domain.balances import BalanceOracle
from ramp_gateway.domain.wallet_validation import WalletValidationEngine
from ramp_gateway.infrastructure.observability.metrics import record_wallet_validation
from ramp_gateway.infrastructure.observability.logging import log_validation

router = APIRouter()


@router.post("/wallet/validate", response_model=WalletValidationResponse)
async def validate_wallet(
    request_body: WalletValidationRequest,
    request: Request,
    engine: WalletValidationEngine = Depends(get_wallet_engine),
):
    """
    Decide whether a wallet can cover an off-ramp of `amount` plus gas.

    Always answers 200; `can_proceed` and `failure` carry the decision, and
    `failure == "balance_unavailable"` means the balances could not be read.
    """
    result = await engine.validate_for_off_ramp(
        request_body.address, request_body.token, request_body.amount
    )

    failure = result.failure.value if result.failure else None
    record_wallet_validation(failure)
    log_validation(
        get_request_id(request), request_body.address, request_body.token, result.can_proceed, failure
    )

    return WalletValidationResponse(
        can_proceed=result.can_proceed,
        balances=result.balances.as_dict(),
        unavailable_tokens=[token.value for token in result.balances.unavailable_tokens()],
        required=RequiredAmountsSchema(
            swap_token=result.required.swap_token,
            gas_fee=result.required.gas_fee,
        ),
        error_message=result.error_message,
        failure=failure,
    )


@router.get("/wallet/{address}/balances", response_model=WalletBalancesResponse)
async def get_wallet_balances(
    address: str,
    oracle: BalanceOracle = Depends(get_balance_oracle),
):
    """Per-token balances; unreadable tokens report available=false, state=unknown"""
    snapshot = await oracle.get_all_balances(address)
    return WalletBalancesResponse(
        address=address,
        balances=[TokenBalanceSchema.from_domain(balance) for balance in snapshot.balances.values()],
    )


@router.get("/wallet/{address}/gas", response_model=GasCheckResponse)
async def check_gas(
    address: str,
    engine: WalletValidationEngine = Depends(get_wallet_engine),
):
    check = await engine.has_sufficient_gas_fee(address)
    return GasCheckResponse(
        address=address,
        has_sufficient=check.has_sufficient,
        sui_balance=check.sui_balance,
        estimated_gas_fee=check.estimated_gas_fee,
        balance_known=check.balance_known,
    )
