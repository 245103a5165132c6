"""Supported token registry and unit conversion"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict
from ramp_gateway.domain.models import TokenSymbol
from ramp_gateway.domain.exceptions import ValidationError


@dataclass(frozen=True)
class TokenConfig:
    symbol: TokenSymbol
    coin_type: str
    decimals: int


# Sui testnet coin types
TOKENS: Dict[TokenSymbol, TokenConfig] = {
    TokenSymbol.SUI: TokenConfig(TokenSymbol.SUI, "0x2::sui::SUI", 9),
    TokenSymbol.USDC: TokenConfig(
        TokenSymbol.USDC,
        "0xa1ec7fc00a6f40db9693ad1415d0c193ad3906494428cf252621037bd7117e29::usdc::USDC",
        6,
    ),
    TokenSymbol.USDT: TokenConfig(
        TokenSymbol.USDT,
        "0xc060006111016b8a020ad5b33834984a437aaa7d3c74c18e09a95d48aceab08c::coin::COIN",
        6,
    ),
}

# Gas is paid in SUI
NATIVE_TOKEN = TokenSymbol.SUI

FIAT_CURRENCY = "NAIRA"


def parse_token(symbol: str | TokenSymbol) -> TokenSymbol:
    """Map a user-supplied symbol onto the supported set, case-insensitively."""
    if isinstance(symbol, TokenSymbol):
        return symbol
    try:
        return TokenSymbol(str(symbol).strip().upper())
    except ValueError:
        raise ValidationError(f"Unsupported token: {symbol}", code="unsupported_token") from None


def from_minor_units(token: TokenSymbol, raw: int | str) -> Decimal:
    """Convert an on-chain integer balance (MIST / micro-units) to token units"""
    return Decimal(int(raw)).scaleb(-TOKENS[token].decimals)


def to_minor_units(token: TokenSymbol, amount: Decimal) -> int:
    return int(amount.scaleb(TOKENS[token].decimals))
