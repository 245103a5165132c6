"""NGN price quotes: CoinMarketCap, then CoinGecko, then a static fallback"""

import logging
import httpx
from decimal import Decimal
from typing import Dict
from ramp_gateway.domain.models import PriceQuote, TokenSymbol
from ramp_gateway.domain.exceptions import UpstreamUnavailableError
from ramp_gateway.config import settings
from ramp_gateway.infrastructure.observability.metrics import upstream_failure_counter

logger = logging.getLogger(__name__)

CMC_TOKEN_IDS: Dict[TokenSymbol, str] = {
    TokenSymbol.SUI: "20947",
    TokenSymbol.USDC: "3408",
    TokenSymbol.USDT: "825",
}

COINGECKO_IDS: Dict[TokenSymbol, str] = {
    TokenSymbol.SUI: "sui",
    TokenSymbol.USDC: "usd-coin",
    TokenSymbol.USDT: "tether",
}

# NGN per token when every live source is down
FALLBACK_PRICES: Dict[TokenSymbol, Decimal] = {
    TokenSymbol.SUI: Decimal("4850"),
    TokenSymbol.USDC: Decimal("1650"),
    TokenSymbol.USDT: Decimal("1650"),
}

CENT = Decimal("0.01")


class PriceFeedClient:
    """Price feed with a fallback chain; never fails, degrades instead"""

    def __init__(
        self,
        cmc_url: str | None = None,
        cmc_api_key: str | None = None,
        coingecko_url: str | None = None,
        usd_to_ngn_rate: float | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.cmc_url = cmc_url or settings.coinmarketcap_base_url
        self.cmc_api_key = cmc_api_key if cmc_api_key is not None else settings.coinmarketcap_api_key
        self.coingecko_url = coingecko_url or settings.coingecko_base_url
        self.usd_to_ngn_rate = Decimal(str(usd_to_ngn_rate or settings.usd_to_ngn_rate))
        self.timeout = timeout or settings.http_timeout_seconds
        self.transport = transport

    async def get_price(self, token: TokenSymbol) -> PriceQuote:
        """
        Quote `token` in NGN.

        Sources in order:
        1. CoinMarketCap USD quote x usd_to_ngn_rate (skipped without an API key)
        2. CoinGecko NGN quote
        3. Static fallback, tagged degraded
        """
        sources = [self._from_coingecko]
        if self.cmc_api_key:
            sources.insert(0, self._from_coinmarketcap)

        for source in sources:
            try:
                return await source(token)
            except UpstreamUnavailableError as e:
                upstream_failure_counter.labels(service="price_feed").inc()
                logger.warning("Price source failed", extra={"token": token.value, "reason": e.message})

        logger.warning("Using fallback price", extra={"token": token.value})
        return PriceQuote(
            token=token,
            price=FALLBACK_PRICES[token],
            change_24h=0.0,
            source="fallback",
            degraded=True,
        )

    async def _get_json(self, url: str, params: Dict[str, str], headers: Dict[str, str] | None = None) -> dict:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.get(url, params=params, headers=headers)
                response.raise_for_status()
                return response.json()
            except httpx.TimeoutException as e:
                raise UpstreamUnavailableError(f"Price feed timeout after {self.timeout}s", service="price_feed") from e
            except httpx.HTTPStatusError as e:
                raise UpstreamUnavailableError(f"Price feed error: {e.response.status_code}", service="price_feed") from e
            except (httpx.RequestError, ValueError) as e:
                raise UpstreamUnavailableError(f"Price feed unreachable: {e}", service="price_feed") from e

    async def _from_coinmarketcap(self, token: TokenSymbol) -> PriceQuote:
        token_id = CMC_TOKEN_IDS[token]
        data = await self._get_json(
            self.cmc_url,
            params={"id": token_id, "convert": "USD"},
            headers={"Accept": "application/json", "X-CMC_PRO_API_KEY": self.cmc_api_key},
        )
        try:
            usd = data["data"][token_id]["quote"]["USD"]
            price = Decimal(str(usd["price"])) * self.usd_to_ngn_rate
            change = float(usd.get("percent_change_24h") or 0.0)
        except (KeyError, TypeError, ArithmeticError) as e:
            raise UpstreamUnavailableError(f"Invalid CoinMarketCap payload: {e}", service="price_feed") from e
        return PriceQuote(token=token, price=price.quantize(CENT), change_24h=change, source="coinmarketcap")

    async def _from_coingecko(self, token: TokenSymbol) -> PriceQuote:
        coin_id = COINGECKO_IDS[token]
        data = await self._get_json(
            self.coingecko_url,
            params={"ids": coin_id, "vs_currencies": "ngn", "include_24hr_change": "true"},
        )
        try:
            quote = data[coin_id]
            price = Decimal(str(quote["ngn"]))
            change = float(quote.get("ngn_24h_change") or 0.0)
        except (KeyError, TypeError, ArithmeticError) as e:
            raise UpstreamUnavailableError(f"Invalid CoinGecko payload: {e}", service="price_feed") from e
        return PriceQuote(token=token, price=price.quantize(CENT), change_24h=change, source="coingecko")
