"""Token crediting service client with exponential backoff retry logic"""

import httpx
import asyncio
from decimal import Decimal
from ramp_gateway.domain.models import TokenSymbol
from ramp_gateway.domain.exceptions import TokenCreditError, UpstreamUnavailableError
from ramp_gateway.config import settings
from ramp_gateway.infrastructure.observability.metrics import credit_latency_histogram, upstream_failure_counter


class TokenCreditClient:
    """Client for the service that sends treasury tokens to user wallets"""

    def __init__(
        self,
        credit_url: str | None = None,
        max_retries: int | None = None,
        backoff_base: float | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.credit_url = credit_url or settings.token_credit_url
        self.max_retries = max_retries or settings.credit_max_retries
        self.backoff_base = settings.credit_backoff_base if backoff_base is None else backoff_base
        self.timeout = timeout or settings.http_timeout_seconds
        self.transport = transport

    async def credit_tokens(self, address: str, token: TokenSymbol, amount: Decimal, reference: str) -> str:
        """
        Credit `amount` of `token` to `address` and return the chain digest.

        Retry strategy:
        - Exponential backoff: 1s, 2s, 4s (base * 2^(attempt-1))
        - Retries on 5xx errors and network failures only
        - The reference travels as Idempotency-Key so a retried request
          after a lost response cannot credit twice

        Raises:
            TokenCreditError: service refused the credit (4xx) or returned no digest
            UpstreamUnavailableError: retries exhausted
        """
        payload = {
            "user_address": address,
            "token_type": token.value,
            "token_amount": format(amount, "f"),
            "transaction_id": reference,
        }
        attempt = 0
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            while True:
                try:
                    with credit_latency_histogram.time():
                        response = await client.post(
                            self.credit_url,
                            json=payload,
                            headers={"Idempotency-Key": reference},
                        )
                        response.raise_for_status()
                    break

                except httpx.HTTPStatusError as e:
                    if e.response.status_code < 500:
                        raise TokenCreditError(
                            f"Crediting refused with status {e.response.status_code}"
                        ) from e
                    failure = e
                except httpx.RequestError as e:
                    failure = e

                attempt += 1
                upstream_failure_counter.labels(service="token_credit").inc()
                if attempt >= self.max_retries:
                    raise UpstreamUnavailableError(
                        f"Crediting service failed after {attempt} attempts: {failure}",
                        service="token_credit",
                    ) from failure

                backoff = self.backoff_base * (2 ** (attempt - 1))
                await asyncio.sleep(backoff)

        try:
            return response.json()["transaction_hash"]
        except (KeyError, ValueError, TypeError) as e:
            raise TokenCreditError(f"Crediting response missing transaction hash: {e}") from e
