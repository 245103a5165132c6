"""Paystack HTTP client for NGN transfers, payout balance and webhook signatures"""

import hashlib
import hmac
import httpx
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional
from ramp_gateway.domain.models import PayoutStatus, PayoutTransfer
from ramp_gateway.domain.exceptions import PayoutRejectedError, UpstreamUnavailableError
from ramp_gateway.config import settings
from ramp_gateway.infrastructure.observability.metrics import upstream_failure_counter

KOBO_PER_NAIRA = Decimal("100")

_TRANSFER_STATUSES = {
    "success": PayoutStatus.SUCCESS,
    "failed": PayoutStatus.FAILED,
    "reversed": PayoutStatus.REVERSED,
}


def to_kobo(amount: Decimal) -> int:
    return int((amount * KOBO_PER_NAIRA).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def parse_transfer_status(status: str | None) -> PayoutStatus:
    """otp, queued, received and anything unrecognised are still in flight"""
    return _TRANSFER_STATUSES.get((status or "").lower(), PayoutStatus.PENDING)


def verify_webhook_signature(payload: bytes, signature: str | None, secret: str) -> bool:
    """Paystack signs the raw body with HMAC-SHA512 of the secret key"""
    if not signature or not secret:
        return False
    expected = hmac.new(secret.encode(), payload, hashlib.sha512).hexdigest()
    return hmac.compare_digest(expected, signature)


class PaystackClient:
    """Client for the Paystack transfers API"""

    def __init__(
        self,
        base_url: str | None = None,
        secret_key: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.paystack_base_url).rstrip("/")
        self.secret_key = secret_key if secret_key is not None else settings.paystack_secret_key
        self.timeout = timeout or settings.http_timeout_seconds
        self.transport = transport

    async def _request(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        allow_status: tuple[int, ...] = (),
    ) -> httpx.Response:
        """
        Send one authenticated request.

        Status codes in `allow_status` are returned to the caller instead of raising.

        Raises:
            UpstreamUnavailableError: On timeout, network failure or unexpected HTTP error
        """
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.request(
                    method,
                    f"{self.base_url}{path}",
                    json=payload,
                    headers={"Authorization": f"Bearer {self.secret_key}"},
                )
                if response.status_code not in allow_status:
                    response.raise_for_status()
                return response

            except httpx.TimeoutException as e:
                upstream_failure_counter.labels(service="paystack").inc()
                raise UpstreamUnavailableError(f"Paystack timeout after {self.timeout}s", service="paystack") from e
            except httpx.HTTPStatusError as e:
                upstream_failure_counter.labels(service="paystack").inc()
                raise UpstreamUnavailableError(f"Paystack error: {e.response.status_code}", service="paystack") from e
            except httpx.RequestError as e:
                upstream_failure_counter.labels(service="paystack").inc()
                raise UpstreamUnavailableError(f"Paystack unreachable: {e}", service="paystack") from e

    @staticmethod
    def _data(response: httpx.Response) -> Any:
        try:
            return response.json()["data"]
        except (KeyError, ValueError, TypeError) as e:
            upstream_failure_counter.labels(service="paystack").inc()
            raise UpstreamUnavailableError(f"Invalid Paystack response: {e}", service="paystack") from e

    async def create_recipient(self, name: str, account_number: str, bank_code: str) -> str:
        """Register a NUBAN account and return its recipient code"""
        response = await self._request(
            "POST",
            "/transferrecipient",
            {
                "type": "nuban",
                "name": name,
                "account_number": account_number,
                "bank_code": bank_code,
                "currency": "NGN",
            },
            allow_status=(400, 422),
        )
        if response.status_code in (400, 422):
            raise PayoutRejectedError(self._message(response, "Recipient rejected"))
        try:
            return self._data(response)["recipient_code"]
        except (KeyError, TypeError) as e:
            raise UpstreamUnavailableError(f"Invalid recipient payload: {e}", service="paystack") from e

    async def initiate_transfer(
        self, amount: Decimal, recipient_code: str, reason: str, reference: str
    ) -> PayoutTransfer:
        """
        Pay `amount` NGN from the Paystack balance.

        The reference is deterministic per transaction so a retry cannot pay twice.

        Raises:
            PayoutRejectedError: Paystack refused the transfer (4xx)
            UpstreamUnavailableError: outcome unknown; safe to retry with the same reference
        """
        response = await self._request(
            "POST",
            "/transfer",
            {
                "source": "balance",
                "amount": to_kobo(amount),
                "recipient": recipient_code,
                "reason": reason,
                "reference": reference,
            },
            allow_status=(400, 422),
        )
        if response.status_code in (400, 422):
            raise PayoutRejectedError(self._message(response, "Transfer rejected"))
        data = self._data(response)
        return PayoutTransfer(
            reference=data.get("reference", reference),
            status=parse_transfer_status(data.get("status")),
            transfer_code=data.get("transfer_code"),
        )

    async def get_transfer_status(self, reference: str) -> Optional[PayoutTransfer]:
        """Look a transfer up by reference; None when Paystack has never seen it"""
        response = await self._request("GET", f"/transfer/verify/{reference}", allow_status=(404,))
        if response.status_code == 404:
            return None
        data = self._data(response)
        return PayoutTransfer(
            reference=reference,
            status=parse_transfer_status(data.get("status")),
            transfer_code=data.get("transfer_code"),
        )

    async def get_balance(self) -> Decimal:
        """Available NGN payout balance in naira"""
        response = await self._request("GET", "/balance")
        for entry in self._data(response):
            if entry.get("currency") == "NGN":
                return Decimal(str(entry["balance"])) / KOBO_PER_NAIRA
        raise UpstreamUnavailableError("Paystack returned no NGN balance", service="paystack")

    @staticmethod
    def _message(response: httpx.Response, default: str) -> str:
        try:
            return response.json().get("message") or default
        except ValueError:
            return default
