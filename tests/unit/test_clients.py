"""Unit tests for upstream HTTP clients using httpx mock transports"""

import hashlib
import hmac
import json
import httpx
import pytest
from datetime import datetime, timezone
from decimal import Decimal
from ramp_gateway.domain.exceptions import PayoutRejectedError, TokenCreditError, UpstreamUnavailableError
from ramp_gateway.domain.models import AlertSeverity, AlertType, PayoutStatus, TokenSymbol, TreasuryAlert
from ramp_gateway.infrastructure.clients.credit import TokenCreditClient
from ramp_gateway.infrastructure.clients.notifier import WebhookAlertNotifier
from ramp_gateway.infrastructure.clients.paystack import (
    PaystackClient,
    parse_transfer_status,
    to_kobo,
    verify_webhook_signature,
)
from ramp_gateway.infrastructure.clients.prices import FALLBACK_PRICES, PriceFeedClient
from ramp_gateway.infrastructure.clients.sui_rpc import SuiRpcClient
from ramp_gateway.infrastructure.clients.treasury_balances import ChainTreasuryBalances

SUI_COIN = "0x2::sui::SUI"


def transport(handler) -> httpx.MockTransport:
    return httpx.MockTransport(handler)


# Sui RPC


async def test_sui_rpc_reads_total_balance():
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        assert body["method"] == "suix_getBalance"
        assert body["params"] == ["0xabc", SUI_COIN]
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": {"totalBalance": "2500000000"}})

    client = SuiRpcClient("http://rpc", transport=transport(handler))

    assert await client.get_balance("0xabc", SUI_COIN) == 2_500_000_000


async def test_sui_rpc_error_object_is_upstream_failure():
    def handler(request):
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "error": {"code": -32000, "message": "boom"}})

    client = SuiRpcClient("http://rpc", transport=transport(handler))

    with pytest.raises(UpstreamUnavailableError) as exc_info:
        await client.get_balance("0xabc", SUI_COIN)

    assert exc_info.value.service == "sui_rpc"


@pytest.mark.parametrize(
    "handler",
    [
        lambda request: httpx.Response(503, text="unavailable"),
        lambda request: httpx.Response(200, text="not json"),
        lambda request: httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": {"coinType": "x"}}),
    ],
)
async def test_sui_rpc_failures_never_read_as_zero(handler):
    client = SuiRpcClient("http://rpc", transport=transport(handler))

    with pytest.raises(UpstreamUnavailableError):
        await client.get_balance("0xabc", SUI_COIN)


async def test_sui_rpc_network_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = SuiRpcClient("http://rpc", transport=transport(handler))

    with pytest.raises(UpstreamUnavailableError):
        await client.get_latest_checkpoint()


# Paystack


def test_kobo_conversion_and_status_parsing():
    assert to_kobo(Decimal("1650.505")) == 165051
    assert parse_transfer_status("success") == PayoutStatus.SUCCESS
    assert parse_transfer_status("otp") == PayoutStatus.PENDING
    assert parse_transfer_status(None) == PayoutStatus.PENDING


def test_webhook_signature():
    body = b'{"event":"charge.success"}'
    signature = hmac.new(b"sk_test", body, hashlib.sha512).hexdigest()

    assert verify_webhook_signature(body, signature, "sk_test") is True
    assert verify_webhook_signature(body, signature, "sk_other") is False
    assert verify_webhook_signature(body, None, "sk_test") is False


async def test_paystack_transfer_sends_kobo():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200, json={"status": True, "data": {"reference": "payout_1", "status": "success", "transfer_code": "TRF_1"}}
        )

    client = PaystackClient("http://paystack", secret_key="sk_test", transport=transport(handler))
    transfer = await client.initiate_transfer(Decimal("3300"), "RCP_1", "Off-ramp", "payout_1")

    assert transfer.status == PayoutStatus.SUCCESS
    assert seen["body"]["amount"] == 330000
    assert seen["auth"] == "Bearer sk_test"


async def test_paystack_rejection_is_payout_rejected():
    def handler(request):
        return httpx.Response(400, json={"status": False, "message": "Your balance is not enough"})

    client = PaystackClient("http://paystack", secret_key="sk_test", transport=transport(handler))

    with pytest.raises(PayoutRejectedError) as exc_info:
        await client.initiate_transfer(Decimal("10"), "RCP_1", "Off-ramp", "payout_1")

    assert exc_info.value.message == "Your balance is not enough"


async def test_paystack_unknown_transfer_is_none():
    client = PaystackClient(
        "http://paystack",
        secret_key="sk_test",
        transport=transport(lambda request: httpx.Response(404, json={"status": False})),
    )

    assert await client.get_transfer_status("payout_missing") is None


async def test_paystack_server_error_is_upstream_failure():
    client = PaystackClient(
        "http://paystack",
        secret_key="sk_test",
        transport=transport(lambda request: httpx.Response(500, text="oops")),
    )

    with pytest.raises(UpstreamUnavailableError):
        await client.get_transfer_status("payout_1")


async def test_paystack_balance_in_naira():
    def handler(request):
        return httpx.Response(
            200,
            json={"status": True, "data": [{"currency": "USD", "balance": 1}, {"currency": "NGN", "balance": 12345600}]},
        )

    client = PaystackClient("http://paystack", secret_key="sk_test", transport=transport(handler))

    assert await client.get_balance() == Decimal("123456")


# Prices


async def test_price_prefers_coinmarketcap_when_keyed():
    def handler(request):
        assert request.url.host == "cmc"
        return httpx.Response(
            200, json={"data": {"20947": {"quote": {"USD": {"price": 3.1, "percent_change_24h": 2.5}}}}}
        )

    client = PriceFeedClient(
        cmc_url="http://cmc/quotes",
        cmc_api_key="key",
        coingecko_url="http://gecko/price",
        usd_to_ngn_rate=1600,
        transport=transport(handler),
    )
    quote = await client.get_price(TokenSymbol.SUI)

    assert quote.source == "coinmarketcap"
    assert quote.price == Decimal("4960.00")
    assert quote.degraded is False


async def test_price_falls_back_to_coingecko_then_static():
    def gecko_only(request):
        if request.url.host == "cmc":
            return httpx.Response(500)
        return httpx.Response(200, json={"usd-coin": {"ngn": 1655.4, "ngn_24h_change": 0.1}})

    client = PriceFeedClient(
        cmc_url="http://cmc/quotes",
        cmc_api_key="key",
        coingecko_url="http://gecko/price",
        transport=transport(gecko_only),
    )
    quote = await client.get_price(TokenSymbol.USDC)
    assert quote.source == "coingecko"
    assert quote.price == Decimal("1655.40")

    down = PriceFeedClient(
        cmc_url="http://cmc/quotes",
        cmc_api_key="",
        coingecko_url="http://gecko/price",
        transport=transport(lambda request: httpx.Response(503)),
    )
    fallback = await down.get_price(TokenSymbol.SUI)
    assert fallback.source == "fallback"
    assert fallback.degraded is True
    assert fallback.price == FALLBACK_PRICES[TokenSymbol.SUI]


# Token crediting


async def test_credit_retries_server_errors_then_succeeds():
    attempts = []

    def handler(request):
        attempts.append(request.headers["Idempotency-Key"])
        if len(attempts) < 3:
            return httpx.Response(503)
        return httpx.Response(200, json={"transaction_hash": "0xdigest"})

    client = TokenCreditClient("http://credit", max_retries=3, backoff_base=0, transport=transport(handler))

    assert await client.credit_tokens("0xuser", TokenSymbol.SUI, Decimal("2"), reference="txn-1") == "0xdigest"
    assert attempts == ["txn-1", "txn-1", "txn-1"]


async def test_credit_exhausted_retries_is_upstream_failure():
    client = TokenCreditClient(
        "http://credit", max_retries=2, backoff_base=0, transport=transport(lambda request: httpx.Response(502))
    )

    with pytest.raises(UpstreamUnavailableError) as exc_info:
        await client.credit_tokens("0xuser", TokenSymbol.SUI, Decimal("2"), reference="txn-1")

    assert exc_info.value.service == "token_credit"


async def test_credit_client_error_is_not_retried():
    attempts = []

    def handler(request):
        attempts.append(1)
        return httpx.Response(400, json={"detail": "bad address"})

    client = TokenCreditClient("http://credit", max_retries=3, backoff_base=0, transport=transport(handler))

    with pytest.raises(TokenCreditError):
        await client.credit_tokens("0xuser", TokenSymbol.SUI, Decimal("2"), reference="txn-1")

    assert len(attempts) == 1


# Treasury balances and alert notification


def treasury_transport(request: httpx.Request) -> httpx.Response:
    if request.url.path.endswith("/balance"):
        return httpx.Response(200, json={"status": True, "data": [{"currency": "NGN", "balance": 7500000}]})
    return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": {"totalBalance": "40000000000"}})


async def test_treasury_balances_by_source():
    mock = transport(treasury_transport)
    balances = ChainTreasuryBalances(
        SuiRpcClient("http://rpc", transport=mock),
        PaystackClient("http://paystack", secret_key="sk_test", transport=mock),
        treasury_address="0xtreasury",
    )

    assert await balances.get_available_balance("SUI") == Decimal("40")
    assert await balances.get_available_balance("NAIRA") == Decimal("75000")


async def test_treasury_balance_without_address_is_unavailable():
    mock = transport(treasury_transport)
    balances = ChainTreasuryBalances(
        SuiRpcClient("http://rpc", transport=mock),
        PaystackClient("http://paystack", secret_key="sk_test", transport=mock),
        treasury_address="",
    )

    with pytest.raises(UpstreamUnavailableError):
        await balances.get_available_balance("USDC")


async def test_notifier_failure_is_swallowed():
    calls = []

    def handler(request):
        calls.append(json.loads(request.content))
        return httpx.Response(500)

    alert = TreasuryAlert(
        id="alert-1",
        type=AlertType.LOW_BALANCE,
        severity=AlertSeverity.CRITICAL,
        message="CRITICAL SUI balance",
        created_at=datetime(2026, 3, 1, tzinfo=timezone.utc),
        currency="SUI",
    )
    notifier = WebhookAlertNotifier("http://hooks/alerts", transport=transport(handler))

    await notifier.notify(alert)

    assert calls[0]["severity"] == "CRITICAL"
