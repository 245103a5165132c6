"""Sui JSON-RPC client for wallet and treasury balances"""

import httpx
from typing import Any, List
from ramp_gateway.domain.exceptions import UpstreamUnavailableError
from ramp_gateway.config import settings
from ramp_gateway.infrastructure.observability.metrics import upstream_failure_counter


class SuiRpcClient:
    """Client for a Sui fullnode JSON-RPC endpoint"""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url or settings.sui_rpc_url
        self.timeout = timeout or settings.http_timeout_seconds
        self.transport = transport

    async def _call(self, method: str, params: List[Any]) -> Any:
        """
        Issue one JSON-RPC request and return its `result`.

        Raises:
            UpstreamUnavailableError: On timeout, HTTP errors, RPC errors or invalid response
        """
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.post(
                    self.base_url,
                    json={"jsonrpc": "2.0", "id": 1, "method": method, "params": params},
                )
                response.raise_for_status()
                data = response.json()
                if "error" in data:
                    raise UpstreamUnavailableError(
                        f"Sui RPC error: {data['error'].get('message', data['error'])}",
                        service="sui_rpc",
                    )
                return data["result"]

            except httpx.TimeoutException as e:
                upstream_failure_counter.labels(service="sui_rpc").inc()
                raise UpstreamUnavailableError(f"Sui RPC timeout after {self.timeout}s", service="sui_rpc") from e
            except httpx.HTTPStatusError as e:
                upstream_failure_counter.labels(service="sui_rpc").inc()
                raise UpstreamUnavailableError(f"Sui RPC error: {e.response.status_code}", service="sui_rpc") from e
            except httpx.RequestError as e:
                upstream_failure_counter.labels(service="sui_rpc").inc()
                raise UpstreamUnavailableError(f"Sui RPC unreachable: {e}", service="sui_rpc") from e
            except (KeyError, ValueError, TypeError, AttributeError) as e:
                upstream_failure_counter.labels(service="sui_rpc").inc()
                raise UpstreamUnavailableError(f"Invalid Sui RPC response: {e}", service="sui_rpc") from e

    async def get_balance(self, address: str, coin_type: str) -> int:
        """Total balance of `coin_type` owned by `address`, in minor units"""
        result = await self._call("suix_getBalance", [address, coin_type])
        try:
            return int(result["totalBalance"])
        except (KeyError, ValueError, TypeError) as e:
            upstream_failure_counter.labels(service="sui_rpc").inc()
            raise UpstreamUnavailableError(f"Invalid balance payload: {e}", service="sui_rpc") from e

    async def get_latest_checkpoint(self) -> int:
        """Cheap liveness probe"""
        return int(await self._call("sui_getLatestCheckpointSequenceNumber", []))
