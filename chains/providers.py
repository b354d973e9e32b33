"""
chains/providers.py - JSON-RPC provider with failover.

Provides RPC access with:
- Multiple endpoint failover
- Request timeout handling
- Connection pooling (one shared httpx client)
- Latency tracking

One provider instance is shared by every simulation; it holds no
per-call state beyond the request counter and endpoint stats.
"""

import os
import time
from dataclasses import dataclass
from typing import Any

import httpx

from core.logging import get_logger
from core.constants import ErrorCode
from core.exceptions import TransportError

logger = get_logger(__name__)


@dataclass
class RPCStats:
    """Statistics for an RPC endpoint."""
    url: str
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    total_latency_ms: int = 0
    last_error: str | None = None
    last_success_ts: int | None = None

    @property
    def avg_latency_ms(self) -> int:
        if self.successful_requests == 0:
            return 0
        return self.total_latency_ms // self.successful_requests

    @property
    def success_rate(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.successful_requests / self.total_requests


@dataclass
class RPCResponse:
    """Response from an RPC call."""
    result: Any
    latency_ms: int
    endpoint_used: str


class RPCProvider:
    """
    RPC provider with failover support.

    Tries multiple endpoints in order until one succeeds.
    Tracks statistics per endpoint for monitoring.

    A JSON-RPC error object returned by a node is a node answer, not an
    endpoint failure: it is raised immediately with the node's code and
    message in details, so callers can map it (e.g. method not found).
    """

    def __init__(
        self,
        rpc_urls: list[str],
        timeout_seconds: float = 30,
        max_connections: int = 100,
    ):
        self.timeout_seconds = timeout_seconds
        self.max_connections = max_connections
        self._client: httpx.AsyncClient | None = None
        self._request_id = 0

        self.rpc_urls = self._resolve_urls(rpc_urls)

        self.stats: dict[str, RPCStats] = {
            url: RPCStats(url=url) for url in self.rpc_urls
        }

    def _resolve_urls(self, urls: list[str]) -> list[str]:
        """Resolve environment variables in URLs."""
        resolved = []
        for url in urls:
            resolved_url = os.path.expandvars(url)
            # Skip URLs whose API key placeholder stayed unresolved
            if "${" in resolved_url:
                logger.warning(
                    "Skipping RPC URL with unresolved variable",
                    extra={"context": {"url": url}},
                )
                continue
            resolved.append(resolved_url)
        return resolved

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout_seconds),
                limits=httpx.Limits(max_connections=self.max_connections),
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "RPCProvider":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def _next_request_id(self) -> int:
        """Generate next request ID."""
        self._request_id += 1
        return self._request_id

    @staticmethod
    def _parse_body(resp: httpx.Response) -> dict:
        """
        Decode a JSON-RPC body.

        A JSON-RPC error object wins over the HTTP status: some gateways
        wrap node errors in 4xx responses.
        """
        try:
            body = resp.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and "error" in body:
            return body
        resp.raise_for_status()
        if not isinstance(body, dict):
            raise ValueError(f"Malformed JSON-RPC body: {resp.text[:200]!r}")
        return body

    async def call(
        self,
        method: str,
        params: list | None = None,
    ) -> RPCResponse:
        """
        Make an RPC call with failover.

        Args:
            method: RPC method name
            params: Method parameters

        Returns:
            RPCResponse with result and metadata

        Raises:
            TransportError: If the node answers with an error object, or
                if all endpoints fail
        """
        if not self.rpc_urls:
            raise TransportError(
                "No RPC endpoints configured",
                details={"method": method},
            )

        client = await self._get_client()
        last_error: Exception | None = None

        for url in self.rpc_urls:
            stats = self.stats[url]
            stats.total_requests += 1

            payload = {
                "jsonrpc": "2.0",
                "method": method,
                "params": params or [],
                "id": self._next_request_id(),
            }

            start_ms = int(time.time() * 1000)

            try:
                resp = await client.post(url, json=payload)
                latency_ms = int(time.time() * 1000) - start_ms
                result = self._parse_body(resp)

            except httpx.TimeoutException as e:
                latency_ms = int(time.time() * 1000) - start_ms
                stats.failed_requests += 1
                stats.last_error = f"Timeout after {latency_ms}ms"
                last_error = e
                logger.debug(f"RPC timeout for {url}: {latency_ms}ms")
                continue

            except (httpx.HTTPError, ValueError) as e:
                stats.failed_requests += 1
                stats.last_error = str(e)
                last_error = e
                logger.debug(f"RPC failed for {url}: {e}")
                continue

            if "error" in result:
                error = result["error"]
                error_msg = error.get("message", str(error)) if isinstance(error, dict) else str(error)
                stats.failed_requests += 1
                stats.last_error = error_msg
                raise TransportError(
                    f"RPC error: {error_msg}",
                    details={
                        "url": url,
                        "method": method,
                        "rpc_code": error.get("code") if isinstance(error, dict) else None,
                        "rpc_message": error_msg,
                    },
                )

            stats.successful_requests += 1
            stats.total_latency_ms += latency_ms
            stats.last_success_ts = int(time.time() * 1000)

            return RPCResponse(
                result=result.get("result"),
                latency_ms=latency_ms,
                endpoint_used=url,
            )

        code = (
            ErrorCode.INFRA_TIMEOUT
            if isinstance(last_error, httpx.TimeoutException)
            else ErrorCode.INFRA_RPC_ERROR
        )
        raise TransportError(
            f"All RPC endpoints failed for {method}",
            details={
                "method": method,
                "endpoints_tried": len(self.rpc_urls),
                "last_error": str(last_error),
            },
            code=code,
        )

    async def get_block(self, block: int | str) -> dict | None:
        """
        Get block header (without transactions).

        Args:
            block: Block height or "latest"

        Returns:
            Block object, or None if the node does not know the block
        """
        tag = hex(block) if isinstance(block, int) else block
        response = await self.call("eth_getBlockByNumber", [tag, False])
        return response.result

    def get_stats_summary(self) -> dict:
        """Get statistics summary for all endpoints."""
        return {
            url: {
                "total_requests": s.total_requests,
                "success_rate": round(s.success_rate, 3),
                "avg_latency_ms": s.avg_latency_ms,
                "last_error": s.last_error,
            }
            for url, s in self.stats.items()
        }
