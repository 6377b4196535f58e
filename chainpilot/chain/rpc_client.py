"""JSON-RPC chain client over httpx.

Implements the ``ChainClient`` port against any Ethereum-compatible node.
Transient transport failures are retried with exponential back-off; remote
JSON-RPC errors surface as ``ChainRPCError`` immediately.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from typing import Any

import httpx

from chainpilot.chain.port import PendingTransaction, TransactionReceipt
from chainpilot.core.errors import ChainRPCError

logger = logging.getLogger(__name__)


# ── Retry helper for transient RPC failures ─────────────────────────────────

_TRANSIENT_MESSAGES = (
    "connection reset",
    "connection refused",
    "broken pipe",
    "timed out",
    "timeout",
    "temporarily unavailable",
    "could not connect",
    "service unavailable",
    "bad gateway",
    "throttl",
    "rate limit",
    "too many requests",
)


def _is_transient(exc: Exception) -> bool:
    """Return True if the exception looks transient (network / node overload)."""
    if isinstance(exc, (httpx.TransportError, httpx.TimeoutException)):
        return True
    msg = str(exc).lower()
    return any(t in msg for t in _TRANSIENT_MESSAGES)


async def _retry_async(
    coro_factory,  # callable returning a coroutine
    *,
    max_retries: int = 3,
    base_delay: float = 0.5,
    max_delay: float = 10.0,
    label: str = "rpc",
):
    """Retry an async operation with exponential back-off on transient errors."""
    last_exc: Exception | None = None
    for attempt in range(max_retries + 1):
        try:
            return await coro_factory()
        except Exception as exc:
            last_exc = exc
            if attempt >= max_retries or not _is_transient(exc):
                raise
            delay = min(base_delay * (2 ** attempt), max_delay)
            logger.warning(
                "Transient error in %s (attempt %d/%d), retrying in %.1fs: %s",
                label, attempt + 1, max_retries, delay, exc,
            )
            await asyncio.sleep(delay)
    raise last_exc  # unreachable but keeps mypy happy


def _hex(value: int) -> str:
    return hex(int(value))


def _to_int(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, int):
        return value
    return int(str(value), 16)


# Transaction fields that travel as hex quantities
_QUANTITY_FIELDS = ("value", "gas", "gasPrice", "maxFeePerGas", "maxPriorityFeePerGas", "nonce")


def _format_tx(tx: dict[str, Any]) -> dict[str, Any]:
    """Convert a transaction dict into JSON-RPC wire format."""
    out: dict[str, Any] = {}
    for key, value in tx.items():
        if value is None:
            continue
        if key == "gasLimit":
            key = "gas"
        if key in _QUANTITY_FIELDS and isinstance(value, int):
            out[key] = _hex(value)
        else:
            out[key] = value
    return out


class JsonRpcChainClient:
    """Async JSON-RPC client for an EVM node.

    Usage:
        client = JsonRpcChainClient("https://evmrpc-testnet.0g.ai")
        code = await client.get_code("0x...")
        await client.close()
    """

    def __init__(
        self,
        rpc_url: str,
        *,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_base_delay: float = 0.5,
        poll_interval: float = 1.0,
        receipt_timeout: float = 120.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.rpc_url = rpc_url
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self.poll_interval = poll_interval
        self.receipt_timeout = receipt_timeout
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._ids = itertools.count(1)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "JsonRpcChainClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # ── Transport ────────────────────────────────────────────────────────────

    async def _post(self, payload: dict[str, Any]) -> Any:
        resp = await self._client.post(self.rpc_url, json=payload)
        if resp.status_code in (429, 502, 503, 504):
            raise ChainRPCError(f"RPC node service unavailable (HTTP {resp.status_code})")
        resp.raise_for_status()
        body = resp.json()
        if "error" in body and body["error"]:
            err = body["error"]
            raise ChainRPCError(
                f"{payload['method']} failed: {err.get('message', err)}",
                rpc_code=err.get("code"),
            )
        return body.get("result")

    async def request(self, method: str, params: list[Any] | None = None) -> Any:
        """Send one JSON-RPC request and return its ``result``."""
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params or [],
        }
        try:
            return await _retry_async(
                lambda: self._post(payload),
                max_retries=self.max_retries,
                base_delay=self.retry_base_delay,
                label=method,
            )
        except httpx.HTTPError as exc:
            raise ChainRPCError(f"{method} transport error: {exc}") from exc

    # ── Reads ────────────────────────────────────────────────────────────────

    async def get_code(self, address: str) -> str:
        code = await self.request("eth_getCode", [address, "latest"])
        return code or "0x"

    async def get_balance(self, address: str) -> int:
        return _to_int(await self.request("eth_getBalance", [address, "latest"]))

    async def get_block_number(self) -> int:
        return _to_int(await self.request("eth_blockNumber"))

    async def get_block(self, number: int | str = "latest", include_tx: bool = False) -> dict[str, Any] | None:
        tag = _hex(number) if isinstance(number, int) else number
        return await self.request("eth_getBlockByNumber", [tag, include_tx])

    async def call(self, address: str, data: str) -> str:
        result = await self.request("eth_call", [{"to": address, "data": data}, "latest"])
        return result or "0x"

    async def estimate_gas(self, tx: dict[str, Any]) -> int:
        return _to_int(await self.request("eth_estimateGas", [_format_tx(tx)]))

    async def get_gas_price(self) -> int:
        return _to_int(await self.request("eth_gasPrice"))

    async def get_chain_id(self) -> int:
        return _to_int(await self.request("eth_chainId"))

    async def get_transaction_count(self, address: str) -> int:
        return _to_int(await self.request("eth_getTransactionCount", [address, "pending"]))

    async def get_transaction_receipt(self, tx_hash: str) -> TransactionReceipt | None:
        data = await self.request("eth_getTransactionReceipt", [tx_hash])
        return TransactionReceipt.from_rpc(data) if data else None

    # ── Writes ───────────────────────────────────────────────────────────────

    async def send_raw_transaction(self, raw_tx: str) -> str:
        if not raw_tx.startswith("0x"):
            raw_tx = "0x" + raw_tx
        tx_hash = await self.request("eth_sendRawTransaction", [raw_tx])
        logger.info("Submitted transaction", extra={"tx_hash": tx_hash})
        return tx_hash

    async def wait_for_receipt(
        self,
        tx_hash: str,
        confirmations: int = 1,
        timeout: float | None = None,
    ) -> TransactionReceipt:
        """Poll until the transaction is mined with enough confirmations."""
        deadline = time.monotonic() + (timeout or self.receipt_timeout)
        while True:
            receipt = await self.get_transaction_receipt(tx_hash)
            if receipt is not None:
                if confirmations <= 1:
                    return receipt
                head = await self.get_block_number()
                if head - receipt.block_number + 1 >= confirmations:
                    return receipt
            if time.monotonic() >= deadline:
                raise ChainRPCError(f"Timed out waiting for receipt of {tx_hash}")
            await asyncio.sleep(self.poll_interval)

    def pending(self, tx_hash: str) -> PendingTransaction:
        """Wrap a submitted hash so callers can ``await pending.wait()``."""
        return PendingTransaction(tx_hash, lambda h, c: self.wait_for_receipt(h, c))
