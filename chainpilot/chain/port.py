"""Chain Access Port — the contract every component uses to talk to a node.

The analysis, tool and workflow layers only ever see ``ChainClient`` and
``Signer``; ``ChainContext`` bundles them with the active network so a
missing signer surfaces as ``SignerRequiredError`` rather than a generic
failure.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Protocol, runtime_checkable

from chainpilot.core.chains import ChainConfig, get_chain_config
from chainpilot.core.errors import SignerRequiredError

if TYPE_CHECKING:
    from chainpilot.core.config import Settings


@dataclass
class TransactionReceipt:
    """Mined transaction outcome."""

    transaction_hash: str
    block_number: int
    gas_used: int
    status: int = 1
    logs: list[dict[str, Any]] = field(default_factory=list)
    contract_address: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == 1

    @classmethod
    def from_rpc(cls, data: dict[str, Any]) -> "TransactionReceipt":
        """Build from an ``eth_getTransactionReceipt`` result."""
        return cls(
            transaction_hash=data.get("transactionHash", ""),
            block_number=_to_int(data.get("blockNumber")),
            gas_used=_to_int(data.get("gasUsed")),
            status=_to_int(data.get("status", "0x1")),
            logs=list(data.get("logs") or []),
            contract_address=data.get("contractAddress"),
        )


class PendingTransaction:
    """A submitted transaction that can be awaited for its receipt."""

    def __init__(
        self,
        tx_hash: str,
        waiter: Callable[[str, int], Awaitable[TransactionReceipt]],
    ) -> None:
        self.hash = tx_hash
        self._waiter = waiter

    async def wait(self, confirmations: int = 1) -> TransactionReceipt:
        return await self._waiter(self.hash, confirmations)

    def __repr__(self) -> str:
        return f"PendingTransaction({self.hash})"


@runtime_checkable
class ChainClient(Protocol):
    """Read/write access to a JSON-RPC node."""

    async def get_code(self, address: str) -> str: ...

    async def get_balance(self, address: str) -> int: ...

    async def get_block_number(self) -> int: ...

    async def get_block(self, number: int | str, include_tx: bool = False) -> dict[str, Any] | None: ...

    async def call(self, address: str, data: str) -> str: ...

    async def estimate_gas(self, tx: dict[str, Any]) -> int: ...

    async def get_gas_price(self) -> int: ...

    async def get_chain_id(self) -> int: ...

    async def get_transaction_count(self, address: str) -> int: ...

    async def send_raw_transaction(self, raw_tx: str) -> str: ...

    async def wait_for_receipt(
        self,
        tx_hash: str,
        confirmations: int = 1,
        timeout: float | None = None,
    ) -> TransactionReceipt: ...


@runtime_checkable
class Signer(Protocol):
    """An account able to authorise transactions."""

    async def get_address(self) -> str: ...

    async def send_transaction(self, tx: dict[str, Any]) -> PendingTransaction: ...

    async def sign_message(self, message: str) -> str: ...


@dataclass
class ChainContext:
    """Everything a component needs to reach the chain."""

    client: ChainClient | None
    signer: Signer | None = None
    chain: ChainConfig | None = None

    @property
    def has_signer(self) -> bool:
        return self.signer is not None

    def require_client(self) -> ChainClient:
        if self.client is None:
            raise RuntimeError("Network provider not available")
        return self.client

    def require_signer(self) -> Signer:
        if self.signer is None:
            raise SignerRequiredError()
        return self.signer

    @property
    def native_currency(self) -> str:
        return self.chain.native_currency if self.chain else "ETH"

    @classmethod
    def from_settings(cls, settings: "Settings") -> "ChainContext":
        """Build an RPC client (and a local signer when a key is configured)."""
        from chainpilot.chain.rpc_client import JsonRpcChainClient
        from chainpilot.chain.signer import LocalAccountSigner

        chain = get_chain_config(settings.network)
        rpc_url = settings.rpc_url or (chain.rpc_url if chain else "")
        if not rpc_url:
            raise ValueError(f"No RPC URL configured for network {settings.network!r}")

        client = JsonRpcChainClient(
            rpc_url,
            timeout=settings.rpc_timeout_seconds,
            max_retries=settings.rpc_max_retries,
            retry_base_delay=settings.rpc_retry_base_delay,
            receipt_timeout=settings.receipt_timeout_seconds,
        )
        signer = None
        if settings.private_key:
            signer = LocalAccountSigner(
                settings.private_key,
                client,
                chain_id=chain.chain_id if chain else settings.chain_id,
            )
        return cls(client=client, signer=signer, chain=chain)


def _to_int(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, int):
        return value
    text = str(value)
    return int(text, 16) if text.startswith("0x") else int(text)
