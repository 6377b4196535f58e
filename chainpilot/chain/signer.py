"""Local private-key signer built on eth-account."""

from __future__ import annotations

import logging
from typing import Any

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_utils import to_checksum_address

from chainpilot.chain.port import PendingTransaction
from chainpilot.chain.rpc_client import JsonRpcChainClient

logger = logging.getLogger(__name__)


class LocalAccountSigner:
    """Signs transactions in-process and submits them through an RPC client.

    Missing nonce, chain id, gas price and gas limit are filled from the node
    before signing.
    """

    def __init__(
        self,
        private_key: str,
        client: JsonRpcChainClient,
        chain_id: int | None = None,
    ) -> None:
        self._account = Account.from_key(private_key)
        self._client = client
        self._chain_id = chain_id

    @property
    def address(self) -> str:
        return self._account.address

    async def get_address(self) -> str:
        return self._account.address

    async def _prepare(self, tx: dict[str, Any]) -> dict[str, Any]:
        prepared: dict[str, Any] = {
            "from": self._account.address,
            "value": int(tx.get("value") or 0),
            "data": tx.get("data") or "0x",
        }
        if tx.get("to"):
            prepared["to"] = to_checksum_address(tx["to"])

        prepared["nonce"] = tx.get("nonce")
        if prepared["nonce"] is None:
            prepared["nonce"] = await self._client.get_transaction_count(self._account.address)

        if self._chain_id is None:
            self._chain_id = await self._client.get_chain_id()
        prepared["chainId"] = self._chain_id

        gas_price = tx.get("gasPrice")
        prepared["gasPrice"] = int(gas_price) if gas_price else await self._client.get_gas_price()

        gas = tx.get("gasLimit") or tx.get("gas")
        prepared["gas"] = int(gas) if gas else await self._client.estimate_gas(prepared)

        prepared.pop("from")
        return prepared

    async def send_transaction(self, tx: dict[str, Any]) -> PendingTransaction:
        prepared = await self._prepare(tx)
        signed = self._account.sign_transaction(prepared)
        tx_hash = await self._client.send_raw_transaction(signed.raw_transaction.hex())
        logger.debug("Signed transaction nonce=%s to=%s", prepared["nonce"], prepared.get("to"))
        return self._client.pending(tx_hash)

    async def sign_message(self, message: str) -> str:
        signed = self._account.sign_message(encode_defunct(text=message))
        return "0x" + signed.signature.hex().removeprefix("0x")
