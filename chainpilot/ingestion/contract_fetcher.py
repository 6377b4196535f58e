"""Fetch verified contract ABIs from Etherscan-compatible block explorers."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from chainpilot.chain.abi import is_address
from chainpilot.core.chains import get_chain_config
from chainpilot.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


@dataclass
class ContractSource:
    """Verified contract metadata returned by an explorer."""

    address: str
    contract_name: str = ""
    compiler_version: str = ""
    abi: list[dict[str, Any]] = field(default_factory=list)
    is_proxy: bool = False
    implementation_address: str = ""


class ContractFetcher:
    """Look up verified ABIs through an Etherscan-style ``getsourcecode`` call.

    When no explorer API URL is configured (neither explicitly nor via the
    network registry) every lookup is a miss.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._client = http_client or httpx.AsyncClient(timeout=self.settings.rpc_timeout_seconds)

    @property
    def api_url(self) -> str:
        if self.settings.explorer_api_url:
            return self.settings.explorer_api_url
        chain = get_chain_config(self.settings.network)
        return chain.explorer_api_url if chain else ""

    async def fetch_contract_source(self, address: str) -> ContractSource:
        """Fetch verified metadata for a contract.

        Raises:
            ValueError: If the address is malformed, no explorer is configured,
                or the contract is not verified
        """
        if not is_address(address):
            raise ValueError(f"Invalid contract address format: {address}")
        if not self.api_url:
            raise ValueError("No block explorer API configured")

        params = {
            "module": "contract",
            "action": "getsourcecode",
            "address": address,
        }
        if self.settings.explorer_api_key:
            params["apikey"] = self.settings.explorer_api_key

        response = await self._client.get(self.api_url, params=params)
        response.raise_for_status()
        data = response.json()

        if data.get("status") != "1" or not data.get("result"):
            raise ValueError(f"Contract not verified or not found at {address}")

        result = data["result"][0]
        raw_abi = result.get("ABI", "")
        try:
            abi = json.loads(raw_abi)
        except json.JSONDecodeError:
            # Explorers answer "Contract source code not verified" in the ABI field
            raise ValueError(f"Contract not verified at {address}: {raw_abi}") from None

        implementation = result.get("Implementation", "")
        return ContractSource(
            address=address,
            contract_name=result.get("ContractName", ""),
            compiler_version=result.get("CompilerVersion", ""),
            abi=abi if isinstance(abi, list) else [],
            is_proxy=bool(implementation),
            implementation_address=implementation,
        )

    async def fetch_verified_abi(self, address: str) -> ContractSource | None:
        """Best-effort lookup; any miss or transport failure returns None."""
        if not self.api_url:
            return None
        try:
            source = await self.fetch_contract_source(address)
        except (ValueError, httpx.HTTPError) as exc:
            logger.debug("No verified ABI for %s: %s", address, exc)
            return None
        return source if source.abi else None

    async def close(self) -> None:
        await self._client.aclose()
