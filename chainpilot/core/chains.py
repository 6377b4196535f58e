"""Supported EVM network configurations."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ChainConfig:
    """Configuration for a supported EVM network."""

    chain_id: int
    name: str
    short_name: str
    rpc_url: str
    explorer_url: str
    explorer_api_url: str = ""
    native_currency: str = "ETH"
    is_testnet: bool = False


# ── Chain Registry ───────────────────────────────────────────────────────────

CHAINS: dict[str, ChainConfig] = {
    "0g-galileo": ChainConfig(
        chain_id=16602,
        name="0G Galileo Testnet",
        short_name="0g-galileo",
        rpc_url="https://evmrpc-testnet.0g.ai",
        explorer_url="https://chainscan-galileo.0g.ai",
        native_currency="OG",
        is_testnet=True,
    ),
    "ethereum": ChainConfig(
        chain_id=1,
        name="Ethereum Mainnet",
        short_name="eth",
        rpc_url="https://ethereum-rpc.publicnode.com",
        explorer_url="https://etherscan.io",
        explorer_api_url="https://api.etherscan.io/api",
    ),
    "sepolia": ChainConfig(
        chain_id=11155111,
        name="Sepolia Testnet",
        short_name="sep",
        rpc_url="https://ethereum-sepolia-rpc.publicnode.com",
        explorer_url="https://sepolia.etherscan.io",
        explorer_api_url="https://api-sepolia.etherscan.io/api",
        is_testnet=True,
    ),
    "polygon": ChainConfig(
        chain_id=137,
        name="Polygon Mainnet",
        short_name="matic",
        rpc_url="https://polygon-rpc.com",
        explorer_url="https://polygonscan.com",
        explorer_api_url="https://api.polygonscan.com/api",
        native_currency="MATIC",
    ),
    "arbitrum": ChainConfig(
        chain_id=42161,
        name="Arbitrum One",
        short_name="arb",
        rpc_url="https://arb1.arbitrum.io/rpc",
        explorer_url="https://arbiscan.io",
        explorer_api_url="https://api.arbiscan.io/api",
    ),
    "base": ChainConfig(
        chain_id=8453,
        name="Base",
        short_name="base",
        rpc_url="https://mainnet.base.org",
        explorer_url="https://basescan.org",
        explorer_api_url="https://api.basescan.org/api",
    ),
    "local": ChainConfig(
        chain_id=31337,
        name="Local Devnet",
        short_name="local",
        rpc_url="http://127.0.0.1:8545",
        explorer_url="",
        is_testnet=True,
    ),
}


def get_chain_config(chain_name: str) -> ChainConfig | None:
    """Get chain configuration by name."""
    return CHAINS.get(chain_name.lower())


def get_all_chains() -> list[ChainConfig]:
    """Return all supported chains."""
    return list(CHAINS.values())
