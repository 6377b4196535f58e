"""In-process knowledge base: deployment templates and known contracts."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from chainpilot.analyzer.models import ContractInfo
from chainpilot.core.cache import KeyedCache, address_key

logger = logging.getLogger(__name__)


@dataclass
class DeploymentPattern:
    """A deployable contract template."""

    name: str
    description: str
    template: str
    dependencies: list[str] = field(default_factory=list)
    gas_estimate: str = ""
    security_notes: list[str] = field(default_factory=list)
    constructor_defaults: list[Any] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "dependencies": self.dependencies,
            "gas_estimate": self.gas_estimate,
            "security_notes": self.security_notes,
        }


BASIC_ERC20 = DeploymentPattern(
    name="BasicERC20",
    description="Basic ERC20 token",
    template="""\
pragma solidity ^0.8.0;

import "@openzeppelin/contracts/token/ERC20/ERC20.sol";

contract BasicToken is ERC20 {
    constructor(string memory name, string memory symbol, uint256 totalSupply)
        ERC20(name, symbol) {
        _mint(msg.sender, totalSupply);
    }
}
""",
    dependencies=["@openzeppelin/contracts"],
    gas_estimate="~800,000 gas",
    security_notes=["Basic implementation", "Consider access controls"],
    constructor_defaults=["BasicToken", "BTK", 1_000_000 * 10**18],
)


class KnowledgeBase:
    """Deployment patterns, analyzed contracts and free-text entries.

    Contracts are keyed by lowercased address. Patterns keep insertion
    order; the first registered one is the default deployment target.
    """

    def __init__(self, contracts: KeyedCache[ContractInfo] | None = None) -> None:
        self._patterns: dict[str, DeploymentPattern] = {}
        self._contracts: KeyedCache[ContractInfo] = contracts or KeyedCache(
            name="knowledge", key_fn=address_key,
        )
        self._entries: dict[str, dict[str, Any]] = {}
        self.add_deployment_pattern(BASIC_ERC20)

    # ── Deployment patterns ──────────────────────────────────────────────────

    def add_deployment_pattern(self, pattern: DeploymentPattern) -> None:
        self._patterns[pattern.name] = pattern

    def get_deployment_pattern(self, name: str) -> DeploymentPattern | None:
        return self._patterns.get(name)

    def get_all_deployment_patterns(self) -> list[DeploymentPattern]:
        return list(self._patterns.values())

    # ── Contracts ────────────────────────────────────────────────────────────

    def register_contract(self, info: ContractInfo) -> None:
        self._contracts.put(info.address, info)
        logger.debug("Registered contract knowledge", extra={"contract_address": info.address})

    def get_contract_knowledge(self, address: str) -> ContractInfo | None:
        return self._contracts.get(address)

    # ── Free-text entries ────────────────────────────────────────────────────

    def add_entry(self, key: str, content: str, entry_type: str = "documentation", **metadata: Any) -> None:
        self._entries[key] = {"type": entry_type, "content": content, **metadata}

    def search(self, query: str) -> list[dict[str, Any]]:
        """Entries, patterns and contracts whose key or text contains ``query``."""
        needle = query.lower()
        results: list[dict[str, Any]] = []

        for key, value in self._entries.items():
            if needle in key.lower() or needle in str(value.get("content", "")).lower():
                results.append({"key": key, **value})

        for name, pattern in self._patterns.items():
            if needle in name.lower() or needle in pattern.description.lower():
                results.append({"key": name, "type": "deployment_pattern", **pattern.to_dict()})

        for address, info in self._contracts.items():
            if needle in address or (info.name and needle in info.name.lower()):
                results.append({"key": address, "type": "contract", "name": info.name})

        return results

    def stats(self) -> dict[str, int]:
        return {
            "entries": len(self._entries),
            "contracts": len(self._contracts),
            "deployment_patterns": len(self._patterns),
        }
