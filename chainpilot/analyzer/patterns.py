"""Static pattern and known-selector tables.

Both tables are loaded once at import and never mutated; matching returns
new ``ContractPattern`` instances carrying the computed confidence.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from chainpilot.analyzer.models import (
    ContractEvent,
    ContractFunction,
    ContractPattern,
    FunctionParameter,
)
from chainpilot.core.types import StateMutability


# ── Known selectors ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class KnownSelector:
    """A well-known function signature with its parameter layout."""

    name: str
    signature: str
    state_mutability: StateMutability
    inputs: tuple[tuple[str, str], ...] = ()
    outputs: tuple[tuple[str, str], ...] = ()

    def to_function(self, selector: str) -> ContractFunction:
        return ContractFunction(
            name=self.name,
            selector=selector,
            signature=self.signature,
            state_mutability=self.state_mutability,
            inputs=[FunctionParameter(name=n, type=t) for n, t in self.inputs],
            outputs=[FunctionParameter(name=n, type=t) for n, t in self.outputs],
        )


_VIEW = StateMutability.VIEW
_WRITE = StateMutability.NONPAYABLE

KNOWN_SELECTORS: dict[str, KnownSelector] = {
    # ERC20
    "0x06fdde03": KnownSelector("name", "name()", _VIEW, (), (("", "string"),)),
    "0x95d89b41": KnownSelector("symbol", "symbol()", _VIEW, (), (("", "string"),)),
    "0x313ce567": KnownSelector("decimals", "decimals()", _VIEW, (), (("", "uint8"),)),
    "0x18160ddd": KnownSelector("totalSupply", "totalSupply()", _VIEW, (), (("", "uint256"),)),
    "0x70a08231": KnownSelector(
        "balanceOf", "balanceOf(address)", _VIEW,
        (("account", "address"),), (("", "uint256"),),
    ),
    "0xa9059cbb": KnownSelector(
        "transfer", "transfer(address,uint256)", _WRITE,
        (("to", "address"), ("amount", "uint256")), (("", "bool"),),
    ),
    "0x095ea7b3": KnownSelector(
        "approve", "approve(address,uint256)", _WRITE,
        (("spender", "address"), ("amount", "uint256")), (("", "bool"),),
    ),
    "0xdd62ed3e": KnownSelector(
        "allowance", "allowance(address,address)", _VIEW,
        (("owner", "address"), ("spender", "address")), (("", "uint256"),),
    ),
    "0x23b872dd": KnownSelector(
        "transferFrom", "transferFrom(address,address,uint256)", _WRITE,
        (("from", "address"), ("to", "address"), ("amount", "uint256")), (("", "bool"),),
    ),
    "0x40c10f19": KnownSelector(
        "mint", "mint(address,uint256)", _WRITE,
        (("to", "address"), ("amount", "uint256")),
    ),
    "0x42966c68": KnownSelector("burn", "burn(uint256)", _WRITE, (("amount", "uint256"),)),
    # ERC721
    "0x6352211e": KnownSelector(
        "ownerOf", "ownerOf(uint256)", _VIEW,
        (("tokenId", "uint256"),), (("", "address"),),
    ),
    "0x42842e0e": KnownSelector(
        "safeTransferFrom", "safeTransferFrom(address,address,uint256)", _WRITE,
        (("from", "address"), ("to", "address"), ("tokenId", "uint256")),
    ),
    "0xc87b56dd": KnownSelector(
        "tokenURI", "tokenURI(uint256)", _VIEW,
        (("tokenId", "uint256"),), (("", "string"),),
    ),
    "0x081812fc": KnownSelector(
        "getApproved", "getApproved(uint256)", _VIEW,
        (("tokenId", "uint256"),), (("", "address"),),
    ),
    "0xa22cb465": KnownSelector(
        "setApprovalForAll", "setApprovalForAll(address,bool)", _WRITE,
        (("operator", "address"), ("approved", "bool")),
    ),
    "0xe985e9c5": KnownSelector(
        "isApprovedForAll", "isApprovedForAll(address,address)", _VIEW,
        (("owner", "address"), ("operator", "address")), (("", "bool"),),
    ),
    # Ownable
    "0x8da5cb5b": KnownSelector("owner", "owner()", _VIEW, (), (("", "address"),)),
    "0xf2fde38b": KnownSelector(
        "transferOwnership", "transferOwnership(address)", _WRITE,
        (("newOwner", "address"),),
    ),
    "0x715018a6": KnownSelector("renounceOwnership", "renounceOwnership()", _WRITE),
    # Pausable
    "0x8456cb59": KnownSelector("pause", "pause()", _WRITE),
    "0x3f4ba83a": KnownSelector("unpause", "unpause()", _WRITE),
    "0x5c975abb": KnownSelector("paused", "paused()", _VIEW, (), (("", "bool"),)),
    # Proxy
    "0x5c60da1b": KnownSelector("implementation", "implementation()", _VIEW, (), (("", "address"),)),
    "0x3659cfe6": KnownSelector(
        "upgradeTo", "upgradeTo(address)", _WRITE,
        (("newImplementation", "address"),),
    ),
    "0xf851a440": KnownSelector("admin", "admin()", _VIEW, (), (("", "address"),)),
}


def resolve_selector(selector: str) -> ContractFunction:
    """Return the well-known function for ``selector`` or a placeholder."""
    known = KNOWN_SELECTORS.get(selector.lower())
    if known is None:
        return ContractFunction.placeholder(selector)
    return known.to_function(selector)


# ── Contract patterns ────────────────────────────────────────────────────────

CONTRACT_PATTERNS: tuple[ContractPattern, ...] = (
    ContractPattern(
        name="ERC20 Token",
        description="Standard fungible token contract",
        functions=("transfer", "approve", "balanceOf", "totalSupply", "allowance"),
        events=("Transfer", "Approval"),
    ),
    ContractPattern(
        name="ERC721 NFT",
        description="Non-fungible token contract",
        functions=("ownerOf", "approve", "transferFrom", "tokenURI", "balanceOf"),
        events=("Transfer", "Approval", "ApprovalForAll"),
    ),
    ContractPattern(
        name="Ownable Contract",
        description="Contract with ownership functionality",
        functions=("owner", "transferOwnership", "renounceOwnership"),
        events=("OwnershipTransferred",),
    ),
    ContractPattern(
        name="Pausable Contract",
        description="Contract with pause/unpause functionality",
        functions=("pause", "unpause", "paused"),
        events=("Paused", "Unpaused"),
    ),
    ContractPattern(
        name="Upgradeable Proxy",
        description="Upgradeable contract proxy",
        functions=("implementation", "upgrade", "admin"),
        events=("Upgraded", "AdminChanged"),
    ),
)


def _matches(needle: str, names: Sequence[str]) -> bool:
    needle = needle.lower()
    return any(needle in n for n in names)


def identify_patterns(
    functions: Sequence[ContractFunction],
    events: Sequence[ContractEvent],
    threshold: float = 0.3,
    patterns: Sequence[ContractPattern] = CONTRACT_PATTERNS,
) -> list[ContractPattern]:
    """Score every pattern and return those above ``threshold``, best first.

    confidence = (matched functions + matched events) / (pattern functions + pattern events)
    """
    fn_names = [f.name.lower() for f in functions]
    ev_names = [e.name.lower() for e in events]

    matches: list[ContractPattern] = []
    for pattern in patterns:
        total = len(pattern.functions) + len(pattern.events)
        if total == 0:
            continue
        hits = sum(1 for f in pattern.functions if _matches(f, fn_names))
        hits += sum(1 for e in pattern.events if _matches(e, ev_names))
        confidence = hits / total
        if confidence > threshold:
            matches.append(pattern.with_confidence(confidence))

    matches.sort(key=lambda p: p.confidence, reverse=True)
    return matches
