"""Contract analysis data model."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any

from chainpilot.chain.abi import canonical_type, event_topic, function_selector, signature_of
from chainpilot.core.errors import ErrorCode
from chainpilot.core.types import FunctionType, StateMutability, ToolCategory


@dataclass
class FunctionParameter:
    """A typed ABI input/output (tuples carry ``components``)."""

    name: str
    type: str
    internal_type: str | None = None
    components: list["FunctionParameter"] = field(default_factory=list)

    @classmethod
    def from_abi(cls, item: dict[str, Any]) -> "FunctionParameter":
        return cls(
            name=item.get("name", "") or "",
            type=item.get("type", ""),
            internal_type=item.get("internalType"),
            components=[cls.from_abi(c) for c in item.get("components", []) or []],
        )

    @property
    def canonical_type(self) -> str:
        return canonical_type(self.to_abi())

    def to_abi(self) -> dict[str, Any]:
        out: dict[str, Any] = {"name": self.name, "type": self.type}
        if self.internal_type:
            out["internalType"] = self.internal_type
        if self.components:
            out["components"] = [c.to_abi() for c in self.components]
        return out


@dataclass
class EventParameter:
    name: str
    type: str
    indexed: bool = False
    internal_type: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type,
            "indexed": self.indexed,
            "internal_type": self.internal_type,
        }


@dataclass
class ContractFunction:
    """One callable entry point; ``selector`` is its identity when unnamed."""

    name: str
    selector: str
    signature: str
    type: FunctionType = FunctionType.FUNCTION
    state_mutability: StateMutability = StateMutability.NONPAYABLE
    inputs: list[FunctionParameter] = field(default_factory=list)
    outputs: list[FunctionParameter] = field(default_factory=list)
    documentation: str | None = None
    gas_estimate: int | None = None

    @classmethod
    def from_abi(cls, item: dict[str, Any]) -> "ContractFunction":
        inputs = [FunctionParameter.from_abi(p) for p in item.get("inputs", []) or []]
        name = item.get("name", "") or item.get("type", "function")
        signature = signature_of(name, [p.to_abi() for p in inputs])
        mutability = item.get("stateMutability")
        if not mutability:
            # Pre-0.5 ABIs only carry constant/payable flags
            if item.get("constant"):
                mutability = "view"
            elif item.get("payable"):
                mutability = "payable"
            else:
                mutability = "nonpayable"
        return cls(
            name=name,
            selector=function_selector(signature),
            signature=signature,
            type=FunctionType(item.get("type", "function")),
            state_mutability=StateMutability(mutability),
            inputs=inputs,
            outputs=[FunctionParameter.from_abi(p) for p in item.get("outputs", []) or []],
        )

    @classmethod
    def placeholder(cls, selector: str) -> "ContractFunction":
        """A function known only by its selector."""
        name = f"function_{selector}"
        return cls(name=name, selector=selector, signature=f"{name}()")

    @property
    def is_read(self) -> bool:
        return self.state_mutability.is_read

    @property
    def is_payable(self) -> bool:
        return self.state_mutability == StateMutability.PAYABLE

    @property
    def category(self) -> ToolCategory:
        return ToolCategory.for_mutability(self.state_mutability)

    @property
    def input_types(self) -> list[str]:
        return [p.canonical_type for p in self.inputs]

    @property
    def output_types(self) -> list[str]:
        return [p.canonical_type for p in self.outputs]

    def to_abi(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "name": self.name,
            "inputs": [p.to_abi() for p in self.inputs],
            "outputs": [p.to_abi() for p in self.outputs],
            "stateMutability": self.state_mutability.value,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type.value,
            "state_mutability": self.state_mutability.value,
            "inputs": [p.to_abi() for p in self.inputs],
            "outputs": [p.to_abi() for p in self.outputs],
            "signature": self.signature,
            "selector": self.selector,
            "documentation": self.documentation,
            "gas_estimate": self.gas_estimate,
        }


@dataclass
class ContractEvent:
    name: str
    signature: str
    topic: str
    inputs: list[EventParameter] = field(default_factory=list)
    anonymous: bool = False

    @classmethod
    def from_abi(cls, item: dict[str, Any]) -> "ContractEvent":
        inputs = [
            EventParameter(
                name=p.get("name", "") or "",
                type=p.get("type", ""),
                indexed=bool(p.get("indexed", False)),
                internal_type=p.get("internalType"),
            )
            for p in item.get("inputs", []) or []
        ]
        signature = f"{item['name']}({','.join(p.type for p in inputs)})"
        return cls(
            name=item["name"],
            signature=signature,
            topic=event_topic(signature),
            inputs=inputs,
            anonymous=bool(item.get("anonymous", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "signature": self.signature,
            "topic": self.topic,
            "inputs": [p.to_dict() for p in self.inputs],
            "anonymous": self.anonymous,
        }


@dataclass
class ContractInfo:
    """Everything known about one deployed contract.

    ``functions`` and ``events`` are derived during analysis and not touched
    afterwards; re-analysis produces a new instance.
    """

    address: str
    bytecode: str
    abi: list[dict[str, Any]] = field(default_factory=list)
    verified: bool = False
    name: str | None = None
    functions: list[ContractFunction] = field(default_factory=list)
    events: list[ContractEvent] = field(default_factory=list)
    constructor: ContractFunction | None = None
    deployment_block: int | None = None
    deployment_tx: str | None = None
    deployment_timestamp: int | None = None

    def find_function(self, name: str) -> ContractFunction | None:
        """Look up a function by exact name, then by signature."""
        for fn in self.functions:
            if fn.name == name:
                return fn
        for fn in self.functions:
            if fn.signature == name:
                return fn
        return None

    def has_function_like(self, *needles: str) -> bool:
        """True if any function name contains one of ``needles`` (case-insensitive)."""
        lowered = [n.lower() for n in needles]
        return any(any(n in fn.name.lower() for n in lowered) for fn in self.functions)

    @property
    def bytecode_size(self) -> int:
        return max(len(self.bytecode.removeprefix("0x")) // 2, 0)

    def to_dict(self, include_bytecode: bool = False) -> dict[str, Any]:
        data: dict[str, Any] = {
            "address": self.address,
            "name": self.name,
            "verified": self.verified,
            "bytecode_size": self.bytecode_size,
            "functions": [f.to_dict() for f in self.functions],
            "events": [e.to_dict() for e in self.events],
            "deployment_block": self.deployment_block,
            "deployment_tx": self.deployment_tx,
            "deployment_timestamp": self.deployment_timestamp,
        }
        if include_bytecode:
            data["bytecode"] = self.bytecode
            data["abi"] = self.abi
        return data


@dataclass(frozen=True)
class ContractPattern:
    """A named heuristic signature matched by function/event name substrings."""

    name: str
    description: str
    functions: tuple[str, ...]
    events: tuple[str, ...]
    confidence: float = 0.0

    def with_confidence(self, confidence: float) -> "ContractPattern":
        return replace(self, confidence=confidence)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "functions": list(self.functions),
            "events": list(self.events),
            "confidence": round(self.confidence, 4),
        }


@dataclass
class AnalysisResult:
    success: bool
    contract_info: ContractInfo | None = None
    error: str | None = None
    error_code: ErrorCode | None = None
    suggestions: list[str] = field(default_factory=list)
    confidence: float = 0.0
    patterns: list[ContractPattern] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "contract_info": self.contract_info.to_dict() if self.contract_info else None,
            "error": self.error,
            "error_code": self.error_code.value if self.error_code else None,
            "suggestions": self.suggestions,
            "confidence": self.confidence,
            "patterns": [p.to_dict() for p in self.patterns],
        }
