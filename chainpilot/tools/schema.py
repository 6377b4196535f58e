"""Input schemas, argument preparation and result formatting for contract tools."""

from __future__ import annotations

import re
from typing import Any, Sequence

from chainpilot.analyzer.models import ContractFunction, FunctionParameter
from chainpilot.chain.abi import parse_ether

ADDRESS_PATTERN = "^0x[a-fA-F0-9]{40}$"
UINT_PATTERN = "^[0-9]+$"
HEX_PATTERN = "^0x[a-fA-F0-9]*$"
VALUE_PATTERN = r"^([0-9]+(\s*wei)?|[0-9]+(\.[0-9]+)?\s*(ETH|eth))$"

MIN_GAS_LIMIT = 21_000
MAX_GAS_LIMIT = 10_000_000

_FIXED_ARRAY_RE = re.compile(r"\[[0-9]+\]")


def param_key(param: FunctionParameter, index: int) -> str:
    """Argument name for a parameter (``param<i>`` when unnamed)."""
    return param.name or f"param{index}"


def map_solidity_type(solidity_type: str) -> dict[str, Any]:
    """Map a Solidity type onto a JSON Schema fragment."""
    if "[]" in solidity_type:
        return {"type": "array", "items": map_solidity_type(solidity_type.replace("[]", "", 1))}
    if _FIXED_ARRAY_RE.search(solidity_type):
        return {"type": "array", "items": map_solidity_type(_FIXED_ARRAY_RE.sub("", solidity_type, count=1))}

    if solidity_type.startswith(("uint", "int")):
        return {
            "type": "string",
            "pattern": UINT_PATTERN,
            "description": f"{solidity_type} integer as string",
        }
    if solidity_type == "address":
        return {"type": "string", "pattern": ADDRESS_PATTERN, "description": "Ethereum address"}
    if solidity_type == "bool":
        return {"type": "boolean", "description": "Boolean value"}
    if solidity_type.startswith("bytes"):
        return {
            "type": "string",
            "pattern": HEX_PATTERN,
            "description": f"{solidity_type} as hex string",
        }
    if solidity_type == "string":
        return {"type": "string", "description": "String value"}
    return {"type": "string", "description": f"{solidity_type} value"}


def generate_input_schema(fn: ContractFunction) -> dict[str, Any]:
    """Build the JSON Schema a tool's arguments must satisfy."""
    properties: dict[str, Any] = {}
    required: list[str] = []

    for index, param in enumerate(fn.inputs):
        key = param_key(param, index)
        prop = map_solidity_type(param.type)
        prop["description"] = f"{param.type} parameter for {fn.name}"
        properties[key] = prop
        required.append(key)

    if fn.is_payable:
        properties["value"] = {
            "type": "string",
            "description": 'ETH amount to send (in wei like "100" or "100 wei", or ETH format like "1.5 ETH")',
            "pattern": VALUE_PATTERN,
        }

    if not fn.is_read:
        properties["gasLimit"] = {
            "type": "number",
            "description": "Gas limit for transaction (optional)",
            "minimum": MIN_GAS_LIMIT,
            "maximum": MAX_GAS_LIMIT,
        }
        properties["gasPrice"] = {
            "type": "string",
            "description": 'Gas price in gwei (optional, e.g., "20")',
        }

    return {
        "type": "object",
        "properties": properties,
        "required": required,
        "additionalProperties": False,
    }


def _prepare_value(solidity_type: str, value: Any) -> Any:
    if solidity_type.endswith("]"):
        base = solidity_type[: solidity_type.rindex("[")]
        return [_prepare_value(base, v) for v in value]
    if solidity_type.startswith(("uint", "int")):
        return int(str(value))
    if solidity_type == "bool":
        return bool(value)
    if solidity_type == "address":
        return str(value).lower()
    return value


def prepare_function_arguments(fn: ContractFunction, args: dict[str, Any]) -> list[Any]:
    """Order and convert tool arguments into positional call arguments."""
    prepared: list[Any] = []
    for index, param in enumerate(fn.inputs):
        key = param_key(param, index)
        if key not in args:
            raise ValueError(f"Missing argument: {key}")
        prepared.append(_prepare_value(param.type, args[key]))
    return prepared


def parse_value_amount(value: str | int) -> int:
    """Parse a payable ``value``: ``"<n>"`` or ``"<n> wei"`` in wei, ``"<x> ETH"`` in ether.

    Raises:
        ValueError: For anything else, including a bare decimal
    """
    if isinstance(value, int):
        return value
    text = value.strip().lower()
    if text.endswith("eth"):
        return parse_ether(text[:-3].strip())
    if text.endswith("wei"):
        text = text[:-3].strip()
    if not text.isdigit():
        raise ValueError(f"Invalid value amount: {value!r}")
    return int(text)


def format_single_value(value: Any, solidity_type: str) -> Any:
    if solidity_type.endswith("]") and isinstance(value, (list, tuple)):
        base = solidity_type[: solidity_type.rindex("[")]
        return [format_single_value(v, base) for v in value]
    if solidity_type.startswith(("uint", "int")):
        return str(value)
    if solidity_type == "bool":
        return bool(value)
    if solidity_type == "address":
        return str(value).lower()
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    return value


def format_result(values: Sequence[Any], outputs: Sequence[FunctionParameter]) -> Any:
    """Unwrap single return values; key multiple values by output name."""
    if not outputs:
        return "Success"
    if len(outputs) == 1:
        return format_single_value(values[0], outputs[0].type)
    return {
        output.name or f"output{index}": format_single_value(values[index], output.type)
        for index, output in enumerate(outputs)
    }
