"""ABI encoding helpers and ether unit conversion.

Thin wrappers around eth-abi / eth-utils so the rest of the engine can work
with ABI JSON fragments and human-readable strings.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Sequence

from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from eth_utils import is_hex_address, keccak

ETHER_DECIMALS = 18
GWEI_DECIMALS = 9


def is_address(value: Any) -> bool:
    """True for a 0x-prefixed 40-hex-digit string (checksum not enforced)."""
    return isinstance(value, str) and value.startswith("0x") and is_hex_address(value)


# ── Selectors & topics ──────────────────────────────────────────────────────


def canonical_type(param: dict[str, Any]) -> str:
    """Canonical ABI type of a parameter, expanding tuples."""
    abi_type = param.get("type", "")
    if abi_type.startswith("tuple"):
        inner = ",".join(canonical_type(c) for c in param.get("components", []))
        return f"({inner}){abi_type[len('tuple'):]}"
    return abi_type


def signature_of(name: str, inputs: Sequence[dict[str, Any]]) -> str:
    """Build ``name(type1,type2)`` from ABI inputs."""
    return f"{name}({','.join(canonical_type(p) for p in inputs)})"


def function_selector(signature: str) -> str:
    """4-byte selector (0x-prefixed hex) of a function signature."""
    return "0x" + keccak(text=signature)[:4].hex()


def event_topic(signature: str) -> str:
    """32-byte topic hash (0x-prefixed hex) of an event signature."""
    return "0x" + keccak(text=signature).hex()


# ── Encoding ────────────────────────────────────────────────────────────────


def coerce_value(abi_type: str, value: Any) -> Any:
    """Coerce a JSON-friendly value into what eth-abi expects for ``abi_type``."""
    if abi_type.endswith("]"):
        base = abi_type[: abi_type.rindex("[")]
        return [coerce_value(base, v) for v in value]
    if abi_type.startswith(("uint", "int")):
        if isinstance(value, str):
            value = value.strip()
            return int(value, 16) if value.lower().startswith("0x") else int(value)
        return int(value)
    if abi_type == "bool":
        if isinstance(value, str):
            return value.strip().lower() in ("true", "1", "yes")
        return bool(value)
    if abi_type.startswith("bytes"):
        if isinstance(value, str):
            return bytes.fromhex(value.removeprefix("0x"))
        return bytes(value)
    return value


def encode_call(selector: str, input_types: Sequence[str], args: Sequence[Any]) -> str:
    """ABI-encode a call: 4-byte selector followed by the encoded arguments."""
    coerced = [coerce_value(t, a) for t, a in zip(input_types, args)]
    encoded = abi_encode(list(input_types), coerced) if input_types else b""
    return "0x" + selector.removeprefix("0x") + encoded.hex()


def decode_output(output_types: Sequence[str], data: str) -> tuple[Any, ...]:
    """Decode return data for the given output types.

    Raises:
        ValueError: When outputs are declared but the call returned no data,
            as happens when the address holds no code
    """
    raw = bytes.fromhex(data.removeprefix("0x"))
    if not output_types:
        return ()
    if not raw:
        raise ValueError("Function returned no data")
    return tuple(abi_decode(list(output_types), raw))


# ── Units ───────────────────────────────────────────────────────────────────


def parse_units(value: str | int | float | Decimal, decimals: int) -> int:
    """Convert a decimal string amount into integer base units."""
    try:
        amount = Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"Invalid amount: {value!r}") from exc
    if amount < 0:
        raise ValueError(f"Negative amount: {value!r}")
    return int(amount.scaleb(decimals).to_integral_value())


def format_units(value: int, decimals: int) -> str:
    """Render integer base units as a decimal string without trailing zeros."""
    return format(Decimal(int(value)).scaleb(-decimals).normalize(), "f")


def parse_ether(value: str | int | float | Decimal) -> int:
    return parse_units(value, ETHER_DECIMALS)


def format_ether(wei: int) -> str:
    return format_units(wei, ETHER_DECIMALS)


def parse_gwei(value: str | int | float | Decimal) -> int:
    return parse_units(value, GWEI_DECIMALS)
