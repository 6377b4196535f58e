"""Keyword intent classification and entity extraction.

Intent detection is first-match-wins over ``INTENT_PATTERNS`` in declaration
order. Reordering the table changes which intent an instruction gets (e.g.
"create and call" is a deploy), so keep it as is.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Sequence

from chainpilot.core.types import Intent

INTENT_PATTERNS: tuple[tuple[Intent, re.Pattern[str]], ...] = (
    (Intent.DEPLOY, re.compile(r"deploy|create|launch|initialize", re.IGNORECASE)),
    (Intent.CALL, re.compile(r"call|execute|run|invoke", re.IGNORECASE)),
    (Intent.QUERY, re.compile(r"query|check|get|read|view|balance|status", re.IGNORECASE)),
    (Intent.UPLOAD, re.compile(r"upload|store|save|put", re.IGNORECASE)),
    (Intent.ANALYZE, re.compile(r"analyze|scan|inspect|examine|audit", re.IGNORECASE)),
    (Intent.TRANSFER, re.compile(r"send|transfer|pay|move", re.IGNORECASE)),
    (Intent.APPROVE, re.compile(r"approve|allow|permit", re.IGNORECASE)),
    (Intent.MONITOR, re.compile(r"monitor|watch|listen|track", re.IGNORECASE)),
)

DEFAULT_INTENT = Intent.QUERY

ADDRESS_RE = re.compile(r"0x[a-fA-F0-9]{40}")
AMOUNT_RE = re.compile(r"(\d+(?:\.\d+)?)\s*(ether|eth|gwei|wei|tokens?)", re.IGNORECASE)

ENTITY_FLAG_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("contract", re.compile(r"contract|smart\s*contract", re.IGNORECASE)),
    ("token", re.compile(r"token|erc20|erc721|nft", re.IGNORECASE)),
    ("function", re.compile(r"function|method", re.IGNORECASE)),
    ("file", re.compile(r"file|document|data", re.IGNORECASE)),
    ("model", re.compile(r"model|ai\s*model|ml\s*model", re.IGNORECASE)),
)

_QUOTED_RE = re.compile(r"[\"']([^\"']+)[\"']")
_FILENAME_RE = re.compile(r"(\S+\.\w+)")

DEFAULT_FILE_PATH = "./example.txt"


@dataclass
class Amount:
    value: str
    unit: str


@dataclass
class Entities:
    """Everything pulled out of one instruction."""

    addresses: list[str] = field(default_factory=list)
    amount: Amount | None = None
    flags: set[str] = field(default_factory=set)

    def has(self, flag: str) -> bool:
        return flag in self.flags

    @property
    def first_address(self) -> str | None:
        return self.addresses[0] if self.addresses else None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {name: True for name in sorted(self.flags)}
        if self.addresses:
            data["addresses"] = list(self.addresses)
        if self.amount:
            data["amount"] = {"value": self.amount.value, "unit": self.amount.unit}
        return data


def extract_intent(user_input: str) -> Intent:
    text = user_input.lower()
    for intent, pattern in INTENT_PATTERNS:
        if pattern.search(text):
            return intent
    return DEFAULT_INTENT


def extract_entities(user_input: str) -> Entities:
    entities = Entities(addresses=ADDRESS_RE.findall(user_input))

    match = AMOUNT_RE.search(user_input)
    if match:
        entities.amount = Amount(value=match.group(1), unit=match.group(2).lower())

    for name, pattern in ENTITY_FLAG_PATTERNS:
        if pattern.search(user_input):
            entities.flags.add(name)
    return entities


def extract_file_path(user_input: str) -> str:
    """A quoted string, else the first ``name.ext`` token, else a default."""
    match = _QUOTED_RE.search(user_input) or _FILENAME_RE.search(user_input)
    return match.group(1) if match else DEFAULT_FILE_PATH


def extract_function_name(user_input: str, function_names: Sequence[str]) -> str | None:
    """First known function name mentioned in the input, else the first one."""
    text = user_input.lower()
    for name in function_names:
        if name.lower() in text:
            return name
    return function_names[0] if function_names else None
