"""Heuristic function-selector scan over EVM runtime bytecode.

This is not a disassembler: every byte offset is inspected, so PUSH4 bytes
that sit inside another instruction's immediate data are reported too. The
candidate set is capped to keep that noise bounded.
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)

PUSH4 = 0x63
SELECTOR_SIZE = 4
DEFAULT_MAX_SELECTORS = 20


def normalize_bytecode(bytecode: str | bytes) -> bytes:
    """Normalize bytecode input to raw bytes."""
    if isinstance(bytecode, bytes):
        return bytecode
    if isinstance(bytecode, str):
        bc = bytecode.strip()
        if bc.startswith("0x") or bc.startswith("0X"):
            bc = bc[2:]
        try:
            return bytes.fromhex(bc)
        except ValueError:
            logger.error("Invalid hex bytecode")
            return b""
    return b""


def extract_selectors(bytecode: str | bytes, limit: int = DEFAULT_MAX_SELECTORS) -> list[str]:
    """Collect unique ``0x``-prefixed 4-byte values that follow a PUSH4 byte.

    Candidates are returned in order of first appearance. After a hit the
    scan resumes past the four operand bytes, so matches never overlap.
    """
    raw = normalize_bytecode(bytecode)
    selectors: list[str] = []
    seen: set[str] = set()

    i = 0
    end = len(raw) - SELECTOR_SIZE
    while i < end and len(selectors) < limit:
        if raw[i] == PUSH4:
            selector = "0x" + raw[i + 1: i + 1 + SELECTOR_SIZE].hex()
            if selector not in seen:
                seen.add(selector)
                selectors.append(selector)
            i += 1 + SELECTOR_SIZE
        else:
            i += 1

    logger.debug("Found %d potential function selectors", len(selectors))
    return selectors
