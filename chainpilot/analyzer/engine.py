"""Contract Analysis Engine — builds a ``ContractInfo`` for an address.

Flow:
  1. Cache lookup (keyed by lowercased address)
  2. Address validation, then ``get_code`` on the chain
  3. Verified ABI from the block explorer, if one is configured
  4. Otherwise heuristic PUSH4 selector scan + known-selector upgrade
  5. Gas/documentation enrichment, event topics, pattern ranking
  6. Cache + suggestions
"""

from __future__ import annotations

import logging
import time
from typing import Any

from chainpilot.analyzer.bytecode import extract_selectors
from chainpilot.analyzer.models import AnalysisResult, ContractEvent, ContractFunction, ContractInfo, ContractPattern
from chainpilot.analyzer.patterns import identify_patterns, resolve_selector
from chainpilot.chain.abi import is_address
from chainpilot.chain.port import ChainContext
from chainpilot.core.cache import KeyedCache, address_key
from chainpilot.core.config import Settings, get_settings
from chainpilot.core.errors import ChainPilotError, ErrorCode, InvalidAddressError, NoContractError
from chainpilot.core.types import FunctionType, StateMutability
from chainpilot.ingestion.contract_fetcher import ContractFetcher

logger = logging.getLogger(__name__)

_EMPTY_CODE = ("", "0x", "0x0")

# Gas estimates by mutability
_READ_GAS = 3_000
_PAYABLE_GAS = 50_000
_WRITE_GAS = 25_000

_DOC_HINTS: tuple[tuple[str, str], ...] = (
    ("transfer", "Token transfer function - handles asset movement"),
    ("approve", "Approval function - grants spending permission"),
    ("balance", "Balance query function - returns account balance"),
    ("owner", "Ownership function - manages contract ownership"),
)

_FAILURE_SUGGESTIONS: dict[ErrorCode, list[str]] = {
    ErrorCode.INVALID_ADDRESS: ["Please provide a valid Ethereum address format (0x...)"],
    ErrorCode.NO_CONTRACT: [
        "Verify the contract address is correct",
        "Check if the contract is deployed on the correct network",
        "Try deploying a contract first",
    ],
}

_GENERIC_FAILURE_SUGGESTIONS = [
    "Check network connection",
    "Verify contract address",
    "Try again in a moment",
]


class ContractAnalysisEngine:
    """Analyzes deployed contracts and memoizes the result per address."""

    def __init__(
        self,
        chain: ChainContext,
        fetcher: ContractFetcher | None = None,
        cache: KeyedCache[ContractInfo] | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.chain = chain
        self.fetcher = fetcher
        self.settings = settings or get_settings()
        self._cache: KeyedCache[ContractInfo] = cache or KeyedCache(name="contracts", key_fn=address_key)

    async def analyze_contract(self, address: str) -> AnalysisResult:
        """Analyze the contract at ``address``.

        Never raises: failures come back as ``success=False`` with an error
        message and suggestions.
        """
        cached = self._cache.get(address)
        if cached is not None:
            return AnalysisResult(
                success=True,
                contract_info=cached,
                suggestions=self.generate_suggestions(cached),
                confidence=self.settings.cached_analysis_confidence,
                patterns=self.identify_patterns(cached),
            )

        start = time.monotonic()
        try:
            info = await self._analyze(address)
        except ChainPilotError as exc:
            logger.info("Analysis of %s failed: %s", address, exc.message)
            return AnalysisResult(
                success=False,
                error=exc.message,
                error_code=exc.code,
                suggestions=list(_FAILURE_SUGGESTIONS.get(exc.code, _GENERIC_FAILURE_SUGGESTIONS)),
                confidence=0.0,
            )
        except Exception as exc:
            logger.exception("Contract analysis error for %s", address)
            return AnalysisResult(
                success=False,
                error=str(exc) or "Unknown analysis error",
                suggestions=list(_GENERIC_FAILURE_SUGGESTIONS),
                confidence=0.0,
            )

        patterns = self.identify_patterns(info)
        self._cache.put(info.address, info)

        logger.info(
            "Analyzed contract: %d functions, %d events, verified=%s",
            len(info.functions), len(info.events), info.verified,
            extra={
                "contract_address": info.address,
                "duration_ms": round((time.monotonic() - start) * 1000, 1),
            },
        )
        return AnalysisResult(
            success=True,
            contract_info=info,
            suggestions=self.generate_suggestions(info, patterns),
            confidence=(
                self.settings.cached_analysis_confidence
                if info.verified
                else self.settings.unverified_analysis_confidence
            ),
            patterns=patterns,
        )

    # ── Pipeline stages ──────────────────────────────────────────────────────

    async def _analyze(self, address: str) -> ContractInfo:
        if not is_address(address):
            raise InvalidAddressError(address)

        client = self.chain.require_client()
        code = await client.get_code(address)
        if code in _EMPTY_CODE:
            raise NoContractError(address)

        info = ContractInfo(address=address.lower(), bytecode=code)

        if not await self._apply_verified_abi(info):
            self._reverse_engineer(info)

        self._enrich_functions(info.functions)
        info.events = self._extract_events(info.abi)
        return info

    async def _apply_verified_abi(self, info: ContractInfo) -> bool:
        """Populate ``info`` from a verified ABI. Returns False on a miss."""
        if self.fetcher is None:
            return False
        source = await self.fetcher.fetch_verified_abi(info.address)
        if source is None:
            return False

        info.abi = source.abi
        info.verified = True
        info.name = source.contract_name or None
        for item in source.abi:
            kind = item.get("type", "function")
            if kind == FunctionType.CONSTRUCTOR.value:
                info.constructor = ContractFunction.from_abi(item)
            elif kind in (FunctionType.FUNCTION.value, FunctionType.FALLBACK.value, FunctionType.RECEIVE.value):
                info.functions.append(ContractFunction.from_abi(item))
        return True

    def _reverse_engineer(self, info: ContractInfo) -> None:
        """Synthesize functions from PUSH4 selector candidates."""
        selectors = extract_selectors(info.bytecode, limit=self.settings.max_selector_candidates)
        info.functions = [resolve_selector(s) for s in selectors]
        info.abi = [fn.to_abi() for fn in info.functions]

    @staticmethod
    def _enrich_functions(functions: list[ContractFunction]) -> None:
        for fn in functions:
            if fn.state_mutability.is_read:
                fn.gas_estimate = _READ_GAS
            elif fn.state_mutability == StateMutability.PAYABLE:
                fn.gas_estimate = _PAYABLE_GAS
            else:
                fn.gas_estimate = _WRITE_GAS

            for needle, hint in _DOC_HINTS:
                if needle in fn.name:
                    fn.documentation = hint
                    break

    @staticmethod
    def _extract_events(abi: list[dict[str, Any]]) -> list[ContractEvent]:
        return [ContractEvent.from_abi(item) for item in abi if item.get("type") == "event"]

    def identify_patterns(self, info: ContractInfo) -> list[ContractPattern]:
        return identify_patterns(
            info.functions,
            info.events,
            threshold=self.settings.pattern_confidence_threshold,
        )

    @staticmethod
    def generate_suggestions(info: ContractInfo, patterns: list[ContractPattern] | None = None) -> list[str]:
        suggestions: list[str] = []
        if not info.verified:
            suggestions.append("Contract is not verified - consider verifying for better analysis")
        if not info.functions:
            suggestions.append("No functions detected - contract might be a proxy or library")
        if any("transfer" in f.name for f in info.functions):
            suggestions.append("Token contract detected - can interact with transfer functions")
        if any("owner" in f.name for f in info.functions):
            suggestions.append("Ownable contract detected - check ownership functions")
        if patterns:
            top = patterns[0]
            suggestions.append(f"Matches pattern: {top.name} ({round(top.confidence * 100)}% confidence)")
        suggestions.append('Use "generate tools" to create interactive tools for this contract')
        return suggestions

    # ── Cache ────────────────────────────────────────────────────────────────

    def get_cached_contract(self, address: str) -> ContractInfo | None:
        return self._cache.get(address)

    def clear_cache(self) -> None:
        self._cache.clear()

    def get_stats(self) -> dict[str, int]:
        contracts = self._cache.values()
        return {
            "total_analyzed": len(contracts),
            "verified_contracts": sum(1 for c in contracts if c.verified),
            "cached_contracts": len(self._cache),
        }
