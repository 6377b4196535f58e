"""Contract Explorer — analysis + tools + risk, memoized per address.

The explorer owns the combined cache lifecycle: ``clear_cache`` also clears
the analysis engine's contract cache and the tool generator's tool cache.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

from chainpilot.analyzer.engine import ContractAnalysisEngine
from chainpilot.analyzer.models import AnalysisResult, ContractInfo
from chainpilot.chain.abi import is_address
from chainpilot.chain.port import ChainContext
from chainpilot.core.cache import KeyedCache, address_key
from chainpilot.core.types import RiskLevel
from chainpilot.explorer.risk import RiskAssessment, assess_contract_risk
from chainpilot.tools.generator import DynamicToolGenerator, GeneratedTool

logger = logging.getLogger(__name__)


@dataclass
class ExplorationRequest:
    address: str | None = None
    function_signature: str | None = None
    include_tools: bool = False


@dataclass
class ContractInteraction:
    type: str
    timestamp: int
    block_number: int
    transaction_hash: str
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class ContractExplorationData:
    contract_info: ContractInfo
    analysis_result: AnalysisResult
    risk_assessment: RiskAssessment
    generated_tools: list[GeneratedTool] | None = None
    interactions: list[ContractInteraction] = field(default_factory=list)
    related_contracts: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "contract_info": self.contract_info.to_dict(),
            "analysis": {
                "confidence": self.analysis_result.confidence,
                "suggestions": self.analysis_result.suggestions,
                "patterns": [p.to_dict() for p in self.analysis_result.patterns],
            },
            "risk_assessment": self.risk_assessment.to_dict(),
            "generated_tools": (
                [t.to_dict() for t in self.generated_tools] if self.generated_tools is not None else None
            ),
            "interactions": [asdict(i) for i in self.interactions],
            "related_contracts": self.related_contracts,
        }


@dataclass
class ExplorationResult:
    success: bool
    search_criteria: ExplorationRequest
    contracts: list[ContractExplorationData] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def total_found(self) -> int:
        return len(self.contracts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "contracts": [c.to_dict() for c in self.contracts],
            "total_found": self.total_found,
            "search_criteria": asdict(self.search_criteria),
            "suggestions": self.suggestions,
            "error": self.error,
        }


class ContractExplorer:
    """Explores contracts by address or by function signature."""

    def __init__(
        self,
        chain: ChainContext,
        analysis_engine: ContractAnalysisEngine,
        tool_generator: DynamicToolGenerator,
        cache: KeyedCache[ContractExplorationData] | None = None,
    ) -> None:
        self.chain = chain
        self.analysis_engine = analysis_engine
        self.tool_generator = tool_generator
        self._history: KeyedCache[ContractExplorationData] = cache or KeyedCache(
            name="explorations", key_fn=address_key,
        )

    async def explore_contracts(self, request: ExplorationRequest) -> ExplorationResult:
        try:
            contracts: list[ContractExplorationData] = []

            if request.address:
                data = await self._explore_contract(request.address, request.include_tools)
                if data is not None:
                    contracts.append(data)

            if request.function_signature:
                for address in self.search_by_function_signature(request.function_signature):
                    data = await self._explore_contract(address, request.include_tools)
                    if data is not None:
                        contracts.append(data)

            suggestions: list[str] = []
            if not contracts:
                suggestions += [
                    "No contracts found matching criteria",
                    "Try searching with a different address or function signature",
                    "Check if the contract is deployed on the correct network",
                ]
            else:
                suggestions.append(f"Found {len(contracts)} contract(s)")
                if request.include_tools:
                    total_tools = sum(len(c.generated_tools or []) for c in contracts)
                    suggestions.append(f"Generated {total_tools} interactive tools")
                suggestions.append("Use the analysis results to understand contract functionality")

            return ExplorationResult(
                success=True,
                search_criteria=request,
                contracts=contracts,
                suggestions=suggestions,
            )
        except Exception as exc:
            logger.exception("Contract exploration error")
            return ExplorationResult(
                success=False,
                search_criteria=request,
                suggestions=["Exploration failed", "Check network connection and try again"],
                error=str(exc) or "Unknown exploration error",
            )

    async def _explore_contract(self, address: str, include_tools: bool = False) -> ContractExplorationData | None:
        cached = self._history.get(address)
        if cached is not None:
            if include_tools and cached.generated_tools is None and cached.contract_info.functions:
                cached.generated_tools = await self._generate_tools(cached.contract_info)
            return cached

        analysis = await self.analysis_engine.analyze_contract(address)
        if not analysis.success or analysis.contract_info is None:
            logger.warning("Failed to analyze contract %s: %s", address, analysis.error)
            return None

        info = analysis.contract_info
        tools = None
        if include_tools and info.functions:
            tools = await self._generate_tools(info)

        data = ContractExplorationData(
            contract_info=info,
            analysis_result=analysis,
            risk_assessment=assess_contract_risk(info),
            generated_tools=tools,
            interactions=await self.get_contract_interactions(info.address),
            related_contracts=self.find_related_contracts(info),
        )
        self._history.put(info.address, data)
        return data

    async def _generate_tools(self, info: ContractInfo) -> list[GeneratedTool] | None:
        result = await self.tool_generator.generate_tools_for_contract(info)
        return result.tools if result.success else None

    def search_by_function_signature(self, signature: str) -> list[str]:
        """Addresses in the exploration cache exposing a matching function."""
        return [
            address
            for address, data in self._history.items()
            if any(signature in f.signature or signature in f.name for f in data.contract_info.functions)
        ]

    async def get_contract_interactions(self, address: str) -> list[ContractInteraction]:
        # Needs an event indexer; none is wired in
        return []

    @staticmethod
    def find_related_contracts(info: ContractInfo) -> list[str]:
        if info.has_function_like("create"):
            logger.debug("Potential factory contract detected", extra={"contract_address": info.address})
        if info.has_function_like("implementation"):
            logger.debug("Potential proxy contract detected", extra={"contract_address": info.address})
        return []

    # ── Cache & reporting ────────────────────────────────────────────────────

    def get_cached_exploration(self, address: str) -> ContractExplorationData | None:
        return self._history.get(address)

    def clear_cache(self) -> None:
        self._history.clear()
        self.analysis_engine.clear_cache()
        self.tool_generator.clear_all_tools()

    def get_exploration_stats(self) -> dict[str, Any]:
        distribution = {level.value: 0 for level in RiskLevel}
        verified = 0
        tools = 0
        for data in self._history.values():
            if data.contract_info.verified:
                verified += 1
            tools += len(data.generated_tools or [])
            distribution[data.risk_assessment.level.value] += 1
        return {
            "total_explored": len(self._history),
            "verified_contracts": verified,
            "risk_distribution": distribution,
            "tools_generated": tools,
        }

    def export_exploration_data(self, addresses: list[str] | None = None) -> dict[str, Any]:
        if addresses is None:
            selected = self._history.values()
        else:
            selected = [d for d in (self._history.get(a) for a in addresses) if d is not None]
        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "explored_contracts": [
                {
                    "address": d.contract_info.address,
                    "verified": d.contract_info.verified,
                    "functions_count": len(d.contract_info.functions),
                    "risk_level": d.risk_assessment.level.value,
                    "risk_score": d.risk_assessment.score,
                    "tools_generated": len(d.generated_tools or []),
                }
                for d in selected
            ],
            "statistics": self.get_exploration_stats(),
        }

    async def quick_lookup(self, address: str) -> dict[str, Any]:
        """Cheap existence check, using the cache when possible."""
        cached = self._history.get(address)
        if cached is not None:
            return {
                "exists": True,
                "verified": cached.contract_info.verified,
                "functions_count": len(cached.contract_info.functions),
                "risk_level": cached.risk_assessment.level.value,
                "suggestions": [
                    "Contract already analyzed",
                    "Use full exploration for detailed analysis",
                    "Generate tools for interaction",
                ],
            }

        try:
            if not is_address(address):
                raise ValueError(f"Invalid address: {address}")
            code = await self.chain.require_client().get_code(address)
        except Exception as exc:
            logger.warning("Quick lookup of %s failed: %s", address, exc)
            return {
                "exists": False,
                "verified": False,
                "functions_count": 0,
                "risk_level": None,
                "suggestions": [
                    "Lookup failed - check network connection",
                    "Verify address format is correct",
                ],
            }

        exists = code not in ("", "0x", "0x0")
        return {
            "exists": exists,
            "verified": False,
            "functions_count": 0,
            "risk_level": None,
            "suggestions": [
                "Contract exists but not analyzed yet",
                "Use explore command for full analysis",
                "Check contract verification status",
            ] if exists else [
                "No contract found at this address",
                "Verify the address is correct",
                "Check if deployed on the right network",
            ],
        }
