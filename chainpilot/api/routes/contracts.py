"""Contract analysis, exploration and tool generation endpoints."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from chainpilot.api.deps import EngineContainer, get_container
from chainpilot.core.errors import ErrorCode
from chainpilot.explorer.explorer import ExplorationRequest
from chainpilot.tools.generator import ToolGenerationOptions

logger = logging.getLogger(__name__)

router = APIRouter()

ADDRESS_PATTERN = r"^0x[a-fA-F0-9]{40}$"


# ── Schemas ──────────────────────────────────────────────────────────────────


class AddressRequest(BaseModel):
    address: str = Field(..., description="Contract address (0x...)")


class ExploreRequest(BaseModel):
    """Explore by address, by function signature, or both."""

    address: str | None = None
    function_signature: str | None = None
    include_tools: bool = False


class GenerateToolsRequest(BaseModel):
    address: str = Field(..., pattern=ADDRESS_PATTERN, description="Contract address (0x...)")
    include_read_functions: bool = True
    include_write_functions: bool = True
    include_payable_functions: bool = True
    max_tools_per_contract: int | None = Field(None, ge=1, le=100)
    custom_prefix: str | None = Field(None, pattern=r"^[a-zA-Z][a-zA-Z0-9_]*$")


# ── Routes ───────────────────────────────────────────────────────────────────


@router.post("/analyze")
async def analyze_contract(
    body: AddressRequest,
    container: EngineContainer = Depends(get_container),
) -> dict[str, Any]:
    """Analyze a deployed contract. Failures come back with ``success: false``."""
    result = await container.analysis_engine.analyze_contract(body.address)
    return result.to_dict()


@router.post("/explore")
async def explore_contracts(
    body: ExploreRequest,
    container: EngineContainer = Depends(get_container),
) -> dict[str, Any]:
    if not body.address and not body.function_signature:
        raise HTTPException(status_code=400, detail="Provide an address or a function signature")
    result = await container.explorer.explore_contracts(
        ExplorationRequest(
            address=body.address,
            function_signature=body.function_signature,
            include_tools=body.include_tools,
        ),
    )
    return result.to_dict()


@router.post("/generate-tools")
async def generate_tools(
    body: GenerateToolsRequest,
    container: EngineContainer = Depends(get_container),
) -> dict[str, Any]:
    """Analyze (or reuse the cached analysis of) a contract and build its tools."""
    analysis = await container.analysis_engine.analyze_contract(body.address)
    if not analysis.success or analysis.contract_info is None:
        status_code = 404 if analysis.error_code == ErrorCode.NO_CONTRACT else 400
        raise HTTPException(status_code=status_code, detail=analysis.error or "Contract analysis failed")

    defaults = container.tool_generator.default_options()
    options = ToolGenerationOptions(
        include_read_functions=body.include_read_functions,
        include_write_functions=body.include_write_functions,
        include_payable_functions=body.include_payable_functions,
        max_tools_per_contract=body.max_tools_per_contract or defaults.max_tools_per_contract,
        custom_prefix=body.custom_prefix or defaults.custom_prefix,
    )
    result = await container.tool_generator.generate_tools_for_contract(analysis.contract_info, options)
    return result.to_dict()


@router.post("/lookup")
async def quick_lookup(
    body: AddressRequest,
    container: EngineContainer = Depends(get_container),
) -> dict[str, Any]:
    return await container.explorer.quick_lookup(body.address)


@router.get("/stats")
async def contract_stats(container: EngineContainer = Depends(get_container)) -> dict[str, Any]:
    return {
        "analysis": container.analysis_engine.get_stats(),
        "tools": container.tool_generator.get_stats(),
        "exploration": container.explorer.get_exploration_stats(),
        "knowledge": container.knowledge.stats(),
    }
