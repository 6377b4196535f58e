"""Health check endpoints."""

from __future__ import annotations

import logging
import time

from fastapi import APIRouter, Depends

from chainpilot.api.deps import EngineContainer, get_container

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check() -> dict:
    """Quick liveness probe."""
    return {"status": "healthy", "service": "chainpilot-engine"}


@router.get("/health/ready")
async def readiness_check(container: EngineContainer = Depends(get_container)) -> dict:
    """Readiness — verifies the RPC node answers and reports signer presence."""
    checks: dict[str, dict] = {}
    overall = True
    start = time.perf_counter()

    try:
        block = await container.chain.require_client().get_block_number()
        checks["rpc"] = {"status": "up", "block_number": block}
    except Exception as e:
        logger.warning("RPC readiness probe failed: %s", e)
        checks["rpc"] = {"status": "down", "error": str(e)}
        overall = False

    # A missing signer only disables writes
    checks["signer"] = {"status": "up" if container.chain.has_signer else "unavailable"}

    return {
        "status": "healthy" if overall else "degraded",
        "service": "chainpilot-engine",
        "network": container.chain.chain.name if container.chain.chain else container.settings.network,
        "checks": checks,
        "latency_ms": round((time.perf_counter() - start) * 1000, 1),
    }
