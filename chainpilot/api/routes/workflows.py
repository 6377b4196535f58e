"""Workflow template and execution endpoints."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from chainpilot.api.deps import EngineContainer, get_container

logger = logging.getLogger(__name__)

router = APIRouter()


class ExecuteWorkflowRequest(BaseModel):
    parameters: dict[str, Any] = Field(default_factory=dict)


@router.get("")
async def list_workflows(container: EngineContainer = Depends(get_container)) -> dict[str, Any]:
    workflows = container.workflow_engine.get_available_workflows()
    return {"workflows": [w.to_dict() for w in workflows], "total": len(workflows)}


@router.get("/executions")
async def list_executions(container: EngineContainer = Depends(get_container)) -> dict[str, Any]:
    executions = container.workflow_engine.get_active_executions()
    return {"executions": [e.to_dict() for e in executions], "total": len(executions)}


@router.get("/executions/{execution_id}")
async def get_execution(
    execution_id: str,
    container: EngineContainer = Depends(get_container),
) -> dict[str, Any]:
    execution = container.workflow_engine.get_execution(execution_id)
    if execution is None:
        raise HTTPException(status_code=404, detail=f"Execution {execution_id} not found")
    return execution.to_dict()


@router.post("/executions/{execution_id}/cancel")
async def cancel_execution(
    execution_id: str,
    container: EngineContainer = Depends(get_container),
) -> dict[str, Any]:
    engine = container.workflow_engine
    if engine.get_execution(execution_id) is None:
        raise HTTPException(status_code=404, detail=f"Execution {execution_id} not found")
    cancelled = engine.cancel_execution(execution_id)
    return {"execution_id": execution_id, "cancelled": cancelled}


@router.get("/{workflow_id}")
async def get_workflow(
    workflow_id: str,
    container: EngineContainer = Depends(get_container),
) -> dict[str, Any]:
    workflow = container.workflow_engine.get_workflow(workflow_id)
    if workflow is None:
        raise HTTPException(status_code=404, detail=f"Workflow {workflow_id} not found")
    return workflow.to_dict()


@router.post("/{workflow_id}/execute")
async def execute_workflow(
    workflow_id: str,
    body: ExecuteWorkflowRequest | None = None,
    container: EngineContainer = Depends(get_container),
) -> dict[str, Any]:
    """Run a workflow to completion. Unknown ids answer 404."""
    parameters = body.parameters if body is not None else {}
    result = await container.workflow_engine.execute_workflow(workflow_id, parameters)
    return result.to_dict()
