"""Natural-language task endpoints."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from chainpilot.api.deps import EngineContainer, get_container
from chainpilot.core.types import TaskPriority
from chainpilot.interpreter.models import TaskRequest

logger = logging.getLogger(__name__)

router = APIRouter()


class TaskBody(BaseModel):
    user_input: str = Field(..., min_length=1, max_length=2000)
    context: dict[str, Any] = Field(default_factory=dict)
    priority: TaskPriority = TaskPriority.MEDIUM
    # Run the plan through the workflow engine for execution bookkeeping
    as_workflow: bool = False

    def to_request(self) -> TaskRequest:
        return TaskRequest(user_input=self.user_input, context=self.context, priority=self.priority)


@router.post("/interpret")
async def interpret_task(
    body: TaskBody,
    container: EngineContainer = Depends(get_container),
) -> dict[str, Any]:
    """Build the action plan without executing it.

    An instruction missing a required entity answers 400 (or 404 for an
    unknown contract function) through the error envelope.
    """
    action = await container.interpreter.interpret_task(body.to_request())
    return action.to_dict()


@router.post("/execute")
async def execute_task(
    body: TaskBody,
    container: EngineContainer = Depends(get_container),
) -> dict[str, Any]:
    if body.as_workflow:
        action = await container.interpreter.interpret_task(body.to_request())
        result = await container.workflow_engine.execute_action(action, body.context)
        return {"action": action.to_dict(), "workflow": result.to_dict()}

    result = await container.interpreter.run_task(body.to_request())
    return result.to_dict()
