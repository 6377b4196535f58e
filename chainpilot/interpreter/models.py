"""Task request, action plan and result types."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from chainpilot.core.types import ActionType, Intent, TaskPriority


@dataclass
class TaskRequest:
    user_input: str
    context: dict[str, Any] = field(default_factory=dict)
    priority: TaskPriority = TaskPriority.MEDIUM


@dataclass
class ActionStep:
    """One unit of an action plan.

    ``dependencies`` name earlier step ids in the same action; they are
    checked before the step runs but never used to reorder steps.
    """

    id: str
    action: str
    description: str
    parameters: dict[str, Any] = field(default_factory=dict)
    dependencies: list[str] = field(default_factory=list)
    optional: bool = False
    tool_name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "action": self.action,
            "description": self.description,
            "parameters": self.parameters,
            "dependencies": self.dependencies,
            "optional": self.optional,
            "tool_name": self.tool_name,
        }


@dataclass
class ExecutableAction:
    type: ActionType
    description: str
    steps: list[ActionStep] = field(default_factory=list)
    requirements: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    estimated_gas: str | None = None
    intent: Intent | None = None
    entities: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "description": self.description,
            "steps": [s.to_dict() for s in self.steps],
            "requirements": self.requirements,
            "warnings": self.warnings,
            "estimated_gas": self.estimated_gas,
            "intent": self.intent.value if self.intent else None,
            "entities": self.entities,
        }


@dataclass
class StepResult:
    """Outcome of running one action step."""

    success: bool
    result: Any = None
    error: str | None = None
    transaction_hash: str | None = None
    gas_used: int | None = None
    outputs: dict[str, Any] = field(default_factory=dict)


@dataclass
class TaskResult:
    success: bool
    result: Any = None
    gas_used: str | None = None
    transaction_hash: str | None = None
    warnings: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)
    completed_steps: list[str] = field(default_factory=list)
    step_results: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "result": self.result,
            "gas_used": self.gas_used,
            "transaction_hash": self.transaction_hash,
            "warnings": self.warnings,
            "suggestions": self.suggestions,
            "completed_steps": self.completed_steps,
            "step_results": self.step_results,
        }
