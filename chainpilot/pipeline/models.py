"""Workflow definitions and runtime execution records."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from chainpilot.core.errors import ErrorCode
from chainpilot.core.types import ConditionType, RiskLevel, StepType, WorkflowCategory, WorkflowStatus
from chainpilot.interpreter.models import ActionStep


@dataclass
class WorkflowCondition:
    type: ConditionType
    description: str
    expression: str = ""
    error_message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "description": self.description,
            "expression": self.expression,
            "error_message": self.error_message,
        }


@dataclass
class WorkflowStep:
    """One step of a workflow template.

    ``retryable`` marks a step whose failure is recorded but does not stop
    the run; it never triggers an automatic retry.
    """

    id: str
    type: StepType
    description: str
    contract_address: str | None = None
    function_name: str | None = None
    parameters: list[Any] = field(default_factory=list)
    value: str | None = None  # ether
    gas_limit: int | None = None
    depends_on: list[str] = field(default_factory=list)
    conditions: list[WorkflowCondition] = field(default_factory=list)
    retryable: bool = False
    timeout_ms: int | None = None
    # Set for steps mapped from an interpreter action; run by the step runner
    action_step: ActionStep | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "description": self.description,
            "contract_address": self.contract_address,
            "function_name": self.function_name,
            "parameters": self.parameters,
            "value": self.value,
            "gas_limit": self.gas_limit,
            "depends_on": self.depends_on,
            "conditions": [c.to_dict() for c in self.conditions],
            "retryable": self.retryable,
            "timeout_ms": self.timeout_ms,
            "action": self.action_step.action if self.action_step else None,
        }


@dataclass
class WorkflowDefinition:
    id: str
    name: str
    description: str
    category: WorkflowCategory
    steps: list[WorkflowStep] = field(default_factory=list)
    total_estimated_gas: int = 0
    required_approvals: list[str] = field(default_factory=list)
    risk_level: RiskLevel = RiskLevel.LOW
    tags: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category.value,
            "steps": [s.to_dict() for s in self.steps],
            "total_estimated_gas": self.total_estimated_gas,
            "required_approvals": self.required_approvals,
            "risk_level": self.risk_level.value,
            "tags": self.tags,
        }


@dataclass
class WorkflowTransaction:
    step_id: str
    transaction_hash: str
    block_number: int
    gas_used: int
    status: str
    timestamp: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "step_id": self.step_id,
            "transaction_hash": self.transaction_hash,
            "block_number": self.block_number,
            "gas_used": str(self.gas_used),
            "status": self.status,
            "timestamp": self.timestamp,
        }


@dataclass
class WorkflowExecution:
    """Runtime state of one workflow run. Lives only in the engine's registry."""

    workflow_id: str
    execution_id: str
    status: WorkflowStatus = WorkflowStatus.PENDING
    current_step: int = 0
    completed_steps: list[str] = field(default_factory=list)
    failed_steps: list[str] = field(default_factory=list)
    transactions: list[WorkflowTransaction] = field(default_factory=list)
    start_time: float = 0.0
    end_time: float | None = None
    total_gas_used: int = 0
    errors: list[str] = field(default_factory=list)
    # Code of the first failure recorded
    error_code: ErrorCode | None = None

    @property
    def duration_seconds(self) -> float | None:
        if self.end_time is None:
            return None
        return self.end_time - self.start_time

    def to_dict(self) -> dict[str, Any]:
        return {
            "workflow_id": self.workflow_id,
            "execution_id": self.execution_id,
            "status": self.status.value,
            "current_step": self.current_step,
            "completed_steps": self.completed_steps,
            "failed_steps": self.failed_steps,
            "transactions": [t.to_dict() for t in self.transactions],
            "start_time": self.start_time,
            "end_time": self.end_time,
            "total_gas_used": str(self.total_gas_used),
            "errors": self.errors,
            "error_code": self.error_code.value if self.error_code else None,
        }


@dataclass
class StepOutcome:
    """What a single step handler reports back to the engine loop."""

    success: bool
    result: dict[str, Any] = field(default_factory=dict)
    transaction: WorkflowTransaction | None = None
    error: str | None = None
    error_code: ErrorCode | None = None


@dataclass
class WorkflowResult:
    success: bool
    execution: WorkflowExecution
    final_state: dict[str, Any] = field(default_factory=dict)
    recommendations: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def error_code(self) -> ErrorCode | None:
        return self.execution.error_code

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "execution": self.execution.to_dict(),
            "final_state": self.final_state,
            "recommendations": self.recommendations,
            "error": self.error,
            "error_code": self.error_code.value if self.error_code else None,
        }
