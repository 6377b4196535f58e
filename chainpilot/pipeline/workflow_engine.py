"""Workflow Engine — runs workflow templates and ad hoc action plans.

Execution flow:
1. PENDING → RUNNING — execution registered under a fresh id
2. Pre-flight validation — provider, signer and balance gate
   (ad hoc actions without a write step skip the signer and balance part)
3. Steps in declaration order — dependency check, condition gate, dispatch
4. COMPLETED / FAILED — decided by ``failed_steps`` after the loop
   (CANCELLED when ``cancel_execution`` flipped it mid-run)

Steps never run in parallel; each one waits for the previous to settle,
including transaction confirmation.
"""

from __future__ import annotations

import asyncio
import logging
import random
import string
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from chainpilot.chain.abi import coerce_value, encode_call, parse_ether
from chainpilot.chain.port import ChainContext
from chainpilot.core.cache import KeyedCache
from chainpilot.core.config import Settings, get_settings
from chainpilot.core.errors import (
    ChainPilotError,
    ConditionFailedError,
    ErrorCode,
    FunctionNotFoundError,
    MissingDependencyError,
    StepExecutionError,
    ValidationFailedError,
    WorkflowNotFoundError,
)
from chainpilot.core.types import ActionType, RiskLevel, StepType, WorkflowCategory, WorkflowStatus
from chainpilot.explorer.explorer import ContractExplorer, ExplorationRequest
from chainpilot.interpreter.models import ActionStep, ExecutableAction
from chainpilot.interpreter.steps import ActionStepRunner
from chainpilot.pipeline.conditions import ConditionEvaluator
from chainpilot.pipeline.models import (
    StepOutcome,
    WorkflowDefinition,
    WorkflowExecution,
    WorkflowResult,
    WorkflowStep,
    WorkflowTransaction,
)
from chainpilot.pipeline.templates import builtin_workflows

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.ascii_lowercase + string.digits

_WRITE_STEP_TYPES = (StepType.CONTRACT_CALL, StepType.VALUE_TRANSFER)

# Interpreter verbs → workflow step type, for ad hoc actions
_ACTION_STEP_TYPES: dict[str, StepType] = {
    "send_transaction": StepType.VALUE_TRANSFER,
    "call_contract_function": StepType.CONTRACT_CALL,
    "deploy": StepType.CONTRACT_CALL,
    "upload_file_to_storage": StepType.CONTRACT_CALL,
}


def generate_execution_id() -> str:
    suffix = "".join(random.choices(_ID_ALPHABET, k=6))
    return f"exec_{int(time.time() * 1000)}_{suffix}"


@dataclass
class PreflightReport:
    valid: bool
    errors: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)


StepExecutor = Callable[[WorkflowStep, dict[str, Any], dict[str, Any]], Awaitable[StepOutcome]]


class ContractWorkflowEngine:
    """Executes ``WorkflowDefinition``s with dependency and condition gating.

    A failed step marked ``retryable`` is recorded and the run moves on to
    the next step; a failed non-retryable step ends the loop. Executions
    stay in the in-memory registry for the life of the process.
    """

    def __init__(
        self,
        chain: ChainContext,
        explorer: ContractExplorer,
        step_runner: ActionStepRunner | None = None,
        executions: KeyedCache[WorkflowExecution] | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.chain = chain
        self.explorer = explorer
        self.step_runner = step_runner
        self.settings = settings or get_settings()
        self.conditions = ConditionEvaluator(chain, self.settings.balance_check_min_ether)
        self._executions: KeyedCache[WorkflowExecution] = executions or KeyedCache(name="executions")
        self._workflows: dict[str, WorkflowDefinition] = {}
        self._executors: dict[StepType, StepExecutor] = {
            StepType.CONTRACT_CALL: self._execute_contract_call,
            StepType.VALUE_TRANSFER: self._execute_value_transfer,
            StepType.APPROVAL: self._execute_approval,
            StepType.VERIFICATION: self._execute_verification,
            StepType.WAIT: self._execute_wait,
        }
        for workflow in builtin_workflows():
            self.register_workflow(workflow)

    # ── Registry ─────────────────────────────────────────────────────────────

    def register_workflow(self, workflow: WorkflowDefinition) -> None:
        self._workflows[workflow.id] = workflow

    def get_available_workflows(self) -> list[WorkflowDefinition]:
        return list(self._workflows.values())

    def get_workflow(self, workflow_id: str) -> WorkflowDefinition | None:
        return self._workflows.get(workflow_id)

    def get_active_executions(self) -> list[WorkflowExecution]:
        return self._executions.values()

    def get_execution(self, execution_id: str) -> WorkflowExecution | None:
        return self._executions.get(execution_id)

    def cancel_execution(self, execution_id: str) -> bool:
        """Flip a running execution to cancelled.

        The step in flight still settles; no further steps are started.
        """
        execution = self._executions.get(execution_id)
        if execution is None or execution.status != WorkflowStatus.RUNNING:
            return False
        execution.status = WorkflowStatus.CANCELLED
        execution.end_time = time.time()
        logger.info("Workflow execution cancelled", extra={"execution_id": execution_id})
        return True

    # ── Execution ────────────────────────────────────────────────────────────

    async def execute_workflow(
        self,
        workflow_id: str,
        parameters: dict[str, Any] | None = None,
    ) -> WorkflowResult:
        """Run a registered workflow.

        Raises:
            WorkflowNotFoundError: When ``workflow_id`` is not registered
        """
        workflow = self._workflows.get(workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(workflow_id)
        return await self.run_definition(workflow, parameters or {})

    async def run_definition(
        self,
        workflow: WorkflowDefinition,
        parameters: dict[str, Any],
        *,
        require_signer: bool = True,
    ) -> WorkflowResult:
        execution = WorkflowExecution(
            workflow_id=workflow.id,
            execution_id=generate_execution_id(),
            start_time=time.time(),
        )
        self._executions.put(execution.execution_id, execution)
        log_extra = {"execution_id": execution.execution_id, "workflow_id": workflow.id}

        execution.status = WorkflowStatus.RUNNING
        logger.info("Starting workflow execution: %s", workflow.name, extra=log_extra)

        try:
            preflight = await self._validate(workflow, require_signer=require_signer)
            if not preflight.valid:
                rejection = ValidationFailedError(
                    "; ".join(preflight.errors),
                    details=[{"message": error} for error in preflight.errors],
                )
                execution.status = WorkflowStatus.FAILED
                execution.errors = list(preflight.errors)
                execution.error_code = rejection.code
                execution.end_time = time.time()
                logger.warning("Workflow pre-flight failed: %s", rejection.message, extra=log_extra)
                return WorkflowResult(
                    success=False,
                    execution=execution,
                    recommendations=preflight.recommendations,
                    error=rejection.message,
                )

            final_state = await self._run_steps(workflow, execution, parameters)
        except Exception as exc:
            logger.exception("Workflow execution error", extra=log_extra)
            execution.status = WorkflowStatus.FAILED
            execution.errors.append(str(exc) or "Unknown workflow error")
            if execution.error_code is None and isinstance(exc, ChainPilotError):
                execution.error_code = exc.code
            execution.end_time = time.time()
            return WorkflowResult(
                success=False,
                execution=execution,
                recommendations=[
                    "Check network connection",
                    "Verify workflow parameters",
                    "Try again with different settings",
                ],
                error="; ".join(execution.errors),
            )

        if execution.status != WorkflowStatus.CANCELLED:
            execution.status = WorkflowStatus.COMPLETED if not execution.failed_steps else WorkflowStatus.FAILED
            execution.end_time = time.time()

        logger.info(
            "Workflow execution finished: %s",
            execution.status.value,
            extra={**log_extra, "duration_ms": int((execution.duration_seconds or 0) * 1000)},
        )
        return WorkflowResult(
            success=execution.status == WorkflowStatus.COMPLETED,
            execution=execution,
            final_state=final_state,
            recommendations=self._recommendations(execution),
            error="; ".join(execution.errors) if execution.errors else None,
        )

    async def _run_steps(
        self,
        workflow: WorkflowDefinition,
        execution: WorkflowExecution,
        parameters: dict[str, Any],
    ) -> dict[str, Any]:
        state: dict[str, Any] = {}
        total = len(workflow.steps)

        for index, step in enumerate(workflow.steps):
            if execution.status == WorkflowStatus.CANCELLED:
                break
            execution.current_step = index
            log_extra = {"execution_id": execution.execution_id, "step_id": step.id}
            logger.info("Executing step %d/%d: %s", index + 1, total, step.description, extra=log_extra)

            missing = [dep for dep in step.depends_on if dep not in execution.completed_steps]
            if missing:
                if step.action_step is not None and step.action_step.optional:
                    logger.info("Skipping optional step %s (missing %s)", step.id, missing, extra=log_extra)
                    continue
                self._record_failure(
                    execution,
                    step.id,
                    f"Step {step.id} dependencies not met: {', '.join(step.depends_on)}",
                    MissingDependencyError.code,
                )
                continue

            if step.conditions:
                report = await self.conditions.check(step.conditions, parameters)
                if not report.valid:
                    self._record_failure(
                        execution,
                        step.id,
                        f"Step {step.id} conditions failed: {', '.join(report.errors)}",
                        ConditionFailedError.code,
                    )
                    continue

            outcome = await self._execute_step(step, parameters, state)
            if outcome.success:
                execution.completed_steps.append(step.id)
                if outcome.transaction is not None:
                    execution.transactions.append(outcome.transaction)
                    execution.total_gas_used += outcome.transaction.gas_used
                state.update(outcome.result)
                continue

            self._record_failure(
                execution,
                step.id,
                outcome.error or "Unknown step error",
                outcome.error_code or ErrorCode.STEP_EXECUTION_FAILED,
            )
            logger.warning("Step failed: %s", outcome.error, extra=log_extra)
            if not step.retryable:
                break

        return state

    @staticmethod
    def _record_failure(execution: WorkflowExecution, step_id: str, message: str, code: ErrorCode) -> None:
        execution.failed_steps.append(step_id)
        execution.errors.append(message)
        if execution.error_code is None:
            execution.error_code = code

    async def _execute_step(
        self,
        step: WorkflowStep,
        parameters: dict[str, Any],
        state: dict[str, Any],
    ) -> StepOutcome:
        try:
            if step.action_step is not None:
                return await self._execute_delegated(step, step.action_step, state)
            executor = self._executors.get(step.type)
            if executor is None:
                return StepOutcome(success=False, error=f"Unknown step type: {step.type}")
            return await executor(step, parameters, state)
        except ChainPilotError as exc:
            return StepOutcome(success=False, error=exc.message, error_code=exc.code)
        except Exception as exc:
            return StepOutcome(success=False, error=str(exc) or "Unknown execution error")

    # ── Pre-flight ───────────────────────────────────────────────────────────

    async def _validate(self, workflow: WorkflowDefinition, require_signer: bool = True) -> PreflightReport:
        """Provider, signer and balance gate.

        The balance is checked against ``workflow_min_balance_ether`` whenever
        both a provider and a signer are present.
        """
        report = PreflightReport(valid=True)

        if require_signer and self.chain.signer is None:
            report.errors.append("Wallet not connected - required for workflow execution")
            report.recommendations.append("Connect your wallet before executing workflows")

        if self.chain.client is None:
            report.errors.append("Network provider not available")
            report.recommendations.append("Check network connection")

        if self.chain.signer is not None and self.chain.client is not None:
            try:
                balance = await self.chain.client.get_balance(await self.chain.signer.get_address())
                if balance < parse_ether(self.settings.workflow_min_balance_ether):
                    report.errors.append("Insufficient balance for estimated gas costs")
                    report.recommendations.append(
                        f"Add more {self.chain.native_currency} to your wallet for gas fees"
                    )
            except Exception as exc:
                logger.warning("Balance pre-check failed: %s", exc)
                report.recommendations.append("Could not verify gas balance - proceed with caution")

        report.valid = not report.errors
        return report

    # ── Step types ───────────────────────────────────────────────────────────

    @staticmethod
    def _resolve(value: Any, parameters: dict[str, Any], state: dict[str, Any]) -> Any:
        """Replace a ``$name`` placeholder from run parameters, then accumulated state."""
        if isinstance(value, str) and value.startswith("$"):
            name = value[1:]
            for source in (parameters, state):
                if source.get(name) is not None:
                    return source[name]
        return value

    def _step_overrides(self, step: WorkflowStep, parameters: dict[str, Any]) -> dict[str, Any]:
        """Per-step values supplied at run time under the step id."""
        overrides = parameters.get(step.id)
        return overrides if isinstance(overrides, dict) else {}

    async def _execute_contract_call(
        self,
        step: WorkflowStep,
        parameters: dict[str, Any],
        state: dict[str, Any],
    ) -> StepOutcome:
        overrides = self._step_overrides(step, parameters)
        address = self._resolve(overrides.get("contract_address", step.contract_address), parameters, state)
        function_name = self._resolve(overrides.get("function_name", step.function_name), parameters, state)
        if not address or not function_name:
            raise StepExecutionError("Contract address and function name required for contract call")

        client = self.chain.require_client()
        signer = self.chain.require_signer()

        exploration = await self.explorer.explore_contracts(ExplorationRequest(address=address))
        if not exploration.success or not exploration.contracts:
            raise StepExecutionError(f"Failed to analyze contract {address}")
        info = exploration.contracts[0].contract_info

        fn = info.find_function(function_name)
        if fn is None:
            raise FunctionNotFoundError(f"Function {function_name} not found in contract {address}")

        raw_args = overrides.get("args", step.parameters)
        args = [self._resolve(a, parameters, state) for a in raw_args]
        if len(args) != len(fn.input_types):
            raise StepExecutionError(
                f"{fn.name} expects {len(fn.input_types)} arguments, got {len(args)}",
            )
        data = encode_call(
            fn.selector,
            fn.input_types,
            [coerce_value(t, a) for t, a in zip(fn.input_types, args)],
        )

        tx: dict[str, Any] = {"to": info.address, "data": data}
        value = overrides.get("value", step.value)
        if value:
            tx["value"] = parse_ether(value)
        if step.gas_limit:
            tx["gasLimit"] = step.gas_limit

        pending = await signer.send_transaction(tx)
        logger.info("Transaction sent", extra={"tx_hash": pending.hash, "step_id": step.id})
        receipt = await pending.wait(self.settings.receipt_confirmations)
        if not receipt.succeeded:
            raise StepExecutionError(f"Transaction {pending.hash} reverted")

        return StepOutcome(
            success=True,
            result={
                "transaction_hash": pending.hash,
                "block_number": receipt.block_number,
                "gas_used": str(receipt.gas_used),
            },
            transaction=WorkflowTransaction(
                step_id=step.id,
                transaction_hash=pending.hash,
                block_number=receipt.block_number,
                gas_used=receipt.gas_used,
                status="success",
                timestamp=time.time(),
            ),
        )

    async def _execute_value_transfer(
        self,
        step: WorkflowStep,
        parameters: dict[str, Any],
        state: dict[str, Any],
    ) -> StepOutcome:
        signer = self.chain.require_signer()
        overrides = self._step_overrides(step, parameters)

        value = overrides.get("value", step.value)
        if not value:
            raise StepExecutionError("Value amount required for transfer")
        recipient = parameters.get("recipient") or step.contract_address
        if not recipient:
            raise StepExecutionError("Transfer recipient not specified")

        pending = await signer.send_transaction({
            "to": recipient,
            "value": parse_ether(value),
            "gasLimit": step.gas_limit or self.settings.default_transfer_gas_limit,
        })
        receipt = await pending.wait(self.settings.receipt_confirmations)
        if not receipt.succeeded:
            raise StepExecutionError(f"Transaction {pending.hash} reverted")

        return StepOutcome(
            success=True,
            result={"transaction_hash": pending.hash, "recipient": recipient, "amount": value},
            transaction=WorkflowTransaction(
                step_id=step.id,
                transaction_hash=pending.hash,
                block_number=receipt.block_number,
                gas_used=receipt.gas_used,
                status="success",
                timestamp=time.time(),
            ),
        )

    async def _execute_approval(
        self,
        step: WorkflowStep,
        parameters: dict[str, Any],
        state: dict[str, Any],
    ) -> StepOutcome:
        # TODO: send an ERC20 approve() once templates carry token and spender addresses
        return StepOutcome(
            success=True,
            result={"approved": True, "spender": step.contract_address, "amount": step.value or "unlimited"},
        )

    async def _execute_verification(
        self,
        step: WorkflowStep,
        parameters: dict[str, Any],
        state: dict[str, Any],
    ) -> StepOutcome:
        if not step.conditions:
            return StepOutcome(success=True, result={"verified": True})
        report = await self.conditions.check(step.conditions, parameters)
        if not report.valid:
            raise ConditionFailedError("; ".join(report.errors))
        return StepOutcome(success=True, result={"verified": True})

    async def _execute_wait(
        self,
        step: WorkflowStep,
        parameters: dict[str, Any],
        state: dict[str, Any],
    ) -> StepOutcome:
        wait_ms = step.timeout_ms if step.timeout_ms is not None else self.settings.default_wait_ms
        logger.info("Waiting %dms", wait_ms, extra={"step_id": step.id})
        await asyncio.sleep(wait_ms / 1000)
        return StepOutcome(success=True, result={"waited": wait_ms})

    async def _execute_delegated(
        self,
        step: WorkflowStep,
        action_step: ActionStep,
        state: dict[str, Any],
    ) -> StepOutcome:
        if self.step_runner is None:
            raise StepExecutionError("No action step runner configured")
        result = await self.step_runner.run(action_step, state)
        if not result.success:
            return StepOutcome(success=False, error=result.error or f"Step {step.id} failed")

        transaction = None
        if result.transaction_hash:
            block_number = result.result.get("block_number", 0) if isinstance(result.result, dict) else 0
            transaction = WorkflowTransaction(
                step_id=step.id,
                transaction_hash=result.transaction_hash,
                block_number=block_number or 0,
                gas_used=result.gas_used or 0,
                status="success",
                timestamp=time.time(),
            )
        return StepOutcome(success=True, result={step.id: result.result}, transaction=transaction)

    # ── Ad hoc actions ───────────────────────────────────────────────────────

    def definition_for_action(self, action: ExecutableAction) -> WorkflowDefinition:
        """Map an interpreter action onto a one-off workflow definition.

        Each step keeps its dependencies and is retryable when optional;
        an optional step whose dependencies did not complete is skipped.
        Steps are executed by the action step runner.
        """
        steps: list[WorkflowStep] = []
        for action_step in action.steps:
            step_type = _ACTION_STEP_TYPES.get(action_step.action, StepType.VERIFICATION)
            steps.append(
                WorkflowStep(
                    id=action_step.id,
                    type=step_type,
                    description=action_step.description,
                    contract_address=action_step.parameters.get("contract_address") or action_step.parameters.get("to"),
                    function_name=action_step.parameters.get("function_name"),
                    depends_on=list(action_step.dependencies),
                    retryable=action_step.optional,
                    action_step=action_step,
                ),
            )

        return WorkflowDefinition(
            id=f"action_{action.type.value}",
            name=action.description,
            description=action.description,
            category=WorkflowCategory.CUSTOM,
            steps=steps,
            risk_level=RiskLevel.LOW if action.type == ActionType.QUERY else RiskLevel.MEDIUM,
        )

    async def execute_action(
        self,
        action: ExecutableAction,
        parameters: dict[str, Any] | None = None,
    ) -> WorkflowResult:
        """Run an interpreter action with workflow bookkeeping.

        A signer is only demanded when the action sends a transaction, so
        queries and analyses run against a read-only chain.
        """
        workflow = self.definition_for_action(action)
        sends = any(step.type in _WRITE_STEP_TYPES for step in workflow.steps)
        return await self.run_definition(workflow, parameters or {}, require_signer=sends)

    # ── Recommendations ──────────────────────────────────────────────────────

    @staticmethod
    def _recommendations(execution: WorkflowExecution) -> list[str]:
        recommendations: list[str] = []
        if execution.status == WorkflowStatus.COMPLETED:
            recommendations.append("Workflow completed successfully")
            recommendations.append(f"Total gas used: {execution.total_gas_used}")
            recommendations.append(f"Execution time: {execution.duration_seconds or 0:.3f}s")
        else:
            if execution.status == WorkflowStatus.CANCELLED:
                recommendations.append("Workflow execution was cancelled")
            else:
                recommendations.append("Workflow execution failed")
            recommendations.append("Review error messages and retry if appropriate")
            if execution.failed_steps:
                recommendations.append(f"Failed steps: {', '.join(execution.failed_steps)}")

        if execution.transactions:
            recommendations.append(f"{len(execution.transactions)} transactions executed")
            recommendations.append("Check transaction receipts for detailed results")
        return recommendations
