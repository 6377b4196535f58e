"""Task Interpreter — free-form instruction → action plan → execution."""

from __future__ import annotations

import logging
from typing import Any

from chainpilot.core.errors import ChainPilotError, MissingDependencyError, StepExecutionError
from chainpilot.interpreter.builders import ActionBuilder
from chainpilot.interpreter.intent import extract_entities, extract_intent
from chainpilot.interpreter.knowledge import KnowledgeBase
from chainpilot.interpreter.models import ExecutableAction, TaskRequest, TaskResult
from chainpilot.interpreter.steps import ActionStepRunner

logger = logging.getLogger(__name__)

_INTERPRETATION_SUGGESTIONS = [
    "Include the contract or recipient address (0x...) in your request",
    "Analyze the contract first so its functions are known",
    "Rephrase the request using a verb like deploy, call, check, upload, analyze or send",
]


class TaskInterpreter:
    """Classifies instructions and runs the resulting action plans.

    Usage:
        interpreter = TaskInterpreter(knowledge, runner)
        action = await interpreter.interpret_task(TaskRequest("check balance of 0x..."))
        result = await interpreter.execute_action(action)
    """

    def __init__(
        self,
        knowledge: KnowledgeBase,
        step_runner: ActionStepRunner,
        builder: ActionBuilder | None = None,
    ) -> None:
        self.knowledge = knowledge
        self.step_runner = step_runner
        self.builder = builder or ActionBuilder(knowledge, step_runner.chain.native_currency)

    async def interpret_task(self, request: TaskRequest) -> ExecutableAction:
        """Build an action plan.

        Raises:
            ChainPilotError: When the instruction lacks an entity its builder
                requires (address, known function, deployment pattern)
        """
        intent = extract_intent(request.user_input)
        entities = extract_entities(request.user_input)
        knowledge_results = self.knowledge.search(request.user_input)

        logger.info("Detected intent %s with entities %s", intent.value, entities.to_dict())
        action = self.builder.build(intent, entities, request, knowledge_results)
        logger.info("Generated action %s with %d steps", action.type.value, len(action.steps))
        return action

    async def execute_action(self, action: ExecutableAction) -> TaskResult:
        """Run steps in declaration order.

        A step whose dependencies have not completed is skipped when optional;
        otherwise the action stops with ``MissingDependencyError``. Any step
        failure ends the action and is reported in the result, not raised.
        """
        result = TaskResult(success=False, warnings=list(action.warnings))
        context: dict[str, Any] = {}
        completed: list[str] = []

        try:
            for step in action.steps:
                missing = [d for d in step.dependencies if d not in completed]
                if missing:
                    if not step.optional:
                        raise MissingDependencyError(step.id, missing)
                    logger.info("Skipping optional step %s (missing %s)", step.id, missing)
                    continue

                logger.info("Executing step: %s", step.description, extra={"step_id": step.id})
                step_result = await self.step_runner.run(step, context)
                if not step_result.success:
                    raise StepExecutionError(step_result.error or f"Step {step.id} failed")

                completed.append(step.id)
                result.step_results[step.id] = step_result.result
                if step_result.transaction_hash:
                    result.transaction_hash = step_result.transaction_hash
                if step_result.gas_used:
                    result.gas_used = str(step_result.gas_used)

            result.success = True
            result.result = "Action completed successfully"
        except Exception as exc:
            message = exc.message if isinstance(exc, ChainPilotError) else str(exc)
            logger.warning("Action %s failed: %s", action.type.value, message)
            result.success = False
            result.result = message
            result.warnings.append(f"Execution failed: {message}")

        result.completed_steps = completed
        return result

    async def run_task(self, request: TaskRequest) -> TaskResult:
        """Interpret then execute, folding interpretation errors into the result."""
        try:
            action = await self.interpret_task(request)
        except ChainPilotError as exc:
            return TaskResult(
                success=False,
                result=exc.message,
                warnings=[f"Interpretation failed: {exc.message}"],
                suggestions=list(_INTERPRETATION_SUGGESTIONS),
            )
        return await self.execute_action(action)
