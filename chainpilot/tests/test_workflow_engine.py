"""Tests for the workflow engine: templates, gating, step types, cancellation and ad hoc actions."""

from __future__ import annotations

import re
from typing import Any
from unittest.mock import AsyncMock

import pytest

from chainpilot.chain.port import ChainContext
from chainpilot.core.config import Settings
from chainpilot.core.errors import ErrorCode, WorkflowNotFoundError
from chainpilot.core.types import (
    ActionType,
    ConditionType,
    RiskLevel,
    StepType,
    WorkflowCategory,
    WorkflowStatus,
)
from chainpilot.explorer.explorer import ContractExplorer
from chainpilot.interpreter.models import ActionStep, ExecutableAction
from chainpilot.interpreter.steps import ActionStepRunner
from chainpilot.pipeline.conditions import ConditionEvaluator
from chainpilot.pipeline.models import StepOutcome, WorkflowCondition, WorkflowDefinition, WorkflowStep
from chainpilot.pipeline.workflow_engine import ContractWorkflowEngine, generate_execution_id
from chainpilot.tests.fakes import ONE_ETHER, RECIPIENT, SIGNER_ADDRESS, TOKEN_ADDRESS, FakeSigner


def make_engine(chain: ChainContext, explorer: ContractExplorer, settings: Settings) -> ContractWorkflowEngine:
    runner = ActionStepRunner(chain, explorer, settings=settings)
    return ContractWorkflowEngine(chain, explorer, step_runner=runner, settings=settings)


@pytest.fixture
def engine(chain: ChainContext, explorer: ContractExplorer, settings: Settings) -> ContractWorkflowEngine:
    return make_engine(chain, explorer, settings)


def workflow(*steps: WorkflowStep, workflow_id: str = "custom") -> WorkflowDefinition:
    return WorkflowDefinition(
        id=workflow_id,
        name="Custom",
        description="Custom test workflow",
        category=WorkflowCategory.CUSTOM,
        steps=list(steps),
    )


def swap_parameters(**overrides: Any) -> dict[str, Any]:
    call = {"contract_address": TOKEN_ADDRESS, "function_name": "transfer", "args": [RECIPIENT, "5"]}
    call.update(overrides)
    return {"execute_swap": call}


# ── Registry ─────────────────────────────────────────────────────────────────


class TestRegistry:
    def test_builtin_templates(self, engine):
        workflows = {w.id: w for w in engine.get_available_workflows()}
        assert set(workflows) == {"token_swap", "nft_purchase"}

        swap = workflows["token_swap"]
        assert [s.id for s in swap.steps] == ["approve_token", "execute_swap"]
        assert swap.steps[0].retryable is True
        assert swap.steps[1].depends_on == ["approve_token"]
        assert swap.total_estimated_gas == 150_000
        assert swap.risk_level == RiskLevel.MEDIUM

        nft = workflows["nft_purchase"]
        assert [s.type for s in nft.steps] == [StepType.VERIFICATION, StepType.CONTRACT_CALL]
        assert nft.total_estimated_gas == 200_000

    def test_register_custom(self, engine):
        engine.register_workflow(workflow(WorkflowStep(id="v", type=StepType.VERIFICATION, description="")))
        assert engine.get_workflow("custom") is not None
        assert len(engine.get_available_workflows()) == 3

    @pytest.mark.asyncio
    async def test_unknown_workflow(self, engine):
        with pytest.raises(WorkflowNotFoundError):
            await engine.execute_workflow("does_not_exist")

    def test_execution_id_format(self):
        assert re.match(r"^exec_\d+_[a-z0-9]{6}$", generate_execution_id())
        assert generate_execution_id() != generate_execution_id()


# ── Templates end to end ─────────────────────────────────────────────────────


class TestTokenSwap:
    @pytest.mark.asyncio
    async def test_completes_with_step_overrides(self, engine, fake_signer):
        result = await engine.execute_workflow("token_swap", swap_parameters())

        execution = result.execution
        assert result.success is True
        assert execution.status == WorkflowStatus.COMPLETED
        assert execution.completed_steps == ["approve_token", "execute_swap"]
        assert execution.failed_steps == []
        assert execution.total_gas_used == 21_000
        assert len(execution.transactions) == 1
        assert execution.transactions[0].step_id == "execute_swap"
        assert execution.end_time is not None

        sent = fake_signer.sent[0]
        assert sent["to"] == TOKEN_ADDRESS
        assert sent["data"].startswith("0xa9059cbb")
        assert result.final_state["approved"] is True
        assert result.final_state["gas_used"] == "21000"
        assert result.recommendations[:2] == ["Workflow completed successfully", "Total gas used: 21000"]
        assert "1 transactions executed" in result.recommendations

    @pytest.mark.asyncio
    async def test_missing_contract_details_fail_the_call(self, engine, fake_signer):
        result = await engine.execute_workflow("token_swap")

        assert result.success is False
        assert result.execution.status == WorkflowStatus.FAILED
        assert result.execution.completed_steps == ["approve_token"]
        assert result.execution.failed_steps == ["execute_swap"]
        assert result.error == "Contract address and function name required for contract call"
        assert "Failed steps: execute_swap" in result.recommendations
        assert fake_signer.sent == []

    @pytest.mark.asyncio
    async def test_unknown_function(self, engine):
        result = await engine.execute_workflow("token_swap", swap_parameters(function_name="swapExactTokens"))
        assert result.execution.errors == [f"Function swapExactTokens not found in contract {TOKEN_ADDRESS}"]

    @pytest.mark.asyncio
    async def test_argument_count_checked(self, engine, fake_signer):
        result = await engine.execute_workflow("token_swap", swap_parameters(args=[RECIPIENT]))
        assert result.execution.errors == ["transfer expects 2 arguments, got 1"]
        assert fake_signer.sent == []

    @pytest.mark.asyncio
    async def test_reverted_transaction(self, chain, explorer, settings):
        chain.signer = FakeSigner(status=0)
        engine = make_engine(chain, explorer, settings)

        result = await engine.execute_workflow("token_swap", swap_parameters())

        assert result.success is False
        assert result.execution.errors[0].endswith("reverted")
        assert result.execution.transactions == []

    @pytest.mark.asyncio
    async def test_executions_are_tracked(self, engine):
        result = await engine.execute_workflow("token_swap", swap_parameters())
        execution_id = result.execution.execution_id

        assert engine.get_execution(execution_id) is result.execution
        assert [e.execution_id for e in engine.get_active_executions()] == [execution_id]

        payload = result.to_dict()
        assert payload["execution"]["status"] == "completed"
        assert payload["execution"]["total_gas_used"] == "21000"
        assert payload["execution"]["transactions"][0]["gas_used"] == "21000"


# ── Step ordering & failure policy ───────────────────────────────────────────


def failing_call(step_id: str, retryable: bool) -> WorkflowStep:
    # No contract address: always fails
    return WorkflowStep(id=step_id, type=StepType.CONTRACT_CALL, description="broken call", retryable=retryable)


def check(step_id: str, depends_on: list[str] | None = None) -> WorkflowStep:
    return WorkflowStep(id=step_id, type=StepType.VERIFICATION, description="check", depends_on=depends_on or [])


class TestFailurePolicy:
    @pytest.mark.asyncio
    async def test_non_retryable_failure_stops_run(self, engine):
        result = await engine.run_definition(workflow(failing_call("a", retryable=False), check("b", ["a"])), {})

        execution = result.execution
        assert execution.status == WorkflowStatus.FAILED
        assert execution.failed_steps == ["a"]
        assert execution.completed_steps == []
        assert len(execution.errors) == 1
        assert execution.error_code == ErrorCode.STEP_EXECUTION_FAILED

    @pytest.mark.asyncio
    async def test_retryable_failure_continues_to_dependent(self, engine):
        result = await engine.run_definition(workflow(failing_call("a", retryable=True), check("b", ["a"])), {})

        execution = result.execution
        assert execution.status == WorkflowStatus.FAILED
        assert execution.failed_steps == ["a", "b"]
        assert execution.errors[-1] == "Step b dependencies not met: a"
        assert execution.error_code == ErrorCode.STEP_EXECUTION_FAILED

    @pytest.mark.asyncio
    async def test_unmet_dependency_is_coded(self, engine):
        result = await engine.run_definition(workflow(check("b", ["never_ran"])), {})

        assert result.execution.failed_steps == ["b"]
        assert result.error_code == ErrorCode.MISSING_DEPENDENCY
        assert result.to_dict()["error_code"] == "MISSING_DEPENDENCY"

    @pytest.mark.asyncio
    async def test_retryable_failure_lets_independent_steps_run(self, engine):
        result = await engine.run_definition(workflow(failing_call("a", retryable=True), check("c")), {})

        assert result.execution.completed_steps == ["c"]
        assert result.execution.failed_steps == ["a"]
        assert result.success is False

    @pytest.mark.asyncio
    async def test_steps_run_in_declaration_order(self, engine):
        result = await engine.run_definition(
            workflow(
                check("first"),
                WorkflowStep(id="pause", type=StepType.WAIT, description="", timeout_ms=0),
                check("last", ["first"]),
            ),
            {},
        )
        assert result.execution.completed_steps == ["first", "pause", "last"]
        assert result.final_state["waited"] == 0


# ── Pre-flight validation ────────────────────────────────────────────────────


class TestPreflight:
    @pytest.mark.asyncio
    async def test_write_workflow_needs_signer(self, readonly_chain, explorer, settings):
        engine = make_engine(readonly_chain, explorer, settings)

        result = await engine.execute_workflow("token_swap", swap_parameters())

        assert result.success is False
        assert result.error == "Wallet not connected - required for workflow execution"
        assert result.recommendations == ["Connect your wallet before executing workflows"]
        assert result.execution.status == WorkflowStatus.FAILED
        assert result.execution.completed_steps == []
        assert result.error_code == ErrorCode.VALIDATION_FAILED

    @pytest.mark.asyncio
    async def test_every_workflow_needs_signer(self, readonly_chain, explorer, settings):
        engine = make_engine(readonly_chain, explorer, settings)
        pause = WorkflowStep(id="pause", type=StepType.WAIT, description="", timeout_ms=0)

        result = await engine.run_definition(workflow(pause), {})

        assert result.success is False
        assert result.error == "Wallet not connected - required for workflow execution"
        assert result.execution.status == WorkflowStatus.FAILED
        assert result.execution.completed_steps == []
        assert result.execution.to_dict()["error_code"] == "VALIDATION_FAILED"

    @pytest.mark.asyncio
    async def test_balance_checked_for_read_only_workflow(self, engine, fake_client):
        fake_client.balances[SIGNER_ADDRESS] = ONE_ETHER // 20

        result = await engine.run_definition(workflow(check("v")), {})

        assert result.success is False
        assert result.error == "Insufficient balance for estimated gas costs"
        assert result.execution.completed_steps == []

    @pytest.mark.asyncio
    async def test_missing_provider(self, explorer, settings, fake_signer):
        engine = make_engine(ChainContext(client=None, signer=fake_signer), explorer, settings)
        result = await engine.run_definition(workflow(check("v")), {})

        assert result.success is False
        assert result.error == "Network provider not available"
        assert result.recommendations == ["Check network connection"]

    @pytest.mark.asyncio
    async def test_insufficient_balance(self, engine, fake_client, fake_signer):
        fake_client.balances[SIGNER_ADDRESS] = ONE_ETHER // 20

        result = await engine.execute_workflow("token_swap", swap_parameters())

        assert result.success is False
        assert result.error == "Insufficient balance for estimated gas costs"
        assert result.recommendations == ["Add more OG to your wallet for gas fees"]
        assert result.error_code == ErrorCode.VALIDATION_FAILED
        assert fake_signer.sent == []

    @pytest.mark.asyncio
    async def test_balance_lookup_failure_does_not_block(self, engine, fake_client):
        fake_client.get_balance = AsyncMock(side_effect=RuntimeError("rpc down"))

        result = await engine.execute_workflow("token_swap", swap_parameters())

        assert result.success is True

    @pytest.mark.asyncio
    async def test_unexpected_error(self, engine):
        engine._validate = AsyncMock(side_effect=RuntimeError("boom"))

        result = await engine.execute_workflow("token_swap")

        assert result.success is False
        assert result.error == "boom"
        assert result.execution.status == WorkflowStatus.FAILED
        assert result.recommendations == [
            "Check network connection",
            "Verify workflow parameters",
            "Try again with different settings",
        ]


# ── Conditions ───────────────────────────────────────────────────────────────


BALANCE_GATE = WorkflowCondition(
    type=ConditionType.BALANCE_CHECK,
    description="Signer holds gas money",
    error_message="Not enough balance",
)


class TestConditions:
    @pytest.mark.asyncio
    async def test_failed_gate_records_step_failure(self, chain, explorer, settings):
        engine = make_engine(chain, explorer, settings.model_copy(update={"balance_check_min_ether": "10"}))
        gated = WorkflowStep(id="v", type=StepType.VERIFICATION, description="", conditions=[BALANCE_GATE])

        result = await engine.run_definition(workflow(gated, check("after")), {})

        assert result.execution.failed_steps == ["v"]
        assert result.execution.errors == ["Step v conditions failed: Not enough balance"]
        assert result.execution.completed_steps == ["after"]
        assert result.error_code == ErrorCode.CONDITION_FAILED

    @pytest.mark.asyncio
    async def test_failed_verification_step_is_coded(self, chain, explorer, settings):
        engine = make_engine(chain, explorer, settings.model_copy(update={"balance_check_min_ether": "10"}))
        gated = WorkflowStep(id="v", type=StepType.VERIFICATION, description="", conditions=[BALANCE_GATE])

        outcome = await engine._execute_step(gated, {}, {})

        assert outcome.success is False
        assert outcome.error == "Not enough balance"
        assert outcome.error_code == ErrorCode.CONDITION_FAILED

    @pytest.mark.asyncio
    async def test_passing_gate(self, engine):
        gated = WorkflowStep(id="v", type=StepType.VERIFICATION, description="", conditions=[BALANCE_GATE])
        result = await engine.run_definition(workflow(gated), {})
        assert result.success is True

    @pytest.mark.asyncio
    async def test_unevaluated_condition_types_pass(self, chain):
        evaluator = ConditionEvaluator(chain)
        conditions = [
            WorkflowCondition(type=ConditionType.ALLOWANCE_CHECK, description="allowance"),
            WorkflowCondition(type=ConditionType.OWNERSHIP_CHECK, description="owner"),
            WorkflowCondition(type=ConditionType.CUSTOM, description="custom", expression="x > 1"),
        ]
        report = await evaluator.check(conditions, {})
        assert report.valid is True

    @pytest.mark.asyncio
    async def test_evaluator_error_is_a_failure(self, chain, fake_client):
        fake_client.get_balance = AsyncMock(side_effect=RuntimeError("rpc down"))
        report = await ConditionEvaluator(chain).check([BALANCE_GATE], {})
        assert report.valid is False
        assert report.errors == ["Condition evaluation error: Signer holds gas money"]

    @pytest.mark.asyncio
    async def test_balance_check_without_signer_fails(self, readonly_chain):
        condition = WorkflowCondition(type=ConditionType.BALANCE_CHECK, description="gas")
        report = await ConditionEvaluator(readonly_chain).check([condition], {})
        assert report.errors == ["Condition failed: gas"]


# ── Step types ───────────────────────────────────────────────────────────────


class TestStepTypes:
    @pytest.mark.asyncio
    async def test_value_transfer(self, engine, fake_signer):
        step = WorkflowStep(id="pay", type=StepType.VALUE_TRANSFER, description="", value="0.25")

        result = await engine.run_definition(workflow(step), {"recipient": RECIPIENT})

        assert result.success is True
        assert fake_signer.sent == [{"to": RECIPIENT, "value": ONE_ETHER // 4, "gasLimit": 21_000}]
        assert result.final_state["recipient"] == RECIPIENT

    @pytest.mark.asyncio
    async def test_value_transfer_requires_amount(self, engine):
        step = WorkflowStep(id="pay", type=StepType.VALUE_TRANSFER, description="", contract_address=RECIPIENT)
        result = await engine.run_definition(workflow(step), {})
        assert result.execution.errors == ["Value amount required for transfer"]

    @pytest.mark.asyncio
    async def test_value_transfer_requires_recipient(self, engine):
        step = WorkflowStep(id="pay", type=StepType.VALUE_TRANSFER, description="", value="1")
        result = await engine.run_definition(workflow(step), {})
        assert result.execution.errors == ["Transfer recipient not specified"]

    @pytest.mark.asyncio
    async def test_placeholders_resolve_from_parameters(self, engine, fake_signer):
        step = WorkflowStep(
            id="call",
            type=StepType.CONTRACT_CALL,
            description="",
            contract_address="$token",
            function_name="transfer",
            parameters=["$to", "7"],
            gas_limit=90_000,
        )

        result = await engine.run_definition(workflow(step), {"token": TOKEN_ADDRESS, "to": RECIPIENT})

        assert result.success is True
        sent = fake_signer.sent[0]
        assert sent["to"] == TOKEN_ADDRESS
        assert sent["gasLimit"] == 90_000
        assert sent["data"].endswith("7".rjust(64, "0"))


# ── Cancellation ─────────────────────────────────────────────────────────────


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_mid_run(self, engine):
        async def cancelling_wait(step: WorkflowStep, parameters: dict[str, Any], state: dict[str, Any]) -> StepOutcome:
            running = engine.get_active_executions()[-1]
            assert engine.cancel_execution(running.execution_id) is True
            return StepOutcome(success=True, result={"waited": 0})

        engine._executors[StepType.WAIT] = cancelling_wait
        definition = workflow(
            WorkflowStep(id="w", type=StepType.WAIT, description=""),
            check("never"),
        )

        result = await engine.run_definition(definition, {})

        execution = result.execution
        assert execution.status == WorkflowStatus.CANCELLED
        assert execution.completed_steps == ["w"]
        assert execution.end_time is not None
        assert result.success is False
        assert result.recommendations[0] == "Workflow execution was cancelled"

    @pytest.mark.asyncio
    async def test_cancel_only_running(self, engine):
        result = await engine.run_definition(workflow(check("v")), {})
        assert engine.cancel_execution(result.execution.execution_id) is False
        assert engine.cancel_execution("exec_0_missing") is False
        assert result.execution.status == WorkflowStatus.COMPLETED


# ── Ad hoc actions ───────────────────────────────────────────────────────────


def transfer_action() -> ExecutableAction:
    return ExecutableAction(
        type=ActionType.TRANSFER,
        description="Transfer 0.5 OG",
        steps=[
            ActionStep(
                id="send_transaction",
                action="send_transaction",
                description="Send 0.5 OG",
                parameters={"to": RECIPIENT, "value": "0.5"},
            ),
        ],
    )


class TestActionWorkflows:
    def test_definition_for_action(self, engine):
        action = ExecutableAction(
            type=ActionType.DEPLOY,
            description="Deploy BasicERC20 smart contract",
            steps=[
                ActionStep(id="compile_contract", action="compile", description=""),
                ActionStep(
                    id="estimate_deployment_gas", action="estimate_gas", description="",
                    dependencies=["compile_contract"], optional=True,
                ),
                ActionStep(id="deploy_contract", action="deploy", description="", dependencies=["compile_contract"]),
            ],
        )
        definition = engine.definition_for_action(action)

        assert definition.id == "action_deploy_contract"
        assert definition.category == WorkflowCategory.CUSTOM
        assert definition.risk_level == RiskLevel.MEDIUM
        assert [s.type for s in definition.steps] == [
            StepType.VERIFICATION,
            StepType.VERIFICATION,
            StepType.CONTRACT_CALL,
        ]
        assert definition.steps[1].retryable is True
        assert definition.steps[2].depends_on == ["compile_contract"]
        assert definition.steps[2].action_step is action.steps[2]

    @pytest.mark.asyncio
    async def test_transfer_action_runs_with_bookkeeping(self, engine, fake_signer):
        result = await engine.execute_action(transfer_action())

        assert result.success is True
        assert fake_signer.sent == [{"to": RECIPIENT, "value": ONE_ETHER // 2, "gasLimit": 21_000}]
        transaction = result.execution.transactions[0]
        assert transaction.step_id == "send_transaction"
        assert transaction.block_number == 101
        assert result.execution.total_gas_used == 21_000
        assert result.final_state["send_transaction"]["value_wei"] == str(ONE_ETHER // 2)

    @pytest.mark.asyncio
    async def test_query_action_without_signer(self, readonly_chain, explorer, settings, fake_client):
        fake_client.balances[RECIPIENT] = ONE_ETHER
        engine = make_engine(readonly_chain, explorer, settings)
        action = ExecutableAction(
            type=ActionType.QUERY,
            description="Query blockchain data",
            steps=[
                ActionStep(
                    id=f"query_{RECIPIENT}",
                    action="get_balance",
                    description="",
                    parameters={"address": RECIPIENT},
                ),
            ],
        )

        result = await engine.execute_action(action)

        assert result.success is True
        assert result.execution.workflow_id == "action_query_blockchain"
        assert result.final_state[f"query_{RECIPIENT}"]["balance"] == "1"
        assert result.error_code is None

    @pytest.mark.asyncio
    async def test_optional_step_with_missing_dependency_is_skipped(self, engine, fake_client):
        fake_client.balances[RECIPIENT] = ONE_ETHER
        action = ExecutableAction(
            type=ActionType.QUERY,
            description="Query blockchain data",
            steps=[
                ActionStep(
                    id="estimate_gas",
                    action="estimate_gas",
                    description="",
                    dependencies=["compile_contract"],
                    optional=True,
                ),
                ActionStep(
                    id=f"query_{RECIPIENT}",
                    action="get_balance",
                    description="",
                    parameters={"address": RECIPIENT},
                ),
            ],
        )

        result = await engine.execute_action(action)

        assert result.success is True
        assert result.execution.status == WorkflowStatus.COMPLETED
        assert result.execution.completed_steps == [f"query_{RECIPIENT}"]
        assert result.execution.failed_steps == []
        assert result.execution.errors == []

    @pytest.mark.asyncio
    async def test_transfer_action_without_signer_is_rejected(self, readonly_chain, explorer, settings):
        engine = make_engine(readonly_chain, explorer, settings)

        result = await engine.execute_action(transfer_action())

        assert result.success is False
        assert result.error == "Wallet not connected - required for workflow execution"
        assert result.error_code == ErrorCode.VALIDATION_FAILED

    @pytest.mark.asyncio
    async def test_action_step_failure(self, engine):
        action = ExecutableAction(
            type=ActionType.CUSTOM,
            description="",
            steps=[ActionStep(id="x", action="fly", description="")],
        )
        result = await engine.execute_action(action)

        assert result.success is False
        assert result.execution.errors == ["Unsupported step action: fly"]
