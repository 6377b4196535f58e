"""Action builders — turn (intent, entities) into an ``ExecutableAction``.

Builders are synchronous and touch nothing but the knowledge base; they
raise on missing entities instead of producing a plan that cannot run.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Callable

from chainpilot.chain.abi import format_ether, parse_gwei
from chainpilot.core.errors import FunctionNotFoundError, TaskInterpretationError
from chainpilot.core.types import ActionType, Intent, StateMutability
from chainpilot.interpreter.intent import Amount, Entities, extract_file_path, extract_function_name
from chainpilot.interpreter.knowledge import KnowledgeBase
from chainpilot.interpreter.models import ActionStep, ExecutableAction, TaskRequest

DEFAULT_TRANSFER_AMOUNT = "0.1"
DEFAULT_SOLC_VERSION = "0.8.19"


def amount_in_ether(amount: Amount | None) -> str:
    """Express an extracted amount in whole-ether units."""
    if amount is None:
        return DEFAULT_TRANSFER_AMOUNT
    if amount.unit == "gwei":
        return format_ether(parse_gwei(amount.value))
    if amount.unit == "wei":
        return format_ether(int(Decimal(amount.value)))
    return amount.value


class ActionBuilder:
    """Dispatches an intent to its builder; unhandled intents become custom."""

    def __init__(self, knowledge: KnowledgeBase, native_currency: str = "ETH") -> None:
        self.knowledge = knowledge
        self.native_currency = native_currency
        self._builders: dict[Intent, Callable[[Entities, TaskRequest], ExecutableAction]] = {
            Intent.DEPLOY: self.build_deploy,
            Intent.CALL: self.build_call,
            Intent.QUERY: self.build_query,
            Intent.UPLOAD: self.build_upload,
            Intent.ANALYZE: self.build_analyze,
            Intent.TRANSFER: self.build_transfer,
        }

    def build(
        self,
        intent: Intent,
        entities: Entities,
        request: TaskRequest,
        knowledge_results: list[dict[str, Any]] | None = None,
    ) -> ExecutableAction:
        builder = self._builders.get(intent, self.build_custom)
        action = builder(entities, request)
        action.intent = intent
        action.entities = entities.to_dict()
        return action

    # ── Builders ─────────────────────────────────────────────────────────────

    def build_deploy(self, entities: Entities, request: TaskRequest) -> ExecutableAction:
        if entities.has("token"):
            pattern = self.knowledge.get_deployment_pattern("BasicERC20")
        else:
            patterns = self.knowledge.get_all_deployment_patterns()
            pattern = patterns[0] if patterns else None
        if pattern is None:
            raise TaskInterpretationError("No suitable deployment pattern found")

        steps = [
            ActionStep(
                id="compile_contract",
                action="compile",
                description=f"Compile {pattern.name} contract",
                parameters={"source_code": pattern.template, "solc_version": DEFAULT_SOLC_VERSION},
            ),
            ActionStep(
                id="estimate_deployment_gas",
                action="estimate_gas",
                description="Estimate deployment gas cost",
                parameters={"bytecode": "compiled_bytecode"},
                dependencies=["compile_contract"],
                optional=True,
            ),
            ActionStep(
                id="deploy_contract",
                action="deploy",
                description=f"Deploy {pattern.name} contract",
                parameters={
                    "bytecode": "compiled_bytecode",
                    "constructor_args": list(pattern.constructor_defaults),
                },
                dependencies=["compile_contract"],
                tool_name="deploy_contract",
            ),
        ]
        return ExecutableAction(
            type=ActionType.DEPLOY,
            description=f"Deploy {pattern.name} smart contract",
            steps=steps,
            estimated_gas=pattern.gas_estimate,
            requirements=["Wallet connected", "Sufficient balance", *pattern.dependencies],
            warnings=list(pattern.security_notes),
        )

    def build_call(self, entities: Entities, request: TaskRequest) -> ExecutableAction:
        address = entities.first_address
        if not address:
            raise FunctionNotFoundError("Contract address required for function call")

        contract = self.knowledge.get_contract_knowledge(address)
        if contract is None:
            raise FunctionNotFoundError(f"Contract {address} not found in knowledge base")

        name = extract_function_name(request.user_input, [f.name for f in contract.functions])
        target = contract.find_function(name) if name else None
        if target is None:
            raise FunctionNotFoundError(f"Function {name or 'unknown'} not found in contract")

        contract_label = contract.name or address[2:8]
        step = ActionStep(
            id="call_function",
            action="call_contract_function",
            description=f"Call {target.name} on contract {address}",
            parameters={
                "contract_address": address,
                "function_name": target.name,
                "args": dict(request.context.get("args", {})),
            },
            tool_name=f"call_{contract_label}_{target.name}",
        )
        warnings = ["This function modifies state"] if target.state_mutability == StateMutability.NONPAYABLE else []
        return ExecutableAction(
            type=ActionType.CALL,
            description=f"Call {target.name} function",
            steps=[step],
            requirements=["Contract exists", "Valid parameters"],
            warnings=warnings,
        )

    def build_query(self, entities: Entities, request: TaskRequest) -> ExecutableAction:
        if entities.addresses:
            steps = [
                ActionStep(
                    id=f"query_{address}",
                    action="get_balance",
                    description=f"Get balance for {address}",
                    parameters={"address": address},
                    tool_name="get_balance",
                )
                for address in entities.addresses
            ]
        else:
            steps = [
                ActionStep(
                    id="query_network",
                    action="get_network_info",
                    description="Get network information",
                    tool_name="get_network_info",
                ),
            ]
        return ExecutableAction(
            type=ActionType.QUERY,
            description="Query blockchain data",
            steps=steps,
            requirements=["Network connection"],
        )

    def build_upload(self, entities: Entities, request: TaskRequest) -> ExecutableAction:
        file_path = extract_file_path(request.user_input)
        return ExecutableAction(
            type=ActionType.UPLOAD,
            description="Upload file to storage",
            steps=[
                ActionStep(
                    id="upload_file",
                    action="upload_file_to_storage",
                    description=f"Upload {file_path} to storage",
                    parameters={"file_path": file_path},
                    tool_name="upload_file_to_storage",
                ),
            ],
            requirements=["Wallet connected", "File exists"],
            warnings=["Storage costs apply", "File will be publicly accessible"],
        )

    def build_analyze(self, entities: Entities, request: TaskRequest) -> ExecutableAction:
        address = entities.first_address
        if not address:
            raise TaskInterpretationError("Contract address required for analysis")
        return ExecutableAction(
            type=ActionType.ANALYZE,
            description="Analyze smart contract",
            steps=[
                ActionStep(
                    id="analyze_contract",
                    action="analyze_contract_bytecode",
                    description=f"Analyze contract at {address}",
                    parameters={"contract_address": address},
                ),
            ],
            requirements=["Valid contract address"],
            warnings=["Analysis is based on bytecode only"],
        )

    def build_transfer(self, entities: Entities, request: TaskRequest) -> ExecutableAction:
        to = entities.first_address
        if not to:
            raise TaskInterpretationError("Recipient address required for transfer")
        amount = amount_in_ether(entities.amount)
        return ExecutableAction(
            type=ActionType.TRANSFER,
            description=f"Transfer {amount} {self.native_currency}",
            steps=[
                ActionStep(
                    id="send_transaction",
                    action="send_transaction",
                    description=f"Send {amount} {self.native_currency} to {to}",
                    parameters={"to": to, "value": amount},
                    tool_name="send_transaction",
                ),
            ],
            requirements=["Wallet connected", "Sufficient balance"],
            warnings=["Transaction is irreversible"],
        )

    def build_custom(self, entities: Entities, request: TaskRequest) -> ExecutableAction:
        return ExecutableAction(
            type=ActionType.CUSTOM,
            description=f"Custom action for: {request.user_input}",
            steps=[
                ActionStep(
                    id="custom_action",
                    action="execute_custom",
                    description="Execute custom action",
                    parameters={"user_input": request.user_input},
                ),
            ],
            requirements=["Further clarification needed"],
            warnings=["Action not fully understood"],
        )
