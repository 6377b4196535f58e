"""Action step runner — maps step verbs onto chain, explorer and tool calls.

Compilation and storage uploads live outside this package; they are
plugged in through the ``ContractCompiler`` and ``StorageUploader``
protocols and a step that needs a missing one fails.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Protocol

from eth_abi import encode as abi_encode

from chainpilot.chain.abi import coerce_value, format_ether, parse_ether
from chainpilot.chain.port import ChainContext
from chainpilot.core.config import Settings, get_settings
from chainpilot.core.errors import StepExecutionError
from chainpilot.explorer.explorer import ContractExplorer, ExplorationRequest
from chainpilot.interpreter.models import ActionStep, StepResult

logger = logging.getLogger(__name__)


@dataclass
class CompiledContract:
    bytecode: str
    abi: list[dict[str, Any]] = field(default_factory=list)

    @property
    def constructor_types(self) -> list[str]:
        for item in self.abi:
            if item.get("type") == "constructor":
                return [p["type"] for p in item.get("inputs", [])]
        return []


class ContractCompiler(Protocol):
    async def compile(self, source_code: str, solc_version: str) -> CompiledContract: ...


class StorageUploader(Protocol):
    async def upload(self, file_path: str) -> dict[str, Any]: ...


StepHandler = Callable[[ActionStep, dict[str, Any]], Awaitable[StepResult]]


class ActionStepRunner:
    """Executes individual ``ActionStep``s.

    ``context`` is shared across the steps of one action: outputs a step
    publishes (e.g. ``compiled_bytecode``) are substituted into later steps'
    string parameters that name them.
    """

    def __init__(
        self,
        chain: ChainContext,
        explorer: ContractExplorer,
        compiler: ContractCompiler | None = None,
        uploader: StorageUploader | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.chain = chain
        self.explorer = explorer
        self.compiler = compiler
        self.uploader = uploader
        self.settings = settings or get_settings()
        self._handlers: dict[str, StepHandler] = {
            "get_balance": self._get_balance,
            "get_network_info": self._get_network_info,
            "send_transaction": self._send_transaction,
            "call_contract_function": self._call_contract_function,
            "analyze_contract_bytecode": self._analyze_contract,
            "estimate_gas": self._estimate_gas,
            "compile": self._compile,
            "deploy": self._deploy,
            "upload_file_to_storage": self._upload,
            "execute_custom": self._execute_custom,
        }

    @property
    def supported_actions(self) -> list[str]:
        return list(self._handlers)

    async def run(self, step: ActionStep, context: dict[str, Any]) -> StepResult:
        handler = self._handlers.get(step.action)
        if handler is None:
            raise StepExecutionError(f"Unsupported step action: {step.action}")
        result = await handler(step, context)
        context.update(result.outputs)
        return result

    @staticmethod
    def _param(step: ActionStep, context: dict[str, Any], key: str, default: Any = None) -> Any:
        value = step.parameters.get(key, default)
        if isinstance(value, str) and value in context:
            return context[value]
        return value

    # ── Reads ────────────────────────────────────────────────────────────────

    async def _get_balance(self, step: ActionStep, context: dict[str, Any]) -> StepResult:
        address = self._param(step, context, "address")
        balance = await self.chain.require_client().get_balance(address)
        return StepResult(
            success=True,
            result={
                "address": address,
                "balance": format_ether(balance),
                "balance_wei": str(balance),
                "currency": self.chain.native_currency,
            },
        )

    async def _get_network_info(self, step: ActionStep, context: dict[str, Any]) -> StepResult:
        client = self.chain.require_client()
        chain_id = await client.get_chain_id()
        block_number = await client.get_block_number()
        gas_price = await client.get_gas_price()
        return StepResult(
            success=True,
            result={
                "network": self.chain.chain.name if self.chain.chain else self.settings.network,
                "chain_id": chain_id,
                "block_number": block_number,
                "gas_price_wei": str(gas_price),
            },
        )

    async def _analyze_contract(self, step: ActionStep, context: dict[str, Any]) -> StepResult:
        address = self._param(step, context, "contract_address")
        exploration = await self.explorer.explore_contracts(ExplorationRequest(address=address))
        if not exploration.success or not exploration.contracts:
            raise StepExecutionError(exploration.error or f"Could not analyze contract {address}")
        data = exploration.contracts[0]
        return StepResult(
            success=True,
            result={
                "address": data.contract_info.address,
                "verified": data.contract_info.verified,
                "functions": [f.name for f in data.contract_info.functions],
                "patterns": [p.name for p in data.analysis_result.patterns],
                "risk": data.risk_assessment.to_dict(),
                "suggestions": data.analysis_result.suggestions,
            },
        )

    async def _estimate_gas(self, step: ActionStep, context: dict[str, Any]) -> StepResult:
        bytecode = self._param(step, context, "bytecode")
        if not bytecode or not str(bytecode).startswith("0x"):
            raise StepExecutionError("No bytecode available to estimate")
        tx: dict[str, Any] = {"data": bytecode}
        if self.chain.signer is not None:
            tx["from"] = await self.chain.signer.get_address()
        gas = await self.chain.require_client().estimate_gas(tx)
        return StepResult(success=True, result={"gas_estimate": gas}, outputs={"estimated_gas": gas})

    # ── Writes ───────────────────────────────────────────────────────────────

    async def _send_transaction(self, step: ActionStep, context: dict[str, Any]) -> StepResult:
        signer = self.chain.require_signer()
        to = self._param(step, context, "to")
        value = parse_ether(self._param(step, context, "value", "0"))
        pending = await signer.send_transaction({
            "to": to,
            "value": value,
            "gasLimit": self.settings.default_transfer_gas_limit,
        })
        receipt = await pending.wait(self.settings.receipt_confirmations)
        return StepResult(
            success=receipt.succeeded,
            result={"to": to, "value_wei": str(value), "block_number": receipt.block_number},
            error=None if receipt.succeeded else "Transaction reverted",
            transaction_hash=pending.hash,
            gas_used=receipt.gas_used,
        )

    async def _call_contract_function(self, step: ActionStep, context: dict[str, Any]) -> StepResult:
        address = self._param(step, context, "contract_address")
        function_name = self._param(step, context, "function_name")
        args = self._param(step, context, "args") or {}

        exploration = await self.explorer.explore_contracts(
            ExplorationRequest(address=address, include_tools=True),
        )
        if not exploration.success or not exploration.contracts:
            raise StepExecutionError(exploration.error or f"Could not load contract {address}")

        tools = exploration.contracts[0].generated_tools or []
        tool = next((t for t in tools if t.metadata.function_name == function_name), None)
        if tool is None:
            raise StepExecutionError(f"No tool generated for {function_name} on {address}")

        outcome = await tool.invoke(args)
        if not outcome.get("success"):
            return StepResult(success=False, error=outcome.get("error"), result=outcome)
        gas = outcome.get("gas_used")
        return StepResult(
            success=True,
            result=outcome.get("result"),
            transaction_hash=outcome.get("transaction_hash"),
            gas_used=int(gas) if gas else None,
        )

    async def _compile(self, step: ActionStep, context: dict[str, Any]) -> StepResult:
        if self.compiler is None:
            raise StepExecutionError("No contract compiler configured")
        compiled = await self.compiler.compile(
            self._param(step, context, "source_code"),
            self._param(step, context, "solc_version"),
        )
        return StepResult(
            success=True,
            result={"bytecode_size": len(compiled.bytecode.removeprefix("0x")) // 2},
            outputs={"compiled_bytecode": compiled.bytecode, "compiled_contract": compiled},
        )

    async def _deploy(self, step: ActionStep, context: dict[str, Any]) -> StepResult:
        signer = self.chain.require_signer()
        bytecode = self._param(step, context, "bytecode")
        if not bytecode or not str(bytecode).startswith("0x"):
            raise StepExecutionError("No compiled bytecode to deploy")

        data = bytecode
        compiled: CompiledContract | None = context.get("compiled_contract")
        args = self._param(step, context, "constructor_args") or []
        if compiled is not None and compiled.constructor_types and args:
            types = compiled.constructor_types
            encoded = abi_encode(types, [coerce_value(t, a) for t, a in zip(types, args)])
            data = bytecode + encoded.hex()

        tx: dict[str, Any] = {"data": data}
        if "estimated_gas" in context:
            tx["gasLimit"] = context["estimated_gas"]
        pending = await signer.send_transaction(tx)
        receipt = await pending.wait(self.settings.receipt_confirmations)
        logger.info("Deployed contract at %s", receipt.contract_address, extra={"tx_hash": pending.hash})
        return StepResult(
            success=receipt.succeeded,
            result={"contract_address": receipt.contract_address, "block_number": receipt.block_number},
            error=None if receipt.succeeded else "Deployment reverted",
            transaction_hash=pending.hash,
            gas_used=receipt.gas_used,
            outputs={"deployed_address": receipt.contract_address},
        )

    async def _upload(self, step: ActionStep, context: dict[str, Any]) -> StepResult:
        if self.uploader is None:
            raise StepExecutionError("No storage uploader configured")
        outcome = await self.uploader.upload(self._param(step, context, "file_path"))
        return StepResult(
            success=True,
            result=outcome,
            transaction_hash=outcome.get("transaction_hash"),
        )

    async def _execute_custom(self, step: ActionStep, context: dict[str, Any]) -> StepResult:
        return StepResult(
            success=True,
            result={
                "status": "needs_clarification",
                "message": f"Could not map instruction to a known action: {step.parameters.get('user_input', '')}",
            },
        )
