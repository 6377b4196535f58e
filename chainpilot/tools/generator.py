"""Dynamic Tool Generator — one callable tool per analyzed contract function.

Each ``GeneratedTool`` carries a JSON Schema for its arguments and an async
executor closure bound to the contract and function it was built for.
Read tools go straight to ``eth_call``; write and payable tools need a
signer and return the mined receipt summary.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from chainpilot.analyzer.models import ContractFunction, ContractInfo
from chainpilot.chain.abi import decode_output, encode_call, parse_gwei
from chainpilot.chain.port import ChainContext
from chainpilot.core.cache import KeyedCache, address_key
from chainpilot.core.config import Settings, get_settings
from chainpilot.core.types import FunctionType, ToolCategory
from chainpilot.tools.schema import (
    format_result,
    generate_input_schema,
    parse_value_amount,
    prepare_function_arguments,
)
from chainpilot.tools.validator import validate_arguments

logger = logging.getLogger(__name__)

ToolHandler = Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]

_SLUG_RE = re.compile(r"[^a-z0-9]")


def _slug(text: str) -> str:
    return _SLUG_RE.sub("_", text.lower())


@dataclass
class ToolMetadata:
    contract_address: str
    function_name: str
    gas_estimate: int
    category: ToolCategory

    def to_dict(self) -> dict[str, Any]:
        return {
            "contract_address": self.contract_address,
            "function_name": self.function_name,
            "gas_estimate": self.gas_estimate,
            "category": self.category.value,
        }


@dataclass
class GeneratedTool:
    """A named, schema-described operation bound to one contract function."""

    name: str
    description: str
    input_schema: dict[str, Any]
    handler: ToolHandler
    metadata: ToolMetadata

    async def invoke(self, args: dict[str, Any] | None = None) -> dict[str, Any]:
        """Validate ``args`` against the input schema, then run the executor."""
        args = args or {}
        validate_arguments(args, self.input_schema)
        return await self.handler(args)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema,
            "metadata": self.metadata.to_dict(),
        }


@dataclass
class ToolGenerationOptions:
    include_read_functions: bool = True
    include_write_functions: bool = True
    include_payable_functions: bool = True
    max_tools_per_contract: int = 25
    custom_prefix: str | None = None

    def includes(self, category: ToolCategory) -> bool:
        if category == ToolCategory.READ:
            return self.include_read_functions
        if category == ToolCategory.PAYABLE:
            return self.include_payable_functions
        return self.include_write_functions


@dataclass
class GenerationResult:
    success: bool
    contract_address: str
    tools: list[GeneratedTool] = field(default_factory=list)
    contract_name: str | None = None
    warnings: list[str] = field(default_factory=list)
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "contract_address": self.contract_address,
            "contract_name": self.contract_name,
            "tools": [t.to_dict() for t in self.tools],
            "warnings": self.warnings,
            "error": self.error,
        }


class DynamicToolGenerator:
    """Builds and caches tools per contract address."""

    def __init__(
        self,
        chain: ChainContext,
        cache: KeyedCache[list[GeneratedTool]] | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.chain = chain
        self.settings = settings or get_settings()
        self._tools: KeyedCache[list[GeneratedTool]] = cache or KeyedCache(name="tools", key_fn=address_key)

    def default_options(self) -> ToolGenerationOptions:
        return ToolGenerationOptions(
            max_tools_per_contract=self.settings.max_tools_per_contract,
            custom_prefix=self.settings.tool_name_prefix,
        )

    async def generate_tools_for_contract(
        self,
        info: ContractInfo,
        options: ToolGenerationOptions | None = None,
    ) -> GenerationResult:
        """Generate tools for every selected function plus the info tool.

        Any previous tools for the address are replaced.
        """
        opts = options or self.default_options()
        try:
            selected = [
                fn for fn in info.functions
                if fn.type == FunctionType.FUNCTION and opts.includes(fn.category)
            ]

            warnings: list[str] = []
            if len(selected) > opts.max_tools_per_contract:
                warnings.append(
                    f"Contract has {len(selected)} functions, "
                    f"limiting to {opts.max_tools_per_contract} most important ones"
                )
                selected = selected[: opts.max_tools_per_contract]

            tools: list[GeneratedTool] = []
            for fn in selected:
                try:
                    tools.append(self._build_tool(info, fn, opts))
                except (ValueError, KeyError) as exc:
                    warnings.append(f"Failed to generate tool for function {fn.name}: {exc}")

            tools.append(self._build_info_tool(info))
            self._tools.put(info.address, tools)
        except Exception as exc:
            logger.exception("Tool generation error for %s", info.address)
            return GenerationResult(
                success=False,
                contract_address=info.address,
                error=str(exc) or "Unknown generation error",
            )

        logger.info(
            "Generated %d tools", len(tools),
            extra={"contract_address": info.address},
        )
        return GenerationResult(
            success=True,
            contract_address=info.address,
            tools=tools,
            contract_name=info.name,
            warnings=warnings,
        )

    # ── Tool construction ────────────────────────────────────────────────────

    def _tool_name(self, info: ContractInfo, fn: ContractFunction, prefix: str | None) -> str:
        contract_slug = _slug(info.name) if info.name else info.address[2:8]
        return f"{prefix or self.settings.tool_name_prefix}_{contract_slug}_{_slug(fn.name)}"

    @staticmethod
    def _tool_description(info: ContractInfo, fn: ContractFunction) -> str:
        contract_name = info.name or f"Contract {info.address[:8]}..."
        action = "Query" if fn.is_read else "Execute"
        description = f"{action} {fn.name} function on {contract_name}"
        if fn.documentation:
            description += f" - {fn.documentation}"
        if fn.inputs:
            description += ". Inputs: " + ", ".join(f"{p.name}({p.type})" for p in fn.inputs)
        if fn.outputs:
            description += ". Returns: " + ", ".join(p.type for p in fn.outputs)
        if fn.is_payable:
            description += ". Warning: this function requires ETH payment."
        return description

    def _build_tool(self, info: ContractInfo, fn: ContractFunction, opts: ToolGenerationOptions) -> GeneratedTool:
        async def handler(args: dict[str, Any]) -> dict[str, Any]:
            return await self.execute_contract_function(info, fn, args)

        return GeneratedTool(
            name=self._tool_name(info, fn, opts.custom_prefix),
            description=self._tool_description(info, fn),
            input_schema=generate_input_schema(fn),
            handler=handler,
            metadata=ToolMetadata(
                contract_address=info.address,
                function_name=fn.name,
                gas_estimate=fn.gas_estimate or 25_000,
                category=fn.category,
            ),
        )

    @staticmethod
    def _build_info_tool(info: ContractInfo) -> GeneratedTool:
        async def handler(args: dict[str, Any]) -> dict[str, Any]:
            return {
                "success": True,
                "contract_address": info.address,
                "verified": info.verified,
                "functions_count": len(info.functions),
                "events_count": len(info.events),
                "functions": [
                    {
                        "name": f.name,
                        "type": f.state_mutability.value,
                        "inputs": len(f.inputs),
                        "outputs": len(f.outputs),
                    }
                    for f in info.functions
                ],
            }

        return GeneratedTool(
            name=f"contract_{info.address[2:8]}_info",
            description=f"Get comprehensive information about contract at {info.address}",
            input_schema={"type": "object", "properties": {}, "required": []},
            handler=handler,
            metadata=ToolMetadata(
                contract_address=info.address,
                function_name="getInfo",
                gas_estimate=0,
                category=ToolCategory.READ,
            ),
        )

    # ── Execution ────────────────────────────────────────────────────────────

    async def execute_contract_function(
        self,
        info: ContractInfo,
        fn: ContractFunction,
        args: dict[str, Any],
    ) -> dict[str, Any]:
        """Run ``fn`` against the chain.

        Raises:
            SignerRequiredError: For a write/payable function with no signer,
                before anything is sent
        """
        signer = None if fn.is_read else self.chain.require_signer()

        try:
            client = self.chain.require_client()
            call_args = prepare_function_arguments(fn, args)
            data = encode_call(fn.selector, fn.input_types, call_args)

            if signer is None:
                raw = await client.call(info.address, data)
                values = decode_output(fn.output_types, raw)
                return {
                    "success": True,
                    "result": format_result(values, fn.outputs),
                    "gas_used": 0,
                    "transaction_hash": None,
                    "block_number": await client.get_block_number(),
                }

            tx: dict[str, Any] = {"to": info.address, "data": data}
            if args.get("value"):
                tx["value"] = parse_value_amount(args["value"])
            if args.get("gasLimit"):
                tx["gasLimit"] = int(args["gasLimit"])
            if args.get("gasPrice"):
                tx["gasPrice"] = parse_gwei(args["gasPrice"])

            logger.info("Executing %s", fn.name, extra={"contract_address": info.address})
            pending = await signer.send_transaction(tx)
            logger.info("Transaction sent", extra={"tx_hash": pending.hash})
            receipt = await pending.wait(self.settings.receipt_confirmations)
            if not receipt.succeeded:
                logger.warning("Transaction reverted", extra={"tx_hash": pending.hash})
                return {
                    "success": False,
                    "error": f"Transaction {pending.hash} reverted",
                    "result": None,
                    "gas_used": str(receipt.gas_used),
                    "transaction_hash": pending.hash,
                    "block_number": receipt.block_number,
                }
            return {
                "success": True,
                "result": "Transaction successful",
                "gas_used": str(receipt.gas_used),
                "transaction_hash": pending.hash,
                "block_number": receipt.block_number,
                "log_count": len(receipt.logs),
            }
        except Exception as exc:
            logger.error("Contract function %s failed: %s", fn.name, exc, extra={"contract_address": info.address})
            return {
                "success": False,
                "error": str(exc) or "Unknown execution error",
                "result": None,
                "gas_used": 0,
                "transaction_hash": None,
            }

    # ── Cache access ─────────────────────────────────────────────────────────

    def get_generated_tools(self, address: str) -> list[GeneratedTool]:
        return self._tools.get(address) or []

    def get_tool(self, address: str, name: str) -> GeneratedTool | None:
        return next((t for t in self.get_generated_tools(address) if t.name == name), None)

    def get_all_generated_tools(self) -> dict[str, list[GeneratedTool]]:
        return dict(self._tools.items())

    def clear_tools_for_contract(self, address: str) -> None:
        self._tools.invalidate(address)

    def clear_all_tools(self) -> None:
        self._tools.clear()

    def get_stats(self) -> dict[str, Any]:
        by_category = {c.value: 0 for c in ToolCategory}
        total = 0
        for tools in self._tools.values():
            total += len(tools)
            for tool in tools:
                by_category[tool.metadata.category.value] += 1
        return {
            "contracts_with_tools": len(self._tools),
            "total_tools": total,
            "tools_by_category": by_category,
        }
