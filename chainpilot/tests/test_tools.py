"""Tests for dynamic tool generation: schemas, validation and tool execution."""

from __future__ import annotations

import pytest

from chainpilot.analyzer.models import ContractFunction, ContractInfo, FunctionParameter
from chainpilot.chain.abi import decode_output, encode_call
from chainpilot.core.errors import SchemaValidationError, SignerRequiredError
from chainpilot.core.types import StateMutability, ToolCategory
from chainpilot.tests.fakes import ERC20_ABI, ONE_ETHER, RECIPIENT, TOKEN_ADDRESS, FakeSigner
from chainpilot.tools.generator import DynamicToolGenerator, ToolGenerationOptions
from chainpilot.tools.schema import (
    format_result,
    generate_input_schema,
    map_solidity_type,
    parse_value_amount,
    prepare_function_arguments,
)
from chainpilot.tools.validator import validate_arguments


def verified_token() -> ContractInfo:
    functions = [ContractFunction.from_abi(item) for item in ERC20_ABI if item["type"] == "function"]
    return ContractInfo(
        address=TOKEN_ADDRESS,
        bytecode="0x00",
        abi=ERC20_ABI,
        verified=True,
        name="MyToken",
        functions=functions,
    )


def abi_fn(name: str) -> ContractFunction:
    return next(f for f in verified_token().functions if f.name == name)


# ── Schema generation ────────────────────────────────────────────────────────


class TestInputSchema:
    def test_write_function(self):
        schema = generate_input_schema(abi_fn("transfer"))
        assert schema["required"] == ["to", "amount"]
        assert schema["additionalProperties"] is False
        assert schema["properties"]["amount"]["pattern"] == "^[0-9]+$"
        assert "gasLimit" in schema["properties"]
        assert "gasPrice" in schema["properties"]
        assert "value" not in schema["properties"]

    def test_read_function_has_no_gas_fields(self):
        schema = generate_input_schema(abi_fn("balanceOf"))
        assert set(schema["properties"]) == {"account"}

    def test_payable_function_accepts_value(self):
        schema = generate_input_schema(abi_fn("deposit"))
        assert schema["required"] == []
        assert "value" in schema["properties"]

    def test_unnamed_parameters(self):
        fn = ContractFunction(
            name="f",
            selector="0x00000000",
            signature="f(uint256,address)",
            state_mutability=StateMutability.VIEW,
            inputs=[FunctionParameter(name="", type="uint256"), FunctionParameter(name="", type="address")],
        )
        assert generate_input_schema(fn)["required"] == ["param0", "param1"]

    def test_type_mapping(self):
        assert map_solidity_type("bool") == {"type": "boolean", "description": "Boolean value"}
        assert map_solidity_type("uint256[]")["items"]["pattern"] == "^[0-9]+$"
        assert map_solidity_type("address[3]")["type"] == "array"
        assert map_solidity_type("bytes32")["pattern"] == "^0x[a-fA-F0-9]*$"
        assert map_solidity_type("string")["type"] == "string"


class TestValidateArguments:
    def test_accepts_valid(self):
        schema = generate_input_schema(abi_fn("transfer"))
        validate_arguments({"to": RECIPIENT, "amount": "10"}, schema)

    def test_rejects_bad_address(self):
        schema = generate_input_schema(abi_fn("transfer"))
        with pytest.raises(SchemaValidationError) as exc_info:
            validate_arguments({"to": "0x123", "amount": "10"}, schema)
        assert exc_info.value.path == "to"

    def test_rejects_missing_and_extra(self):
        schema = generate_input_schema(abi_fn("transfer"))
        with pytest.raises(SchemaValidationError):
            validate_arguments({"to": RECIPIENT}, schema)
        with pytest.raises(SchemaValidationError):
            validate_arguments({"to": RECIPIENT, "amount": "1", "memo": "hi"}, schema)

    def test_rejects_negative_integer_string(self):
        schema = generate_input_schema(abi_fn("transfer"))
        with pytest.raises(SchemaValidationError):
            validate_arguments({"to": RECIPIENT, "amount": "-1"}, schema)

    def test_malformed_schema(self):
        with pytest.raises(SchemaValidationError, match="Schema is malformed"):
            validate_arguments({}, {"type": 12})


class TestArgumentsAndResults:
    def test_prepare_orders_and_converts(self):
        mixed_case = "0x" + TOKEN_ADDRESS[2:].upper()
        args = prepare_function_arguments(abi_fn("transfer"), {"amount": "7", "to": mixed_case})
        assert args == [TOKEN_ADDRESS, 7]

    def test_prepare_missing_argument(self):
        with pytest.raises(ValueError, match="Missing argument: amount"):
            prepare_function_arguments(abi_fn("transfer"), {"to": RECIPIENT})

    def test_parse_value_amount(self):
        assert parse_value_amount("1.5 ETH") == 3 * ONE_ETHER // 2
        assert parse_value_amount("2 eth") == 2 * ONE_ETHER
        assert parse_value_amount("100") == 100
        assert parse_value_amount("100 wei") == 100
        assert parse_value_amount(5) == 5

    def test_parse_value_amount_rejects_bare_decimal(self):
        with pytest.raises(ValueError, match="Invalid value amount"):
            parse_value_amount("1.5")

    def test_format_result(self):
        assert format_result((), []) == "Success"
        assert format_result((42,), [FunctionParameter("", "uint256")]) == "42"
        assert format_result(
            (True, "0xABCDEF"),
            [FunctionParameter("ok", "bool"), FunctionParameter("", "address")],
        ) == {"ok": True, "output1": "0xabcdef"}

    def test_integer_argument_reaches_calldata_intact(self):
        big = str(2**255 + 3)
        uint_fn = ContractFunction(
            name="set",
            selector="0x60fe47b1",
            signature="set(uint256)",
            inputs=[FunctionParameter("x", "uint256")],
        )
        validate_arguments({"x": big}, generate_input_schema(uint_fn))
        data = encode_call(uint_fn.selector, uint_fn.input_types, prepare_function_arguments(uint_fn, {"x": big}))
        assert decode_output(["uint256"], "0x" + data[10:]) == (int(big),)


# ── Generator ────────────────────────────────────────────────────────────────


class TestDynamicToolGenerator:
    @pytest.mark.asyncio
    async def test_generates_one_tool_per_function_plus_info(self, tool_generator: DynamicToolGenerator):
        result = await tool_generator.generate_tools_for_contract(verified_token())

        assert result.success is True
        names = [t.name for t in result.tools]
        assert names == [
            "contract_mytoken_balanceof",
            "contract_mytoken_transfer",
            "contract_mytoken_deposit",
            "contract_000000_info",
        ]
        assert result.tools[0].metadata.category == ToolCategory.READ
        assert result.tools[2].metadata.category == ToolCategory.PAYABLE
        assert "Warning: this function requires ETH payment." in result.tools[2].description
        assert tool_generator.get_generated_tools("0x" + TOKEN_ADDRESS[2:].upper()) == result.tools

    @pytest.mark.asyncio
    async def test_category_filter_and_prefix(self, tool_generator):
        options = ToolGenerationOptions(include_write_functions=False, custom_prefix="tok")
        result = await tool_generator.generate_tools_for_contract(verified_token(), options)
        assert [t.name for t in result.tools] == ["tok_mytoken_balanceof", "tok_mytoken_deposit", "contract_000000_info"]

    @pytest.mark.asyncio
    async def test_truncation_warning(self, tool_generator):
        info = ContractInfo(
            address=TOKEN_ADDRESS,
            bytecode="0x00",
            functions=[ContractFunction.placeholder(f"0x{n:08x}") for n in range(30)],
        )
        result = await tool_generator.generate_tools_for_contract(info, ToolGenerationOptions(max_tools_per_contract=5))

        assert result.warnings == ["Contract has 30 functions, limiting to 5 most important ones"]
        assert len(result.tools) == 6
        assert result.tools[0].name == "contract_000000_function_0x00000000"

    @pytest.mark.asyncio
    async def test_regeneration_replaces_tools(self, tool_generator):
        await tool_generator.generate_tools_for_contract(verified_token())
        await tool_generator.generate_tools_for_contract(verified_token(), ToolGenerationOptions(include_write_functions=False))
        assert len(tool_generator.get_generated_tools(TOKEN_ADDRESS)) == 3
        assert tool_generator.get_stats()["contracts_with_tools"] == 1

    @pytest.mark.asyncio
    async def test_read_tool_calls_chain(self, tool_generator, fake_client):
        fake_client.call_results["0x70a08231"] = "0x" + hex(42)[2:].rjust(64, "0")
        await tool_generator.generate_tools_for_contract(verified_token())
        tool = tool_generator.get_tool(TOKEN_ADDRESS, "contract_mytoken_balanceof")

        result = await tool.invoke({"account": RECIPIENT})

        assert result == {
            "success": True,
            "result": "42",
            "gas_used": 0,
            "transaction_hash": None,
            "block_number": 100,
        }
        assert fake_client.calls[0][1].startswith("0x70a08231")

    @pytest.mark.asyncio
    async def test_write_tool_sends_transaction(self, tool_generator, fake_signer):
        await tool_generator.generate_tools_for_contract(verified_token())
        tool = tool_generator.get_tool(TOKEN_ADDRESS, "contract_mytoken_transfer")

        result = await tool.invoke({"to": RECIPIENT, "amount": "5", "gasLimit": 60000, "gasPrice": "2"})

        assert result["success"] is True
        assert result["result"] == "Transaction successful"
        assert result["gas_used"] == "21000"
        assert result["block_number"] == 101
        assert result["log_count"] == 1
        sent = fake_signer.sent[0]
        assert sent["to"] == TOKEN_ADDRESS
        assert sent["data"].startswith("0xa9059cbb")
        assert sent["gasLimit"] == 60000
        assert sent["gasPrice"] == 2_000_000_000

    @pytest.mark.asyncio
    async def test_payable_tool_sends_value(self, tool_generator, fake_signer):
        await tool_generator.generate_tools_for_contract(verified_token())
        tool = tool_generator.get_tool(TOKEN_ADDRESS, "contract_mytoken_deposit")

        await tool.invoke({"value": "1.5 ETH"})

        assert fake_signer.sent[0]["value"] == 3 * ONE_ETHER // 2

    @pytest.mark.asyncio
    async def test_write_without_signer_raises_before_sending(self, readonly_chain, settings):
        generator = DynamicToolGenerator(readonly_chain, settings=settings)
        await generator.generate_tools_for_contract(verified_token())
        tool = generator.get_tool(TOKEN_ADDRESS, "contract_mytoken_transfer")

        with pytest.raises(SignerRequiredError):
            await tool.invoke({"to": RECIPIENT, "amount": "5"})

    @pytest.mark.asyncio
    async def test_read_without_signer_works(self, readonly_chain, fake_client, settings):
        fake_client.call_results["0x70a08231"] = "0x" + hex(9)[2:].rjust(64, "0")
        generator = DynamicToolGenerator(readonly_chain, settings=settings)
        await generator.generate_tools_for_contract(verified_token())
        tool = generator.get_tool(TOKEN_ADDRESS, "contract_mytoken_balanceof")
        result = await tool.invoke({"account": RECIPIENT})
        assert result["success"] is True
        assert result["result"] == "9"

    @pytest.mark.asyncio
    async def test_read_with_empty_return_data_fails(self, tool_generator):
        await tool_generator.generate_tools_for_contract(verified_token())
        tool = tool_generator.get_tool(TOKEN_ADDRESS, "contract_mytoken_balanceof")

        result = await tool.invoke({"account": RECIPIENT})

        assert result["success"] is False
        assert result["error"] == "Function returned no data"
        assert result["result"] is None

    @pytest.mark.asyncio
    async def test_reverted_write_is_reported_as_failure(self, chain, settings):
        chain.signer = FakeSigner(status=0)
        generator = DynamicToolGenerator(chain, settings=settings)
        await generator.generate_tools_for_contract(verified_token())
        tool = generator.get_tool(TOKEN_ADDRESS, "contract_mytoken_transfer")

        result = await tool.invoke({"to": RECIPIENT, "amount": "5"})

        assert result["success"] is False
        assert result["error"] == f"Transaction {result['transaction_hash']} reverted"
        assert result["transaction_hash"] == "0x" + "1".rjust(64, "0")
        assert result["gas_used"] == "21000"

    @pytest.mark.asyncio
    async def test_payable_tool_accepts_wei_suffix(self, tool_generator, fake_signer):
        await tool_generator.generate_tools_for_contract(verified_token())
        tool = tool_generator.get_tool(TOKEN_ADDRESS, "contract_mytoken_deposit")

        await tool.invoke({"value": "100 wei"})

        assert fake_signer.sent[0]["value"] == 100

    @pytest.mark.asyncio
    async def test_payable_tool_rejects_bare_decimal(self, tool_generator, fake_signer):
        await tool_generator.generate_tools_for_contract(verified_token())
        tool = tool_generator.get_tool(TOKEN_ADDRESS, "contract_mytoken_deposit")

        with pytest.raises(SchemaValidationError):
            await tool.invoke({"value": "1.5"})
        assert fake_signer.sent == []

    @pytest.mark.asyncio
    async def test_invalid_arguments_never_reach_chain(self, tool_generator, fake_signer):
        await tool_generator.generate_tools_for_contract(verified_token())
        tool = tool_generator.get_tool(TOKEN_ADDRESS, "contract_mytoken_transfer")

        with pytest.raises(SchemaValidationError):
            await tool.invoke({"to": "nobody", "amount": "5"})
        assert fake_signer.sent == []

    @pytest.mark.asyncio
    async def test_send_failure_is_reported(self, chain, settings):
        chain.signer = FakeSigner(error=RuntimeError("nonce too low"))
        generator = DynamicToolGenerator(chain, settings=settings)
        await generator.generate_tools_for_contract(verified_token())
        tool = generator.get_tool(TOKEN_ADDRESS, "contract_mytoken_transfer")

        result = await tool.invoke({"to": RECIPIENT, "amount": "5"})

        assert result["success"] is False
        assert result["error"] == "nonce too low"

    @pytest.mark.asyncio
    async def test_info_tool(self, tool_generator):
        result = await tool_generator.generate_tools_for_contract(verified_token())
        info = await result.tools[-1].invoke()
        assert info["verified"] is True
        assert info["functions_count"] == 3
        assert info["functions"][0] == {"name": "balanceOf", "type": "view", "inputs": 1, "outputs": 1}

    @pytest.mark.asyncio
    async def test_stats(self, tool_generator):
        await tool_generator.generate_tools_for_contract(verified_token())
        stats = tool_generator.get_stats()
        assert stats["total_tools"] == 4
        assert stats["tools_by_category"] == {"read": 2, "write": 1, "payable": 1}

        tool_generator.clear_tools_for_contract(TOKEN_ADDRESS)
        assert tool_generator.get_stats()["total_tools"] == 0
