"""Shared fixtures for the ChainPilot test suite."""

from __future__ import annotations

import pytest

from chainpilot.analyzer.engine import ContractAnalysisEngine
from chainpilot.chain.port import ChainContext
from chainpilot.core.chains import get_chain_config
from chainpilot.core.config import Settings
from chainpilot.explorer.explorer import ContractExplorer
from chainpilot.tests.fakes import (
    ERC20_SELECTORS,
    ONE_ETHER,
    SIGNER_ADDRESS,
    TOKEN_ADDRESS,
    FakeChainClient,
    FakeSigner,
    make_bytecode,
)
from chainpilot.tools.generator import DynamicToolGenerator


# ── Fixtures ─────────────────────────────────────────────────────────────────


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, rpc_retry_base_delay=0.0, default_wait_ms=0)


@pytest.fixture
def fake_client() -> FakeChainClient:
    client = FakeChainClient()
    client.codes[TOKEN_ADDRESS] = make_bytecode(*ERC20_SELECTORS)
    client.balances[SIGNER_ADDRESS] = 5 * ONE_ETHER
    return client


@pytest.fixture
def fake_signer() -> FakeSigner:
    return FakeSigner()


@pytest.fixture
def chain(fake_client: FakeChainClient, fake_signer: FakeSigner) -> ChainContext:
    return ChainContext(client=fake_client, signer=fake_signer, chain=get_chain_config("0g-galileo"))


@pytest.fixture
def readonly_chain(fake_client: FakeChainClient) -> ChainContext:
    return ChainContext(client=fake_client, signer=None, chain=get_chain_config("0g-galileo"))


@pytest.fixture
def analysis_engine(chain: ChainContext, settings: Settings) -> ContractAnalysisEngine:
    return ContractAnalysisEngine(chain, settings=settings)


@pytest.fixture
def tool_generator(chain: ChainContext, settings: Settings) -> DynamicToolGenerator:
    return DynamicToolGenerator(chain, settings=settings)


@pytest.fixture
def explorer(
    chain: ChainContext,
    analysis_engine: ContractAnalysisEngine,
    tool_generator: DynamicToolGenerator,
) -> ContractExplorer:
    return ContractExplorer(chain, analysis_engine, tool_generator)
