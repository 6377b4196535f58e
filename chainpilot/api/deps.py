"""Component wiring and FastAPI dependencies."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import Request

from chainpilot.analyzer.engine import ContractAnalysisEngine
from chainpilot.analyzer.models import ContractInfo
from chainpilot.chain.port import ChainContext
from chainpilot.core.cache import KeyedCache, address_key
from chainpilot.core.config import Settings, get_settings
from chainpilot.explorer.explorer import ContractExplorer
from chainpilot.ingestion.contract_fetcher import ContractFetcher
from chainpilot.interpreter.interpreter import TaskInterpreter
from chainpilot.interpreter.knowledge import KnowledgeBase
from chainpilot.interpreter.steps import ActionStepRunner, ContractCompiler, StorageUploader
from chainpilot.pipeline.workflow_engine import ContractWorkflowEngine
from chainpilot.tools.generator import DynamicToolGenerator

logger = logging.getLogger(__name__)


@dataclass
class EngineContainer:
    """Every long-lived component, built once per process."""

    settings: Settings
    chain: ChainContext
    fetcher: ContractFetcher
    analysis_engine: ContractAnalysisEngine
    tool_generator: DynamicToolGenerator
    explorer: ContractExplorer
    knowledge: KnowledgeBase
    step_runner: ActionStepRunner
    interpreter: TaskInterpreter
    workflow_engine: ContractWorkflowEngine

    @classmethod
    def build(
        cls,
        settings: Settings | None = None,
        chain: ChainContext | None = None,
        fetcher: ContractFetcher | None = None,
        compiler: ContractCompiler | None = None,
        uploader: StorageUploader | None = None,
    ) -> "EngineContainer":
        settings = settings or get_settings()
        chain = chain or ChainContext.from_settings(settings)
        fetcher = fetcher or ContractFetcher(settings=settings)

        # The knowledge base reads analyzed contracts straight from the analysis cache
        contracts: KeyedCache[ContractInfo] = KeyedCache(name="contracts", key_fn=address_key)
        analysis_engine = ContractAnalysisEngine(chain, fetcher=fetcher, cache=contracts, settings=settings)
        tool_generator = DynamicToolGenerator(chain, settings=settings)
        explorer = ContractExplorer(chain, analysis_engine, tool_generator)
        knowledge = KnowledgeBase(contracts=contracts)
        step_runner = ActionStepRunner(chain, explorer, compiler=compiler, uploader=uploader, settings=settings)
        interpreter = TaskInterpreter(knowledge, step_runner)
        workflow_engine = ContractWorkflowEngine(chain, explorer, step_runner=step_runner, settings=settings)

        logger.info(
            "Engine components ready (network=%s, signer=%s)",
            chain.chain.name if chain.chain else settings.network,
            chain.has_signer,
        )
        return cls(
            settings=settings,
            chain=chain,
            fetcher=fetcher,
            analysis_engine=analysis_engine,
            tool_generator=tool_generator,
            explorer=explorer,
            knowledge=knowledge,
            step_runner=step_runner,
            interpreter=interpreter,
            workflow_engine=workflow_engine,
        )

    async def aclose(self) -> None:
        close = getattr(self.chain.client, "close", None)
        if close is not None:
            await close()
        await self.fetcher.close()


def get_container(request: Request) -> EngineContainer:
    return request.app.state.container
