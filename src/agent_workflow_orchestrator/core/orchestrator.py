"""Main orchestrator implementation."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from types import TracebackType

from agent_workflow_orchestrator.agents.persona import PersonaLoader
from agent_workflow_orchestrator.agents.pool import AgentPool
from agent_workflow_orchestrator.agents.project_config import ProjectConfig, StaticProjectConfig
from agent_workflow_orchestrator.core.config import OrchestratorConfig
from agent_workflow_orchestrator.core.events import EventBus
from agent_workflow_orchestrator.llm.factory import LLMFactory
from agent_workflow_orchestrator.llm.pricing import PricingTable
from agent_workflow_orchestrator.state.models import WorkflowExecutionState
from agent_workflow_orchestrator.state.store import FileStateStore, StateStore
from agent_workflow_orchestrator.workflow.collaborators import InputProvider
from agent_workflow_orchestrator.workflow.definition import WorkflowDefinition
from agent_workflow_orchestrator.workflow.engine import WorkflowEngine

logger = logging.getLogger(__name__)


class Orchestrator:
    """Wires configuration, the shared agent pool and checkpoint storage.

    One orchestrator owns exactly one :class:`AgentPool`; every engine it
    creates borrows agents from that pool.
    """

    def __init__(
        self,
        config: OrchestratorConfig | None = None,
        *,
        project_config: ProjectConfig | None = None,
        llm_factory: LLMFactory | None = None,
        state_store: StateStore | None = None,
        events: EventBus | None = None,
        pricing: PricingTable | None = None,
        start_health_monitor: bool | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            config: Configuration object. If None, loads from environment.
            project_config: Agent assignments and project variables. Built from
                ``config`` when omitted.
            llm_factory: Override the client factory (mostly for tests).
            state_store: Override checkpoint storage.
            events: Event bus shared by the pool and all engines.
            pricing: Token pricing table.
            start_health_monitor: Defaults to ``config.pool.auto_cleanup_hung_agents``.
        """
        self.config = config or OrchestratorConfig()
        self.config.setup_logging()

        logger.info("Initializing Agent Workflow Orchestrator")

        self.events = events or EventBus()
        self.project_config: ProjectConfig = project_config or StaticProjectConfig(
            project_id=self.config.project_id,
            agent_assignments=self.config.agent_assignments,
            variables=self.config.config_variables,
        )
        self.llm_factory = llm_factory or LLMFactory(self.config.llm)
        self.state_store: StateStore = state_store or FileStateStore(self.config.state)
        self.pool = AgentPool(
            self.llm_factory,
            self.project_config,
            self.config.pool,
            retry_policy=self.config.retry.to_policy(),
            pricing=pricing,
            events=self.events,
            persona_loader=PersonaLoader(self.config.pool.persona_dir),
        )

        if start_health_monitor is None:
            start_health_monitor = self.config.pool.auto_cleanup_hung_agents
        if start_health_monitor:
            self.pool.start_health_monitor()

        logger.info("Orchestrator initialized successfully")

    def create_engine(
        self,
        definition: WorkflowDefinition,
        *,
        input_provider: InputProvider | None = None,
    ) -> WorkflowEngine:
        return WorkflowEngine(
            definition,
            agent_pool=self.pool,
            state_store=self.state_store,
            config=self.config.engine,
            project_config=self.project_config,
            input_provider=input_provider,
            events=self.events,
        )

    def run_workflow(
        self,
        definition: WorkflowDefinition,
        *,
        resume: bool = True,
        input_provider: InputProvider | None = None,
    ) -> WorkflowExecutionState:
        logger.info(f"Running workflow: {definition.workflow_id}")
        engine = self.create_engine(definition, input_provider=input_provider)
        return engine.execute(resume=resume)

    def run_workflows(
        self, definitions: list[WorkflowDefinition], *, resume: bool = True
    ) -> dict[str, WorkflowExecutionState | BaseException]:
        """Run several workflows in parallel threads over the shared pool.

        Failures do not cancel sibling runs; each entry in the result is the
        final checkpoint or the exception that ended that run.
        """
        results: dict[str, WorkflowExecutionState | BaseException] = {}
        if not definitions:
            return results

        with ThreadPoolExecutor(
            max_workers=len(definitions), thread_name_prefix="workflow"
        ) as executor:
            futures = {
                d.workflow_id: executor.submit(self.run_workflow, d, resume=resume)
                for d in definitions
            }
            for workflow_id, future in futures.items():
                error = future.exception()
                results[workflow_id] = error if error is not None else future.result()
        return results

    def shutdown(self) -> None:
        logger.info("Shutting down orchestrator")
        self.pool.shutdown()

    def __enter__(self) -> Orchestrator:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.shutdown()
