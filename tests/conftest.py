"""Test configuration and fixtures."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from pathlib import Path

import pytest

from agent_workflow_orchestrator.agents.pool import AgentPool
from agent_workflow_orchestrator.agents.project_config import StaticProjectConfig
from agent_workflow_orchestrator.core.config import (
    AgentAssignment,
    AgentPoolConfig,
    EngineConfig,
    LLMConfig,
    StateConfig,
)
from agent_workflow_orchestrator.core.events import EventType, OrchestratorEvent
from agent_workflow_orchestrator.core.retry import RetryPolicy
from agent_workflow_orchestrator.llm.client import LLMClient, LLMResponse
from agent_workflow_orchestrator.llm.factory import LLMFactory
from agent_workflow_orchestrator.llm.pricing import ModelPrice, PricingTable
from agent_workflow_orchestrator.state.store import InMemoryStateStore


class FakeLLMClient(LLMClient):
    """Scripted client: raises queued failures first, then replies."""

    def __init__(
        self,
        model: str = "fake-model",
        *,
        failures: list[Exception] | None = None,
        replies: list[str] | None = None,
    ) -> None:
        self._model = model
        self.failures = list(failures or [])
        self.replies = list(replies or [])
        self.prompts: list[str] = []
        self.closed = False
        self.on_invoke: Callable[[], None] | None = None
        self.on_close: Callable[[], None] | None = None

    @property
    def provider(self) -> str:
        return "fake"

    @property
    def model(self) -> str:
        return self._model

    def invoke(self, prompt: str) -> LLMResponse:
        self.prompts.append(prompt)
        if self.on_invoke is not None:
            self.on_invoke()
        if self.failures:
            raise self.failures.pop(0)
        text = self.replies.pop(0) if self.replies else f"reply to: {prompt}"
        return LLMResponse(text=text, tokens_in=1000, tokens_out=500)

    def close(self) -> None:
        if self.on_close is not None:
            self.on_close()
        self.closed = True


class FakeProvider:
    """Client builder that keeps every client it hands out."""

    def __init__(self) -> None:
        self.clients: list[FakeLLMClient] = []
        self.next_failures: list[Exception] = []

    def __call__(self, assignment: AgentAssignment, config: LLMConfig) -> LLMClient:
        client = FakeLLMClient(assignment.model, failures=self.next_failures)
        self.next_failures = []
        self.clients.append(client)
        return client


class EventRecorder:
    def __init__(self) -> None:
        self.events: list[OrchestratorEvent] = []

    def emit(self, event: OrchestratorEvent) -> None:
        self.events.append(event)

    def types(self) -> list[EventType]:
        return [e.type for e in self.events]

    def of_type(self, event_type: EventType) -> list[OrchestratorEvent]:
        return [e for e in self.events if e.type is event_type]


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture(autouse=True)
def _keep_pytest_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    """Stop OrchestratorConfig.setup_logging from replacing pytest's handlers."""
    monkeypatch.setattr(
        "agent_workflow_orchestrator.core.config.configure_logging",
        lambda *_args, **_kwargs: None,
    )


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def llm_factory(fake_provider: FakeProvider) -> LLMFactory:
    factory = LLMFactory(LLMConfig())
    factory.register_provider("fake", fake_provider)
    return factory


@pytest.fixture
def project_config() -> StaticProjectConfig:
    return StaticProjectConfig(
        project_id="proj-1",
        agent_assignments={
            "analyst": AgentAssignment(provider="fake", model="fake-model"),
            "architect": AgentAssignment(provider="fake", model="fake-large"),
        },
        variables={"team": "platform"},
    )


@pytest.fixture
def pricing() -> PricingTable:
    return PricingTable({"fake": [("", ModelPrice(1.0, 2.0))]})


@pytest.fixture
def reply_cost() -> float:
    """Cost of one FakeLLMClient reply under the ``pricing`` fixture."""
    return 1000 / 1_000_000 * 1.0 + 500 / 1_000_000 * 2.0


@pytest.fixture
def fast_retry() -> RetryPolicy:
    return RetryPolicy(max_retries=2, initial_delay=0.0, max_delay=0.0, jitter_percent=0.0)


@pytest.fixture
def events() -> EventRecorder:
    return EventRecorder()


@pytest.fixture
def make_pool(
    llm_factory: LLMFactory,
    project_config: StaticProjectConfig,
    pricing: PricingTable,
    fast_retry: RetryPolicy,
    events: EventRecorder,
) -> Iterator[Callable[..., AgentPool]]:
    """Build pools with config overrides; all are shut down after the test."""
    pools: list[AgentPool] = []

    def _make(*, clock: Callable[[], float] | None = None, **overrides: object) -> AgentPool:
        settings = {"max_concurrent_agents": 2, "destroy_timeout_seconds": 5.0, **overrides}
        kwargs: dict[str, object] = {}
        if clock is not None:
            kwargs["clock"] = clock
        pool = AgentPool(
            llm_factory,
            project_config,
            AgentPoolConfig(**settings),
            retry_policy=fast_retry,
            pricing=pricing,
            events=events,
            sleep=lambda _delay: None,
            **kwargs,
        )
        pools.append(pool)
        return pool

    yield _make

    for pool in pools:
        pool.shutdown()


@pytest.fixture
def pool(make_pool: Callable[..., AgentPool]) -> AgentPool:
    return make_pool()


@pytest.fixture
def memory_store() -> InMemoryStateStore:
    return InMemoryStateStore()


@pytest.fixture
def state_config(tmp_path: Path) -> StateConfig:
    """Provide a test state configuration."""
    return StateConfig(storage_path=tmp_path / ".state", retry_delay_seconds=0.0)


@pytest.fixture
def engine_config(tmp_path: Path) -> EngineConfig:
    return EngineConfig(project_root=tmp_path)


@pytest.fixture
def yolo_config(tmp_path: Path) -> EngineConfig:
    return EngineConfig(project_root=tmp_path, yolo_mode=True)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
