"""Bounded pool of LLM-backed agents shared by every workflow engine.

The pool is the only place that holds agent records. It enforces the global
``max_concurrent_agents`` ceiling, services waiting requests strictly in FIFO
order, retries transient provider failures, and keeps the cost ledger.

Slots are reserved under the pool lock before an agent is built, so client
construction and persona loading happen outside the lock without letting a
late caller overtake the queue.
"""

from __future__ import annotations

import json
import logging
import re
import threading
import time
import uuid
from collections import deque
from collections.abc import Callable, Iterator
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from contextlib import contextmanager
from dataclasses import replace
from datetime import UTC, datetime

from agent_workflow_orchestrator.agents.ledger import CostLedger
from agent_workflow_orchestrator.agents.models import (
    Agent,
    AgentContext,
    AgentResponse,
    AgentSnapshot,
    AgentStatus,
    AgentTask,
    CostMetrics,
    PoolStats,
    QueuedTaskInfo,
)
from agent_workflow_orchestrator.agents.persona import PersonaLoader
from agent_workflow_orchestrator.agents.project_config import ProjectConfig
from agent_workflow_orchestrator.core.config import AgentAssignment, AgentPoolConfig
from agent_workflow_orchestrator.core.errors import (
    AgentInvocationError,
    AgentPoolError,
    NotFoundError,
    RejectedError,
)
from agent_workflow_orchestrator.core.events import (
    EventSink,
    EventType,
    NullEventSink,
    OrchestratorEvent,
)
from agent_workflow_orchestrator.core.retry import RetryPolicy
from agent_workflow_orchestrator.llm.client import LLMError, TransientLLMError
from agent_workflow_orchestrator.llm.factory import LLMFactory
from agent_workflow_orchestrator.llm.pricing import PricingTable

logger = logging.getLogger(__name__)

_AGENT_NAME = re.compile(r"^[A-Za-z0-9_-]+$")


class AgentPool:
    def __init__(
        self,
        llm_factory: LLMFactory,
        project_config: ProjectConfig,
        config: AgentPoolConfig | None = None,
        *,
        retry_policy: RetryPolicy | None = None,
        pricing: PricingTable | None = None,
        events: EventSink | None = None,
        persona_loader: PersonaLoader | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config or AgentPoolConfig()
        self._llm_factory = llm_factory
        self._project_config = project_config
        self._retry = retry_policy or RetryPolicy()
        self._pricing = pricing or PricingTable()
        self._events: EventSink = events or NullEventSink()
        self._personas = persona_loader or PersonaLoader(self.config.persona_dir)
        self._clock = clock
        self._sleep = sleep

        self._lock = threading.Lock()
        self._agents: dict[str, Agent] = {}
        self._destroying: set[str] = set()
        self._queue: deque[AgentTask] = deque()
        self._reserved = 0
        self._total_created = 0
        self._closed = False
        self._ledger = CostLedger()

        self._cleanup_executor = ThreadPoolExecutor(
            max_workers=self.config.max_concurrent_agents * 2,
            thread_name_prefix="agent-cleanup",
        )
        self._monitor_stop = threading.Event()
        self._monitor_thread: threading.Thread | None = None

        logger.info(
            "Agent pool initialized",
            extra={"max_concurrent_agents": self.config.max_concurrent_agents},
        )

    @property
    def max_concurrent_agents(self) -> int:
        return self.config.max_concurrent_agents

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def request_agent(
        self,
        name: str,
        context: AgentContext | None = None,
        llm_config: AgentAssignment | None = None,
    ) -> Future[AgentSnapshot]:
        """Ask for an agent; the returned future resolves once it exists.

        With a free slot and nobody waiting the agent is built before this
        returns. Otherwise the request joins the FIFO queue.
        """
        if not _AGENT_NAME.match(name):
            raise AgentPoolError(
                f"Invalid agent name {name!r}: use letters, digits, '-' and '_' only",
                "INVALID_AGENT_NAME",
                name,
            )

        task = AgentTask(
            name=name,
            llm_config=llm_config,
            context=context or AgentContext(),
            future=Future(),
        )

        with self._lock:
            if self._closed:
                raise AgentPoolError("Agent pool is shut down", "POOL_CLOSED", name)
            immediate = not self._queue and self._has_capacity_locked()
            if immediate:
                self._reserved += 1
            else:
                limit = self.config.max_queue_size
                if limit is not None and len(self._queue) >= limit:
                    raise RejectedError(
                        f"Agent queue is full ({limit} waiting); request for {name!r} rejected",
                        {"agent_name": name, "queue_size": len(self._queue)},
                    )
                self._queue.append(task)
                position = len(self._queue)
                active = len(self._agents)

        if immediate:
            self._spawn(task)
        else:
            logger.info(
                "Agent pool at capacity; request queued",
                extra={
                    "agent_name": name,
                    "queue_position": position,
                    "active_agents": active,
                    "max_concurrent_agents": self.max_concurrent_agents,
                },
            )
        return task.future

    def create_agent(
        self,
        name: str,
        context: AgentContext | None = None,
        llm_config: AgentAssignment | None = None,
        *,
        timeout: float | None = None,
    ) -> AgentSnapshot:
        """Blocking variant of :meth:`request_agent`."""
        return self.request_agent(name, context, llm_config).result(timeout=timeout)

    @contextmanager
    def agent_session(
        self,
        name: str,
        context: AgentContext | None = None,
        llm_config: AgentAssignment | None = None,
    ) -> Iterator[AgentSnapshot]:
        """Borrow an agent for the duration of a ``with`` block."""
        agent = self.create_agent(name, context, llm_config)
        try:
            yield agent
        finally:
            try:
                self.destroy_agent(agent.id)
            except NotFoundError:
                # The health monitor already reclaimed it.
                logger.debug("Agent already gone at session end", extra={"agent_id": agent.id})

    def _has_capacity_locked(self) -> bool:
        return len(self._agents) + self._reserved < self.max_concurrent_agents

    def _take_ready_tasks_locked(self) -> list[AgentTask]:
        ready: list[AgentTask] = []
        while self._queue and self._has_capacity_locked():
            ready.append(self._queue.popleft())
            self._reserved += 1
        return ready

    def _release_reservation(self) -> None:
        with self._lock:
            self._reserved -= 1
            ready = self._take_ready_tasks_locked()
        for task in ready:
            self._spawn(task)

    def _spawn(self, task: AgentTask) -> None:
        """Build the agent for ``task``. The caller holds a slot reservation."""
        if not task.future.set_running_or_notify_cancel():
            logger.info("Queued agent request was cancelled", extra={"agent_name": task.name})
            self._release_reservation()
            return

        try:
            agent = self._build_agent(task)
        except Exception as e:
            logger.error(
                "Agent creation failed", extra={"agent_name": task.name, "error": str(e)}
            )
            task.reject(e)
            self._release_reservation()
            return

        with self._lock:
            self._reserved -= 1
            if self._closed:
                closed = True
            else:
                closed = False
                self._agents[agent.id] = agent
                self._total_created += 1
                active = len(self._agents)
            snapshot = agent.snapshot()

        if closed:
            agent.client.close()
            task.reject(AgentPoolError("Agent pool is shut down", "POOL_CLOSED", task.name))
            return

        logger.info(
            "Agent created",
            extra={
                "agent_id": agent.id,
                "agent_name": agent.name,
                "provider": snapshot.provider,
                "model": snapshot.model,
                "active_agents": active,
            },
        )
        self._emit(
            EventType.AGENT_STARTED,
            {
                "agent_id": agent.id,
                "agent_name": agent.name,
                "provider": snapshot.provider,
                "model": snapshot.model,
                "workflow_id": agent.context.workflow_id,
            },
        )
        task.resolve(snapshot)

    def _build_agent(self, task: AgentTask) -> Agent:
        assignment = task.llm_config or self._project_config.get_agent_assignment(task.name)
        if assignment is None:
            raise AgentPoolError(
                f"Agent {task.name!r} not found in project configuration",
                "AGENT_NOT_CONFIGURED",
                task.name,
            )

        persona = self._personas.load(task.name)

        try:
            client = self._llm_factory.create_client(assignment)
        except LLMError as e:
            raise AgentPoolError(
                f"Failed to create LLM client for agent {task.name!r}: {e}",
                "LLM_CLIENT_CREATION_FAILED",
                task.name,
            ) from e

        context = task.context
        if context.project_id is None:
            context = replace(context, project_id=self._project_config.project_id)

        return Agent(
            id=uuid.uuid4().hex,
            name=task.name,
            persona_ref=persona.ref,
            persona=persona.text,
            client=client,
            context=context,
            start_time=datetime.now(UTC),
            started_monotonic=self._clock(),
        )

    # ------------------------------------------------------------------
    # Invocation
    # ------------------------------------------------------------------

    def invoke_agent(self, agent_id: str, prompt: str) -> AgentResponse:
        """Send ``prompt`` to an agent and bill the successful attempt.

        Raises:
            NotFoundError: Unknown or destroyed agent.
            AgentPoolError: The agent is busy or in the error state.
            AgentInvocationError: The provider kept failing after retries.
        """
        with self._lock:
            agent = self._agents.get(agent_id)
            if agent is None or agent.status is AgentStatus.DESTROYED:
                raise NotFoundError(
                    f"Agent {agent_id!r} not found; it may have been destroyed",
                    {"agent_id": agent_id},
                )
            if agent.status is AgentStatus.RUNNING:
                raise AgentPoolError(
                    f"Agent {agent.name!r} is already running", "AGENT_BUSY", agent.name
                )
            if agent.status is AgentStatus.ERROR:
                raise AgentPoolError(
                    f"Agent {agent.name!r} is in the error state", "AGENT_IN_ERROR", agent.name
                )
            agent.status = AgentStatus.RUNNING
            agent.running_since = self._clock()
            client = agent.client
            full_prompt = f"{agent.persona}\n\n{prompt}" if agent.persona else prompt

        logger.info(
            "Invoking agent",
            extra={"agent_id": agent_id, "agent_name": agent.name, "prompt_chars": len(prompt)},
        )
        started = self._clock()
        try:
            reply, attempts = self._retry.call(
                lambda: client.invoke(full_prompt),
                retry_on=(TransientLLMError,),
                description=f"invoke agent {agent.name}",
                sleep=self._sleep,
            )
        except Exception as e:
            with self._lock:
                if agent_id in self._agents:
                    agent.status = AgentStatus.ERROR
                    agent.running_since = None
                    agent.execution_log.append(
                        {"at": datetime.now(UTC).isoformat(), "ok": False, "error": str(e)}
                    )
            logger.error(
                "Agent invocation failed",
                extra={"agent_id": agent_id, "agent_name": agent.name, "error": str(e)},
            )
            self._emit(
                EventType.AGENT_ERROR,
                {
                    "agent_id": agent_id,
                    "agent_name": agent.name,
                    "reason": "failed",
                    "error": str(e),
                    "prompt": prompt[:100],
                },
            )
            raise AgentInvocationError(
                f"Failed to invoke agent {agent.name!r} ({agent_id}): {e}",
                {"agent_id": agent_id, "agent_name": agent.name},
            ) from e

        latency = self._clock() - started
        cost = self._pricing.cost(client.provider, client.model, reply.tokens_in, reply.tokens_out)

        with self._lock:
            if agent_id not in self._agents:
                raise AgentInvocationError(
                    f"Agent {agent.name!r} ({agent_id}) was destroyed while running",
                    {"agent_id": agent_id, "agent_name": agent.name},
                )
            agent.estimated_cost += cost
            agent.invocations += 1
            agent.status = AgentStatus.IDLE
            agent.running_since = None
            agent.execution_log.append(
                {
                    "at": datetime.now(UTC).isoformat(),
                    "ok": True,
                    "tokens_in": reply.tokens_in,
                    "tokens_out": reply.tokens_out,
                    "cost": cost,
                    "latency_seconds": latency,
                    "attempts": attempts,
                }
            )

        self._ledger.record(
            agent_id=agent_id,
            agent_name=agent.name,
            workflow_id=agent.context.workflow_id,
            project_id=agent.context.project_id,
            cost=cost,
        )

        logger.info(
            "Agent invocation complete",
            extra={
                "agent_id": agent_id,
                "agent_name": agent.name,
                "latency_seconds": round(latency, 3),
                "cost": round(cost, 6),
                "tokens_in": reply.tokens_in,
                "tokens_out": reply.tokens_out,
                "attempts": attempts,
            },
        )
        self._emit(
            EventType.AGENT_INVOKED,
            {
                "agent_id": agent_id,
                "agent_name": agent.name,
                "cost": cost,
                "latency_seconds": latency,
                "attempts": attempts,
            },
        )
        return AgentResponse(
            agent_id=agent_id,
            text=reply.text,
            cost=cost,
            tokens_in=reply.tokens_in,
            tokens_out=reply.tokens_out,
            latency_seconds=latency,
            attempts=attempts,
        )

    # ------------------------------------------------------------------
    # Destruction
    # ------------------------------------------------------------------

    def destroy_agent(self, agent_id: str) -> None:
        """Flush logs, release the client, free the slot and wake the queue."""
        self._destroy(agent_id, reason="completed")

    def _destroy(self, agent_id: str, *, reason: str) -> None:
        with self._lock:
            agent = self._agents.get(agent_id)
            if agent is None or agent_id in self._destroying:
                raise NotFoundError(
                    f"Cannot destroy agent {agent_id!r}: agent not found", {"agent_id": agent_id}
                )
            self._destroying.add(agent_id)

        logger.info("Destroying agent", extra={"agent_id": agent_id, "agent_name": agent.name})
        elapsed = self._clock() - agent.started_monotonic
        cleanup = self._cleanup_executor.submit(self._cleanup, agent, elapsed)
        leaked = False
        try:
            cleanup.result(timeout=self.config.destroy_timeout_seconds)
        except FuturesTimeoutError:
            leaked = True
            logger.warning(
                "Agent cleanup exceeded timeout; force-removing (possible resource leak)",
                extra={
                    "agent_id": agent_id,
                    "agent_name": agent.name,
                    "timeout_seconds": self.config.destroy_timeout_seconds,
                },
            )
        except Exception:
            logger.exception(
                "Agent cleanup failed; force-removing",
                extra={"agent_id": agent_id, "agent_name": agent.name},
            )

        with self._lock:
            self._agents.pop(agent_id, None)
            self._destroying.discard(agent_id)
            agent.status = AgentStatus.DESTROYED
            agent.running_since = None
            active = len(self._agents)
            ready = self._take_ready_tasks_locked()

        logger.info(
            "Agent destroyed",
            extra={
                "agent_id": agent_id,
                "agent_name": agent.name,
                "execution_seconds": round(elapsed, 3),
                "total_cost": round(agent.estimated_cost, 6),
                "active_agents": active,
                "reason": reason,
            },
        )
        if reason == "completed":
            self._emit(
                EventType.AGENT_COMPLETED,
                {
                    "agent_id": agent_id,
                    "agent_name": agent.name,
                    "execution_seconds": elapsed,
                    "total_cost": agent.estimated_cost,
                    "provider": agent.client.provider,
                    "model": agent.client.model,
                    "resource_leak": leaked,
                },
            )

        for task in ready:
            self._spawn(task)

    def _cleanup(self, agent: Agent, elapsed: float) -> None:
        summary = {
            "agent_id": agent.id,
            "agent_name": agent.name,
            "workflow_id": agent.context.workflow_id,
            "start_time": agent.start_time.isoformat(),
            "end_time": datetime.now(UTC).isoformat(),
            "execution_seconds": elapsed,
            "total_cost": agent.estimated_cost,
            "invocations": agent.invocations,
            "provider": agent.client.provider,
            "model": agent.client.model,
        }
        logger.info("Agent execution summary", extra=summary)

        log_dir = self.config.execution_log_dir
        if log_dir is not None:
            log_dir.mkdir(parents=True, exist_ok=True)
            path = log_dir / f"{agent.name}-{agent.id}.jsonl"
            with open(path, "w", encoding="utf-8") as f:
                for entry in agent.execution_log:
                    f.write(json.dumps(entry, ensure_ascii=False) + "\n")
                f.write(json.dumps({"summary": summary}, ensure_ascii=False) + "\n")

        agent.client.close()

    # ------------------------------------------------------------------
    # Health monitoring
    # ------------------------------------------------------------------

    def check_health(self, now: float | None = None) -> list[str]:
        """Force-destroy agents stuck in ``running``; return their ids."""
        now = self._clock() if now is None else now
        threshold = self.config.hang_threshold_seconds
        with self._lock:
            hung = [
                (agent, now - agent.running_since)
                for agent in self._agents.values()
                if agent.status is AgentStatus.RUNNING
                and agent.running_since is not None
                and now - agent.running_since > threshold
                and agent.id not in self._destroying
            ]

        reclaimed: list[str] = []
        for agent, running_for in hung:
            logger.warning(
                "Agent exceeded hang threshold; force-destroying",
                extra={
                    "agent_id": agent.id,
                    "agent_name": agent.name,
                    "running_seconds": round(running_for, 3),
                    "hang_threshold_seconds": threshold,
                },
            )
            self._emit(
                EventType.AGENT_ERROR,
                {
                    "agent_id": agent.id,
                    "agent_name": agent.name,
                    "reason": "hung",
                    "running_seconds": running_for,
                },
            )
            try:
                self._destroy(agent.id, reason="hung")
            except NotFoundError:
                continue
            reclaimed.append(agent.id)
        return reclaimed

    def start_health_monitor(self) -> None:
        if self._monitor_thread is not None and self._monitor_thread.is_alive():
            return
        self._monitor_stop.clear()
        self._monitor_thread = threading.Thread(
            target=self._monitor_loop, name="agent-pool-health", daemon=True
        )
        self._monitor_thread.start()

    def stop_health_monitor(self) -> None:
        self._monitor_stop.set()
        if self._monitor_thread is not None:
            self._monitor_thread.join(timeout=5)
            self._monitor_thread = None

    def _monitor_loop(self) -> None:
        while not self._monitor_stop.wait(self.config.health_check_interval_seconds):
            try:
                self.check_health()
            except Exception:
                logger.exception("Agent health check failed")

    def shutdown(self) -> None:
        """Stop monitoring, reject waiters and destroy every live agent."""
        logger.info("Shutting down agent pool")
        self.stop_health_monitor()

        with self._lock:
            self._closed = True
            pending = list(self._queue)
            self._queue.clear()
            agent_ids = list(self._agents)

        for task in pending:
            if task.future.set_running_or_notify_cancel():
                task.reject(AgentPoolError("Agent pool is shut down", "POOL_CLOSED", task.name))

        for agent_id in agent_ids:
            try:
                self._destroy(agent_id, reason="completed")
            except NotFoundError:
                continue

        self._cleanup_executor.shutdown(wait=False)
        logger.info("Agent pool shutdown complete")

    # ------------------------------------------------------------------
    # Queries (read-only snapshots)
    # ------------------------------------------------------------------

    def get_active_agents(self, name: str | None = None) -> list[AgentSnapshot]:
        with self._lock:
            agents = [a.snapshot() for a in self._agents.values()]
        if name is not None:
            agents = [a for a in agents if a.name == name]
        return agents

    def get_agent_by_id(self, agent_id: str) -> AgentSnapshot | None:
        with self._lock:
            agent = self._agents.get(agent_id)
            return agent.snapshot() if agent is not None else None

    def get_queued_tasks(self) -> list[QueuedTaskInfo]:
        with self._lock:
            return [
                QueuedTaskInfo(
                    name=task.name,
                    workflow_id=task.context.workflow_id,
                    queued_at=task.queued_at,
                    position=index + 1,
                )
                for index, task in enumerate(self._queue)
            ]

    def get_cost_metrics(self) -> CostMetrics:
        return self._ledger.snapshot()

    def get_stats(self) -> PoolStats:
        with self._lock:
            return PoolStats(
                active_agents=len(self._agents),
                max_concurrent_agents=self.max_concurrent_agents,
                queued_tasks=len(self._queue),
                total_agents_created=self._total_created,
                total_cost=self._ledger.total,
            )

    def reset_cost_ledger(self) -> None:
        self._ledger.reset()

    def _emit(self, event_type: EventType, payload: dict[str, object]) -> None:
        self._events.emit(OrchestratorEvent(type=event_type, payload=payload))
