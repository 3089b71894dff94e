"""Factory for creating LLM clients."""

import logging
from collections.abc import Callable

from agent_workflow_orchestrator.core.config import AgentAssignment, LLMConfig
from agent_workflow_orchestrator.llm.client import LLMClient, LLMConfigurationError
from agent_workflow_orchestrator.llm.llama_provider import LLaMAClient
from agent_workflow_orchestrator.llm.openai_provider import OpenAIClient

logger = logging.getLogger(__name__)

ClientBuilder = Callable[[AgentAssignment, LLMConfig], LLMClient]


def _build_openai(assignment: AgentAssignment, config: LLMConfig) -> LLMClient:
    return OpenAIClient(
        api_key=config.openai_api_key,
        model=assignment.model,
        temperature=assignment.temperature,
        max_tokens=assignment.max_tokens,
        base_url=assignment.base_url or config.openai_base_url,
        timeout=config.request_timeout_seconds,
    )


def _build_llama(assignment: AgentAssignment, config: LLMConfig) -> LLMClient:
    return LLaMAClient(
        model_path=config.llama_model_path,
        model=assignment.model,
        temperature=assignment.temperature,
        max_tokens=assignment.max_tokens,
        n_ctx=config.llama_n_ctx,
        n_threads=config.llama_n_threads,
    )


class LLMFactory:
    """Creates LLM clients from per-agent assignments.

    Providers are looked up in a registry so that tests and embedders can plug
    in their own backends with :meth:`register_provider`.
    """

    def __init__(self, config: LLMConfig | None = None) -> None:
        self.config = config or LLMConfig()
        self._builders: dict[str, ClientBuilder] = {
            "openai": _build_openai,
            "llama": _build_llama,
        }

    def register_provider(self, name: str, builder: ClientBuilder) -> None:
        self._builders[name.lower()] = builder

    def available_providers(self) -> list[str]:
        return sorted(self._builders)

    def create_client(self, assignment: AgentAssignment) -> LLMClient:
        """Create an LLM client for an agent assignment.

        Raises:
            LLMConfigurationError: If provider type is not supported.
        """
        provider = assignment.provider.lower()
        builder = self._builders.get(provider)
        if builder is None:
            raise LLMConfigurationError(
                f"Unsupported LLM provider: {assignment.provider}. "
                f"Available providers: {', '.join(self.available_providers())}"
            )

        logger.info(
            "Creating LLM client",
            extra={"provider": provider, "model": assignment.model},
        )
        return builder(assignment, self.config)
