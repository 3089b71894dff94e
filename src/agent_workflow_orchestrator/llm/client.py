"""Abstract base class for LLM clients."""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from agent_workflow_orchestrator.core.errors import OrchestratorError


class LLMError(OrchestratorError):
    """Non-retryable provider failure (auth, bad request, ...)."""


class TransientLLMError(LLMError):
    """Provider failure worth retrying (rate limit, timeout, 5xx, network)."""


class LLMConfigurationError(LLMError):
    """Unknown provider or missing credentials."""


@dataclass(frozen=True, slots=True)
class LLMResponse:
    text: str
    tokens_in: int
    tokens_out: int


class LLMClient(ABC):
    """A handle bound to one provider/model pair.

    This interface allows pluggable LLM backends (OpenAI, LLaMA, etc.)
    """

    @property
    @abstractmethod
    def provider(self) -> str:
        """Provider name used for pricing lookups."""

    @property
    @abstractmethod
    def model(self) -> str:
        """Model identifier."""

    @abstractmethod
    def invoke(self, prompt: str) -> LLMResponse:
        """Send a prompt and return the complete reply with token usage.

        Raises:
            TransientLLMError: For failures the caller may retry.
            LLMError: For everything else.
        """

    def close(self) -> None:
        """Release network connections or model memory."""
        return None
