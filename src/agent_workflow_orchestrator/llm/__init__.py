"""LLM package initialization."""

from agent_workflow_orchestrator.llm.client import (
    LLMClient,
    LLMConfigurationError,
    LLMError,
    LLMResponse,
    TransientLLMError,
)
from agent_workflow_orchestrator.llm.factory import LLMFactory
from agent_workflow_orchestrator.llm.pricing import PricingTable

__all__ = [
    "LLMClient",
    "LLMConfigurationError",
    "LLMError",
    "LLMFactory",
    "LLMResponse",
    "PricingTable",
    "TransientLLMError",
]
