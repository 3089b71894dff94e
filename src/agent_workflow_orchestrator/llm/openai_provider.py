"""OpenAI LLM client implementation."""

import logging

import openai
from openai import OpenAI

from agent_workflow_orchestrator.llm.client import (
    LLMClient,
    LLMConfigurationError,
    LLMError,
    LLMResponse,
    TransientLLMError,
)

logger = logging.getLogger(__name__)

_TRANSIENT_ERRORS: tuple[type[Exception], ...] = (
    openai.APIConnectionError,
    openai.APITimeoutError,
    openai.RateLimitError,
    openai.InternalServerError,
)


class OpenAIClient(LLMClient):
    """OpenAI chat-completions client bound to one model."""

    def __init__(
        self,
        *,
        api_key: str | None,
        model: str,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        base_url: str | None = None,
        timeout: float = 120.0,
    ) -> None:
        """Initialize the OpenAI client.

        Raises:
            LLMConfigurationError: If API key is not provided.
        """
        if not api_key:
            raise LLMConfigurationError("OpenAI API key is required")

        # Retries are owned by the agent pool so that every attempt is visible there.
        self.client = OpenAI(api_key=api_key, base_url=base_url, timeout=timeout, max_retries=0)
        self._model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

        logger.info(f"OpenAI client initialized with model: {self._model}")

    @property
    def provider(self) -> str:
        return "openai"

    @property
    def model(self) -> str:
        return self._model

    def invoke(self, prompt: str) -> LLMResponse:
        logger.debug(f"Generating completion for prompt: {prompt[:100]}...")

        try:
            response = self.client.chat.completions.create(
                model=self._model,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
        except _TRANSIENT_ERRORS as e:
            raise TransientLLMError(f"OpenAI request failed transiently: {e}") from e
        except openai.OpenAIError as e:
            raise LLMError(f"OpenAI request failed: {e}") from e

        content = response.choices[0].message.content or ""
        usage = response.usage
        tokens_in = usage.prompt_tokens if usage else 0
        tokens_out = usage.completion_tokens if usage else 0
        logger.debug(f"Generated {len(content)} characters")

        return LLMResponse(text=content, tokens_in=tokens_in, tokens_out=tokens_out)

    def close(self) -> None:
        self.client.close()
