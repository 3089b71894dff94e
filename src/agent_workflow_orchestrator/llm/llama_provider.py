"""Local LLaMA LLM client implementation."""

import logging
from pathlib import Path

from agent_workflow_orchestrator.llm.client import (
    LLMClient,
    LLMConfigurationError,
    LLMError,
    LLMResponse,
)

logger = logging.getLogger(__name__)


class LLaMAClient(LLMClient):
    """Local LLaMA model client.

    Requires llama-cpp-python to be installed:
        pip install llama-cpp-python
    """

    def __init__(
        self,
        *,
        model_path: Path | None,
        model: str,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        n_ctx: int = 4096,
        n_threads: int | None = None,
    ) -> None:
        """Initialize the LLaMA client.

        Raises:
            LLMConfigurationError: If model path is not provided or the
                llama-cpp-python package is missing.
        """
        if not model_path:
            raise LLMConfigurationError("LLaMA model path is required")

        try:
            from llama_cpp import Llama
        except ImportError as e:
            raise LLMConfigurationError(
                "llama-cpp-python is required for LLaMA provider. "
                "Install it with: pip install llama-cpp-python"
            ) from e

        self._model = model
        self.temperature = temperature
        self.max_tokens = max_tokens or 512

        logger.info(f"Loading LLaMA model from: {model_path}")

        self.llm = Llama(
            model_path=str(model_path),
            n_ctx=n_ctx,
            n_threads=n_threads,
            verbose=False,
        )

        logger.info("LLaMA model loaded successfully")

    @property
    def provider(self) -> str:
        return "llama"

    @property
    def model(self) -> str:
        return self._model

    def invoke(self, prompt: str) -> LLMResponse:
        logger.debug(f"Generating chat completion for prompt: {prompt[:100]}...")

        try:
            result = self.llm.create_chat_completion(
                messages=[{"role": "user", "content": prompt}],
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
        except (RuntimeError, ValueError) as e:
            raise LLMError(f"LLaMA generation failed: {e}") from e

        content = result["choices"][0]["message"]["content"] or ""
        usage = result.get("usage") or {}
        logger.debug(f"Generated {len(content)} characters")

        return LLMResponse(
            text=content,
            tokens_in=int(usage.get("prompt_tokens", 0)),
            tokens_out=int(usage.get("completion_tokens", 0)),
        )

    def close(self) -> None:
        close = getattr(self.llm, "close", None)
        if callable(close):
            close()
