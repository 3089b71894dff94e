"""Core configuration for the orchestrator."""

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from agent_workflow_orchestrator.core.logging import configure_logging
from agent_workflow_orchestrator.core.retry import RetryPolicy


class AgentAssignment(BaseModel):
    """Which provider/model backs a named agent."""

    provider: str = Field(description="LLM provider name, e.g. 'openai' or 'llama'")
    model: str = Field(description="Model identifier understood by the provider")
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int | None = Field(default=None, gt=0)
    base_url: str | None = Field(default=None, description="Override the provider endpoint")


class LLMConfig(BaseSettings):
    """Credentials and local model settings used by the LLM factory."""

    # OpenAI settings
    openai_api_key: str | None = Field(
        default=None,
        description="OpenAI API key",
    )
    openai_base_url: str | None = Field(
        default=None,
        description="Custom OpenAI-compatible endpoint",
    )
    request_timeout_seconds: float = Field(
        default=120.0,
        gt=0,
        description="Per-request timeout for remote providers",
    )

    # LLaMA settings
    llama_model_path: Path | None = Field(
        default=None,
        description="Path to LLaMA model file",
    )
    llama_n_ctx: int = Field(
        default=4096,
        gt=0,
        description="Context window size for LLaMA",
    )
    llama_n_threads: int | None = Field(
        default=None,
        description="Number of threads for LLaMA (None = auto)",
    )

    model_config = SettingsConfigDict(
        env_prefix="ORCHESTRATOR_LLM_",
        env_file=".env",
        extra="ignore",
    )


class RetryConfig(BaseSettings):
    """Backoff schedule for transient LLM failures."""

    max_retries: int = Field(default=3, ge=0)
    initial_delay_seconds: float = Field(default=1.0, ge=0.0)
    max_delay_seconds: float = Field(default=32.0, ge=0.0)
    backoff_multiplier: float = Field(default=2.0, ge=1.0)
    jitter_percent: float = Field(default=0.2, ge=0.0, le=1.0)

    model_config = SettingsConfigDict(
        env_prefix="ORCHESTRATOR_RETRY_",
        env_file=".env",
        extra="ignore",
    )

    def to_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.max_retries,
            initial_delay=self.initial_delay_seconds,
            max_delay=self.max_delay_seconds,
            backoff_multiplier=self.backoff_multiplier,
            jitter_percent=self.jitter_percent,
        )


class AgentPoolConfig(BaseSettings):
    """Resource limits for the shared agent pool."""

    max_concurrent_agents: int = Field(
        default=3,
        ge=1,
        description="Global ceiling on live agents across all workflows",
    )
    max_queue_size: int | None = Field(
        default=None,
        ge=0,
        description="Reject requests beyond this many waiters (None = unbounded)",
    )
    health_check_interval_seconds: float = Field(
        default=60.0,
        gt=0,
        description="How often the health monitor sweeps running agents",
    )
    hang_threshold_seconds: float = Field(
        default=3600.0,
        gt=0,
        description="A running invocation older than this is treated as hung",
    )
    destroy_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Upper bound for agent cleanup before force removal",
    )
    auto_cleanup_hung_agents: bool = Field(
        default=True,
        description="Start the background health monitor",
    )
    persona_dir: Path | None = Field(
        default=None,
        description="Directory holding <agent-name>.md persona files",
    )
    execution_log_dir: Path | None = Field(
        default=None,
        description="Where agent execution logs are flushed on destroy",
    )

    model_config = SettingsConfigDict(
        env_prefix="ORCHESTRATOR_POOL_",
        env_file=".env",
        extra="ignore",
    )


class StateConfig(BaseSettings):
    """Configuration for checkpoint persistence."""

    storage_path: Path = Field(
        default=Path(".state"),
        description="Directory holding one checkpoint file per workflow",
    )
    write_retries: int = Field(
        default=3,
        ge=0,
        description="Retries for a failed checkpoint read/write before escalating",
    )
    retry_delay_seconds: float = Field(
        default=0.1,
        ge=0.0,
        description="Initial delay between checkpoint retries",
    )

    model_config = SettingsConfigDict(
        env_prefix="ORCHESTRATOR_STATE_",
        env_file=".env",
        extra="ignore",
    )

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.write_retries,
            initial_delay=self.retry_delay_seconds,
            max_delay=max(self.retry_delay_seconds * 8, self.retry_delay_seconds),
            jitter_percent=0.0,
        )


class EngineConfig(BaseSettings):
    """Execution switches for workflow runs."""

    yolo_mode: bool = Field(
        default=False,
        description="Skip optional/interactive steps and auto-approve checkpoints",
    )
    max_goto_jumps: int = Field(
        default=100,
        ge=0,
        description="Maximum number of goto jumps taken in a single run",
    )
    project_root: Path = Field(
        default=Path("."),
        description="Root used for relative paths and the project-root variable",
    )
    installed_path: Path | None = Field(
        default=None,
        description="Value of installed-path (defaults to the instructions' folder)",
    )

    model_config = SettingsConfigDict(
        env_prefix="ORCHESTRATOR_ENGINE_",
        env_file=".env",
        extra="ignore",
    )


class OrchestratorConfig(BaseSettings):
    """Main configuration for the orchestrator."""

    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )
    json_logs: bool = Field(
        default=True,
        description="Emit structured JSON log lines",
    )

    project_id: str = Field(
        default="default",
        description="Project key used for cost attribution",
    )
    agent_assignments: dict[str, AgentAssignment] = Field(
        default_factory=dict,
        description="Agent name -> provider/model (JSON when set from the environment)",
    )
    config_variables: dict[str, Any] = Field(
        default_factory=dict,
        description="Project-level variables exposed to workflow templates",
    )

    llm: LLMConfig = Field(
        default_factory=LLMConfig,
        description="LLM configuration",
    )
    retry: RetryConfig = Field(
        default_factory=RetryConfig,
        description="Retry configuration for LLM calls",
    )
    pool: AgentPoolConfig = Field(
        default_factory=AgentPoolConfig,
        description="Agent pool configuration",
    )
    state: StateConfig = Field(
        default_factory=StateConfig,
        description="State configuration",
    )
    engine: EngineConfig = Field(
        default_factory=EngineConfig,
        description="Workflow engine configuration",
    )

    model_config = SettingsConfigDict(
        env_prefix="ORCHESTRATOR_",
        env_file=".env",
        extra="ignore",
    )

    def setup_logging(self) -> None:
        """Configure logging based on settings."""
        level = "DEBUG" if self.debug else self.log_level
        configure_logging(level, json_output=self.json_logs)
