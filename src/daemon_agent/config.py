"""Configuration management for the daemon agent."""

from __future__ import annotations

from dataclasses import dataclass, field

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from daemon_agent.types import BashApprovalLevel, InteractionMode, ReasoningEffort, VoiceInteractionType

DEFAULT_MODEL = "openrouter:openai/gpt-4o-mini"


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="DAEMON_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        protected_namespaces=(),
    )

    # Model
    model: str = Field(default=DEFAULT_MODEL, description="Model in provider:model format")
    subagent_model: str | None = Field(None, description="Model used by subagents, defaults to model")
    api_key: str | None = Field(None, description="API key for the LLM provider")
    api_base: str | None = Field(None, description="Optional API base URL")
    max_tokens: int = Field(default=4096, ge=1, description="Maximum tokens per model step")
    model_timeout_seconds: float | None = Field(default=None, gt=0, description="Timeout for one model step")

    # Agent loop
    max_steps: int = Field(default=100, ge=1, description="Maximum model steps per turn")
    subagent_max_steps: int = Field(default=30, ge=1, description="Maximum model steps per subagent")
    system_prompt: str | None = Field(None, description="Extra system prompt appended to the default one")
    disabled_tools: set[str] = Field(default_factory=set, description="Tool names hidden from the model")

    # Bash tool
    bash_approval_level: BashApprovalLevel = Field(default="dangerous", description="none, dangerous or all")
    bash_timeout_seconds: float = Field(default=30.0, gt=0, description="Default bash command timeout")
    bash_max_output_chars: int = Field(default=50_000, ge=1, description="Per-stream output limit")

    # Interaction
    interaction_mode: InteractionMode = Field(default="text", description="text or voice")
    voice_interaction_type: VoiceInteractionType = Field(default="direct", description="direct or review")
    reasoning_effort: ReasoningEffort = Field(default="medium", description="low, medium or high")
    speech_speed: float = Field(default=1.25, gt=0, description="Speech playback speed")


@dataclass
class Preferences:
    """Settings that may change while the daemon is running."""

    interaction_mode: InteractionMode = "text"
    voice_interaction_type: VoiceInteractionType = "direct"
    reasoning_effort: ReasoningEffort = "medium"
    bash_approval_level: BashApprovalLevel = "dangerous"
    speech_speed: float = 1.25
    tts_enabled: bool = False
    disabled_tools: set[str] = field(default_factory=set)

    @classmethod
    def from_settings(cls, settings: Settings) -> Preferences:
        return cls(
            interaction_mode=settings.interaction_mode,
            voice_interaction_type=settings.voice_interaction_type,
            reasoning_effort=settings.reasoning_effort,
            bash_approval_level=settings.bash_approval_level,
            speech_speed=settings.speech_speed,
            tts_enabled=settings.interaction_mode == "voice",
            disabled_tools=set(settings.disabled_tools),
        )


def get_settings(**overrides: object) -> Settings:
    """Load settings from the environment and .env, applying explicit overrides."""
    values = {key: value for key, value in overrides.items() if value is not None}
    return Settings(**values)  # type: ignore[arg-type]
