from __future__ import annotations

from pathlib import Path
from typing import Self

from dotenv import load_dotenv
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env once at module import so every BaseSettings subclass sees the env vars
load_dotenv()

DEFAULT_MAX_STEPS = 100


class OpenAISettings(BaseSettings):
    """OpenAI API settings. Env vars prefixed with OPENAI_."""

    model_config = SettingsConfigDict(env_prefix="OPENAI_")

    api_key: str = ""  # empty = provider disabled
    model: str = "gpt-4o-mini"
    base_url: str | None = None


class GeminiSettings(BaseSettings):
    """Gemini API settings via OpenAI-compatible endpoint."""

    model_config = SettingsConfigDict(env_prefix="GEMINI_")

    api_key: str = ""  # empty = provider disabled
    model: str = "gemini-2.5-flash"
    base_url: str = "https://generativelanguage.googleapis.com/v1beta/openai/"


class ProviderSettings(BaseSettings):
    """Provider routing settings."""

    model_config = SettingsConfigDict(env_prefix="PROVIDER_")

    active: str = "openai"  # fallback when ChatSendParams.provider is not specified

    @field_validator("active")
    @classmethod
    def _validate_active(cls, v: str) -> str:
        allowed = {"openai", "gemini"}
        if v not in allowed:
            msg = f"PROVIDER_ACTIVE must be one of {allowed} (got '{v}')"
            raise ValueError(msg)
        return v


class GatewaySettings(BaseSettings):
    """Gateway server settings. Env vars prefixed with GATEWAY_."""

    model_config = SettingsConfigDict(env_prefix="GATEWAY_")

    host: str = "0.0.0.0"
    port: int = 19789
    json_logs: bool = False
    log_level: str = "INFO"


class StreamSettings(BaseSettings):
    """Generation session settings. Env vars prefixed with STREAM_.

    max_steps bounds model <-> tool round trips within one session.
    """

    model_config = SettingsConfigDict(env_prefix="STREAM_")

    max_steps: int = Field(DEFAULT_MAX_STEPS, ge=1, le=500)
    repair_enabled: bool = True
    repair_temperature: float | None = None

    @field_validator("repair_temperature")
    @classmethod
    def _validate_repair_temperature(cls, v: float | None) -> float | None:
        if v is not None and not (0.0 <= v <= 2.0):
            raise ValueError(f"repair_temperature must be in [0.0, 2.0], got {v}")
        return v


class ToolSettings(BaseSettings):
    """Tool catalogue and authorization policy settings. Env prefix TOOLS_."""

    model_config = SettingsConfigDict(env_prefix="TOOLS_")

    workspace_dir: Path = Path("workspace")
    policy_path: Path = Path("workspace/.switchboard/tool_policy.json")
    max_read_bytes: int = Field(256_000, gt=0)


class InstructionSettings(BaseSettings):
    """Custom instruction sources. Env vars prefixed with INSTRUCTIONS_."""

    model_config = SettingsConfigDict(env_prefix="INSTRUCTIONS_")

    global_text: str = ""
    project_file: Path = Path(".switchboard/custom_instructions.md")

    @field_validator("project_file")
    @classmethod
    def _validate_project_file(cls, v: Path) -> Path:
        if v.is_absolute():
            raise ValueError(
                f"INSTRUCTIONS_PROJECT_FILE must be relative to the workspace (got '{v}')"
            )
        return v


class Settings(BaseSettings):
    """Root settings composing all sub-configurations."""

    model_config = SettingsConfigDict(extra="ignore")

    openai: OpenAISettings = Field(default_factory=OpenAISettings)
    gemini: GeminiSettings = Field(default_factory=GeminiSettings)
    provider: ProviderSettings = Field(default_factory=ProviderSettings)
    gateway: GatewaySettings = Field(default_factory=GatewaySettings)
    stream: StreamSettings = Field(default_factory=StreamSettings)
    tools: ToolSettings = Field(default_factory=ToolSettings)
    instructions: InstructionSettings = Field(default_factory=InstructionSettings)

    @model_validator(mode="after")
    def _validate(self) -> Self:
        if not (self.openai.api_key or self.gemini.api_key):
            raise ValueError(
                "At least one provider must be configured "
                "(set OPENAI_API_KEY or GEMINI_API_KEY)."
            )
        return self


def get_settings() -> Settings:
    """Load and validate settings. Raises ValidationError on missing required fields."""
    return Settings()
