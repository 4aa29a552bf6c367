"""Tests for pydantic-settings configuration sections."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from src.config.settings import (
    DEFAULT_MAX_STEPS,
    GeminiSettings,
    InstructionSettings,
    ProviderSettings,
    Settings,
    StreamSettings,
    ToolSettings,
)


class TestProviderSettings:
    def test_default_active_openai(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("PROVIDER_ACTIVE", raising=False)
        assert ProviderSettings().active == "openai"

    def test_active_gemini_valid(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PROVIDER_ACTIVE", "gemini")
        assert ProviderSettings().active == "gemini"

    def test_active_unknown_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PROVIDER_ACTIVE", "unknown")
        with pytest.raises(ValidationError, match="PROVIDER_ACTIVE must be one of"):
            ProviderSettings()


class TestGeminiSettings:
    def test_empty_api_key_allowed(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        assert GeminiSettings().api_key == ""

    def test_default_base_url(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("GEMINI_BASE_URL", raising=False)
        assert "generativelanguage.googleapis.com" in GeminiSettings().base_url


class TestStreamSettings:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for var in ("STREAM_MAX_STEPS", "STREAM_REPAIR_ENABLED", "STREAM_REPAIR_TEMPERATURE"):
            monkeypatch.delenv(var, raising=False)
        s = StreamSettings()
        assert s.max_steps == DEFAULT_MAX_STEPS == 100
        assert s.repair_enabled is True
        assert s.repair_temperature is None

    def test_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("STREAM_MAX_STEPS", "7")
        monkeypatch.setenv("STREAM_REPAIR_ENABLED", "false")
        s = StreamSettings()
        assert s.max_steps == 7
        assert s.repair_enabled is False

    def test_zero_steps_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("STREAM_MAX_STEPS", "0")
        with pytest.raises(ValidationError):
            StreamSettings()

    def test_repair_temperature_range(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("STREAM_REPAIR_TEMPERATURE", "3.5")
        with pytest.raises(ValidationError, match="repair_temperature"):
            StreamSettings()


class TestToolSettings:
    def test_paths_from_env(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.setenv("TOOLS_WORKSPACE_DIR", str(tmp_path))
        monkeypatch.setenv("TOOLS_POLICY_PATH", str(tmp_path / "p.json"))
        s = ToolSettings()
        assert s.workspace_dir == tmp_path
        assert s.policy_path == tmp_path / "p.json"


class TestInstructionSettings:
    def test_absolute_project_file_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("INSTRUCTIONS_PROJECT_FILE", "/etc/instructions.md")
        with pytest.raises(ValidationError, match="must be relative"):
            InstructionSettings()


class TestRootSettings:
    def test_requires_a_provider_key(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        with pytest.raises(ValidationError, match="At least one provider"):
            Settings()

    def test_gemini_only_is_enough(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        monkeypatch.setenv("GEMINI_API_KEY", "g-key")
        assert Settings().gemini.api_key == "g-key"
