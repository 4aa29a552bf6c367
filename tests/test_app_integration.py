"""App assembly: provider registration, service wiring and lifespan state."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from src.config.settings import (
    GeminiSettings,
    InstructionSettings,
    OpenAISettings,
    ProviderSettings,
    Settings,
    ToolSettings,
)
from src.gateway.app import build_chat_service, build_model_registry, lifespan


def _make_settings(tmp_path: Path, **overrides) -> Settings:
    workspace = tmp_path / "workspace"
    workspace.mkdir(exist_ok=True)
    values = {
        "openai": OpenAISettings(api_key="test-key", model="gpt-4o-mini"),
        "gemini": GeminiSettings(api_key=""),
        "provider": ProviderSettings(active="openai"),
        "tools": ToolSettings(
            workspace_dir=workspace,
            policy_path=tmp_path / "policy" / "tool_policy.json",
        ),
        "instructions": InstructionSettings(global_text="Global rules."),
    }
    values.update(overrides)
    return Settings(**values)


class TestBuildModelRegistry:
    def test_only_configured_providers_registered(self, tmp_path: Path) -> None:
        registry = build_model_registry(_make_settings(tmp_path))

        assert registry.available_providers() == ["openai"]
        assert registry.resolve().model == "gpt-4o-mini"

    def test_both_providers(self, tmp_path: Path) -> None:
        settings = _make_settings(
            tmp_path,
            gemini=GeminiSettings(api_key="g-key", model="gemini-2.5-flash"),
            provider=ProviderSettings(active="gemini"),
        )
        registry = build_model_registry(settings)

        assert sorted(registry.available_providers()) == ["gemini", "openai"]
        assert registry.default_name == "gemini"

    def test_active_provider_without_key_fails_fast(self, tmp_path: Path) -> None:
        settings = _make_settings(tmp_path, provider=ProviderSettings(active="gemini"))

        with pytest.raises(RuntimeError, match="Active provider 'gemini' is not configured"):
            build_model_registry(settings)


class TestBuildChatService:
    def test_builtin_groups_reported(self, tmp_path: Path) -> None:
        service = build_chat_service(_make_settings(tmp_path))

        assert [g["id"] for g in service.tool_status()] == ["filesystem", "utils"]

    def test_instructions_read_on_demand(self, tmp_path: Path) -> None:
        settings = _make_settings(tmp_path)
        service = build_chat_service(settings)
        project_file = settings.tools.workspace_dir / settings.instructions.project_file
        project_file.parent.mkdir(parents=True)
        project_file.write_text("Project rules.", encoding="utf-8")

        from src.bus.topics import FixedTopic, FixedTopicName

        producer = service.producer_for(FixedTopic(FixedTopicName.custom_instructions))
        assert producer() == {"text": "Global rules.\n\n---\n\nProject rules."}


@pytest.mark.asyncio()
async def test_lifespan_exposes_service_and_bus(tmp_path: Path) -> None:
    app = MagicMock()
    app.state = MagicMock()

    with (
        patch("src.gateway.app.setup_logging") as mock_logging,
        patch("src.gateway.app.get_settings", return_value=_make_settings(tmp_path)),
    ):
        async with lifespan(app):
            service = app.state.chat_service
            assert app.state.bus is service.bus
            assert service.stop() is None

    mock_logging.assert_called_once_with(json_output=False, log_level="INFO")
