"""Tests for ModelRegistry and ModelHandle resolution."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from src.agent.provider_registry import ModelRegistry


def _registry() -> ModelRegistry:
    registry = ModelRegistry(default_provider="openai")
    registry.register("openai", MagicMock(name="openai_client"), "gpt-4o-mini")
    registry.register("gemini", MagicMock(name="gemini_client"), "gemini-2.5-flash")
    return registry


class TestModelRegistry:
    def test_resolve_default(self) -> None:
        handle = _registry().resolve()
        assert handle.provider == "openai"
        assert handle.model == "gpt-4o-mini"
        assert handle.enabled is True

    def test_resolve_with_model_override(self) -> None:
        handle = _registry().resolve("gemini", "gemini-2.5-pro")
        assert handle.provider == "gemini"
        assert handle.model == "gemini-2.5-pro"

    def test_unregistered_raises(self) -> None:
        with pytest.raises(KeyError, match="not registered"):
            _registry().resolve("claude")

    def test_disabled_provider_still_resolves(self) -> None:
        registry = _registry()
        registry.set_enabled("gemini", False)
        assert registry.resolve("gemini").enabled is False

    def test_status_sorted(self) -> None:
        status = _registry().status()
        assert [s["id"] for s in status] == ["gemini", "openai"]
        assert status[1] == {
            "id": "openai", "model": "gpt-4o-mini", "enabled": True, "default": True,
        }

    def test_available_providers(self) -> None:
        assert _registry().available_providers() == ["openai", "gemini"]
