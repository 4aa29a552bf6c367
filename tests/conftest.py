"""Shared pytest fixtures for Switchboard tests.

Everything runs in-process: model providers are replaced by fakes.FakeModelClient,
tool policy lives in a tmp_path JSON file.
"""

from __future__ import annotations

from pathlib import Path

import pytest
from fakes import FakeModelClient

from src.authz.store import PolicyStore
from src.tools.builtins import register_builtins
from src.tools.registry import ToolRegistry


@pytest.fixture()
def fake_model() -> FakeModelClient:
    return FakeModelClient()


@pytest.fixture()
def workspace(tmp_path: Path) -> Path:
    ws = tmp_path / "workspace"
    ws.mkdir()
    return ws


@pytest.fixture()
def policy_store(tmp_path: Path) -> PolicyStore:
    return PolicyStore(tmp_path / "policy" / "tool_policy.json")


@pytest.fixture()
def tool_registry(workspace: Path) -> ToolRegistry:
    registry = ToolRegistry()
    register_builtins(registry, workspace)
    return registry
