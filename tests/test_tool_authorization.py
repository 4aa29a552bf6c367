"""Tests for tool authorization: override precedence, effective set, status report."""

from __future__ import annotations

import pytest
from fakes import make_tool

from src.authz.policy import Policy, PolicyUpdate, Status, ToolStatus
from src.authz.resolver import (
    ToolAuthorizationResolver,
    group_display_name,
    resolve_tool_status,
)
from src.tools.base import GroupKind
from src.tools.registry import ToolRegistry


def _resolver(registry: ToolRegistry, policy: Policy) -> ToolAuthorizationResolver:
    return ToolAuthorizationResolver(registry, lambda: policy)


def _registry(*tools) -> ToolRegistry:
    registry = ToolRegistry()
    for tool in tools:
        registry.register(tool)
    return registry


class TestResolveToolStatus:
    @pytest.mark.parametrize("override", [
        ToolStatus.always_available,
        ToolStatus.requires_authorization,
        ToolStatus.disabled,
    ])
    @pytest.mark.parametrize("group", list(Status))
    def test_concrete_override_wins(self, override: ToolStatus, group: Status) -> None:
        assert resolve_tool_status(override, group) == Status(override.value)

    @pytest.mark.parametrize("group", list(Status))
    def test_inherited_takes_group_status(self, group: Status) -> None:
        assert resolve_tool_status(ToolStatus.inherited, group) is group

    def test_override_beats_disabled_category(self) -> None:
        registry = _registry(make_tool("x", group_id="g"))
        policy = Policy(categories={"g": "disabled"}, overrides={"x": "always_available"})

        [entry] = registry.list_all()
        assert _resolver(registry, policy).resolve(entry, policy) is Status.always_available

    def test_unconfigured_group_defaults_to_always_available(self) -> None:
        registry = _registry(make_tool("x", group_id="never_configured"))
        policy = Policy()

        [entry] = registry.list_all()
        assert _resolver(registry, policy).resolve(entry, policy) is Status.always_available

    def test_dynamic_tools_use_source_layer(self) -> None:
        registry = ToolRegistry()
        registry.set_source_tools("github", [make_tool("create_issue")])
        policy = Policy(
            categories={"github": "always_available"}, sources={"github": "disabled"}
        )

        [entry] = registry.list_all()
        assert entry.kind is GroupKind.source
        assert _resolver(registry, policy).resolve(entry, policy) is Status.disabled


class TestPrepareEffectiveSet:
    def test_excludes_disabled_includes_requires_authorization(self) -> None:
        registry = _registry(
            make_tool("a", group_id="utils"),
            make_tool("b", group_id="utils"),
            make_tool("c", group_id="filesystem"),
        )
        policy = Policy(
            categories={"filesystem": "requires_authorization"},
            overrides={"b": "disabled"},
        )

        effective = _resolver(registry, policy).prepare_effective_set()

        assert set(effective) == {"a", "c"}
        assert effective["c"].id == "c"

    def test_policy_read_fresh_on_every_call(self) -> None:
        registry = _registry(make_tool("a"))
        current = {"policy": Policy()}
        resolver = ToolAuthorizationResolver(registry, lambda: current["policy"])

        assert "a" in resolver.prepare_effective_set()
        current["policy"] = Policy(overrides={"a": "disabled"})
        assert "a" not in resolver.prepare_effective_set()


class TestStatusReport:
    def test_read_files_inherits_requires_authorization(self, tool_registry) -> None:
        policy = Policy(
            categories={"filesystem": "RequiresAuthorization"},
            overrides={"read_files": "inherited"},
        )
        resolver = _resolver(tool_registry, policy)

        report = resolver.compute_status_report()
        filesystem = next(g for g in report if g.id == "filesystem")
        read_files = next(t for t in filesystem.tools if t.id == "read_files")

        assert filesystem.status is Status.requires_authorization
        assert read_files.status is ToolStatus.inherited
        assert read_files.resolved_status is Status.requires_authorization
        assert "read_files" in resolver.prepare_effective_set()

    def test_builtin_groups_before_sources_each_alphabetical(self) -> None:
        registry = _registry(
            make_tool("u1", group_id="utils"),
            make_tool("f1", group_id="filesystem"),
        )
        registry.set_source_tools("zeta", [make_tool("t")])
        registry.set_source_tools("alpha", [make_tool("t")])

        report = _resolver(registry, Policy()).compute_status_report()

        assert [g.name for g in report] == [
            "Filesystem",
            "Utils",
            "alpha (external)",
            "zeta (external)",
        ]

    def test_tools_sorted_by_display_name(self) -> None:
        registry = _registry(
            make_tool("zip", group_id="utils"),
            make_tool("Alpha", group_id="utils"),
            make_tool("beta", group_id="utils"),
        )

        [group] = _resolver(registry, Policy()).compute_status_report()

        assert [t.name for t in group.tools] == ["Alpha", "beta", "zip"]

    def test_dynamic_tool_display_name(self) -> None:
        registry = ToolRegistry()
        registry.set_source_tools("github", [make_tool("create_issue")])

        [group] = _resolver(registry, Policy()).compute_status_report()

        assert group.name == "github (external)"
        assert group.tools[0].id == "ext_github_create_issue"
        assert group.tools[0].name == "github: create_issue"

    def test_configured_source_without_tools_still_listed(self) -> None:
        registry = ToolRegistry()
        registry.configure_source("offline")
        policy = Policy(sources={"offline": "disabled"})

        [group] = _resolver(registry, policy).compute_status_report()

        assert group.id == "offline"
        assert group.kind is GroupKind.source
        assert group.status is Status.disabled
        assert group.tools == []

    def test_group_status_reflects_current_policy(self) -> None:
        registry = _registry(make_tool("a", group_id="utils"), make_tool("b", group_id="utils"))
        current = {"policy": Policy()}
        resolver = ToolAuthorizationResolver(registry, lambda: current["policy"])

        assert resolver.compute_status_report()[0].status is Status.always_available
        current["policy"] = Policy(categories={"utils": "disabled"})
        [group] = resolver.compute_status_report()

        assert group.status is Status.disabled
        assert {t.resolved_status for t in group.tools} == {Status.disabled}

    def test_report_serializes_with_wire_values(self, tool_registry) -> None:
        report = _resolver(tool_registry, Policy()).compute_status_report()
        dumped = report[0].model_dump(mode="json")

        assert dumped["status"] == "always_available"
        assert dumped["tools"][0]["status"] == "inherited"
        assert set(dumped["tools"][0]) == {
            "id", "name", "group_id", "description", "status", "resolved_status",
        }


class TestGroupDisplayName:
    def test_category_capitalized(self) -> None:
        assert group_display_name("filesystem", GroupKind.category) == "Filesystem"

    def test_source_marked_external(self) -> None:
        assert group_display_name("github", GroupKind.source) == "github (external)"


class TestPolicyModel:
    @pytest.mark.parametrize("raw", ["AlwaysAvailable", "alwaysAvailable", "always_available"])
    def test_status_spellings_normalized(self, raw: str) -> None:
        policy = Policy(categories={"utils": raw})
        assert policy.categories["utils"] is Status.always_available

    def test_group_layers_reject_inherited(self) -> None:
        with pytest.raises(ValueError):
            Policy(categories={"utils": "inherited"})

    def test_merge_is_shallow_per_layer(self) -> None:
        base = Policy(
            categories={"utils": "disabled", "filesystem": "disabled"},
            overrides={"a": "disabled"},
        )
        merged = base.merged(PolicyUpdate(categories={"utils": "always_available"}))

        assert merged.categories == {
            "utils": Status.always_available,
            "filesystem": Status.disabled,
        }
        assert merged.overrides == {"a": ToolStatus.disabled}
