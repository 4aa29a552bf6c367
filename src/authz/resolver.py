"""Tool authorization resolution.

Resolution per tool is a two-step lookup with explicit precedence:

1. A concrete per-tool override (anything but ``inherited``) wins outright.
2. Otherwise the tool takes its group's configured status: ``categories``
   for built-in tools, ``sources`` for dynamically discovered ones, with
   ``always_available`` for unconfigured groups.

The resolver keeps no state between calls: the registry snapshot and the
policy are both read fresh on every operation.
"""

from __future__ import annotations

from collections.abc import Callable

import structlog
from pydantic import BaseModel

from src.authz.policy import (
    DEFAULT_GROUP_STATUS,
    DEFAULT_TOOL_STATUS,
    Policy,
    Status,
    ToolStatus,
)
from src.tools.base import GroupKind, ToolDescriptor
from src.tools.registry import ToolEntry, ToolRegistry

logger = structlog.get_logger()

PolicyProvider = Callable[[], Policy]


def resolve_tool_status(override: ToolStatus, group_status: Status) -> Status:
    """Final status of a tool from its configured override and group status."""
    if override is ToolStatus.inherited:
        return group_status
    return Status(override.value)


def group_status(policy: Policy, group_id: str, kind: GroupKind) -> Status:
    layer = policy.categories if kind is GroupKind.category else policy.sources
    return layer.get(group_id, DEFAULT_GROUP_STATUS)


def tool_override(policy: Policy, tool_id: str) -> ToolStatus:
    return policy.overrides.get(tool_id, DEFAULT_TOOL_STATUS)


def group_display_name(group_id: str, kind: GroupKind) -> str:
    if kind is GroupKind.source:
        return f"{group_id} (external)"
    return group_id[:1].upper() + group_id[1:]


class ResolvedToolInfo(BaseModel):
    id: str
    name: str
    group_id: str
    description: str
    status: ToolStatus
    resolved_status: Status


class ToolGroupReport(BaseModel):
    id: str
    name: str
    kind: GroupKind
    status: Status
    tools: list[ResolvedToolInfo]


class ToolAuthorizationResolver:
    """Computes the effective tool set and the per-group status report."""

    def __init__(self, registry: ToolRegistry, policy_provider: PolicyProvider) -> None:
        self._registry = registry
        self._policy_provider = policy_provider

    def resolve(self, entry: ToolEntry, policy: Policy) -> Status:
        return resolve_tool_status(
            tool_override(policy, entry.id),
            group_status(policy, entry.group_id, entry.kind),
        )

    def prepare_effective_set(self) -> dict[str, ToolDescriptor]:
        """Tools the model may see: everything not resolved to disabled.

        requires_authorization tools are included; consent is gated when the
        tool is invoked, not here.
        """
        policy = self._policy_provider()
        effective: dict[str, ToolDescriptor] = {}
        for entry in self._registry.list_all():
            if self.resolve(entry, policy) is not Status.disabled:
                effective[entry.id] = entry.descriptor
        logger.debug("effective_tool_set_prepared", tool_ids=sorted(effective))
        return effective

    def compute_status_report(self) -> list[ToolGroupReport]:
        """Status of every group and tool, ordered for display.

        Built-in groups come before dynamic ones; groups sort by display name
        inside each class, tools by display name inside each group. A source
        that is configured but currently has no tools is still listed.
        """
        policy = self._policy_provider()
        groups: dict[tuple[GroupKind, str], ToolGroupReport] = {}

        def get_or_create(group_id: str, kind: GroupKind) -> ToolGroupReport:
            status = group_status(policy, group_id, kind)
            group = groups.get((kind, group_id))
            if group is None:
                group = ToolGroupReport(
                    id=group_id,
                    name=group_display_name(group_id, kind),
                    kind=kind,
                    status=status,
                    tools=[],
                )
                groups[(kind, group_id)] = group
            else:
                group.status = status
            return group

        for source in self._registry.configured_sources():
            get_or_create(source, GroupKind.source)

        for entry in self._registry.list_all():
            group = get_or_create(entry.group_id, entry.kind)
            override = tool_override(policy, entry.id)
            group.tools.append(
                ResolvedToolInfo(
                    id=entry.id,
                    name=entry.descriptor.name,
                    group_id=entry.group_id,
                    description=entry.descriptor.description,
                    status=override,
                    resolved_status=resolve_tool_status(override, group.status),
                )
            )

        for group in groups.values():
            group.tools.sort(key=lambda t: t.name.casefold())

        return sorted(
            groups.values(),
            key=lambda g: (g.kind is GroupKind.source, g.name.casefold()),
        )
