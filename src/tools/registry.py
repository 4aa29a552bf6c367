from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass

import structlog

from src.tools.base import BaseTool, GroupKind, ToolDescriptor

logger = structlog.get_logger()

# Dynamic tool ids are namespaced by source so two servers may expose the
# same tool name without colliding with each other or with built-ins.
SOURCE_TOOL_PREFIX = "ext"

CatalogueListener = Callable[[], None]


def source_tool_id(source: str, tool_name: str) -> str:
    return f"{SOURCE_TOOL_PREFIX}_{source}_{tool_name}"


@dataclass(frozen=True)
class ToolEntry:
    """One row of ToolRegistry.list_all()."""

    id: str
    group_id: str
    kind: GroupKind
    descriptor: ToolDescriptor


class ToolRegistry:
    """Catalogue of every tool the gateway knows about.

    Static part: built-in tools grouped into categories.
    Dynamic part: tools discovered from external sources, replaced wholesale
    per source whenever discovery reports a new tool list. A source can be
    configured while currently having no tools (e.g. unreachable).
    """

    def __init__(self) -> None:
        self._builtins: dict[str, ToolDescriptor] = {}
        self._sources: dict[str, dict[str, ToolDescriptor]] = {}
        self._listeners: list[CatalogueListener] = []

    def register(self, tool: BaseTool | ToolDescriptor) -> None:
        """Register a built-in tool. Raises ValueError if the id is taken."""
        descriptor = tool.describe() if isinstance(tool, BaseTool) else tool
        if descriptor.id in self._builtins:
            raise ValueError(f"Tool already registered: {descriptor.id}")
        self._builtins[descriptor.id] = descriptor
        logger.info("tool_registered", tool_id=descriptor.id, category=descriptor.group_id)

    def get(self, tool_id: str) -> ToolDescriptor | None:
        """Get a tool (built-in or dynamic) by id. Returns None if not found."""
        if tool_id in self._builtins:
            return self._builtins[tool_id]
        for tools in self._sources.values():
            if tool_id in tools:
                return tools[tool_id]
        return None

    def configure_source(self, source: str) -> None:
        """Declare a dynamic source. Idempotent; existing tools are kept."""
        if source not in self._sources:
            self._sources[source] = {}
            logger.info("tool_source_configured", source=source)
            self._notify()

    def set_source_tools(self, source: str, tools: Iterable[ToolDescriptor]) -> None:
        """Replace the discovered tool list of a source.

        Descriptors keep their own id; the registry re-keys them under
        source_tool_id() and stamps group_id with the source name.
        """
        discovered: dict[str, ToolDescriptor] = {}
        for tool in tools:
            tool_id = source_tool_id(source, tool.id)
            discovered[tool_id] = ToolDescriptor(
                id=tool_id,
                group_id=source,
                description=tool.description,
                input_schema=tool.input_schema,
                execute=tool.execute,
                display_name=f"{source}: {tool.id}",
            )
        self._sources[source] = discovered
        logger.info("tool_source_updated", source=source, tool_count=len(discovered))
        self._notify()

    def remove_source(self, source: str) -> None:
        if self._sources.pop(source, None) is not None:
            logger.info("tool_source_removed", source=source)
            self._notify()

    def configured_sources(self) -> list[str]:
        return list(self._sources.keys())

    def list_all(self) -> list[ToolEntry]:
        """Snapshot of every tool, built-ins first, then each source's tools."""
        entries = [
            ToolEntry(id=d.id, group_id=d.group_id, kind=GroupKind.category, descriptor=d)
            for d in self._builtins.values()
        ]
        for source, tools in self._sources.items():
            entries.extend(
                ToolEntry(id=d.id, group_id=source, kind=GroupKind.source, descriptor=d)
                for d in tools.values()
            )
        return entries

    def add_listener(self, listener: CatalogueListener) -> None:
        """Call listener after every change to the dynamic catalogue."""
        self._listeners.append(listener)

    def _notify(self) -> None:
        for listener in self._listeners:
            try:
                listener()
            except Exception:
                logger.exception("tool_catalogue_listener_failed")
