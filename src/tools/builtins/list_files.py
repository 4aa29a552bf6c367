from __future__ import annotations

from pathlib import Path

from src.tools.base import BaseTool, BuiltinCategory, tool_failed, tool_ok
from src.tools.builtins.workspace import WorkspaceEscapeError, resolve_in_workspace

_MAX_ENTRIES = 1000


class ListFilesTool(BaseTool):
    """List directory entries inside the workspace."""

    def __init__(self, workspace_dir: Path) -> None:
        self._workspace_dir = workspace_dir

    @property
    def name(self) -> str:
        return "list_files"

    @property
    def description(self) -> str:
        return (
            "List files and folders in a workspace directory. "
            "Set recursive=true to walk subdirectories."
        )

    @property
    def category(self) -> BuiltinCategory:
        return BuiltinCategory.filesystem

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": "Directory relative to the workspace. Defaults to '.'.",
                },
                "recursive": {"type": "boolean"},
            },
            "additionalProperties": False,
        }

    async def execute(self, arguments: dict) -> dict:
        raw_path = arguments.get("path", ".")
        try:
            target = resolve_in_workspace(self._workspace_dir, raw_path)
        except WorkspaceEscapeError as e:
            return tool_failed(str(e))
        if not target.is_dir():
            return tool_failed(f"Directory not found: {raw_path}")

        root = self._workspace_dir.resolve()
        walker = target.rglob("*") if arguments.get("recursive") else target.iterdir()
        entries = []
        for item in sorted(walker):
            if len(entries) >= _MAX_ENTRIES:
                break
            entries.append({
                "path": item.relative_to(root).as_posix(),
                "type": "directory" if item.is_dir() else "file",
            })
        return tool_ok(entries=entries, truncated=len(entries) >= _MAX_ENTRIES)
