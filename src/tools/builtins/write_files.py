from __future__ import annotations

from pathlib import Path

import structlog

from src.tools.base import BaseTool, BuiltinCategory, tool_failed, tool_ok
from src.tools.builtins.workspace import WorkspaceEscapeError, resolve_in_workspace

logger = structlog.get_logger()


class WriteFilesTool(BaseTool):
    """Create or overwrite text files in the workspace.

    All paths are checked before anything is written, so a rejected path
    leaves the workspace untouched.
    """

    def __init__(self, workspace_dir: Path) -> None:
        self._workspace_dir = workspace_dir

    @property
    def name(self) -> str:
        return "write_files"

    @property
    def description(self) -> str:
        return "Write text content to one or more files in the workspace, creating folders as needed."

    @property
    def category(self) -> BuiltinCategory:
        return BuiltinCategory.filesystem

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "files": {
                    "type": "array",
                    "minItems": 1,
                    "items": {
                        "type": "object",
                        "properties": {
                            "path": {"type": "string"},
                            "content": {"type": "string"},
                        },
                        "required": ["path", "content"],
                        "additionalProperties": False,
                    },
                },
            },
            "required": ["files"],
            "additionalProperties": False,
        }

    async def execute(self, arguments: dict) -> dict:
        targets: list[tuple[str, Path, str]] = []
        for item in arguments["files"]:
            try:
                target = resolve_in_workspace(self._workspace_dir, item["path"])
            except WorkspaceEscapeError as e:
                return tool_failed(f"{item['path']}: {e}")
            targets.append((item["path"], target, item["content"]))

        written = []
        for raw_path, target, content in targets:
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_text(content, encoding="utf-8")
            except OSError as e:
                logger.warning("write_file_failed", path=raw_path, error=str(e))
                return tool_failed(f"Failed to write {raw_path}: {e}")
            written.append({"path": raw_path, "bytes": len(content.encode("utf-8"))})
        return tool_ok(written=written)
