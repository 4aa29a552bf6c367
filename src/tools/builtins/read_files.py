from __future__ import annotations

from pathlib import Path

import structlog

from src.tools.base import BaseTool, BuiltinCategory, tool_failed, tool_ok
from src.tools.builtins.workspace import WorkspaceEscapeError, resolve_in_workspace

logger = structlog.get_logger()


class ReadFilesTool(BaseTool):
    """Read one or more text files from the workspace.

    Each path gets its own entry in the result so one missing file does not
    hide the others; the call only fails as a whole when every path failed.
    """

    def __init__(self, workspace_dir: Path, *, max_bytes: int = 256_000) -> None:
        self._workspace_dir = workspace_dir
        self._max_bytes = max_bytes

    @property
    def name(self) -> str:
        return "read_files"

    @property
    def description(self) -> str:
        return "Read the contents of one or more files within the workspace directory."

    @property
    def category(self) -> BuiltinCategory:
        return BuiltinCategory.filesystem

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "paths": {
                    "type": "array",
                    "items": {"type": "string"},
                    "minItems": 1,
                    "description": "Paths relative to the workspace, e.g. 'src/main.py'.",
                },
            },
            "required": ["paths"],
            "additionalProperties": False,
        }

    async def execute(self, arguments: dict) -> dict:
        files = [self._read_one(raw_path) for raw_path in arguments["paths"]]
        if all(not f["success"] for f in files):
            return tool_failed("; ".join(f"{f['path']}: {f['error']}" for f in files))
        return tool_ok(files=files)

    def _read_one(self, raw_path: str) -> dict:
        try:
            target = resolve_in_workspace(self._workspace_dir, raw_path)
        except WorkspaceEscapeError as e:
            return {"path": raw_path, "success": False, "error": str(e)}

        if not target.is_file():
            return {"path": raw_path, "success": False, "error": "File not found"}

        try:
            with target.open("rb") as fh:
                data = fh.read(self._max_bytes + 1)
        except OSError as e:
            logger.warning("read_file_failed", path=raw_path, error=str(e))
            return {"path": raw_path, "success": False, "error": f"Failed to read file: {e}"}

        truncated = len(data) > self._max_bytes
        content = data[: self._max_bytes].decode("utf-8", errors="replace")
        return {
            "path": raw_path,
            "success": True,
            "content": content,
            "truncated": truncated,
        }
