from __future__ import annotations

from pathlib import Path

from src.tools.builtins.calculate_hash import CalculateHashTool
from src.tools.builtins.current_time import CurrentTimeTool
from src.tools.builtins.encoding import Base64DecodeTool, Base64EncodeTool
from src.tools.builtins.json_parse import JsonParseTool
from src.tools.builtins.list_files import ListFilesTool
from src.tools.builtins.read_files import ReadFilesTool
from src.tools.builtins.uuid_generate import UuidGenerateTool
from src.tools.builtins.write_files import WriteFilesTool
from src.tools.registry import ToolRegistry


def register_builtins(
    registry: ToolRegistry,
    workspace_dir: Path,
    *,
    max_read_bytes: int = 256_000,
) -> None:
    """Register all built-in tools with the registry.

    Filesystem tools are confined to workspace_dir.
    """
    registry.register(ReadFilesTool(workspace_dir, max_bytes=max_read_bytes))
    registry.register(ListFilesTool(workspace_dir))
    registry.register(WriteFilesTool(workspace_dir))

    registry.register(Base64EncodeTool())
    registry.register(Base64DecodeTool())
    registry.register(CalculateHashTool())
    registry.register(UuidGenerateTool())
    registry.register(JsonParseTool())
    registry.register(CurrentTimeTool())
