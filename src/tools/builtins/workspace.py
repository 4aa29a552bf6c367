from __future__ import annotations

from pathlib import Path

import structlog

logger = structlog.get_logger()


class WorkspaceEscapeError(ValueError):
    """A tool-supplied path points outside the workspace directory."""


def resolve_in_workspace(workspace_dir: Path, raw_path: str) -> Path:
    """Resolve raw_path against workspace_dir, refusing anything outside it.

    Absolute paths, ".." segments and symlinks that leave the workspace are
    rejected with WorkspaceEscapeError.
    """
    if not raw_path or raw_path.startswith("/"):
        raise WorkspaceEscapeError(
            "Absolute or empty paths are not allowed. Use a path relative to the workspace."
        )
    root = workspace_dir.resolve()
    target = (root / raw_path).resolve()
    if target != root and root not in target.parents:
        logger.warning("path_escape_blocked", raw_path=raw_path, resolved=str(target))
        raise WorkspaceEscapeError("Path escapes workspace boundary.")
    return target
