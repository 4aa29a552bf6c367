from __future__ import annotations

from pathlib import Path

import structlog

logger = structlog.get_logger()

SEPARATOR = "\n\n---\n\n"


def load_custom_instructions(
    global_text: str, workspace_dir: Path, project_file: Path
) -> str:
    """Combine global and project custom instructions.

    Either part may be missing; both are stripped. An unreadable project
    file is logged and skipped so instructions never block a session.
    """
    parts: list[str] = []
    if global_text.strip():
        parts.append(global_text.strip())

    path = workspace_dir / project_file
    try:
        project_text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        project_text = ""
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("project_instructions_unreadable", path=str(path), error=str(e))
        project_text = ""
    if project_text.strip():
        parts.append(project_text.strip())

    return SEPARATOR.join(parts)
