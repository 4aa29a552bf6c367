from __future__ import annotations

import json
from pathlib import Path

import structlog
from pydantic import ValidationError

from src.authz.policy import Policy, PolicyUpdate
from src.infra.errors import GatewayError

logger = structlog.get_logger()


class PolicyStore:
    """JSON-file backed policy configuration.

    load() reads the file on every call so edits made outside the process are
    picked up by the next resolution. A missing file is an empty policy.
    """

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Policy:
        if not self._path.is_file():
            return Policy()
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8") or "{}")
            return Policy.model_validate(raw)
        except (json.JSONDecodeError, ValidationError) as e:
            raise GatewayError(
                f"Tool policy file {self._path} is invalid: {e}", code="POLICY_INVALID"
            ) from e

    def update(self, update: PolicyUpdate) -> Policy:
        """Merge update into the stored policy and persist the result."""
        merged = self.load().merged(update)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(merged.model_dump_json(indent=2), encoding="utf-8")
        tmp.replace(self._path)
        logger.info(
            "tool_policy_updated",
            categories=len(merged.categories),
            sources=len(merged.sources),
            overrides=len(merged.overrides),
        )
        return merged
