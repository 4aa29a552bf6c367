"""Tool authorization policy model.

A policy has three layers: per-category status for built-in tools,
per-source status for dynamically discovered tools, and per-tool overrides.
"""

from __future__ import annotations

import re
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, field_validator

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


class Status(StrEnum):
    always_available = "always_available"
    requires_authorization = "requires_authorization"
    disabled = "disabled"


class ToolStatus(StrEnum):
    """Per-tool override. inherited defers to the tool's group status."""

    always_available = "always_available"
    requires_authorization = "requires_authorization"
    disabled = "disabled"
    inherited = "inherited"


DEFAULT_GROUP_STATUS = Status.always_available
DEFAULT_TOOL_STATUS = ToolStatus.inherited


def normalize_status_value(value: Any) -> Any:
    """Accept AlwaysAvailable / alwaysAvailable / always_available spellings."""
    if isinstance(value, str) and not isinstance(value, StrEnum):
        return _CAMEL_BOUNDARY.sub("_", value.strip()).lower()
    return value


def _normalize_mapping(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: normalize_status_value(v) for k, v in value.items()}
    return value


class Policy(BaseModel):
    """Layered tool authorization policy.

    Unknown groups and tools are allowed in the mappings: a policy may be
    written before the tool or source it refers to has been discovered.
    """

    categories: dict[str, Status] = Field(default_factory=dict)
    sources: dict[str, Status] = Field(default_factory=dict)
    overrides: dict[str, ToolStatus] = Field(default_factory=dict)

    @field_validator("categories", "sources", "overrides", mode="before")
    @classmethod
    def _normalize(cls, v: Any) -> Any:
        if v is None:
            return {}
        return _normalize_mapping(v)

    def merged(self, update: PolicyUpdate) -> Policy:
        """Shallow-merge each layer of update over this policy."""
        return Policy(
            categories={**self.categories, **(update.categories or {})},
            sources={**self.sources, **(update.sources or {})},
            overrides={**self.overrides, **(update.overrides or {})},
        )


class PolicyUpdate(BaseModel):
    """Partial policy; absent layers are left unchanged on merge."""

    categories: dict[str, Status] | None = None
    sources: dict[str, Status] | None = None
    overrides: dict[str, ToolStatus] | None = None

    @field_validator("categories", "sources", "overrides", mode="before")
    @classmethod
    def _normalize(cls, v: Any) -> Any:
        return _normalize_mapping(v)
