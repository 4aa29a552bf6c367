from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

ToolExecute = Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]


class GroupKind(StrEnum):
    """Where a tool's group comes from.

    category: built-in tools shipped with the gateway.
    source: tools discovered at runtime from an external tool server.
    """

    category = "category"
    source = "source"


class BuiltinCategory(StrEnum):
    filesystem = "filesystem"
    utils = "utils"


@dataclass(frozen=True)
class ToolDescriptor:
    """A callable the model may invoke: schema plus async function.

    Immutable after discovery. execute() receives arguments already validated
    against input_schema and returns {"success": True, ...} or
    {"success": False, "error": "..."}.
    """

    id: str
    group_id: str
    description: str
    input_schema: dict[str, Any]
    execute: ToolExecute = field(compare=False, repr=False)
    display_name: str = ""

    @property
    def name(self) -> str:
        return self.display_name or self.id

    def to_function_schema(self) -> dict[str, Any]:
        """Tool in OpenAI function calling format."""
        return {
            "type": "function",
            "function": {
                "name": self.id,
                "description": self.description,
                "parameters": self.input_schema,
            },
        }


def tool_ok(**fields: Any) -> dict[str, Any]:
    return {"success": True, **fields}


def tool_failed(error: str) -> dict[str, Any]:
    return {"success": False, "error": error}


class BaseTool(ABC):
    """Abstract base class for built-in tools.

    Built-ins are written as classes for readability; the registry only ever
    sees the ToolDescriptor record produced by describe().
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique tool name used in function calling."""
        ...

    @property
    @abstractmethod
    def description(self) -> str:
        """Human-readable description of what the tool does."""
        ...

    @property
    @abstractmethod
    def parameters(self) -> dict:
        """JSON Schema describing the tool's input parameters."""
        ...

    @property
    def category(self) -> BuiltinCategory:
        """Built-in category. Conservative default: utils."""
        return BuiltinCategory.utils

    @abstractmethod
    async def execute(self, arguments: dict) -> dict:
        """Execute the tool with validated arguments.

        Expected failures are returned as tool_failed(...), never raised.
        """
        ...

    def describe(self) -> ToolDescriptor:
        return ToolDescriptor(
            id=self.name,
            group_id=self.category.value,
            description=self.description,
            input_schema=self.parameters,
            execute=self.execute,
        )
