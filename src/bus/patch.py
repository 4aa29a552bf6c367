"""Structural diff between two JSON-compatible values.

Produces an RFC 6902 subset (add / replace / remove) covering the shapes the
tracked topics publish: objects, arrays and scalars. Arrays are compared
position by position; surplus trailing elements are removed back to front
so every emitted index stays valid while the patch is applied in order.
"""

from __future__ import annotations

import copy
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict

JsonValue = Any


class PatchOperation(BaseModel):
    model_config = ConfigDict(frozen=True)

    op: Literal["add", "replace", "remove"]
    path: str
    value: JsonValue = None

    def to_wire(self) -> dict[str, Any]:
        if self.op == "remove":
            return {"op": self.op, "path": self.path}
        return {"op": self.op, "path": self.path, "value": self.value}


def escape_pointer_token(token: str | int) -> str:
    return str(token).replace("~", "~0").replace("/", "~1")


def empty_like(value: JsonValue) -> JsonValue:
    """Baseline used when a topic has no cached value yet."""
    if isinstance(value, list):
        return []
    if isinstance(value, dict):
        return {}
    return None


def same_scalar(old: JsonValue, new: JsonValue) -> bool:
    # type check keeps True/1 and 1/1.0 distinct
    return type(old) is type(new) and old == new


def compute_patch(old: JsonValue, new: JsonValue) -> list[PatchOperation]:
    """Operations transforming old into new. Empty list when deep-equal."""
    ops: list[PatchOperation] = []
    if old is None and new is not None and not isinstance(new, (dict, list)):
        ops.append(PatchOperation(op="add", path="", value=copy.deepcopy(new)))
        return ops
    _diff(old, new, "", ops)
    return ops


def _diff(old: JsonValue, new: JsonValue, path: str, ops: list[PatchOperation]) -> None:
    if isinstance(old, dict) and isinstance(new, dict):
        _diff_objects(old, new, path, ops)
    elif isinstance(old, list) and isinstance(new, list):
        _diff_arrays(old, new, path, ops)
    elif not same_scalar(old, new):
        ops.append(PatchOperation(op="replace", path=path, value=copy.deepcopy(new)))


def _diff_objects(old: dict, new: dict, path: str, ops: list[PatchOperation]) -> None:
    for key in reversed(list(old)):
        if key not in new:
            ops.append(PatchOperation(op="remove", path=f"{path}/{escape_pointer_token(key)}"))
    for key, new_value in new.items():
        child = f"{path}/{escape_pointer_token(key)}"
        if key in old:
            _diff(old[key], new_value, child, ops)
        else:
            ops.append(PatchOperation(op="add", path=child, value=copy.deepcopy(new_value)))


def _diff_arrays(old: list, new: list, path: str, ops: list[PatchOperation]) -> None:
    for index in range(len(old) - 1, len(new) - 1, -1):
        ops.append(PatchOperation(op="remove", path=f"{path}/{index}"))
    for index in range(min(len(old), len(new))):
        _diff(old[index], new[index], f"{path}/{index}", ops)
    for index in range(len(old), len(new)):
        ops.append(PatchOperation(op="add", path=f"{path}/{index}", value=copy.deepcopy(new[index])))


def apply_patch(document: JsonValue, ops: list[PatchOperation]) -> JsonValue:
    """Apply ops to a deep copy of document and return the result.

    Only understands the operations compute_patch emits; used by clients
    written in Python and by tests.
    """
    doc = copy.deepcopy(document)
    for op in ops:
        if op.path == "":
            if op.op == "remove":
                doc = None
            else:
                doc = copy.deepcopy(op.value)
            continue
        *parents, last = [
            t.replace("~1", "/").replace("~0", "~") for t in op.path.split("/")[1:]
        ]
        target = doc
        for token in parents:
            target = target[int(token)] if isinstance(target, list) else target[token]
        if isinstance(target, list):
            index = int(last)
            if op.op == "add":
                target.insert(index, copy.deepcopy(op.value))
            elif op.op == "replace":
                target[index] = copy.deepcopy(op.value)
            else:
                del target[index]
        elif op.op == "remove":
            del target[last]
        else:
            target[last] = copy.deepcopy(op.value)
    return doc
