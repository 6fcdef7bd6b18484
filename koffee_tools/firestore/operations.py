"""Tagged update operations produced by migration transforms.

Transforms never touch Firestore sentinels directly. They describe a write as
a sequence of :class:`SetField` / :class:`DeleteField` operations, and the
batch writer translates them into a Firestore payload.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Tuple, Union

from google.cloud import firestore


class _ServerTimestamp:
    """Marker for the store's write-time timestamp."""

    _instance = None

    def __new__(cls) -> "_ServerTimestamp":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


@dataclass(frozen=True)
class SetField:
    name: str
    value: Any


@dataclass(frozen=True)
class DeleteField:
    name: str


UpdateOp = Union[SetField, DeleteField]


@dataclass(frozen=True)
class PlannedWrite:
    """A single document write planned by a transform.

    ``overwrite=True`` replaces the whole target document with the
    ``SetField`` operations; ``overwrite=False`` applies them as a partial
    update, where ``DeleteField`` removes a field.
    """
    target_id: str
    operations: Tuple[UpdateOp, ...]
    overwrite: bool = False

    def __post_init__(self) -> None:
        if not self.target_id:
            raise ValueError("PlannedWrite requires a non-empty target_id")
        if self.overwrite and any(isinstance(op, DeleteField) for op in self.operations):
            raise ValueError("DeleteField is not allowed in an overwrite")

    @property
    def field_names(self) -> Tuple[str, ...]:
        return tuple(op.name for op in self.operations)


def document_write(target_id: str, document: Mapping[str, Any]) -> PlannedWrite:
    """Plan a create-or-overwrite of ``target_id`` with ``document``."""
    return PlannedWrite(
        target_id=target_id,
        operations=tuple(SetField(name, value) for name, value in document.items()),
        overwrite=True,
    )


def _to_store_value(value: Any) -> Any:
    if value is SERVER_TIMESTAMP:
        return firestore.SERVER_TIMESTAMP
    return value


def to_update_payload(operations: Iterable[UpdateOp]) -> Dict[str, Any]:
    """Render operations as a Firestore ``set``/``update`` payload."""
    payload: Dict[str, Any] = {}
    for op in operations:
        if isinstance(op, DeleteField):
            payload[op.name] = firestore.DELETE_FIELD
        elif isinstance(op, SetField):
            payload[op.name] = _to_store_value(op.value)
        else:
            raise TypeError(f"Unsupported update operation: {op!r}")
    return payload


def apply_updates(data: Mapping[str, Any], write: PlannedWrite) -> Dict[str, Any]:
    """Apply a planned write to a plain mapping without a store.

    Used to preview dry runs. ``SERVER_TIMESTAMP`` values are kept as the
    marker.
    """
    result: Dict[str, Any] = {} if write.overwrite else dict(data)
    for op in write.operations:
        if isinstance(op, DeleteField):
            result.pop(op.name, None)
        else:
            result[op.name] = op.value
    return result
