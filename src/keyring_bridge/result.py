"""Discriminated result type returned by every bridge operation.

A command resolves to exactly one of :class:`Ok` (carrying a value, which is
``None`` for void commands) or :class:`Err` (carrying an error description).

Wire shapes, as exchanged with the frontend:

* void commands: ``{}`` or ``{"error": "..."}``
* valued commands: ``{"value": ...}`` or ``{"error": "..."}``
"""

from __future__ import annotations

import dataclasses
from typing import Any, Generic, TypeVar, Union

T = TypeVar("T")


@dataclasses.dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful outcome."""

    value: T = None  # type: ignore[assignment]

    @property
    def is_ok(self) -> bool:
        return True

    @property
    def error(self) -> None:
        return None

    def unwrap(self) -> T:
        return self.value

    def to_wire(self) -> dict[str, Any]:
        if self.value is None:
            return {}
        return {"value": _to_jsonable(self.value)}


@dataclasses.dataclass(frozen=True)
class Err:
    """Failed outcome. ``error`` is the backend or transport message."""

    error: str

    @property
    def is_ok(self) -> bool:
        return False

    @property
    def value(self) -> None:
        return None

    def unwrap(self) -> Any:
        raise RuntimeError(self.error)

    def to_wire(self) -> dict[str, Any]:
        return {"error": self.error}


Result = Union[Ok[T], Err]


def from_wire(payload: dict[str, Any]) -> Result[Any]:
    """Decode a wire-shaped result.

    A populated ``error`` is authoritative: it wins even if ``value`` is
    also present.
    """
    if payload.get("error") is not None:
        return Err(str(payload["error"]))
    return Ok(payload.get("value"))


def _to_jsonable(value: Any) -> Any:
    if hasattr(value, "to_wire"):
        return value.to_wire()
    if isinstance(value, list):
        return [_to_jsonable(v) for v in value]
    return value
