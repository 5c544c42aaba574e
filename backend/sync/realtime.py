"""Realtime change events.

The transport itself is an external collaborator: anything that can deliver
``{eventType, new, old}`` payloads per table for one user satisfies
``RealtimeChannel``.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

ChangeHandler = Callable[[str, dict[str, Any]], Awaitable[None]]

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"


class Subscription(Protocol):
    def unsubscribe(self) -> None: ...


class RealtimeChannel(Protocol):
    def subscribe(self, tables: list[str], user_id: str, handler: ChangeHandler) -> Subscription: ...


@dataclass
class ChangeEvent:
    """One row change delivered by the realtime channel."""

    table: str
    event_type: str
    new: dict[str, Any] = field(default_factory=dict)
    old: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, table: str, payload: dict[str, Any]) -> ChangeEvent:
        return cls(
            table=table,
            event_type=str(payload.get("eventType", "")).upper(),
            new=payload.get("new") or {},
            old=payload.get("old") or {},
        )

    @property
    def record_id(self) -> str | None:
        return self.old.get("id") or self.new.get("id")

    @property
    def is_removal(self) -> bool:
        """DELETE events and upserts of a tombstone both remove the local record."""
        return self.event_type == DELETE or bool(self.new.get("deleted"))

    @property
    def is_upsert(self) -> bool:
        return self.event_type in (INSERT, UPDATE)
