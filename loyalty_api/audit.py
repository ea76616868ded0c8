"""
Audit events emitted by the ledger after each committed mutation.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

import structlog

logger = structlog.get_logger()


@dataclass(frozen=True)
class AuditEvent:
    """Structured record of a ledger mutation."""

    kind: str
    user_id: str
    fields: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "event": self.kind,
            "user_id": self.user_id,
            "timestamp": self.timestamp.isoformat(),
            **self.fields,
        }


class AuditSink(Protocol):
    def record(self, event: AuditEvent) -> None: ...


class LogAuditSink:
    """Writes audit events to the structured log."""

    def record(self, event: AuditEvent) -> None:
        logger.info(
            event.kind,
            user_id=event.user_id,
            audit_ts=event.timestamp.isoformat(),
            **{k: str(v) for k, v in event.fields.items()},
        )


class MemoryAuditSink:
    """Keeps events in memory (inspection and tests)."""

    def __init__(self) -> None:
        self.events: list[AuditEvent] = []

    def record(self, event: AuditEvent) -> None:
        self.events.append(event)

    def of_kind(self, kind: str) -> list[AuditEvent]:
        return [e for e in self.events if e.kind == kind]
