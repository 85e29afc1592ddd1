# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Audit events and sinks.

One audit event is produced per successful policy, prerequisite or
restriction mutation and per admission, waitlist, promotion, release or
rejection decision. Where the events end up is a deployment choice:

- EventBusAuditSink: publishes on the in-process event bus
- InMemoryAuditSink: keeps a list, for tests and diagnostics
- SqlAlchemyAuditSink (database package): appends to a table

Audit emission happens after the state change has committed. A failing
sink is logged and never undoes or fails the committed change.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field

from admission_engine.infrastructure.events.bus import EventBus
from admission_engine.utils.datetime import utc_now

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"


class AuditEvent(BaseModel):
    """A single audit record.

    Attributes:
        event_id: Unique identifier.
        class_id: Class the event concerns.
        actor: Staff member, student, or "system".
        action: One of the EventTypes constants.
        subject_id: Student or rule the event concerns, when applicable.
        before: State before a mutation.
        after: State after a mutation.
        outcome: Decision details for admission events.
        timestamp: When the event was produced.
    """

    event_id: str = Field(default_factory=lambda: str(uuid4()))
    class_id: str
    actor: str = SYSTEM_ACTOR
    action: str
    subject_id: str | None = None
    before: dict[str, Any] | None = None
    after: dict[str, Any] | None = None
    outcome: dict[str, Any] | None = None
    timestamp: datetime = Field(default_factory=utc_now)


class AuditSink(ABC):
    """Append-only destination for audit events."""

    @abstractmethod
    async def record(self, event: AuditEvent) -> None:
        """Append one event."""


class EventBusAuditSink(AuditSink):
    """Publishes audit events on an EventBus under their action name."""

    def __init__(self, bus: EventBus) -> None:
        self.bus = bus

    async def record(self, event: AuditEvent) -> None:
        await self.bus.publish(event.action, event.model_dump(mode="json"))


class InMemoryAuditSink(AuditSink):
    """Keeps every audit event in memory."""

    def __init__(self) -> None:
        self.events: list[AuditEvent] = []

    async def record(self, event: AuditEvent) -> None:
        self.events.append(event)

    def actions(self, class_id: str | None = None) -> list[str]:
        """Recorded actions in order, optionally for one class."""
        return [e.action for e in self.events if class_id is None or e.class_id == class_id]


async def record_committed(sink: AuditSink, event: AuditEvent) -> bool:
    """Record an audit event for a change that has already committed.

    Args:
        sink: Destination sink.
        event: Event to record.

    Returns:
        True if the sink accepted the event, False if it failed.
    """
    try:
        await sink.record(event)
    except Exception:
        logger.error(
            "Failed to record audit event: action=%s, class=%s",
            event.action,
            event.class_id,
            exc_info=True,
        )
        return False
    return True
