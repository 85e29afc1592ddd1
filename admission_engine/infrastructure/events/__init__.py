# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Event and audit infrastructure for the admission engine.

Components:
- EventBus: In-memory pub/sub with pattern matching
- EventTypes: Centralized event type constants
- AuditEvent / AuditSink: Audit records and their destinations

Quick Start:
    from admission_engine.infrastructure.events import (
        EventBusAuditSink,
        EventTypes,
        get_event_bus,
    )

    event_bus = get_event_bus()
    event_bus.subscribe(EventTypes.Waitlist.PROMOTED, notify_student)
    audit = EventBusAuditSink(event_bus)
"""

from admission_engine.infrastructure.events.audit import (
    SYSTEM_ACTOR,
    AuditEvent,
    AuditSink,
    EventBusAuditSink,
    InMemoryAuditSink,
    record_committed,
)
from admission_engine.infrastructure.events.bus import (
    EventBus,
    EventData,
    EventHandler,
    get_event_bus,
    reset_event_bus,
)
from admission_engine.infrastructure.events.types import EventTypes

__all__ = [
    # Event Bus
    "EventBus",
    "EventData",
    "EventHandler",
    "get_event_bus",
    "reset_event_bus",
    # Event Types
    "EventTypes",
    # Audit
    "AuditEvent",
    "AuditSink",
    "EventBusAuditSink",
    "InMemoryAuditSink",
    "SYSTEM_ACTOR",
    "record_committed",
]
