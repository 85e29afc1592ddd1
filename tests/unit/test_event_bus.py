# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the event bus and audit sinks."""

from unittest.mock import AsyncMock

import pytest

from admission_engine.infrastructure.events.audit import (
    AuditEvent,
    EventBusAuditSink,
    InMemoryAuditSink,
    record_committed,
)
from admission_engine.infrastructure.events.bus import (
    EventBus,
    EventData,
    get_event_bus,
    reset_event_bus,
)
from admission_engine.infrastructure.events.types import EventTypes


class TestEventBus:
    """Tests for EventBus subscription and delivery."""

    @pytest.mark.asyncio
    async def test_exact_subscription(self) -> None:
        """Test that exact subscribers receive their event only."""
        bus = EventBus()
        received: list[EventData] = []

        async def handler(event: EventData) -> None:
            received.append(event)

        bus.subscribe(EventTypes.Waitlist.PROMOTED, handler)

        await bus.publish(EventTypes.Waitlist.PROMOTED, {"student_id": "S1"})
        await bus.publish(EventTypes.Waitlist.LEFT, {"student_id": "S2"})

        assert [e.payload["student_id"] for e in received] == ["S1"]
        assert received[0].event_type == EventTypes.Waitlist.PROMOTED

    @pytest.mark.asyncio
    async def test_pattern_subscription(self) -> None:
        """Test that wildcard subscribers match by pattern."""
        bus = EventBus()
        received: list[str] = []

        async def handler(event: EventData) -> None:
            received.append(event.event_type)

        bus.subscribe("enrollment.admission.*", handler)
        bus.subscribe("*.removed", handler)

        await bus.publish(EventTypes.Admission.ADMITTED, {})
        await bus.publish(EventTypes.Admission.REJECTED, {})
        await bus.publish(EventTypes.Restriction.REMOVED, {})
        await bus.publish(EventTypes.Seat.RELEASED, {})

        assert received == [
            EventTypes.Admission.ADMITTED,
            EventTypes.Admission.REJECTED,
            EventTypes.Restriction.REMOVED,
        ]

    @pytest.mark.asyncio
    async def test_handler_error_does_not_stop_others(self) -> None:
        """Test that one failing handler does not block the rest."""
        bus = EventBus()
        received: list[str] = []

        async def failing(event: EventData) -> None:
            raise RuntimeError("handler failed")

        async def working(event: EventData) -> None:
            received.append(event.event_type)

        bus.subscribe(EventTypes.Seat.RELEASED, failing)
        bus.subscribe(EventTypes.Seat.RELEASED, working)

        await bus.publish(EventTypes.Seat.RELEASED, {})

        assert received == [EventTypes.Seat.RELEASED]

    @pytest.mark.asyncio
    async def test_unsubscribe(self) -> None:
        """Test that unsubscribed handlers stop receiving events."""
        bus = EventBus()
        handler = AsyncMock()

        bus.subscribe("enrollment.*", handler)

        assert bus.unsubscribe("enrollment.*", handler) is True
        assert bus.unsubscribe("enrollment.*", handler) is False

        await bus.publish(EventTypes.Policy.UPDATED, {})

        handler.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_stats(self) -> None:
        """Test subscription and publish counters."""
        bus = EventBus()
        bus.subscribe(EventTypes.Policy.UPDATED, AsyncMock())
        bus.subscribe("enrollment.waitlist.*", AsyncMock())
        bus.subscribe("enrollment.waitlist.*", AsyncMock())

        await bus.publish(EventTypes.Policy.UPDATED, {})

        assert bus.get_stats() == {
            "exact_subscriptions": 1,
            "pattern_subscriptions": 1,
            "total_handlers": 3,
            "events_published": 1,
        }

    def test_singleton_reset(self) -> None:
        """Test that reset_event_bus drops the singleton."""
        first = get_event_bus()

        assert get_event_bus() is first

        reset_event_bus()

        assert get_event_bus() is not first

    def test_event_data_to_dict(self) -> None:
        """Test EventData serialization."""
        event = EventData(event_type=EventTypes.Policy.UPDATED, payload={"class_id": "c-1"})

        data = event.to_dict()

        assert data["event_type"] == EventTypes.Policy.UPDATED
        assert data["payload"] == {"class_id": "c-1"}
        assert data["event_id"] == event.event_id


class TestAuditSinks:
    """Tests for audit sinks and post-commit recording."""

    @pytest.mark.asyncio
    async def test_event_bus_sink_publishes_under_action(self) -> None:
        bus = EventBus()
        handler = AsyncMock()
        bus.subscribe(EventTypes.Waitlist.PROMOTED, handler)
        sink = EventBusAuditSink(bus)

        await sink.record(
            AuditEvent(
                class_id="c-1",
                action=EventTypes.Waitlist.PROMOTED,
                subject_id="S3",
                outcome={"from_position": 1},
            )
        )

        handler.assert_awaited_once()
        published = handler.await_args.args[0]
        assert published.payload["actor"] == "system"
        assert published.payload["subject_id"] == "S3"
        assert published.payload["outcome"] == {"from_position": 1}

    @pytest.mark.asyncio
    async def test_in_memory_sink_filters_by_class(self) -> None:
        sink = InMemoryAuditSink()

        await sink.record(AuditEvent(class_id="c-1", action=EventTypes.Admission.ADMITTED))
        await sink.record(AuditEvent(class_id="c-2", action=EventTypes.Admission.REJECTED))

        assert sink.actions() == [EventTypes.Admission.ADMITTED, EventTypes.Admission.REJECTED]
        assert sink.actions("c-2") == [EventTypes.Admission.REJECTED]

    @pytest.mark.asyncio
    async def test_record_committed_reports_success(self) -> None:
        sink = InMemoryAuditSink()

        accepted = await record_committed(
            sink, AuditEvent(class_id="c-1", action=EventTypes.Seat.RELEASED)
        )

        assert accepted is True
        assert len(sink.events) == 1

    @pytest.mark.asyncio
    async def test_record_committed_reports_sink_failure(self) -> None:
        sink = AsyncMock()
        sink.record.side_effect = ConnectionError("audit store down")

        accepted = await record_committed(
            sink, AuditEvent(class_id="c-1", action=EventTypes.Seat.RELEASED)
        )

        assert accepted is False
