# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the enrollment configuration service."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from admission_engine.core.errors import (
    ClassNotFoundError,
    ConfigInvalidError,
    ConfigStaleError,
    PrerequisiteNotFoundError,
    RequirementInvalidError,
    RestrictionNotFoundError,
)
from admission_engine.domains.policy.models import (
    EnrollmentType,
    PolicyChanges,
    PrerequisiteData,
    PrerequisiteType,
    PrerequisiteUpdate,
    RestrictionData,
    RestrictionType,
    RestrictionUpdate,
)
from admission_engine.domains.policy.service import EnrollmentConfigService
from admission_engine.infrastructure.events.types import EventTypes


async def _fill_seats(enrollment_store, class_id: str, count: int) -> None:
    async with enrollment_store.class_unit(class_id) as unit:
        for n in range(count):
            await unit.try_admit(f"student-{n}", capacity=100)


class TestGetPolicy:
    """Tests for reading policies."""

    @pytest.mark.asyncio
    async def test_unknown_class(self, config_service) -> None:
        with pytest.raises(ClassNotFoundError):
            await config_service.get_policy("missing")

    @pytest.mark.asyncio
    async def test_defaults_applied(self, config_service, make_class) -> None:
        class_id = await make_class()

        policy = await config_service.get_policy(class_id)

        assert policy.revision == 1
        assert policy.capacity == 30
        assert policy.waitlist_capacity == 10
        assert policy.enrollment_type == EnrollmentType.OPEN


class TestUpdatePolicy:
    """Tests for policy updates."""

    @pytest.mark.asyncio
    async def test_update_success(self, config_service, make_class, audit_sink, sample_staff_id) -> None:
        class_id = await make_class()

        result = await config_service.update_policy(
            class_id, PolicyChanges(capacity=40), actor=sample_staff_id
        )

        assert result.policy.capacity == 40
        assert result.policy.revision == 2
        assert result.warnings == []
        stored = await config_service.get_policy(class_id)
        assert stored.capacity == 40
        assert stored.revision == 2

    @pytest.mark.asyncio
    async def test_update_emits_one_audit_event(
        self, config_service, make_class, audit_sink, sample_staff_id
    ) -> None:
        class_id = await make_class()

        await config_service.update_policy(class_id, PolicyChanges(capacity=40), sample_staff_id)

        assert audit_sink.actions() == [EventTypes.Policy.UPDATED]
        event = audit_sink.events[0]
        assert event.actor == sample_staff_id
        assert event.class_id == class_id
        assert event.before["capacity"] == 30
        assert event.after["capacity"] == 40

    @pytest.mark.asyncio
    async def test_invalid_update_not_written(
        self, config_service, make_class, audit_sink, sample_staff_id
    ) -> None:
        class_id = await make_class()

        with pytest.raises(ConfigInvalidError) as exc_info:
            await config_service.update_policy(class_id, PolicyChanges(capacity=0), sample_staff_id)

        assert exc_info.value.code == "CONFIG_INVALID"
        assert [e.code for e in exc_info.value.errors] == ["INVALID_CAPACITY"]
        stored = await config_service.get_policy(class_id)
        assert stored.capacity == 30
        assert stored.revision == 1
        assert audit_sink.events == []

    @pytest.mark.asyncio
    async def test_warning_returned_with_success(
        self, config_service, make_class, enrollment_store, sample_staff_id
    ) -> None:
        class_id = await make_class(capacity=5)
        await _fill_seats(enrollment_store, class_id, 4)

        result = await config_service.update_policy(
            class_id, PolicyChanges(capacity=2), sample_staff_id
        )

        assert result.policy.capacity == 2
        assert [w.code for w in result.warnings] == ["CAPACITY_BELOW_ENROLLMENT"]

    @pytest.mark.asyncio
    async def test_cascade_applied(self, config_service, make_class, sample_staff_id) -> None:
        class_id = await make_class()

        result = await config_service.update_policy(
            class_id, PolicyChanges(enrollment_type=EnrollmentType.RESTRICTED), sample_staff_id
        )

        assert result.policy.auto_approve is False
        assert result.policy.requires_justification is True

    @pytest.mark.asyncio
    async def test_stale_expected_revision(self, config_service, make_class, sample_staff_id) -> None:
        class_id = await make_class()
        await config_service.update_policy(class_id, PolicyChanges(capacity=40), sample_staff_id)

        with pytest.raises(ConfigStaleError) as exc_info:
            await config_service.update_policy(
                class_id, PolicyChanges(capacity=50), sample_staff_id, expected_revision=1
            )

        assert exc_info.value.code == "CONFIG_STALE"
        assert (await config_service.get_policy(class_id)).capacity == 40

    @pytest.mark.asyncio
    async def test_concurrent_writers_exactly_one_wins(
        self, config_service, make_class, audit_sink
    ) -> None:
        class_id = await make_class()

        results = await asyncio.gather(
            config_service.update_policy(
                class_id, PolicyChanges(capacity=40), "staff-a", expected_revision=1
            ),
            config_service.update_policy(
                class_id, PolicyChanges(capacity=50), "staff-b", expected_revision=1
            ),
            return_exceptions=True,
        )

        successes = [r for r in results if not isinstance(r, Exception)]
        stale = [r for r in results if isinstance(r, ConfigStaleError)]
        assert len(successes) == 1
        assert len(stale) == 1
        stored = await config_service.get_policy(class_id)
        assert stored.revision == 2
        assert stored.capacity == successes[0].policy.capacity
        assert len(audit_sink.events) == 1

    @pytest.mark.asyncio
    async def test_lost_cas_race_raises_stale(
        self, config_service, make_class, policy_store, sample_staff_id
    ) -> None:
        class_id = await make_class()
        policy_store.cas_write_policy = AsyncMock(return_value=False)

        with pytest.raises(ConfigStaleError):
            await config_service.update_policy(class_id, PolicyChanges(capacity=40), sample_staff_id)

    @pytest.mark.asyncio
    async def test_audit_failure_does_not_fail_update(
        self, policy_store, enrollment_store, make_class, sample_staff_id
    ) -> None:
        sink = AsyncMock()
        sink.record.side_effect = RuntimeError("audit store down")
        service = EnrollmentConfigService(policy_store, enrollment_store, sink)
        class_id = await make_class()

        result = await service.update_policy(class_id, PolicyChanges(capacity=40), sample_staff_id)

        assert result.policy.capacity == 40
        sink.record.assert_awaited_once()


class TestPrerequisites:
    """Tests for prerequisite management."""

    @pytest.mark.asyncio
    async def test_add_and_list(self, config_service, make_class, audit_sink, sample_staff_id) -> None:
        class_id = await make_class()

        added = await config_service.add_prerequisite(
            class_id,
            PrerequisiteData(type=PrerequisiteType.COURSE, requirement=" MATH101 "),
            sample_staff_id,
        )

        assert added.requirement == "MATH101"
        assert added.strict is True
        assert added.version == 1
        assert await config_service.list_prerequisites(class_id) == [added]
        assert audit_sink.actions() == [EventTypes.Prerequisite.ADDED]
        assert audit_sink.events[0].subject_id == added.id

    @pytest.mark.asyncio
    async def test_add_invalid_requirement(self, config_service, make_class, sample_staff_id) -> None:
        class_id = await make_class()

        with pytest.raises(RequirementInvalidError) as exc_info:
            await config_service.add_prerequisite(
                class_id,
                PrerequisiteData(type=PrerequisiteType.GPA, requirement="4.1"),
                sample_staff_id,
            )

        assert [e.code for e in exc_info.value.errors] == ["INVALID_GPA_REQUIREMENT"]
        assert await config_service.list_prerequisites(class_id) == []

    @pytest.mark.asyncio
    async def test_add_to_unknown_class(self, config_service, sample_staff_id) -> None:
        with pytest.raises(ClassNotFoundError):
            await config_service.add_prerequisite(
                "missing",
                PrerequisiteData(type=PrerequisiteType.COURSE, requirement="MATH101"),
                sample_staff_id,
            )

    @pytest.mark.asyncio
    async def test_update_bumps_version(self, config_service, make_class, sample_staff_id) -> None:
        class_id = await make_class()
        added = await config_service.add_prerequisite(
            class_id,
            PrerequisiteData(type=PrerequisiteType.GPA, requirement="2.5"),
            sample_staff_id,
        )

        updated = await config_service.update_prerequisite(
            added.id, PrerequisiteUpdate(requirement="3.0", strict=False), sample_staff_id
        )

        assert updated.requirement == "3.0"
        assert updated.strict is False
        assert updated.version == 2
        stored = (await config_service.list_prerequisites(class_id))[0]
        assert stored.version == 2

    @pytest.mark.asyncio
    async def test_type_change_revalidates_stored_requirement(
        self, config_service, make_class, sample_staff_id
    ) -> None:
        class_id = await make_class()
        added = await config_service.add_prerequisite(
            class_id,
            PrerequisiteData(type=PrerequisiteType.COURSE, requirement="MATH101"),
            sample_staff_id,
        )

        with pytest.raises(RequirementInvalidError):
            await config_service.update_prerequisite(
                added.id, PrerequisiteUpdate(type=PrerequisiteType.GPA), sample_staff_id
            )

    @pytest.mark.asyncio
    async def test_stale_version(self, config_service, make_class, sample_staff_id) -> None:
        class_id = await make_class()
        added = await config_service.add_prerequisite(
            class_id,
            PrerequisiteData(type=PrerequisiteType.YEAR, requirement="2"),
            sample_staff_id,
        )
        await config_service.update_prerequisite(
            added.id, PrerequisiteUpdate(requirement="3"), sample_staff_id
        )

        with pytest.raises(ConfigStaleError):
            await config_service.update_prerequisite(
                added.id, PrerequisiteUpdate(requirement="4"), sample_staff_id, expected_version=1
            )

    @pytest.mark.asyncio
    async def test_remove(self, config_service, make_class, audit_sink, sample_staff_id) -> None:
        class_id = await make_class()
        added = await config_service.add_prerequisite(
            class_id,
            PrerequisiteData(type=PrerequisiteType.CUSTOM, requirement="Portfolio review"),
            sample_staff_id,
        )

        await config_service.remove_prerequisite(added.id, sample_staff_id)

        assert await config_service.list_prerequisites(class_id) == []
        assert audit_sink.actions()[-1] == EventTypes.Prerequisite.REMOVED
        assert audit_sink.events[-1].before["requirement"] == "Portfolio review"

    @pytest.mark.asyncio
    async def test_remove_unknown(self, config_service, sample_staff_id) -> None:
        with pytest.raises(PrerequisiteNotFoundError):
            await config_service.remove_prerequisite("missing", sample_staff_id)


class TestRestrictions:
    """Tests for restriction management."""

    @pytest.mark.asyncio
    async def test_add_defaults_to_non_overridable(
        self, config_service, make_class, sample_staff_id
    ) -> None:
        class_id = await make_class()

        added = await config_service.add_restriction(
            class_id,
            RestrictionData(type=RestrictionType.GPA, condition="3.5"),
            sample_staff_id,
        )

        assert added.overridable is False
        assert await config_service.list_restrictions(class_id) == [added]

    @pytest.mark.asyncio
    async def test_add_invalid_condition(self, config_service, make_class, sample_staff_id) -> None:
        class_id = await make_class()

        with pytest.raises(RequirementInvalidError) as exc_info:
            await config_service.add_restriction(
                class_id,
                RestrictionData(type=RestrictionType.YEAR_LEVEL, condition="9"),
                sample_staff_id,
            )

        assert exc_info.value.code == "REQUIREMENT_INVALID"
        assert [e.code for e in exc_info.value.errors] == ["INVALID_YEAR_CONDITION"]

    @pytest.mark.asyncio
    async def test_update_and_remove(self, config_service, make_class, audit_sink, sample_staff_id) -> None:
        class_id = await make_class()
        added = await config_service.add_restriction(
            class_id,
            RestrictionData(type=RestrictionType.CUSTOM, condition="honors_program"),
            sample_staff_id,
        )

        updated = await config_service.update_restriction(
            added.id, RestrictionUpdate(overridable=True), sample_staff_id
        )
        await config_service.remove_restriction(updated.id, sample_staff_id)

        assert updated.overridable is True
        assert updated.version == 2
        assert await config_service.list_restrictions(class_id) == []
        assert audit_sink.actions() == [
            EventTypes.Restriction.ADDED,
            EventTypes.Restriction.UPDATED,
            EventTypes.Restriction.REMOVED,
        ]

    @pytest.mark.asyncio
    async def test_update_unknown(self, config_service, sample_staff_id) -> None:
        with pytest.raises(RestrictionNotFoundError):
            await config_service.update_restriction(
                "missing", RestrictionUpdate(condition="3.0"), sample_staff_id
            )


class TestQueries:
    """Tests for window and capacity queries."""

    @pytest.mark.asyncio
    async def test_enrollment_window_inclusive(self, config_service, make_class) -> None:
        start = datetime(2025, 8, 1, tzinfo=timezone.utc)
        end = start + timedelta(days=14)
        class_id = await make_class(enrollment_start=start, enrollment_end=end)

        assert await config_service.is_enrollment_open(class_id, at=start) is True
        assert await config_service.is_enrollment_open(class_id, at=end) is True
        assert await config_service.is_enrollment_open(class_id, at=end + timedelta(seconds=1)) is False
        assert await config_service.is_enrollment_open(class_id, at=start - timedelta(seconds=1)) is False

    @pytest.mark.asyncio
    async def test_unbounded_window_is_open(self, config_service, make_class) -> None:
        class_id = await make_class()

        assert await config_service.is_enrollment_open(class_id) is True

    @pytest.mark.asyncio
    async def test_has_capacity(self, config_service, make_class, enrollment_store) -> None:
        class_id = await make_class(capacity=2)
        assert await config_service.has_capacity(class_id) is True

        await _fill_seats(enrollment_store, class_id, 2)

        assert await config_service.has_capacity(class_id) is False

    @pytest.mark.asyncio
    async def test_has_waitlist_capacity(self, config_service, make_class) -> None:
        open_id = await make_class("class-open", waitlist_capacity=1)
        closed_id = await make_class("class-closed", allow_waitlist=False)

        assert await config_service.has_waitlist_capacity(open_id) is True
        assert await config_service.has_waitlist_capacity(closed_id) is False
