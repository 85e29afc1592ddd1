# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""SQLAlchemy implementations of the store contracts.

Each public call runs in its own session via ``session_scope``: committed
on success, rolled back on any exception, with SQLAlchemy errors wrapped
in DatabaseError.

Atomic units:
    ``SqlAlchemyEnrollmentStore.class_unit`` opens one transaction, makes
    sure the class_occupancy row exists, and locks it ``FOR UPDATE``.
    Seat and waitlist counters then move only through conditional
    updates (``... WHERE enrolled_count < :capacity``), and the rows
    changed in the unit commit or roll back together.

Compare-and-swap:
    Policy and rule writes are ``UPDATE ... WHERE revision = :expected``;
    a rowcount of zero means another writer got there first.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from admission_engine.domains.admission.models import (
    Enrollment,
    EnrollmentStatus,
    Occupancy,
    Promotion,
    WaitlistEntry,
)
from admission_engine.domains.policy.models import (
    NotificationSettingsUpdate,
    PolicyRecord,
    Prerequisite,
    Restriction,
)
from admission_engine.infrastructure.database.connection import session_scope
from admission_engine.infrastructure.database.models import (
    ClassEnrollmentPolicyModel,
    ClassOccupancyModel,
    ClassPrerequisiteModel,
    EnrollmentAuditLogModel,
    EnrollmentModel,
    EnrollmentRestrictionModel,
    WaitlistEntryModel,
)
from admission_engine.infrastructure.events.audit import AuditEvent, AuditSink
from admission_engine.infrastructure.stores.base import (
    ClassUnit,
    EnrollmentStore,
    PolicyStore,
)
from admission_engine.utils.datetime import utc_now

logger = logging.getLogger(__name__)

_POLICY_COLUMNS = tuple(name for name in PolicyRecord.model_fields if name != "notification_settings")


def _policy_values(record: PolicyRecord) -> dict:
    values = record.model_dump(include=set(_POLICY_COLUMNS))
    if record.enrollment_type is not None:
        values["enrollment_type"] = record.enrollment_type.value
    values["notification_settings"] = record.notification_settings.model_dump(exclude_none=True)
    return values


def _policy_record(row: ClassEnrollmentPolicyModel) -> PolicyRecord:
    data = {name: getattr(row, name) for name in _POLICY_COLUMNS}
    data["notification_settings"] = NotificationSettingsUpdate(**(row.notification_settings or {}))
    return PolicyRecord.model_validate(data)


def _enrollment(row: EnrollmentModel) -> Enrollment:
    return Enrollment(
        class_id=row.class_id,
        student_id=row.student_id,
        status=EnrollmentStatus(row.status),
        enrolled_at=row.enrolled_at,
        updated_at=row.updated_at,
    )


def _waitlist_entry(row: WaitlistEntryModel) -> WaitlistEntry:
    return WaitlistEntry(
        class_id=row.class_id,
        student_id=row.student_id,
        position=row.position,
        added_at=row.added_at,
    )


class SqlAlchemyPolicyStore(PolicyStore):
    """PolicyStore backed by PostgreSQL.

    Attributes:
        sessionmaker: Factory for database sessions.
    """

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self.sessionmaker = sessionmaker

    async def create_policy(self, class_id: str, record: PolicyRecord | None = None) -> int:
        """Create the policy row and the class's occupancy counters."""
        async with session_scope(self.sessionmaker) as session:
            session.add(
                ClassEnrollmentPolicyModel(
                    class_id=class_id,
                    revision=1,
                    **_policy_values(record or PolicyRecord()),
                )
            )
            session.add(ClassOccupancyModel(class_id=class_id, enrolled_count=0, waitlisted_count=0))

        logger.debug("Created policy row: class=%s", class_id)
        return 1

    async def read_policy(self, class_id: str) -> tuple[PolicyRecord, int] | None:
        async with session_scope(self.sessionmaker) as session:
            row = await session.get(ClassEnrollmentPolicyModel, class_id)
            if row is None:
                return None
            return _policy_record(row), row.revision

    async def cas_write_policy(
        self,
        class_id: str,
        expected_revision: int,
        record: PolicyRecord,
    ) -> bool:
        async with session_scope(self.sessionmaker) as session:
            result = await session.execute(
                update(ClassEnrollmentPolicyModel)
                .where(
                    ClassEnrollmentPolicyModel.class_id == class_id,
                    ClassEnrollmentPolicyModel.revision == expected_revision,
                )
                .values(**_policy_values(record), revision=expected_revision + 1)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1

    async def list_prerequisites(self, class_id: str) -> list[Prerequisite]:
        async with session_scope(self.sessionmaker) as session:
            result = await session.execute(
                select(ClassPrerequisiteModel)
                .where(ClassPrerequisiteModel.class_id == class_id)
                .order_by(ClassPrerequisiteModel.created_at)
            )
            return [
                Prerequisite.model_validate(row, from_attributes=True)
                for row in result.scalars().all()
            ]

    async def get_prerequisite(self, prerequisite_id: str) -> Prerequisite | None:
        async with session_scope(self.sessionmaker) as session:
            row = await session.get(ClassPrerequisiteModel, prerequisite_id)
            return Prerequisite.model_validate(row, from_attributes=True) if row else None

    async def insert_prerequisite(self, prerequisite: Prerequisite) -> Prerequisite:
        async with session_scope(self.sessionmaker) as session:
            session.add(
                ClassPrerequisiteModel(
                    **prerequisite.model_dump(exclude={"type"}),
                    type=prerequisite.type.value,
                )
            )
        return prerequisite

    async def cas_write_prerequisite(
        self,
        prerequisite: Prerequisite,
        expected_version: int,
    ) -> bool:
        async with session_scope(self.sessionmaker) as session:
            result = await session.execute(
                update(ClassPrerequisiteModel)
                .where(
                    ClassPrerequisiteModel.id == prerequisite.id,
                    ClassPrerequisiteModel.version == expected_version,
                )
                .values(
                    type=prerequisite.type.value,
                    requirement=prerequisite.requirement,
                    description=prerequisite.description,
                    strict=prerequisite.strict,
                    version=expected_version + 1,
                    updated_at=prerequisite.updated_at,
                )
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1

    async def cas_delete_prerequisite(self, prerequisite_id: str, expected_version: int) -> bool:
        async with session_scope(self.sessionmaker) as session:
            result = await session.execute(
                delete(ClassPrerequisiteModel)
                .where(
                    ClassPrerequisiteModel.id == prerequisite_id,
                    ClassPrerequisiteModel.version == expected_version,
                )
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1

    async def list_restrictions(self, class_id: str) -> list[Restriction]:
        async with session_scope(self.sessionmaker) as session:
            result = await session.execute(
                select(EnrollmentRestrictionModel)
                .where(EnrollmentRestrictionModel.class_id == class_id)
                .order_by(EnrollmentRestrictionModel.created_at)
            )
            return [
                Restriction.model_validate(row, from_attributes=True)
                for row in result.scalars().all()
            ]

    async def get_restriction(self, restriction_id: str) -> Restriction | None:
        async with session_scope(self.sessionmaker) as session:
            row = await session.get(EnrollmentRestrictionModel, restriction_id)
            return Restriction.model_validate(row, from_attributes=True) if row else None

    async def insert_restriction(self, restriction: Restriction) -> Restriction:
        async with session_scope(self.sessionmaker) as session:
            session.add(
                EnrollmentRestrictionModel(
                    **restriction.model_dump(exclude={"type"}),
                    type=restriction.type.value,
                )
            )
        return restriction

    async def cas_write_restriction(
        self,
        restriction: Restriction,
        expected_version: int,
    ) -> bool:
        async with session_scope(self.sessionmaker) as session:
            result = await session.execute(
                update(EnrollmentRestrictionModel)
                .where(
                    EnrollmentRestrictionModel.id == restriction.id,
                    EnrollmentRestrictionModel.version == expected_version,
                )
                .values(
                    type=restriction.type.value,
                    condition=restriction.condition,
                    description=restriction.description,
                    overridable=restriction.overridable,
                    version=expected_version + 1,
                    updated_at=restriction.updated_at,
                )
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1

    async def cas_delete_restriction(self, restriction_id: str, expected_version: int) -> bool:
        async with session_scope(self.sessionmaker) as session:
            result = await session.execute(
                delete(EnrollmentRestrictionModel)
                .where(
                    EnrollmentRestrictionModel.id == restriction_id,
                    EnrollmentRestrictionModel.version == expected_version,
                )
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1


class _SqlAlchemyClassUnit(ClassUnit):
    """Atomic unit inside one transaction holding the occupancy row lock."""

    def __init__(self, session: AsyncSession, class_id: str) -> None:
        self.session = session
        self.class_id = class_id

    async def find_enrollment(self, student_id: str) -> Enrollment | None:
        row = await self._enrollment_row(student_id)
        return _enrollment(row) if row else None

    async def find_waitlist_entry(self, student_id: str) -> WaitlistEntry | None:
        row = await self._waitlist_row(student_id)
        return _waitlist_entry(row) if row else None

    async def try_admit(self, student_id: str, capacity: int) -> Enrollment | None:
        taken = await self._bump_occupancy(
            ClassOccupancyModel.enrolled_count < capacity,
            enrolled_count=ClassOccupancyModel.enrolled_count + 1,
        )
        if not taken:
            return None
        return await self._put_enrollment(student_id, EnrollmentStatus.ENROLLED)

    async def try_waitlist(
        self,
        student_id: str,
        waitlist_capacity: int,
        max_position: int | None = None,
    ) -> WaitlistEntry | None:
        result = await self.session.execute(
            select(func.coalesce(func.max(WaitlistEntryModel.position), 0)).where(
                WaitlistEntryModel.class_id == self.class_id
            )
        )
        position = result.scalar_one() + 1
        if max_position is not None and position > max_position:
            return None

        taken = await self._bump_occupancy(
            ClassOccupancyModel.waitlisted_count < waitlist_capacity,
            waitlisted_count=ClassOccupancyModel.waitlisted_count + 1,
        )
        if not taken:
            return None

        entry = WaitlistEntry(class_id=self.class_id, student_id=student_id, position=position)
        self.session.add(WaitlistEntryModel(**entry.model_dump()))
        await self._put_enrollment(student_id, EnrollmentStatus.WAITLISTED)
        return entry

    async def promote_next(self, capacity: int) -> Promotion | None:
        result = await self.session.execute(
            select(WaitlistEntryModel)
            .where(WaitlistEntryModel.class_id == self.class_id)
            .order_by(WaitlistEntryModel.position)
            .limit(1)
        )
        head = result.scalar_one_or_none()
        if head is None:
            return None

        taken = await self._bump_occupancy(
            ClassOccupancyModel.enrolled_count < capacity,
            enrolled_count=ClassOccupancyModel.enrolled_count + 1,
            waitlisted_count=ClassOccupancyModel.waitlisted_count - 1,
        )
        if not taken:
            return None

        student_id, from_position = head.student_id, head.position
        await self._remove_waitlist_row(head)
        enrollment = await self._put_enrollment(student_id, EnrollmentStatus.ENROLLED)
        return Promotion(
            class_id=self.class_id,
            student_id=student_id,
            from_position=from_position,
            enrolled_at=enrollment.enrolled_at,
        )

    async def release(self, student_id: str, status: EnrollmentStatus) -> Enrollment | None:
        now = utc_now()
        result = await self.session.execute(
            update(EnrollmentModel)
            .where(
                EnrollmentModel.class_id == self.class_id,
                EnrollmentModel.student_id == student_id,
                EnrollmentModel.status == EnrollmentStatus.ENROLLED.value,
            )
            .values(status=status.value, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None

        await self._bump_occupancy(
            ClassOccupancyModel.enrolled_count > 0,
            enrolled_count=ClassOccupancyModel.enrolled_count - 1,
        )
        return await self.find_enrollment(student_id)

    async def leave_waitlist(self, student_id: str) -> WaitlistEntry | None:
        row = await self._waitlist_row(student_id)
        if row is None:
            return None

        entry = _waitlist_entry(row)
        await self._remove_waitlist_row(row)
        await self._bump_occupancy(
            ClassOccupancyModel.waitlisted_count > 0,
            waitlisted_count=ClassOccupancyModel.waitlisted_count - 1,
        )
        await self.session.execute(
            update(EnrollmentModel)
            .where(
                EnrollmentModel.class_id == self.class_id,
                EnrollmentModel.student_id == student_id,
                EnrollmentModel.status == EnrollmentStatus.WAITLISTED.value,
            )
            .values(status=EnrollmentStatus.DROPPED.value, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        return entry

    # =========================================================================
    # Private Helpers
    # =========================================================================

    async def _bump_occupancy(self, guard, **values) -> bool:
        result = await self.session.execute(
            update(ClassOccupancyModel)
            .where(ClassOccupancyModel.class_id == self.class_id, guard)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def _enrollment_row(self, student_id: str) -> EnrollmentModel | None:
        result = await self.session.execute(
            select(EnrollmentModel)
            .where(
                EnrollmentModel.class_id == self.class_id,
                EnrollmentModel.student_id == student_id,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _waitlist_row(self, student_id: str) -> WaitlistEntryModel | None:
        result = await self.session.execute(
            select(WaitlistEntryModel)
            .where(
                WaitlistEntryModel.class_id == self.class_id,
                WaitlistEntryModel.student_id == student_id,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _remove_waitlist_row(self, row: WaitlistEntryModel) -> None:
        position = row.position
        await self.session.delete(row)
        await self.session.flush()
        await self.session.execute(
            update(WaitlistEntryModel)
            .where(
                WaitlistEntryModel.class_id == self.class_id,
                WaitlistEntryModel.position > position,
            )
            .values(position=WaitlistEntryModel.position - 1)
            .execution_options(synchronize_session=False)
        )

    async def _put_enrollment(self, student_id: str, status: EnrollmentStatus) -> Enrollment:
        now = utc_now()
        row = await self._enrollment_row(student_id)
        if row is None:
            row = EnrollmentModel(
                class_id=self.class_id,
                student_id=student_id,
                status=status.value,
                enrolled_at=now,
                updated_at=now,
            )
            self.session.add(row)
        else:
            row.status = status.value
            row.enrolled_at = now
            row.updated_at = now
        await self.session.flush()
        return _enrollment(row)


class SqlAlchemyEnrollmentStore(EnrollmentStore):
    """EnrollmentStore backed by PostgreSQL.

    Attributes:
        sessionmaker: Factory for database sessions.
    """

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self.sessionmaker = sessionmaker

    @asynccontextmanager
    async def class_unit(self, class_id: str) -> AsyncIterator[ClassUnit]:
        async with session_scope(self.sessionmaker) as session:
            await session.execute(
                pg_insert(ClassOccupancyModel)
                .values(class_id=class_id, enrolled_count=0, waitlisted_count=0)
                .on_conflict_do_nothing(index_elements=["class_id"])
            )
            await session.execute(
                select(ClassOccupancyModel.class_id)
                .where(ClassOccupancyModel.class_id == class_id)
                .with_for_update()
            )
            yield _SqlAlchemyClassUnit(session, class_id)

        logger.debug("Committed class unit: class=%s", class_id)

    async def get_occupancy(self, class_id: str) -> Occupancy:
        async with session_scope(self.sessionmaker) as session:
            row = await session.get(ClassOccupancyModel, class_id)
            if row is None:
                return Occupancy(class_id=class_id)
            return Occupancy(
                class_id=class_id,
                enrolled=row.enrolled_count,
                waitlisted=row.waitlisted_count,
            )

    async def get_enrollment(self, class_id: str, student_id: str) -> Enrollment | None:
        async with session_scope(self.sessionmaker) as session:
            result = await session.execute(
                select(EnrollmentModel).where(
                    EnrollmentModel.class_id == class_id,
                    EnrollmentModel.student_id == student_id,
                )
            )
            row = result.scalar_one_or_none()
            return _enrollment(row) if row else None

    async def list_enrollments(
        self,
        class_id: str,
        status: EnrollmentStatus | None = None,
    ) -> list[Enrollment]:
        query = select(EnrollmentModel).where(EnrollmentModel.class_id == class_id)
        if status is not None:
            query = query.where(EnrollmentModel.status == status.value)

        async with session_scope(self.sessionmaker) as session:
            result = await session.execute(query.order_by(EnrollmentModel.enrolled_at))
            return [_enrollment(row) for row in result.scalars().all()]

    async def list_waitlist(self, class_id: str) -> list[WaitlistEntry]:
        async with session_scope(self.sessionmaker) as session:
            result = await session.execute(
                select(WaitlistEntryModel)
                .where(WaitlistEntryModel.class_id == class_id)
                .order_by(WaitlistEntryModel.position)
            )
            return [_waitlist_entry(row) for row in result.scalars().all()]


class SqlAlchemyAuditSink(AuditSink):
    """Appends audit events to the enrollment_audit_log table."""

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self.sessionmaker = sessionmaker

    async def record(self, event: AuditEvent) -> None:
        async with session_scope(self.sessionmaker) as session:
            session.add(EnrollmentAuditLogModel(**event.model_dump()))
