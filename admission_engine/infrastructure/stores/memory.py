# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""In-memory store adapters.

Single-process implementations of the store contracts, used in tests and
in embedded deployments that keep all state in one event loop.

Atomicity model:
    Each class has its own asyncio.Lock, so units on different classes
    never wait on each other. A unit works on a private copy of the class
    ledger and swaps it in only when the ``async with`` block exits
    cleanly. An exception or cancellation (including a timeout) discards
    the copy, so no partial state is ever visible.

Thread-safety: designed for single-threaded async use, like the event
bus. Multi-process deployments use the SQLAlchemy adapters.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

from admission_engine.domains.admission.models import (
    Enrollment,
    EnrollmentStatus,
    Occupancy,
    Promotion,
    StudentAttributes,
    WaitlistEntry,
)
from admission_engine.domains.policy.models import (
    PolicyRecord,
    Prerequisite,
    Restriction,
)
from admission_engine.infrastructure.stores.base import (
    AttributeSource,
    ClassUnit,
    EnrollmentStore,
    PolicyStore,
)
from admission_engine.utils.datetime import utc_now

logger = logging.getLogger(__name__)


class InMemoryPolicyStore(PolicyStore):
    """Dictionary-backed PolicyStore.

    Every method completes without yielding to the event loop between its
    version check and its write, which makes each CAS atomic.
    """

    def __init__(self) -> None:
        self._policies: dict[str, tuple[PolicyRecord, int]] = {}
        self._prerequisites: dict[str, Prerequisite] = {}
        self._restrictions: dict[str, Restriction] = {}

    async def create_policy(self, class_id: str, record: PolicyRecord | None = None) -> int:
        self._policies[class_id] = ((record or PolicyRecord()).model_copy(deep=True), 1)
        return 1

    async def read_policy(self, class_id: str) -> tuple[PolicyRecord, int] | None:
        stored = self._policies.get(class_id)
        if stored is None:
            return None
        record, revision = stored
        return record.model_copy(deep=True), revision

    async def cas_write_policy(
        self,
        class_id: str,
        expected_revision: int,
        record: PolicyRecord,
    ) -> bool:
        stored = self._policies.get(class_id)
        if stored is None or stored[1] != expected_revision:
            return False
        self._policies[class_id] = (record.model_copy(deep=True), expected_revision + 1)
        return True

    async def list_prerequisites(self, class_id: str) -> list[Prerequisite]:
        rows = [p for p in self._prerequisites.values() if p.class_id == class_id]
        return [p.model_copy() for p in sorted(rows, key=lambda p: p.created_at)]

    async def get_prerequisite(self, prerequisite_id: str) -> Prerequisite | None:
        row = self._prerequisites.get(prerequisite_id)
        return row.model_copy() if row else None

    async def insert_prerequisite(self, prerequisite: Prerequisite) -> Prerequisite:
        self._prerequisites[prerequisite.id] = prerequisite.model_copy()
        return prerequisite

    async def cas_write_prerequisite(
        self,
        prerequisite: Prerequisite,
        expected_version: int,
    ) -> bool:
        current = self._prerequisites.get(prerequisite.id)
        if current is None or current.version != expected_version:
            return False
        self._prerequisites[prerequisite.id] = prerequisite.model_copy(
            update={"version": expected_version + 1}
        )
        return True

    async def cas_delete_prerequisite(self, prerequisite_id: str, expected_version: int) -> bool:
        current = self._prerequisites.get(prerequisite_id)
        if current is None or current.version != expected_version:
            return False
        del self._prerequisites[prerequisite_id]
        return True

    async def list_restrictions(self, class_id: str) -> list[Restriction]:
        rows = [r for r in self._restrictions.values() if r.class_id == class_id]
        return [r.model_copy() for r in sorted(rows, key=lambda r: r.created_at)]

    async def get_restriction(self, restriction_id: str) -> Restriction | None:
        row = self._restrictions.get(restriction_id)
        return row.model_copy() if row else None

    async def insert_restriction(self, restriction: Restriction) -> Restriction:
        self._restrictions[restriction.id] = restriction.model_copy()
        return restriction

    async def cas_write_restriction(
        self,
        restriction: Restriction,
        expected_version: int,
    ) -> bool:
        current = self._restrictions.get(restriction.id)
        if current is None or current.version != expected_version:
            return False
        self._restrictions[restriction.id] = restriction.model_copy(
            update={"version": expected_version + 1}
        )
        return True

    async def cas_delete_restriction(self, restriction_id: str, expected_version: int) -> bool:
        current = self._restrictions.get(restriction_id)
        if current is None or current.version != expected_version:
            return False
        del self._restrictions[restriction_id]
        return True


@dataclass
class _ClassLedger:
    """All enrollment and waitlist rows of one class."""

    enrollments: dict[str, Enrollment] = field(default_factory=dict)
    waitlist: list[WaitlistEntry] = field(default_factory=list)

    def copy(self) -> "_ClassLedger":
        return _ClassLedger(
            enrollments={k: v.model_copy() for k, v in self.enrollments.items()},
            waitlist=[entry.model_copy() for entry in self.waitlist],
        )

    def enrolled_count(self) -> int:
        return sum(1 for e in self.enrollments.values() if e.status == EnrollmentStatus.ENROLLED)

    def resequence(self) -> None:
        self.waitlist.sort(key=lambda entry: entry.position)
        for index, entry in enumerate(self.waitlist, start=1):
            entry.position = index


class _InMemoryClassUnit(ClassUnit):
    """Atomic unit over a private ledger copy."""

    def __init__(self, class_id: str, ledger: _ClassLedger) -> None:
        self.class_id = class_id
        self._ledger = ledger

    async def find_enrollment(self, student_id: str) -> Enrollment | None:
        return self._ledger.enrollments.get(student_id)

    async def find_waitlist_entry(self, student_id: str) -> WaitlistEntry | None:
        for entry in self._ledger.waitlist:
            if entry.student_id == student_id:
                return entry
        return None

    async def try_admit(self, student_id: str, capacity: int) -> Enrollment | None:
        if self._ledger.enrolled_count() >= capacity:
            return None
        enrollment = Enrollment(class_id=self.class_id, student_id=student_id)
        self._ledger.enrollments[student_id] = enrollment
        return enrollment

    async def try_waitlist(
        self,
        student_id: str,
        waitlist_capacity: int,
        max_position: int | None = None,
    ) -> WaitlistEntry | None:
        if len(self._ledger.waitlist) >= waitlist_capacity:
            return None
        position = max((e.position for e in self._ledger.waitlist), default=0) + 1
        if max_position is not None and position > max_position:
            return None

        entry = WaitlistEntry(class_id=self.class_id, student_id=student_id, position=position)
        self._ledger.waitlist.append(entry)
        self._ledger.enrollments[student_id] = Enrollment(
            class_id=self.class_id,
            student_id=student_id,
            status=EnrollmentStatus.WAITLISTED,
        )
        return entry

    async def promote_next(self, capacity: int) -> Promotion | None:
        if not self._ledger.waitlist or self._ledger.enrolled_count() >= capacity:
            return None

        self._ledger.resequence()
        head = self._ledger.waitlist.pop(0)
        self._ledger.resequence()

        now = utc_now()
        self._ledger.enrollments[head.student_id] = Enrollment(
            class_id=self.class_id,
            student_id=head.student_id,
            status=EnrollmentStatus.ENROLLED,
            enrolled_at=now,
            updated_at=now,
        )
        return Promotion(
            class_id=self.class_id,
            student_id=head.student_id,
            from_position=head.position,
            enrolled_at=now,
        )

    async def release(self, student_id: str, status: EnrollmentStatus) -> Enrollment | None:
        enrollment = self._ledger.enrollments.get(student_id)
        if enrollment is None or enrollment.status != EnrollmentStatus.ENROLLED:
            return None
        enrollment.status = status
        enrollment.updated_at = utc_now()
        return enrollment

    async def leave_waitlist(self, student_id: str) -> WaitlistEntry | None:
        entry = await self.find_waitlist_entry(student_id)
        if entry is None:
            return None

        self._ledger.waitlist.remove(entry)
        self._ledger.resequence()
        enrollment = self._ledger.enrollments.get(student_id)
        if enrollment is not None:
            enrollment.status = EnrollmentStatus.DROPPED
            enrollment.updated_at = utc_now()
        return entry


class InMemoryEnrollmentStore(EnrollmentStore):
    """Dictionary-backed EnrollmentStore with a lock per class."""

    def __init__(self) -> None:
        self._ledgers: dict[str, _ClassLedger] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, class_id: str) -> asyncio.Lock:
        lock = self._locks.get(class_id)
        if lock is None:
            lock = self._locks[class_id] = asyncio.Lock()
        return lock

    @asynccontextmanager
    async def class_unit(self, class_id: str) -> AsyncIterator[ClassUnit]:
        async with self._lock_for(class_id):
            working = self._ledgers.get(class_id, _ClassLedger()).copy()
            yield _InMemoryClassUnit(class_id, working)
            self._ledgers[class_id] = working
            logger.debug("Committed class unit: class=%s", class_id)

    async def get_occupancy(self, class_id: str) -> Occupancy:
        ledger = self._ledgers.get(class_id, _ClassLedger())
        return Occupancy(
            class_id=class_id,
            enrolled=ledger.enrolled_count(),
            waitlisted=len(ledger.waitlist),
        )

    async def get_enrollment(self, class_id: str, student_id: str) -> Enrollment | None:
        ledger = self._ledgers.get(class_id)
        if ledger is None or student_id not in ledger.enrollments:
            return None
        return ledger.enrollments[student_id].model_copy()

    async def list_enrollments(
        self,
        class_id: str,
        status: EnrollmentStatus | None = None,
    ) -> list[Enrollment]:
        ledger = self._ledgers.get(class_id, _ClassLedger())
        rows = [
            e.model_copy()
            for e in ledger.enrollments.values()
            if status is None or e.status == status
        ]
        return sorted(rows, key=lambda e: e.enrolled_at)

    async def list_waitlist(self, class_id: str) -> list[WaitlistEntry]:
        ledger = self._ledgers.get(class_id, _ClassLedger())
        return [e.model_copy() for e in sorted(ledger.waitlist, key=lambda e: e.position)]


class InMemoryAttributeSource(AttributeSource):
    """Attribute lookup backed by a dictionary.

    Unknown students get empty attributes, which fail every
    attribute-based rule.
    """

    def __init__(self, attributes: dict[str, StudentAttributes] | None = None) -> None:
        self._attributes = dict(attributes or {})

    def set(self, attributes: StudentAttributes) -> None:
        """Register or replace a student's attributes."""
        self._attributes[attributes.student_id] = attributes

    async def get_attributes(self, student_id: str) -> StudentAttributes:
        return self._attributes.get(student_id) or StudentAttributes(student_id=student_id)
