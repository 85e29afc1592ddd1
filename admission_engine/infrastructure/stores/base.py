# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Store contracts consumed by the admission engine.

The engine owns no persistence. It talks to two stateful collaborators
passed in explicitly:

- PolicyStore: class policies plus prerequisite and restriction rules,
  all written with compare-and-swap on a revision/version counter.
- EnrollmentStore: enrollment and waitlist rows. All mutations happen
  inside a per-class atomic unit (``class_unit``) that is totally
  ordered with every other unit on the same class and commits
  all-or-nothing.

Implementations raise StoreError for infrastructure failures and return
None/False for ordinary "not found" or "lost the race" outcomes.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager

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


class PolicyStore(ABC):
    """Durable storage for per-class policy and rules."""

    @abstractmethod
    async def create_policy(self, class_id: str, record: PolicyRecord | None = None) -> int:
        """Create the policy row for a new class and return its revision."""

    @abstractmethod
    async def read_policy(self, class_id: str) -> tuple[PolicyRecord, int] | None:
        """Return the stored policy and its revision, or None if unknown."""

    @abstractmethod
    async def cas_write_policy(
        self,
        class_id: str,
        expected_revision: int,
        record: PolicyRecord,
    ) -> bool:
        """Write the policy iff the stored revision equals expected_revision.

        On success the stored revision becomes expected_revision + 1.
        """

    @abstractmethod
    async def list_prerequisites(self, class_id: str) -> list[Prerequisite]:
        """Return a class's prerequisites ordered by creation time."""

    @abstractmethod
    async def get_prerequisite(self, prerequisite_id: str) -> Prerequisite | None:
        """Return one prerequisite, or None."""

    @abstractmethod
    async def insert_prerequisite(self, prerequisite: Prerequisite) -> Prerequisite:
        """Insert a new prerequisite row."""

    @abstractmethod
    async def cas_write_prerequisite(
        self,
        prerequisite: Prerequisite,
        expected_version: int,
    ) -> bool:
        """Replace a prerequisite iff its stored version matches."""

    @abstractmethod
    async def cas_delete_prerequisite(self, prerequisite_id: str, expected_version: int) -> bool:
        """Delete a prerequisite iff its stored version matches."""

    @abstractmethod
    async def list_restrictions(self, class_id: str) -> list[Restriction]:
        """Return a class's restrictions ordered by creation time."""

    @abstractmethod
    async def get_restriction(self, restriction_id: str) -> Restriction | None:
        """Return one restriction, or None."""

    @abstractmethod
    async def insert_restriction(self, restriction: Restriction) -> Restriction:
        """Insert a new restriction row."""

    @abstractmethod
    async def cas_write_restriction(
        self,
        restriction: Restriction,
        expected_version: int,
    ) -> bool:
        """Replace a restriction iff its stored version matches."""

    @abstractmethod
    async def cas_delete_restriction(self, restriction_id: str, expected_version: int) -> bool:
        """Delete a restriction iff its stored version matches."""


class ClassUnit(ABC):
    """Operations available inside one per-class atomic unit.

    Every method sees the effects of earlier calls in the same unit.
    Nothing is visible to other units until the unit commits.
    """

    class_id: str

    @abstractmethod
    async def find_enrollment(self, student_id: str) -> Enrollment | None:
        """The student's enrollment row in any status, or None."""

    @abstractmethod
    async def find_waitlist_entry(self, student_id: str) -> WaitlistEntry | None:
        """The student's waitlist entry, or None."""

    @abstractmethod
    async def try_admit(self, student_id: str, capacity: int) -> Enrollment | None:
        """Take a seat iff enrolled < capacity; None when full."""

    @abstractmethod
    async def try_waitlist(
        self,
        student_id: str,
        waitlist_capacity: int,
        max_position: int | None = None,
    ) -> WaitlistEntry | None:
        """Append at max(position)+1 iff room remains; None otherwise."""

    @abstractmethod
    async def promote_next(self, capacity: int) -> Promotion | None:
        """Move position 1 into a seat iff enrolled < capacity.

        Remaining entries shift down by one position.
        """

    @abstractmethod
    async def release(self, student_id: str, status: EnrollmentStatus) -> Enrollment | None:
        """Move an enrolled row to dropped/withdrawn; None if not enrolled."""

    @abstractmethod
    async def leave_waitlist(self, student_id: str) -> WaitlistEntry | None:
        """Remove a waitlist entry and close the gap; None if absent."""


class EnrollmentStore(ABC):
    """Storage for enrollment and waitlist rows."""

    @abstractmethod
    def class_unit(self, class_id: str) -> AbstractAsyncContextManager[ClassUnit]:
        """Open the atomic unit for a class.

        Usage:
            async with store.class_unit(class_id) as unit:
                seat = await unit.try_admit(student_id, capacity)
        """

    @abstractmethod
    async def get_occupancy(self, class_id: str) -> Occupancy:
        """Committed enrolled and waitlisted counts."""

    @abstractmethod
    async def get_enrollment(self, class_id: str, student_id: str) -> Enrollment | None:
        """Committed enrollment row, or None."""

    @abstractmethod
    async def list_enrollments(
        self,
        class_id: str,
        status: EnrollmentStatus | None = None,
    ) -> list[Enrollment]:
        """Committed enrollment rows, optionally filtered by status."""

    @abstractmethod
    async def list_waitlist(self, class_id: str) -> list[WaitlistEntry]:
        """Committed waitlist entries ordered by position."""


class AttributeSource(ABC):
    """Lookup for the student facts used in eligibility checks."""

    @abstractmethod
    async def get_attributes(self, student_id: str) -> StudentAttributes:
        """Return the student's attributes."""
