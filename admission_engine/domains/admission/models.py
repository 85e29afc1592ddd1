# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Data models for the admission domain.

This module defines Pydantic models and enums for:
- Enrollment and waitlist rows
- Per-class occupancy snapshots
- Student attributes used for eligibility checks
- Admission decisions, release results and bulk results

Rejections are ordinary decisions, not exceptions: every call to the
admission controller returns one of these models.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from admission_engine.utils.datetime import utc_now


class EnrollmentStatus(str, Enum):
    """Lifecycle status of an enrollment row."""

    ENROLLED = "enrolled"
    WAITLISTED = "waitlisted"
    DROPPED = "dropped"
    WITHDRAWN = "withdrawn"


# Statuses a seat can be released into
RELEASE_STATUSES = frozenset({EnrollmentStatus.DROPPED, EnrollmentStatus.WITHDRAWN})

# Average days a waitlist slot takes to advance one position
WAIT_DAYS_PER_POSITION = 2.5


class AdmissionOutcome(str, Enum):
    """Top-level result of an enrollment request."""

    ADMITTED = "admitted"
    WAITLISTED = "waitlisted"
    REJECTED = "rejected"


class RejectionReason(str, Enum):
    """Why a request was rejected."""

    CLASS_FULL = "CLASS_FULL"
    ENROLLMENT_NOT_OPEN = "ENROLLMENT_NOT_OPEN"
    PREREQUISITES_NOT_MET = "PREREQUISITES_NOT_MET"
    RESTRICTED = "RESTRICTED"


class DecisionCode(str, Enum):
    """Extra detail on an admitted or waitlisted outcome."""

    NEW = "NEW"
    ALREADY_ENROLLED = "ALREADY_ENROLLED"
    ALREADY_WAITLISTED = "ALREADY_WAITLISTED"


class Enrollment(BaseModel):
    """An enrollment row for one (class, student) pair."""

    class_id: str
    student_id: str
    status: EnrollmentStatus = EnrollmentStatus.ENROLLED
    enrolled_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class WaitlistEntry(BaseModel):
    """A waitlist row. Positions per class form the sequence 1..N."""

    class_id: str
    student_id: str
    position: int = Field(ge=1)
    added_at: datetime = Field(default_factory=utc_now)


class Occupancy(BaseModel):
    """Point-in-time seat and waitlist counts for a class."""

    class_id: str
    enrolled: int = 0
    waitlisted: int = 0


class StudentAttributes(BaseModel):
    """Student facts needed to evaluate prerequisites and restrictions.

    Attributes:
        student_id: Student identifier.
        gpa: Current GPA on the 0.0-4.0 scale, if known.
        year_level: Current year level, if known.
        completed_courses: Course codes the student has completed.
        satisfied_custom: Custom requirement strings the student meets.
    """

    student_id: str
    gpa: float | None = None
    year_level: int | None = None
    completed_courses: set[str] = Field(default_factory=set)
    satisfied_custom: set[str] = Field(default_factory=set)


class EligibilityFinding(BaseModel):
    """One prerequisite or restriction that the student did not clear."""

    rule_id: str
    kind: str
    type: str
    requirement: str
    blocking: bool
    message: str


class EligibilityResult(BaseModel):
    """Outcome of evaluating a student against a class's rules."""

    unmet_prerequisites: list[EligibilityFinding] = Field(default_factory=list)
    applied_restrictions: list[EligibilityFinding] = Field(default_factory=list)

    @property
    def prerequisites_met(self) -> bool:
        """True unless a strict prerequisite is unmet."""
        return not any(f.blocking for f in self.unmet_prerequisites)

    @property
    def restricted(self) -> bool:
        """True if a non-overridable restriction applies."""
        return any(f.blocking for f in self.applied_restrictions)

    @property
    def advisories(self) -> list[EligibilityFinding]:
        """Findings that did not block admission."""
        return [
            f for f in [*self.unmet_prerequisites, *self.applied_restrictions] if not f.blocking
        ]


class AdmissionDecision(BaseModel):
    """Result of one enrollment request.

    Attributes:
        class_id: Class identifier.
        student_id: Student identifier.
        outcome: admitted, waitlisted or rejected.
        code: NEW, ALREADY_ENROLLED or ALREADY_WAITLISTED for non-rejections.
        reason: Rejection reason when outcome is rejected.
        position: Waitlist position when outcome is waitlisted.
        findings: Blocking findings behind a prerequisite/restriction rejection.
        advisories: Non-blocking findings (non-strict, overridable rules).
        decided_at: Decision timestamp.
    """

    class_id: str
    student_id: str
    outcome: AdmissionOutcome
    code: DecisionCode | None = None
    reason: RejectionReason | None = None
    position: int | None = None
    findings: list[EligibilityFinding] = Field(default_factory=list)
    advisories: list[EligibilityFinding] = Field(default_factory=list)
    decided_at: datetime = Field(default_factory=utc_now)

    @classmethod
    def admitted(
        cls,
        class_id: str,
        student_id: str,
        code: DecisionCode = DecisionCode.NEW,
        advisories: list[EligibilityFinding] | None = None,
    ) -> "AdmissionDecision":
        return cls(
            class_id=class_id,
            student_id=student_id,
            outcome=AdmissionOutcome.ADMITTED,
            code=code,
            advisories=advisories or [],
        )

    @classmethod
    def waitlisted(
        cls,
        class_id: str,
        student_id: str,
        position: int,
        code: DecisionCode = DecisionCode.NEW,
        advisories: list[EligibilityFinding] | None = None,
    ) -> "AdmissionDecision":
        return cls(
            class_id=class_id,
            student_id=student_id,
            outcome=AdmissionOutcome.WAITLISTED,
            code=code,
            position=position,
            advisories=advisories or [],
        )

    @classmethod
    def rejected(
        cls,
        class_id: str,
        student_id: str,
        reason: RejectionReason,
        findings: list[EligibilityFinding] | None = None,
        advisories: list[EligibilityFinding] | None = None,
    ) -> "AdmissionDecision":
        return cls(
            class_id=class_id,
            student_id=student_id,
            outcome=AdmissionOutcome.REJECTED,
            reason=reason,
            findings=findings or [],
            advisories=advisories or [],
        )


class Promotion(BaseModel):
    """A waitlisted student moved into an enrolled seat."""

    class_id: str
    student_id: str
    from_position: int
    enrolled_at: datetime = Field(default_factory=utc_now)


class ReleaseResult(BaseModel):
    """Result of releasing an enrolled seat."""

    class_id: str
    student_id: str
    status: EnrollmentStatus
    promoted: Promotion | None = None


class WaitlistStats(BaseModel):
    """Waitlist summary for a class."""

    class_id: str
    total_waitlisted: int
    average_wait_days: float
    positions: list[int] = Field(default_factory=list)


class BulkAdmissionResult(BaseModel):
    """Tally of a bulk enrollment run."""

    total_processed: int = 0
    admitted: list[str] = Field(default_factory=list)
    waitlisted: list[str] = Field(default_factory=list)
    rejected: dict[str, RejectionReason] = Field(default_factory=dict)
    failed: list[dict[str, str]] = Field(default_factory=list)


class StudentWaitlistInfo(BaseModel):
    """A student's standing on a class waitlist.

    Position is 0 and the estimate is 0 days when the student holds no
    waitlist slot.
    """

    class_id: str
    student_id: str
    entry: WaitlistEntry | None = None
    position: int = 0
    estimated_wait_days: int = 0


class BulkPromotionResult(BaseModel):
    """Tally of a waitlist promotion run over several classes."""

    processed: int = 0
    promotions: dict[str, list[Promotion]] = Field(default_factory=dict)
    failed: list[dict[str, str]] = Field(default_factory=list)
