# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Admission controller for class enrollment requests.

This module provides the AdmissionController class for:
- Deciding enrollment requests (admit, waitlist or reject)
- Releasing seats and promoting the waitlist in FIFO order
- Leaving the waitlist
- Waitlist queries, bulk enrollment and bulk waitlist promotion

Seat and waitlist mutations run inside the enrollment store's per-class
atomic unit, so the capacity check and the write can never interleave
with another request for the same class. Each unit runs under a time
budget; exceeding it raises AdmissionTimeoutError and the unit rolls back.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import TYPE_CHECKING, TypeVar

from admission_engine.core.config.settings import Settings, get_settings
from admission_engine.core.errors import (
    AdmissionTimeoutError,
    ClassNotFoundError,
    NotEnrolledError,
    NotWaitlistedError,
    StoreError,
)
from admission_engine.domains.admission.eligibility import evaluate_eligibility
from admission_engine.domains.admission.models import (
    RELEASE_STATUSES,
    WAIT_DAYS_PER_POSITION,
    AdmissionDecision,
    AdmissionOutcome,
    BulkAdmissionResult,
    BulkPromotionResult,
    DecisionCode,
    Enrollment,
    EnrollmentStatus,
    Promotion,
    RejectionReason,
    ReleaseResult,
    StudentWaitlistInfo,
    WaitlistEntry,
    WaitlistStats,
)
from admission_engine.domains.policy.models import EnrollmentPolicy, resolve_policy
from admission_engine.infrastructure.events.audit import (
    SYSTEM_ACTOR,
    AuditEvent,
    AuditSink,
    record_committed,
)
from admission_engine.infrastructure.events.types import EventTypes
from admission_engine.utils.datetime import days_between, utc_now, within_window
from admission_engine.utils.logging import bind_context, clear_context

if TYPE_CHECKING:
    from admission_engine.infrastructure.stores.base import (
        AttributeSource,
        EnrollmentStore,
        PolicyStore,
    )

logger = logging.getLogger(__name__)

T = TypeVar("T")

_DECISION_ACTIONS = {
    AdmissionOutcome.ADMITTED: EventTypes.Admission.ADMITTED,
    AdmissionOutcome.WAITLISTED: EventTypes.Admission.WAITLISTED,
    AdmissionOutcome.REJECTED: EventTypes.Admission.REJECTED,
}


def _replay(
    class_id: str,
    student_id: str,
    enrollment: Enrollment | None,
    entry: WaitlistEntry | None,
) -> AdmissionDecision | None:
    """Decision for a student who already holds a seat or waitlist slot."""
    if enrollment is None:
        return None
    if enrollment.status == EnrollmentStatus.ENROLLED:
        return AdmissionDecision.admitted(class_id, student_id, DecisionCode.ALREADY_ENROLLED)
    if enrollment.status == EnrollmentStatus.WAITLISTED and entry is not None:
        return AdmissionDecision.waitlisted(
            class_id, student_id, entry.position, DecisionCode.ALREADY_WAITLISTED
        )
    return None


class AdmissionController:
    """Decides enrollment requests and manages seats and the waitlist.

    The controller keeps no in-process state between calls. All
    coordination lives in the injected stores.

    Attributes:
        policy_store: Source of policies and rules.
        enrollment_store: Enrollment and waitlist storage.
        attribute_source: Student attribute lookup.
        audit_sink: Destination for decision audit events.
        clock: Returns the current time; used for the enrollment window.
    """

    def __init__(
        self,
        policy_store: PolicyStore,
        enrollment_store: EnrollmentStore,
        attribute_source: AttributeSource,
        audit_sink: AuditSink,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the admission controller.

        Args:
            policy_store: Source of policies and rules.
            enrollment_store: Enrollment and waitlist storage.
            attribute_source: Student attribute lookup.
            audit_sink: Destination for decision audit events.
            settings: Engine settings; the cached settings when omitted.
            clock: Current-time function.
        """
        settings = settings or get_settings()
        self.policy_store = policy_store
        self.enrollment_store = enrollment_store
        self.attribute_source = attribute_source
        self.audit_sink = audit_sink
        self.clock = clock
        self.defaults = settings.policy_defaults
        self.decision_timeout = settings.admission.decision_timeout_seconds
        self.max_promotions = settings.admission.max_promotions_per_call

    # =========================================================================
    # Enrollment Requests
    # =========================================================================

    async def request_enrollment(
        self,
        class_id: str,
        student_id: str,
        actor: str | None = None,
    ) -> AdmissionDecision:
        """Decide an enrollment request.

        Order of checks:
        1. Existing seat or waitlist slot: returned as-is
        2. Enrollment window
        3. Strict prerequisites, then non-overridable restrictions
        4. Atomically: seat if one is free, else waitlist slot if allowed
           and available, else CLASS_FULL

        Args:
            class_id: Class identifier.
            student_id: Student identifier.
            actor: Who made the request; the student when omitted.

        Returns:
            The admission decision. Rejections are returned, not raised.

        Raises:
            ClassNotFoundError: If the class has no policy row.
            AdmissionTimeoutError: If the decision exceeded its time budget.
                The outcome is unknown; re-query before retrying.
            StoreError: If a backing store failed. Nothing was written.
        """
        bind_context(class_id=class_id, student_id=student_id)
        try:
            decision = await self._run_atomic(
                self._decide(class_id, student_id), class_id, "request_enrollment"
            )

            if decision.code in (None, DecisionCode.NEW):
                await self._audit_decision(decision, actor or student_id)

            logger.info(
                "Admission decision: class=%s, student=%s, outcome=%s, detail=%s",
                class_id,
                student_id,
                decision.outcome.value,
                (decision.reason or decision.code).value,
            )
            return decision
        finally:
            clear_context()

    async def bulk_enroll(
        self,
        class_id: str,
        student_ids: list[str],
        actor: str,
    ) -> BulkAdmissionResult:
        """Run enrollment requests for several students in order.

        Each student gets an independent decision. A store failure or
        timeout for one student is recorded and the batch continues.
        Duplicate ids are processed once.

        Args:
            class_id: Class identifier.
            student_ids: Students to enroll, in priority order.
            actor: Staff member running the batch.

        Returns:
            Per-outcome tally.

        Raises:
            ClassNotFoundError: If the class has no policy row.
        """
        await self._load_policy(class_id)
        result = BulkAdmissionResult()

        for student_id in dict.fromkeys(student_ids):
            result.total_processed += 1
            try:
                decision = await self.request_enrollment(class_id, student_id, actor)
            except (StoreError, AdmissionTimeoutError) as e:
                logger.warning(
                    "Bulk enrollment failed for student: class=%s, student=%s, error=%s",
                    class_id,
                    student_id,
                    str(e),
                )
                result.failed.append(
                    {"student_id": student_id, "code": e.code, "error": str(e)}
                )
                continue

            if decision.outcome == AdmissionOutcome.ADMITTED:
                result.admitted.append(student_id)
            elif decision.outcome == AdmissionOutcome.WAITLISTED:
                result.waitlisted.append(student_id)
            else:
                result.rejected[student_id] = decision.reason

        logger.info(
            "Bulk enrollment complete: class=%s, admitted=%d, waitlisted=%d, "
            "rejected=%d, failed=%d, by=%s",
            class_id,
            len(result.admitted),
            len(result.waitlisted),
            len(result.rejected),
            len(result.failed),
            actor,
        )
        return result

    # =========================================================================
    # Seats and Waitlist
    # =========================================================================

    async def release_seat(
        self,
        class_id: str,
        student_id: str,
        status: EnrollmentStatus = EnrollmentStatus.DROPPED,
        actor: str | None = None,
    ) -> ReleaseResult:
        """Release an enrolled seat and promote the head of the waitlist.

        The release and the promotion commit together.

        Args:
            class_id: Class identifier.
            student_id: Student giving up the seat.
            status: dropped or withdrawn.
            actor: Who released the seat; the student when omitted.

        Returns:
            The release, including the promotion if one happened.

        Raises:
            ValueError: If status is not dropped or withdrawn.
            ClassNotFoundError: If the class has no policy row.
            NotEnrolledError: If the student holds no enrolled seat.
            AdmissionTimeoutError: If the unit exceeded its time budget.
        """
        if status not in RELEASE_STATUSES:
            raise ValueError(f"Cannot release a seat into status {status.value}")

        policy = await self._load_policy(class_id)

        async def release() -> ReleaseResult:
            async with self.enrollment_store.class_unit(class_id) as unit:
                released = await unit.release(student_id, status)
                if released is None:
                    raise NotEnrolledError(
                        f"Student {student_id} is not enrolled in class {class_id}"
                    )
                promoted = await unit.promote_next(policy.capacity)
            return ReleaseResult(
                class_id=class_id,
                student_id=student_id,
                status=status,
                promoted=promoted,
            )

        result = await self._run_atomic(release(), class_id, "release_seat")

        await record_committed(
            self.audit_sink,
            AuditEvent(
                class_id=class_id,
                actor=actor or student_id,
                action=EventTypes.Seat.RELEASED,
                subject_id=student_id,
                before={"status": EnrollmentStatus.ENROLLED.value},
                after={"status": status.value},
            ),
        )
        if result.promoted is not None:
            await self._audit_promotion(result.promoted)

        logger.info(
            "Released seat: class=%s, student=%s, status=%s, promoted=%s",
            class_id,
            student_id,
            status.value,
            result.promoted.student_id if result.promoted else None,
        )
        return result

    async def promote_waitlist(self, class_id: str) -> list[Promotion]:
        """Fill every free seat from the head of the waitlist.

        Used after a capacity increase or when seats were freed outside
        release_seat. At most ``max_promotions_per_call`` seats are filled.

        Args:
            class_id: Class identifier.

        Returns:
            Promotions in the order they happened.

        Raises:
            ClassNotFoundError: If the class has no policy row.
            AdmissionTimeoutError: If the unit exceeded its time budget.
        """
        policy = await self._load_policy(class_id)

        async def promote() -> list[Promotion]:
            promotions: list[Promotion] = []
            async with self.enrollment_store.class_unit(class_id) as unit:
                while len(promotions) < self.max_promotions:
                    promotion = await unit.promote_next(policy.capacity)
                    if promotion is None:
                        break
                    promotions.append(promotion)
            return promotions

        promotions = await self._run_atomic(promote(), class_id, "promote_waitlist")

        for promotion in promotions:
            await self._audit_promotion(promotion)

        if promotions:
            logger.info(
                "Promoted from waitlist: class=%s, count=%d",
                class_id,
                len(promotions),
            )
        return promotions

    async def promote_waitlists(self, class_ids: list[str]) -> BulkPromotionResult:
        """Run promote_waitlist for several classes in order.

        Each class is promoted in its own atomic unit. A missing class,
        store failure or timeout for one class is recorded and the run
        continues. Duplicate ids are processed once.

        Args:
            class_ids: Classes whose waitlists should be promoted.

        Returns:
            Promotions per class and the classes that failed.
        """
        result = BulkPromotionResult()

        for class_id in dict.fromkeys(class_ids):
            result.processed += 1
            try:
                promotions = await self.promote_waitlist(class_id)
            except (ClassNotFoundError, StoreError, AdmissionTimeoutError) as e:
                logger.warning(
                    "Waitlist promotion failed for class: class=%s, error=%s",
                    class_id,
                    str(e),
                )
                result.failed.append({"class_id": class_id, "code": e.code, "error": str(e)})
                continue

            result.promotions[class_id] = promotions

        logger.info(
            "Waitlist promotion run complete: classes=%d, promoted=%d, failed=%d",
            result.processed,
            sum(len(p) for p in result.promotions.values()),
            len(result.failed),
        )
        return result

    async def leave_waitlist(
        self,
        class_id: str,
        student_id: str,
        actor: str | None = None,
    ) -> WaitlistEntry:
        """Remove a student from the waitlist.

        Everyone behind the student moves up one position.

        Args:
            class_id: Class identifier.
            student_id: Student leaving the waitlist.
            actor: Who removed the entry; the student when omitted.

        Returns:
            The removed entry, with the position it held.

        Raises:
            ClassNotFoundError: If the class has no policy row.
            NotWaitlistedError: If the student is not on the waitlist.
        """
        await self._load_policy(class_id)

        async def leave() -> WaitlistEntry:
            async with self.enrollment_store.class_unit(class_id) as unit:
                entry = await unit.leave_waitlist(student_id)
                if entry is None:
                    raise NotWaitlistedError(
                        f"Student {student_id} is not on the waitlist for class {class_id}"
                    )
            return entry

        entry = await self._run_atomic(leave(), class_id, "leave_waitlist")

        await record_committed(
            self.audit_sink,
            AuditEvent(
                class_id=class_id,
                actor=actor or student_id,
                action=EventTypes.Waitlist.LEFT,
                subject_id=student_id,
                before=entry.model_dump(mode="json"),
            ),
        )
        logger.info(
            "Left waitlist: class=%s, student=%s, position=%d",
            class_id,
            student_id,
            entry.position,
        )
        return entry

    async def get_waitlist_position(self, class_id: str, student_id: str) -> int:
        """Get a student's waitlist position.

        Returns:
            Position starting at 1, or 0 if the student is not waitlisted.
        """
        for entry in await self.enrollment_store.list_waitlist(class_id):
            if entry.student_id == student_id:
                return entry.position
        return 0

    async def get_student_waitlist_info(
        self, class_id: str, student_id: str
    ) -> StudentWaitlistInfo:
        """Get a student's waitlist entry, position and estimated wait.

        The estimate is ``ceil(position * WAIT_DAYS_PER_POSITION)`` days.

        Args:
            class_id: Class identifier.
            student_id: Student identifier.

        Returns:
            The student's standing; an empty entry with position 0 when
            the student is not waitlisted.
        """
        for entry in await self.enrollment_store.list_waitlist(class_id):
            if entry.student_id == student_id:
                return StudentWaitlistInfo(
                    class_id=class_id,
                    student_id=student_id,
                    entry=entry,
                    position=entry.position,
                    estimated_wait_days=math.ceil(entry.position * WAIT_DAYS_PER_POSITION),
                )
        return StudentWaitlistInfo(class_id=class_id, student_id=student_id)

    async def get_waitlist_stats(self, class_id: str) -> WaitlistStats:
        """Summarize a class's waitlist.

        Returns:
            Total entries, average days waited so far, and positions.
        """
        entries = await self.enrollment_store.list_waitlist(class_id)
        now = self.clock()

        average = 0.0
        if entries:
            average = sum(days_between(e.added_at, now) for e in entries) / len(entries)

        return WaitlistStats(
            class_id=class_id,
            total_waitlisted=len(entries),
            average_wait_days=average,
            positions=[e.position for e in entries],
        )

    # =========================================================================
    # Private Helpers
    # =========================================================================

    async def _decide(self, class_id: str, student_id: str) -> AdmissionDecision:
        policy = await self._load_policy(class_id)

        existing = await self.enrollment_store.get_enrollment(class_id, student_id)
        if existing is not None and existing.status in (
            EnrollmentStatus.ENROLLED,
            EnrollmentStatus.WAITLISTED,
        ):
            entry = None
            if existing.status == EnrollmentStatus.WAITLISTED:
                waitlist = await self.enrollment_store.list_waitlist(class_id)
                entry = next((e for e in waitlist if e.student_id == student_id), None)
            replay = _replay(class_id, student_id, existing, entry)
            if replay is not None:
                return replay

        if not within_window(self.clock(), policy.enrollment_start, policy.enrollment_end):
            return AdmissionDecision.rejected(
                class_id, student_id, RejectionReason.ENROLLMENT_NOT_OPEN
            )

        prerequisites = await self.policy_store.list_prerequisites(class_id)
        restrictions = await self.policy_store.list_restrictions(class_id)
        advisories = []
        if prerequisites or restrictions:
            attributes = await self.attribute_source.get_attributes(student_id)
            eligibility = evaluate_eligibility(prerequisites, restrictions, attributes)
            advisories = eligibility.advisories

            if not eligibility.prerequisites_met:
                return AdmissionDecision.rejected(
                    class_id,
                    student_id,
                    RejectionReason.PREREQUISITES_NOT_MET,
                    findings=[f for f in eligibility.unmet_prerequisites if f.blocking],
                    advisories=advisories,
                )
            if eligibility.restricted:
                return AdmissionDecision.rejected(
                    class_id,
                    student_id,
                    RejectionReason.RESTRICTED,
                    findings=[f for f in eligibility.applied_restrictions if f.blocking],
                    advisories=advisories,
                )

        async with self.enrollment_store.class_unit(class_id) as unit:
            replay = _replay(
                class_id,
                student_id,
                await unit.find_enrollment(student_id),
                await unit.find_waitlist_entry(student_id),
            )
            if replay is not None:
                return replay

            if await unit.try_admit(student_id, policy.capacity) is not None:
                return AdmissionDecision.admitted(class_id, student_id, advisories=advisories)

            if policy.allow_waitlist:
                entry = await unit.try_waitlist(
                    student_id, policy.waitlist_capacity, policy.max_waitlist_position
                )
                if entry is not None:
                    return AdmissionDecision.waitlisted(
                        class_id, student_id, entry.position, advisories=advisories
                    )

        return AdmissionDecision.rejected(
            class_id, student_id, RejectionReason.CLASS_FULL, advisories=advisories
        )

    async def _load_policy(self, class_id: str) -> EnrollmentPolicy:
        stored = await self.policy_store.read_policy(class_id)
        if stored is None:
            raise ClassNotFoundError(f"Class {class_id} not found")
        record, revision = stored
        return resolve_policy(class_id, record, revision, self.defaults)

    async def _run_atomic(self, operation: Awaitable[T], class_id: str, name: str) -> T:
        try:
            return await asyncio.wait_for(operation, timeout=self.decision_timeout)
        except asyncio.TimeoutError as e:
            logger.warning(
                "Atomic unit timed out: operation=%s, class=%s, timeout=%.2fs",
                name,
                class_id,
                self.decision_timeout,
            )
            raise AdmissionTimeoutError(
                f"{name} for class {class_id} exceeded {self.decision_timeout}s; "
                "outcome unknown, re-query before retrying"
            ) from e

    async def _audit_decision(self, decision: AdmissionDecision, actor: str) -> None:
        await record_committed(
            self.audit_sink,
            AuditEvent(
                class_id=decision.class_id,
                actor=actor,
                action=_DECISION_ACTIONS[decision.outcome],
                subject_id=decision.student_id,
                outcome=decision.model_dump(mode="json"),
            ),
        )

    async def _audit_promotion(self, promotion: Promotion) -> None:
        await record_committed(
            self.audit_sink,
            AuditEvent(
                class_id=promotion.class_id,
                actor=SYSTEM_ACTOR,
                action=EventTypes.Waitlist.PROMOTED,
                subject_id=promotion.student_id,
                outcome=promotion.model_dump(mode="json"),
            ),
        )
