# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Consistency validation for proposed enrollment policy changes.

Errors are reserved for states that would make the policy
self-contradictory or unenforceable. Anything merely surprising is a
warning, so staff can converge on a consistent policy one edit at a time.

Checks run against the effective policy (changes merged over the current
policy), so moving one end of a date range is checked against the stored
other end.
"""

from admission_engine.domains.policy.models import (
    EnrollmentPolicy,
    EnrollmentType,
    PolicyChanges,
    ValidationIssue,
    ValidationResult,
    merge_policy,
)


def validate_policy(
    current: EnrollmentPolicy,
    changes: PolicyChanges,
    enrolled_count: int = 0,
) -> ValidationResult:
    """Validate a proposed policy change.

    Args:
        current: Current resolved policy.
        changes: Partial update to validate.
        enrolled_count: Students currently holding an enrolled seat.

    Returns:
        ValidationResult with blocking errors and informational warnings.
    """
    proposed = merge_policy(current, changes)
    provided = changes.provided()
    errors: list[ValidationIssue] = []
    warnings: list[ValidationIssue] = []

    if proposed.capacity < 1:
        errors.append(
            ValidationIssue(
                field="capacity",
                message="Class capacity must be at least 1",
                code="INVALID_CAPACITY",
            )
        )
    elif "capacity" in provided and proposed.capacity < enrolled_count:
        # Existing enrollees keep their seats
        warnings.append(
            ValidationIssue(
                field="capacity",
                message=(
                    f"Reducing capacity below current enrollment "
                    f"({enrolled_count} students)"
                ),
                code="CAPACITY_BELOW_ENROLLMENT",
            )
        )

    if proposed.waitlist_capacity < 0:
        errors.append(
            ValidationIssue(
                field="waitlist_capacity",
                message="Waitlist capacity cannot be negative",
                code="INVALID_WAITLIST_CAPACITY",
            )
        )

    if (
        proposed.enrollment_start is not None
        and proposed.enrollment_end is not None
        and proposed.enrollment_start >= proposed.enrollment_end
    ):
        errors.append(
            ValidationIssue(
                field="enrollment_end",
                message="Enrollment end date must be after start date",
                code="INVALID_DATE_RANGE",
            )
        )

    if (
        proposed.drop_deadline is not None
        and proposed.withdraw_deadline is not None
        and proposed.drop_deadline >= proposed.withdraw_deadline
    ):
        errors.append(
            ValidationIssue(
                field="withdraw_deadline",
                message="Withdraw deadline must be after drop deadline",
                code="INVALID_DEADLINE_ORDER",
            )
        )

    if (
        proposed.max_waitlist_position is not None
        and proposed.max_waitlist_position > proposed.waitlist_capacity
    ):
        errors.append(
            ValidationIssue(
                field="max_waitlist_position",
                message="Max waitlist position cannot exceed waitlist capacity",
                code="INVALID_WAITLIST_POSITION",
            )
        )

    if proposed.enrollment_type == EnrollmentType.INVITATION_ONLY and proposed.auto_approve:
        warnings.append(
            ValidationIssue(
                field="auto_approve",
                message="Auto-approve is not applicable for invitation-only classes",
                code="INCOMPATIBLE_SETTING",
            )
        )

    return ValidationResult.from_issues(errors, warnings)
