# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Format validation for prerequisite and restriction rules.

Pure, stateless functions. They never raise on bad input; every problem
is reported as a ValidationIssue on the returned ValidationResult.

The numeric parsers are shared with eligibility evaluation so a rule that
validates here is guaranteed to be evaluable at admission time.
"""

import math

from admission_engine.domains.policy.models import (
    PrerequisiteType,
    RestrictionType,
    ValidationIssue,
    ValidationResult,
)

MIN_COURSE_CODE_LENGTH = 3
MIN_GPA = 0.0
MAX_GPA = 4.0
MIN_YEAR = 1
MAX_YEAR = 8


def parse_gpa(value: str) -> float | None:
    """Parse a GPA string, returning None unless it is a number in range."""
    try:
        gpa = float(value.strip())
    except (AttributeError, ValueError):
        return None
    if not math.isfinite(gpa) or gpa < MIN_GPA or gpa > MAX_GPA:
        return None
    return gpa


def parse_year(value: str) -> int | None:
    """Parse a year level string, returning None unless it is an int in range."""
    try:
        year = int(value.strip())
    except (AttributeError, ValueError):
        return None
    if year < MIN_YEAR or year > MAX_YEAR:
        return None
    return year


def _check_gpa(value: str, field: str, code: str, subject: str) -> list[ValidationIssue]:
    if parse_gpa(value) is None:
        return [
            ValidationIssue(
                field=field,
                message=f"{subject} must be a number between {MIN_GPA:g} and {MAX_GPA:.1f}",
                code=code,
            )
        ]
    return []


def _check_year(value: str, field: str, code: str, subject: str) -> list[ValidationIssue]:
    if parse_year(value) is None:
        return [
            ValidationIssue(
                field=field,
                message=f"{subject} must be a number between {MIN_YEAR} and {MAX_YEAR}",
                code=code,
            )
        ]
    return []


def validate_prerequisite(
    prerequisite_type: PrerequisiteType,
    requirement: str,
) -> ValidationResult:
    """Validate a prerequisite requirement string against its type.

    Args:
        prerequisite_type: Declared prerequisite kind.
        requirement: Requirement string.

    Returns:
        ValidationResult with field-level errors.
    """
    if not requirement or not requirement.strip():
        return ValidationResult.from_issues(
            [
                ValidationIssue(
                    field="requirement",
                    message="Prerequisite requirement is required",
                    code="MISSING_REQUIREMENT",
                )
            ]
        )

    errors: list[ValidationIssue] = []
    if prerequisite_type == PrerequisiteType.COURSE:
        if len(requirement.strip()) < MIN_COURSE_CODE_LENGTH:
            errors.append(
                ValidationIssue(
                    field="requirement",
                    message=(
                        f"Course requirement must be at least "
                        f"{MIN_COURSE_CODE_LENGTH} characters"
                    ),
                    code="INVALID_COURSE_REQUIREMENT",
                )
            )
    elif prerequisite_type == PrerequisiteType.GPA:
        errors.extend(
            _check_gpa(requirement, "requirement", "INVALID_GPA_REQUIREMENT", "GPA requirement")
        )
    elif prerequisite_type == PrerequisiteType.YEAR:
        errors.extend(
            _check_year(requirement, "requirement", "INVALID_YEAR_REQUIREMENT", "Year requirement")
        )

    return ValidationResult.from_issues(errors)


def validate_restriction(
    restriction_type: RestrictionType,
    condition: str,
) -> ValidationResult:
    """Validate a restriction condition string against its type.

    Args:
        restriction_type: Declared restriction kind.
        condition: Condition string.

    Returns:
        ValidationResult with field-level errors.
    """
    if not condition or not condition.strip():
        return ValidationResult.from_issues(
            [
                ValidationIssue(
                    field="condition",
                    message="Restriction condition is required",
                    code="MISSING_CONDITION",
                )
            ]
        )

    errors: list[ValidationIssue] = []
    if restriction_type == RestrictionType.GPA:
        errors.extend(_check_gpa(condition, "condition", "INVALID_GPA_CONDITION", "GPA condition"))
    elif restriction_type == RestrictionType.YEAR_LEVEL:
        errors.extend(
            _check_year(condition, "condition", "INVALID_YEAR_CONDITION", "Year level condition")
        )

    return ValidationResult.from_issues(errors)
