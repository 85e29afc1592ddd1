# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Eligibility evaluation against prerequisites and restrictions.

Pure functions over already-loaded rules and student attributes. A missing
attribute (no GPA on file, no year level) fails every rule that needs it.

Prerequisites:
- course: the code is among the student's completed courses
- gpa: the student's GPA is at least the requirement
- year: the student's year level is at least the requirement
- custom: the requirement is among the student's satisfied custom items

Restrictions apply (i.e. keep the student out) when:
- gpa: the student's GPA is below the condition
- year_level: the student's year level is below the condition
- custom: the condition is not among the satisfied custom items

Only strict prerequisites and non-overridable restrictions block
admission. Everything else is reported back as an advisory.
"""

from admission_engine.domains.admission.models import (
    EligibilityFinding,
    EligibilityResult,
    StudentAttributes,
)
from admission_engine.domains.policy.models import (
    Prerequisite,
    PrerequisiteType,
    Restriction,
    RestrictionType,
)
from admission_engine.domains.policy.requirements import parse_gpa, parse_year


def _normalize(value: str) -> str:
    return value.strip().casefold()


def _meets_minimum(actual: float | int | None, required: float | int | None) -> bool:
    return actual is not None and required is not None and actual >= required


def _prerequisite_met(prerequisite: Prerequisite, attributes: StudentAttributes) -> bool:
    requirement = prerequisite.requirement
    if prerequisite.type == PrerequisiteType.COURSE:
        return _normalize(requirement) in {_normalize(c) for c in attributes.completed_courses}
    if prerequisite.type == PrerequisiteType.GPA:
        return _meets_minimum(attributes.gpa, parse_gpa(requirement))
    if prerequisite.type == PrerequisiteType.YEAR:
        return _meets_minimum(attributes.year_level, parse_year(requirement))
    return _normalize(requirement) in {_normalize(c) for c in attributes.satisfied_custom}


def _restriction_applies(restriction: Restriction, attributes: StudentAttributes) -> bool:
    condition = restriction.condition
    if restriction.type == RestrictionType.GPA:
        return not _meets_minimum(attributes.gpa, parse_gpa(condition))
    if restriction.type == RestrictionType.YEAR_LEVEL:
        return not _meets_minimum(attributes.year_level, parse_year(condition))
    return _normalize(condition) not in {_normalize(c) for c in attributes.satisfied_custom}


_PREREQUISITE_MESSAGES = {
    PrerequisiteType.COURSE: "Requires completion of {}",
    PrerequisiteType.GPA: "Requires a GPA of at least {}",
    PrerequisiteType.YEAR: "Requires year level {} or above",
    PrerequisiteType.CUSTOM: "Requires {}",
}

_RESTRICTION_MESSAGES = {
    RestrictionType.GPA: "Restricted to students with a GPA of at least {}",
    RestrictionType.YEAR_LEVEL: "Restricted to students in year {} or above",
    RestrictionType.CUSTOM: "Restricted to students meeting: {}",
}


def evaluate_eligibility(
    prerequisites: list[Prerequisite],
    restrictions: list[Restriction],
    attributes: StudentAttributes,
) -> EligibilityResult:
    """Evaluate a student against a class's rules.

    Args:
        prerequisites: The class's prerequisites.
        restrictions: The class's restrictions.
        attributes: The student's attributes.

    Returns:
        EligibilityResult listing unmet prerequisites and applicable
        restrictions, each flagged as blocking or advisory.
    """
    result = EligibilityResult()

    for prerequisite in prerequisites:
        if _prerequisite_met(prerequisite, attributes):
            continue
        result.unmet_prerequisites.append(
            EligibilityFinding(
                rule_id=prerequisite.id,
                kind="prerequisite",
                type=prerequisite.type.value,
                requirement=prerequisite.requirement,
                blocking=prerequisite.strict,
                message=_PREREQUISITE_MESSAGES[prerequisite.type].format(
                    prerequisite.requirement
                ),
            )
        )

    for restriction in restrictions:
        if not _restriction_applies(restriction, attributes):
            continue
        result.applied_restrictions.append(
            EligibilityFinding(
                rule_id=restriction.id,
                kind="restriction",
                type=restriction.type.value,
                requirement=restriction.condition,
                blocking=not restriction.overridable,
                message=_RESTRICTION_MESSAGES[restriction.type].format(restriction.condition),
            )
        )

    return result
