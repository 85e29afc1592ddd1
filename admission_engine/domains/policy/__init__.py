# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Enrollment policy domain.

Per-class enrollment policy, prerequisite and restriction rules, their
validation, and the configuration service that writes them.
"""

from admission_engine.domains.policy.models import (
    EnrollmentPolicy,
    EnrollmentType,
    NotificationSettings,
    NotificationSettingsUpdate,
    PolicyChanges,
    PolicyRecord,
    PolicyUpdateResult,
    Prerequisite,
    PrerequisiteData,
    PrerequisiteType,
    PrerequisiteUpdate,
    Restriction,
    RestrictionData,
    RestrictionType,
    RestrictionUpdate,
    ValidationIssue,
    ValidationResult,
    merge_policy,
    resolve_policy,
)
from admission_engine.domains.policy.requirements import (
    validate_prerequisite,
    validate_restriction,
)
from admission_engine.domains.policy.service import EnrollmentConfigService
from admission_engine.domains.policy.validator import validate_policy

__all__ = [
    "EnrollmentConfigService",
    "EnrollmentPolicy",
    "EnrollmentType",
    "NotificationSettings",
    "NotificationSettingsUpdate",
    "PolicyChanges",
    "PolicyRecord",
    "PolicyUpdateResult",
    "Prerequisite",
    "PrerequisiteData",
    "PrerequisiteType",
    "PrerequisiteUpdate",
    "Restriction",
    "RestrictionData",
    "RestrictionType",
    "RestrictionUpdate",
    "ValidationIssue",
    "ValidationResult",
    "merge_policy",
    "resolve_policy",
    "validate_policy",
    "validate_prerequisite",
    "validate_restriction",
]
