# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Data models for the enrollment policy domain.

This module defines Pydantic models and enums for:
- Enrollment types and rule kinds
- Stored and resolved enrollment policies
- Partial policy updates and the enrollment-type cascade table
- Prerequisites, restrictions and validation results
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

from admission_engine.core.config.settings import PolicyDefaultsSettings
from admission_engine.utils.datetime import ensure_utc, utc_now


class EnrollmentType(str, Enum):
    """How students get into a class."""

    OPEN = "open"
    RESTRICTED = "restricted"
    INVITATION_ONLY = "invitation_only"


class PrerequisiteType(str, Enum):
    """Kinds of prerequisite a class can declare.

    - COURSE: a completed course code (e.g. "MATH101")
    - GPA: a minimum GPA on the 0.0-4.0 scale
    - YEAR: a minimum year level between 1 and 8
    - CUSTOM: free-form; satisfied only when the attribute source says so
    """

    COURSE = "course"
    GPA = "gpa"
    YEAR = "year"
    CUSTOM = "custom"


class RestrictionType(str, Enum):
    """Kinds of restriction a class can declare."""

    GPA = "gpa"
    YEAR_LEVEL = "year_level"
    CUSTOM = "custom"


class ValidationIssue(BaseModel):
    """A single validation error or warning."""

    field: str
    message: str
    code: str


class ValidationResult(BaseModel):
    """Outcome of a validation pass.

    Errors block the write. Warnings are informational and travel back to
    the caller alongside a successful write.
    """

    valid: bool = True
    errors: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[ValidationIssue] = Field(default_factory=list)

    @classmethod
    def from_issues(
        cls,
        errors: list[ValidationIssue],
        warnings: list[ValidationIssue] | None = None,
    ) -> "ValidationResult":
        """Build a result whose validity follows from the error list."""
        return cls(valid=not errors, errors=errors, warnings=warnings or [])


class NotificationSettings(BaseModel):
    """Per-class notification switches. Each flag is independent."""

    enrollment_confirmation: bool = True
    waitlist_updates: bool = True
    deadline_reminders: bool = True
    capacity_alerts: bool = True


class NotificationSettingsUpdate(BaseModel):
    """Partial notification switches; None leaves a flag unchanged."""

    enrollment_confirmation: bool | None = None
    waitlist_updates: bool | None = None
    deadline_reminders: bool | None = None
    capacity_alerts: bool | None = None


WINDOW_FIELDS = ("enrollment_start", "enrollment_end", "drop_deadline", "withdraw_deadline")


class PolicyRecord(BaseModel):
    """Policy as persisted by a PolicyStore.

    Every field is optional; an unset field means "use the default" and is
    resolved by resolve_policy().
    """

    enrollment_type: EnrollmentType | None = None
    capacity: int | None = None
    waitlist_capacity: int | None = None
    allow_waitlist: bool | None = None
    max_waitlist_position: int | None = None
    enrollment_start: datetime | None = None
    enrollment_end: datetime | None = None
    drop_deadline: datetime | None = None
    withdraw_deadline: datetime | None = None

    auto_approve: bool | None = None
    requires_justification: bool | None = None
    notification_settings: NotificationSettingsUpdate = Field(
        default_factory=NotificationSettingsUpdate
    )

    normalize_window_dates = field_validator(*WINDOW_FIELDS)(ensure_utc)


class EnrollmentPolicy(BaseModel):
    """Resolved enrollment policy for one class.

    Attributes:
        class_id: Class identifier.
        revision: Store revision this snapshot was read at (CAS key).
        enrollment_type: open, restricted or invitation_only.
        capacity: Seat capacity.
        waitlist_capacity: Maximum waitlist length.
        allow_waitlist: Whether full classes accept waitlist entries.
        max_waitlist_position: Optional cap on assignable positions.
        enrollment_start: Optional window start.
        enrollment_end: Optional window end.
        drop_deadline: Optional drop deadline.
        withdraw_deadline: Optional withdraw deadline.
        auto_approve: Cascaded from enrollment_type.
        requires_justification: Cascaded from enrollment_type.
        notification_settings: Notification switches.
    """

    class_id: str
    revision: int = 0
    enrollment_type: EnrollmentType = EnrollmentType.OPEN
    capacity: int = 30
    waitlist_capacity: int = 10
    allow_waitlist: bool = True
    max_waitlist_position: int | None = None
    enrollment_start: datetime | None = None
    enrollment_end: datetime | None = None
    drop_deadline: datetime | None = None
    withdraw_deadline: datetime | None = None

    auto_approve: bool = True
    requires_justification: bool = False
    notification_settings: NotificationSettings = Field(default_factory=NotificationSettings)

    normalize_window_dates = field_validator(*WINDOW_FIELDS)(ensure_utc)

    def to_record(self) -> PolicyRecord:
        """Convert to the fully-populated stored shape."""
        data = self.model_dump(exclude={"class_id", "revision"})
        return PolicyRecord.model_validate(data)

    def audit_snapshot(self) -> dict[str, Any]:
        """JSON-safe dict used as before/after in audit events."""
        return self.model_dump(mode="json")


class PolicyChanges(BaseModel):
    """Partial policy update.

    Only fields explicitly passed are applied, so ``enrollment_end=None``
    clears the window end while omitting it leaves it unchanged.
    """

    enrollment_type: EnrollmentType | None = None
    capacity: int | None = None
    waitlist_capacity: int | None = None
    allow_waitlist: bool | None = None
    max_waitlist_position: int | None = None
    enrollment_start: datetime | None = None
    enrollment_end: datetime | None = None
    drop_deadline: datetime | None = None
    withdraw_deadline: datetime | None = None

    auto_approve: bool | None = None
    requires_justification: bool | None = None
    notification_settings: NotificationSettingsUpdate | None = None

    normalize_window_dates = field_validator(*WINDOW_FIELDS)(ensure_utc)

    def provided(self) -> set[str]:
        """Names of the fields the caller explicitly set."""
        return set(self.model_fields_set)


# Fields an update may reset to None; None on any other field means "unchanged"
CLEARABLE_FIELDS = frozenset(
    {
        "max_waitlist_position",
        "enrollment_start",
        "enrollment_end",
        "drop_deadline",
        "withdraw_deadline",
    }
)


class CascadeRule(BaseModel):
    """Settings implied by switching to an enrollment type.

    Attributes:
        values: Field values applied on the switch.
        overridable: When True, values given explicitly in the same update
            win over the cascade; when False the cascade always wins.
    """

    values: dict[str, bool]
    overridable: bool


ENROLLMENT_TYPE_CASCADE: dict[EnrollmentType, CascadeRule] = {
    EnrollmentType.OPEN: CascadeRule(
        values={"auto_approve": True, "requires_justification": False},
        overridable=False,
    ),
    EnrollmentType.RESTRICTED: CascadeRule(
        values={"auto_approve": False, "requires_justification": True},
        overridable=True,
    ),
    EnrollmentType.INVITATION_ONLY: CascadeRule(values={}, overridable=True),
}


def resolve_policy(
    class_id: str,
    record: PolicyRecord,
    revision: int,
    defaults: PolicyDefaultsSettings | None = None,
) -> EnrollmentPolicy:
    """Apply defaulting rules to a stored policy record.

    Args:
        class_id: Class identifier.
        record: Stored record, possibly with unset fields.
        revision: Store revision the record was read at.
        defaults: Default values; built from the environment when omitted.

    Returns:
        Fully-populated EnrollmentPolicy.
    """
    defaults = defaults or PolicyDefaultsSettings()
    enrollment_type = record.enrollment_type or EnrollmentType.OPEN
    notifications = record.notification_settings.model_dump(exclude_none=True)

    return EnrollmentPolicy(
        class_id=class_id,
        revision=revision,
        enrollment_type=enrollment_type,
        capacity=record.capacity if record.capacity is not None else defaults.default_capacity,
        waitlist_capacity=(
            record.waitlist_capacity
            if record.waitlist_capacity is not None
            else defaults.default_waitlist_capacity
        ),
        allow_waitlist=(
            record.allow_waitlist
            if record.allow_waitlist is not None
            else defaults.default_allow_waitlist
        ),
        max_waitlist_position=record.max_waitlist_position,
        enrollment_start=record.enrollment_start,
        enrollment_end=record.enrollment_end,
        drop_deadline=record.drop_deadline,
        withdraw_deadline=record.withdraw_deadline,
        auto_approve=(
            record.auto_approve
            if record.auto_approve is not None
            else enrollment_type == EnrollmentType.OPEN
        ),
        requires_justification=(
            record.requires_justification
            if record.requires_justification is not None
            else enrollment_type == EnrollmentType.RESTRICTED
        ),
        notification_settings=NotificationSettings(**notifications),
    )


def merge_policy(current: EnrollmentPolicy, changes: PolicyChanges) -> EnrollmentPolicy:
    """Merge a partial update over the current policy.

    Notification flags merge field by field. When the update sets
    enrollment_type, the matching cascade rule is applied once.

    Args:
        current: Current resolved policy.
        changes: Partial update.

    Returns:
        The proposed policy (revision unchanged).
    """
    provided = changes.provided()
    data = current.model_dump()

    for name in provided - {"notification_settings"}:
        value = getattr(changes, name)
        if value is None and name not in CLEARABLE_FIELDS:
            continue
        data[name] = value

    if "notification_settings" in provided and changes.notification_settings is not None:
        patch = changes.notification_settings.model_dump(exclude_none=True)
        data["notification_settings"] = {**data["notification_settings"], **patch}

    if "enrollment_type" in provided and changes.enrollment_type is not None:
        rule = ENROLLMENT_TYPE_CASCADE[changes.enrollment_type]
        for name, value in rule.values.items():
            if rule.overridable and name in provided and getattr(changes, name) is not None:
                continue
            data[name] = value

    return EnrollmentPolicy.model_validate(data)


class PolicyUpdateResult(BaseModel):
    """Result of a successful policy update."""

    policy: EnrollmentPolicy
    warnings: list[ValidationIssue] = Field(default_factory=list)


class PrerequisiteData(BaseModel):
    """Input for creating a prerequisite."""

    type: PrerequisiteType
    requirement: str
    description: str | None = None
    strict: bool = True


class PrerequisiteUpdate(BaseModel):
    """Partial prerequisite update."""

    type: PrerequisiteType | None = None
    requirement: str | None = None
    description: str | None = None
    strict: bool | None = None


class Prerequisite(BaseModel):
    """A prerequisite rule attached to a class.

    Attributes:
        id: Prerequisite identifier.
        class_id: Owning class.
        type: Rule kind.
        requirement: Requirement string, format depends on type.
        description: Optional human description.
        strict: Strict prerequisites block admission when unmet.
        version: Row version used for compare-and-swap writes.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    class_id: str
    type: PrerequisiteType
    requirement: str
    description: str | None = None
    strict: bool = True
    version: int = 1
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class RestrictionData(BaseModel):
    """Input for creating a restriction."""

    type: RestrictionType
    condition: str
    description: str | None = None
    overridable: bool = False


class RestrictionUpdate(BaseModel):
    """Partial restriction update."""

    type: RestrictionType | None = None
    condition: str | None = None
    description: str | None = None
    overridable: bool | None = None


class Restriction(BaseModel):
    """A restriction limiting who may enroll in a class.

    Attributes:
        id: Restriction identifier.
        class_id: Owning class.
        type: Restriction kind.
        condition: Condition string, format depends on type.
        description: Optional human description.
        overridable: Overridable restrictions never block admission on
            their own; staff may waive them.
        version: Row version used for compare-and-swap writes.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    class_id: str
    type: RestrictionType
    condition: str
    description: str | None = None
    overridable: bool = False
    version: int = 1
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
