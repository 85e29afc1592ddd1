# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Exception hierarchy for the admission engine.

Every error carries a stable machine-readable ``code`` so callers can map
failures without parsing messages. Admission outcomes (class full,
window closed, unmet prerequisites, restricted) are not errors and are
never raised; see ``admission_engine.domains.admission.models``.
"""

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from admission_engine.domains.policy.models import ValidationIssue


class EnrollmentEngineError(Exception):
    """Base exception for admission engine errors."""

    code = "ENGINE_ERROR"


class ClassNotFoundError(EnrollmentEngineError):
    """Raised when no policy row exists for a class."""

    code = "CLASS_NOT_FOUND"


class PrerequisiteNotFoundError(EnrollmentEngineError):
    """Raised when a prerequisite is not found."""

    code = "PREREQUISITE_NOT_FOUND"


class RestrictionNotFoundError(EnrollmentEngineError):
    """Raised when a restriction is not found."""

    code = "RESTRICTION_NOT_FOUND"


class ConfigInvalidError(EnrollmentEngineError):
    """Raised when a policy change fails validation.

    Attributes:
        errors: Blocking validation issues.
        warnings: Informational issues found in the same pass.
    """

    code = "CONFIG_INVALID"

    def __init__(
        self,
        errors: list["ValidationIssue"],
        warnings: list["ValidationIssue"] | None = None,
    ) -> None:
        self.errors = errors
        self.warnings = warnings or []
        super().__init__(
            "Configuration validation failed: "
            + ", ".join(issue.message for issue in errors)
        )


class RequirementInvalidError(EnrollmentEngineError):
    """Raised when a prerequisite or restriction rule is malformed."""

    code = "REQUIREMENT_INVALID"

    def __init__(self, kind: str, errors: list["ValidationIssue"]) -> None:
        self.kind = kind
        self.errors = errors
        super().__init__(
            f"{kind.capitalize()} validation failed: "
            + ", ".join(issue.message for issue in errors)
        )


class ConfigStaleError(EnrollmentEngineError):
    """Raised when a compare-and-swap write loses to a concurrent writer.

    The caller must re-read the current state and retry.
    """

    code = "CONFIG_STALE"

    def __init__(self, entity: str, entity_id: str, expected_revision: int) -> None:
        self.entity = entity
        self.entity_id = entity_id
        self.expected_revision = expected_revision
        super().__init__(
            f"{entity} {entity_id} changed since revision {expected_revision}; "
            "re-read and retry"
        )


class NotEnrolledError(EnrollmentEngineError):
    """Raised when releasing a seat the student does not hold."""

    code = "NOT_ENROLLED"


class NotWaitlistedError(EnrollmentEngineError):
    """Raised when removing a student who is not on the waitlist."""

    code = "NOT_WAITLISTED"


class AdmissionTimeoutError(EnrollmentEngineError):
    """Raised when an atomic admission unit exceeds its time budget.

    The outcome is unknown. Re-query the student's current status before
    retrying; never retry the mutation blindly.
    """

    code = "ADMISSION_TIMEOUT"


class StoreError(EnrollmentEngineError):
    """Raised when a backing store fails (connection, timeout, driver).

    Attributes:
        message: Human-readable error description.
        original_error: The underlying exception.
    """

    code = "STORE_ERROR"

    def __init__(self, message: str, original_error: Optional[Exception] = None) -> None:
        super().__init__(message)
        self.message = message
        self.original_error = original_error

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.original_error:
            return f"{self.message}: {self.original_error}"
        return self.message
