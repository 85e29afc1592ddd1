# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Admission domain package.

This package provides admission control functionality including:
- Enrollment request decisions (admit, waitlist, reject)
- Seat release with FIFO waitlist promotion
- Eligibility evaluation against prerequisites and restrictions
- Waitlist queries and bulk enrollment
"""

from admission_engine.domains.admission.eligibility import evaluate_eligibility
from admission_engine.domains.admission.models import (
    AdmissionDecision,
    AdmissionOutcome,
    BulkAdmissionResult,
    BulkPromotionResult,
    DecisionCode,
    EligibilityFinding,
    EligibilityResult,
    Enrollment,
    EnrollmentStatus,
    Occupancy,
    Promotion,
    RejectionReason,
    ReleaseResult,
    StudentAttributes,
    StudentWaitlistInfo,
    WaitlistEntry,
    WaitlistStats,
)
from admission_engine.domains.admission.service import AdmissionController

__all__ = [
    "AdmissionController",
    "AdmissionDecision",
    "AdmissionOutcome",
    "BulkAdmissionResult",
    "BulkPromotionResult",
    "DecisionCode",
    "EligibilityFinding",
    "EligibilityResult",
    "Enrollment",
    "EnrollmentStatus",
    "Occupancy",
    "Promotion",
    "RejectionReason",
    "ReleaseResult",
    "StudentAttributes",
    "StudentWaitlistInfo",
    "WaitlistEntry",
    "WaitlistStats",
    "evaluate_eligibility",
]
