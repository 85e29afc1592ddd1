# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""SQLAlchemy models for the admission engine database.

Tables:
- class_enrollment_policies: one row per class, CAS-guarded by ``revision``
- class_prerequisites / enrollment_restrictions: rules, CAS-guarded by ``version``
- class_occupancy: per-class counters, the row locked by every atomic unit
- enrollments / waitlist_entries: one row per (class, student)
- enrollment_audit_log: append-only audit events

Enums are stored as their string values so the schema does not need a
migration when a value is added.
"""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Declarative base for all admission engine tables."""


class ClassEnrollmentPolicyModel(Base):
    """Stored enrollment policy. Unset columns fall back to defaults."""

    __tablename__ = "class_enrollment_policies"

    class_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    revision: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    enrollment_type: Mapped[Optional[str]] = mapped_column(String(32))
    capacity: Mapped[Optional[int]] = mapped_column(Integer)
    waitlist_capacity: Mapped[Optional[int]] = mapped_column(Integer)
    allow_waitlist: Mapped[Optional[bool]] = mapped_column(Boolean)
    max_waitlist_position: Mapped[Optional[int]] = mapped_column(Integer)
    enrollment_start: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    enrollment_end: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    drop_deadline: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    withdraw_deadline: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    auto_approve: Mapped[Optional[bool]] = mapped_column(Boolean)
    requires_justification: Mapped[Optional[bool]] = mapped_column(Boolean)
    notification_settings: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )


class ClassPrerequisiteModel(Base):
    """A prerequisite rule."""

    __tablename__ = "class_prerequisites"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    class_id: Mapped[str] = mapped_column(
        ForeignKey("class_enrollment_policies.class_id", ondelete="CASCADE"), index=True
    )
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    requirement: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    strict: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class EnrollmentRestrictionModel(Base):
    """A restriction rule."""

    __tablename__ = "enrollment_restrictions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    class_id: Mapped[str] = mapped_column(
        ForeignKey("class_enrollment_policies.class_id", ondelete="CASCADE"), index=True
    )
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    condition: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    overridable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class ClassOccupancyModel(Base):
    """Per-class counters.

    Every atomic unit locks this row ``FOR UPDATE`` first, which totally
    orders units on the same class. Counters only move through
    conditional updates, so ``enrolled_count`` never passes the capacity
    that was in force when the seat was taken.
    """

    __tablename__ = "class_occupancy"

    class_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    enrolled_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    waitlisted_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("enrolled_count >= 0", name="check_enrolled_count_non_negative"),
        CheckConstraint("waitlisted_count >= 0", name="check_waitlisted_count_non_negative"),
    )


class EnrollmentModel(Base):
    """Enrollment row for one (class, student) pair."""

    __tablename__ = "enrollments"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    class_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    student_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    enrolled_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("class_id", "student_id", name="uq_enrollment_class_student"),
    )


class WaitlistEntryModel(Base):
    """Waitlist row. Positions per class are kept contiguous from 1."""

    __tablename__ = "waitlist_entries"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    class_id: Mapped[str] = mapped_column(String(64), nullable=False)
    student_id: Mapped[str] = mapped_column(String(64), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    added_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("class_id", "student_id", name="uq_waitlist_class_student"),
        CheckConstraint("position >= 1", name="check_waitlist_position_positive"),
        Index("ix_waitlist_class_position", "class_id", "position"),
    )


class EnrollmentAuditLogModel(Base):
    """Append-only audit log."""

    __tablename__ = "enrollment_audit_log"

    event_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    class_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    actor: Mapped[str] = mapped_column(String(64), nullable=False)
    action: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    subject_id: Mapped[Optional[str]] = mapped_column(String(64))
    before: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON)
    after: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON)
    outcome: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
