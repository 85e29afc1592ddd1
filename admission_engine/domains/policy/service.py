# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Enrollment configuration service.

This module provides the EnrollmentConfigService class for:
- Reading a class's resolved enrollment policy
- Validated, compare-and-swap policy updates
- Prerequisite and restriction management
- Window and capacity queries used by staff tooling

Every successful mutation produces exactly one audit event. Validation
failures never reach the store; lost compare-and-swap races surface as
ConfigStaleError and are logged at INFO, not as failures.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from admission_engine.core.config.settings import PolicyDefaultsSettings, get_settings
from admission_engine.core.errors import (
    ClassNotFoundError,
    ConfigInvalidError,
    ConfigStaleError,
    PrerequisiteNotFoundError,
    RequirementInvalidError,
    RestrictionNotFoundError,
)
from admission_engine.domains.policy.models import (
    EnrollmentPolicy,
    PolicyChanges,
    PolicyUpdateResult,
    Prerequisite,
    PrerequisiteData,
    PrerequisiteUpdate,
    Restriction,
    RestrictionData,
    RestrictionUpdate,
    merge_policy,
    resolve_policy,
)
from admission_engine.domains.policy.requirements import (
    validate_prerequisite,
    validate_restriction,
)
from admission_engine.domains.policy.validator import validate_policy
from admission_engine.infrastructure.events.audit import AuditEvent, AuditSink, record_committed
from admission_engine.infrastructure.events.types import EventTypes
from admission_engine.utils.datetime import utc_now, within_window

if TYPE_CHECKING:
    from admission_engine.infrastructure.stores.base import EnrollmentStore, PolicyStore

logger = logging.getLogger(__name__)


def _rule_patch(changes: PrerequisiteUpdate | RestrictionUpdate) -> dict:
    """Fields to apply from a partial rule update.

    ``description`` may be cleared with an explicit None; None on any
    other field leaves it unchanged.
    """
    return {
        name: value
        for name, value in changes.model_dump(exclude_unset=True).items()
        if value is not None or name == "description"
    }


class EnrollmentConfigService:
    """Service for managing per-class enrollment configuration.

    Attributes:
        policy_store: Storage for policies and rules.
        enrollment_store: Storage for enrollment rows, used for occupancy.
        audit_sink: Destination for audit events.
        defaults: Defaults for policy fields a class never set.
    """

    def __init__(
        self,
        policy_store: PolicyStore,
        enrollment_store: EnrollmentStore,
        audit_sink: AuditSink,
        defaults: PolicyDefaultsSettings | None = None,
    ) -> None:
        """Initialize the configuration service.

        Args:
            policy_store: Storage for policies and rules.
            enrollment_store: Storage for enrollment rows.
            audit_sink: Destination for audit events.
            defaults: Policy defaults; taken from settings when omitted.
        """
        self.policy_store = policy_store
        self.enrollment_store = enrollment_store
        self.audit_sink = audit_sink
        self.defaults = defaults or get_settings().policy_defaults

    # =========================================================================
    # Policy
    # =========================================================================

    async def get_policy(self, class_id: str) -> EnrollmentPolicy:
        """Get the resolved enrollment policy for a class.

        Args:
            class_id: Class identifier.

        Returns:
            Policy with defaults applied to every unset field.

        Raises:
            ClassNotFoundError: If the class has no policy row.
        """
        stored = await self.policy_store.read_policy(class_id)
        if stored is None:
            raise ClassNotFoundError(f"Class {class_id} not found")

        record, revision = stored
        return resolve_policy(class_id, record, revision, self.defaults)

    async def update_policy(
        self,
        class_id: str,
        changes: PolicyChanges,
        actor: str,
        expected_revision: int | None = None,
    ) -> PolicyUpdateResult:
        """Apply a partial policy update.

        The update is merged over the current policy, the enrollment-type
        cascade is applied, and the effective policy is validated before a
        compare-and-swap write.

        Args:
            class_id: Class identifier.
            changes: Fields to change.
            actor: Staff member making the change.
            expected_revision: Revision the caller edited against. Defaults
                to the revision read by this call.

        Returns:
            The stored policy and any validation warnings.

        Raises:
            ClassNotFoundError: If the class has no policy row.
            ConfigInvalidError: If the effective policy fails validation.
            ConfigStaleError: If the policy changed since expected_revision.
        """
        current = await self.get_policy(class_id)
        revision = current.revision if expected_revision is None else expected_revision

        if revision != current.revision:
            self._log_stale("policy", class_id, revision)
            raise ConfigStaleError("Policy", class_id, revision)

        occupancy = await self.enrollment_store.get_occupancy(class_id)
        result = validate_policy(current, changes, occupancy.enrolled)
        if not result.valid:
            logger.warning(
                "Rejected policy update: class=%s, by=%s, errors=%s",
                class_id,
                actor,
                [issue.code for issue in result.errors],
            )
            raise ConfigInvalidError(result.errors, result.warnings)

        proposed = merge_policy(current, changes)
        written = await self.policy_store.cas_write_policy(
            class_id, revision, proposed.to_record()
        )
        if not written:
            self._log_stale("policy", class_id, revision)
            raise ConfigStaleError("Policy", class_id, revision)

        updated = proposed.model_copy(update={"revision": revision + 1})

        await record_committed(
            self.audit_sink,
            AuditEvent(
                class_id=class_id,
                actor=actor,
                action=EventTypes.Policy.UPDATED,
                before=current.audit_snapshot(),
                after=updated.audit_snapshot(),
            ),
        )

        logger.info(
            "Updated enrollment policy: class=%s, revision=%d, by=%s, fields=%s",
            class_id,
            updated.revision,
            actor,
            sorted(changes.provided()),
        )

        return PolicyUpdateResult(policy=updated, warnings=result.warnings)

    async def is_enrollment_open(self, class_id: str, at: datetime | None = None) -> bool:
        """Check whether the enrollment window is open.

        Args:
            class_id: Class identifier.
            at: Instant to check; now when omitted.

        Returns:
            True if ``at`` lies within the (inclusive) enrollment window.
        """
        policy = await self.get_policy(class_id)
        return within_window(at or utc_now(), policy.enrollment_start, policy.enrollment_end)

    async def has_capacity(self, class_id: str) -> bool:
        """Check whether the class has a free seat right now."""
        policy = await self.get_policy(class_id)
        occupancy = await self.enrollment_store.get_occupancy(class_id)
        return occupancy.enrolled < policy.capacity

    async def has_waitlist_capacity(self, class_id: str) -> bool:
        """Check whether the class would accept another waitlist entry."""
        policy = await self.get_policy(class_id)
        if not policy.allow_waitlist:
            return False
        occupancy = await self.enrollment_store.get_occupancy(class_id)
        return occupancy.waitlisted < policy.waitlist_capacity

    # =========================================================================
    # Prerequisites
    # =========================================================================

    async def list_prerequisites(self, class_id: str) -> list[Prerequisite]:
        """List a class's prerequisites in creation order."""
        return await self.policy_store.list_prerequisites(class_id)

    async def add_prerequisite(
        self,
        class_id: str,
        data: PrerequisiteData,
        actor: str,
    ) -> Prerequisite:
        """Add a prerequisite to a class.

        Args:
            class_id: Class identifier.
            data: Prerequisite type, requirement and flags.
            actor: Staff member making the change.

        Returns:
            The stored prerequisite.

        Raises:
            ClassNotFoundError: If the class has no policy row.
            RequirementInvalidError: If the requirement is malformed.
        """
        await self._require_class(class_id)

        result = validate_prerequisite(data.type, data.requirement)
        if not result.valid:
            raise RequirementInvalidError("prerequisite", result.errors)

        prerequisite = Prerequisite(
            class_id=class_id,
            type=data.type,
            requirement=data.requirement.strip(),
            description=data.description,
            strict=data.strict,
        )
        await self.policy_store.insert_prerequisite(prerequisite)

        await self._audit_rule(
            EventTypes.Prerequisite.ADDED, class_id, actor, prerequisite.id, after=prerequisite
        )
        logger.info(
            "Added prerequisite: class=%s, type=%s, requirement=%s, by=%s",
            class_id,
            prerequisite.type.value,
            prerequisite.requirement,
            actor,
        )
        return prerequisite

    async def update_prerequisite(
        self,
        prerequisite_id: str,
        changes: PrerequisiteUpdate,
        actor: str,
        expected_version: int | None = None,
    ) -> Prerequisite:
        """Update a prerequisite.

        The merged type and requirement are re-validated together, so
        changing only the type is checked against the stored requirement.

        Raises:
            PrerequisiteNotFoundError: If the prerequisite does not exist.
            RequirementInvalidError: If the merged requirement is malformed.
            ConfigStaleError: If the row changed since expected_version.
        """
        current = await self.policy_store.get_prerequisite(prerequisite_id)
        if current is None:
            raise PrerequisiteNotFoundError(f"Prerequisite {prerequisite_id} not found")

        version = current.version if expected_version is None else expected_version
        proposed = current.model_copy(update={**_rule_patch(changes), "updated_at": utc_now()})
        proposed.requirement = proposed.requirement.strip()

        result = validate_prerequisite(proposed.type, proposed.requirement)
        if not result.valid:
            raise RequirementInvalidError("prerequisite", result.errors)

        if not await self.policy_store.cas_write_prerequisite(proposed, version):
            self._log_stale("prerequisite", prerequisite_id, version)
            raise ConfigStaleError("Prerequisite", prerequisite_id, version)

        updated = proposed.model_copy(update={"version": version + 1})
        await self._audit_rule(
            EventTypes.Prerequisite.UPDATED,
            current.class_id,
            actor,
            prerequisite_id,
            before=current,
            after=updated,
        )
        logger.info("Updated prerequisite: id=%s, by=%s", prerequisite_id, actor)
        return updated

    async def remove_prerequisite(
        self,
        prerequisite_id: str,
        actor: str,
        expected_version: int | None = None,
    ) -> None:
        """Remove a prerequisite.

        Raises:
            PrerequisiteNotFoundError: If the prerequisite does not exist.
            ConfigStaleError: If the row changed since expected_version.
        """
        current = await self.policy_store.get_prerequisite(prerequisite_id)
        if current is None:
            raise PrerequisiteNotFoundError(f"Prerequisite {prerequisite_id} not found")

        version = current.version if expected_version is None else expected_version
        if not await self.policy_store.cas_delete_prerequisite(prerequisite_id, version):
            self._log_stale("prerequisite", prerequisite_id, version)
            raise ConfigStaleError("Prerequisite", prerequisite_id, version)

        await self._audit_rule(
            EventTypes.Prerequisite.REMOVED, current.class_id, actor, prerequisite_id, before=current
        )
        logger.info("Removed prerequisite: id=%s, by=%s", prerequisite_id, actor)

    # =========================================================================
    # Restrictions
    # =========================================================================

    async def list_restrictions(self, class_id: str) -> list[Restriction]:
        """List a class's restrictions in creation order."""
        return await self.policy_store.list_restrictions(class_id)

    async def add_restriction(
        self,
        class_id: str,
        data: RestrictionData,
        actor: str,
    ) -> Restriction:
        """Add a restriction to a class.

        Raises:
            ClassNotFoundError: If the class has no policy row.
            RequirementInvalidError: If the condition is malformed.
        """
        await self._require_class(class_id)

        result = validate_restriction(data.type, data.condition)
        if not result.valid:
            raise RequirementInvalidError("restriction", result.errors)

        restriction = Restriction(
            class_id=class_id,
            type=data.type,
            condition=data.condition.strip(),
            description=data.description,
            overridable=data.overridable,
        )
        await self.policy_store.insert_restriction(restriction)

        await self._audit_rule(
            EventTypes.Restriction.ADDED, class_id, actor, restriction.id, after=restriction
        )
        logger.info(
            "Added restriction: class=%s, type=%s, condition=%s, by=%s",
            class_id,
            restriction.type.value,
            restriction.condition,
            actor,
        )
        return restriction

    async def update_restriction(
        self,
        restriction_id: str,
        changes: RestrictionUpdate,
        actor: str,
        expected_version: int | None = None,
    ) -> Restriction:
        """Update a restriction.

        Raises:
            RestrictionNotFoundError: If the restriction does not exist.
            RequirementInvalidError: If the merged condition is malformed.
            ConfigStaleError: If the row changed since expected_version.
        """
        current = await self.policy_store.get_restriction(restriction_id)
        if current is None:
            raise RestrictionNotFoundError(f"Restriction {restriction_id} not found")

        version = current.version if expected_version is None else expected_version
        proposed = current.model_copy(update={**_rule_patch(changes), "updated_at": utc_now()})
        proposed.condition = proposed.condition.strip()

        result = validate_restriction(proposed.type, proposed.condition)
        if not result.valid:
            raise RequirementInvalidError("restriction", result.errors)

        if not await self.policy_store.cas_write_restriction(proposed, version):
            self._log_stale("restriction", restriction_id, version)
            raise ConfigStaleError("Restriction", restriction_id, version)

        updated = proposed.model_copy(update={"version": version + 1})
        await self._audit_rule(
            EventTypes.Restriction.UPDATED,
            current.class_id,
            actor,
            restriction_id,
            before=current,
            after=updated,
        )
        logger.info("Updated restriction: id=%s, by=%s", restriction_id, actor)
        return updated

    async def remove_restriction(
        self,
        restriction_id: str,
        actor: str,
        expected_version: int | None = None,
    ) -> None:
        """Remove a restriction.

        Raises:
            RestrictionNotFoundError: If the restriction does not exist.
            ConfigStaleError: If the row changed since expected_version.
        """
        current = await self.policy_store.get_restriction(restriction_id)
        if current is None:
            raise RestrictionNotFoundError(f"Restriction {restriction_id} not found")

        version = current.version if expected_version is None else expected_version
        if not await self.policy_store.cas_delete_restriction(restriction_id, version):
            self._log_stale("restriction", restriction_id, version)
            raise ConfigStaleError("Restriction", restriction_id, version)

        await self._audit_rule(
            EventTypes.Restriction.REMOVED, current.class_id, actor, restriction_id, before=current
        )
        logger.info("Removed restriction: id=%s, by=%s", restriction_id, actor)

    # =========================================================================
    # Private Helpers
    # =========================================================================

    async def _require_class(self, class_id: str) -> None:
        if await self.policy_store.read_policy(class_id) is None:
            raise ClassNotFoundError(f"Class {class_id} not found")

    async def _audit_rule(
        self,
        action: str,
        class_id: str,
        actor: str,
        rule_id: str,
        before: Prerequisite | Restriction | None = None,
        after: Prerequisite | Restriction | None = None,
    ) -> None:
        await record_committed(
            self.audit_sink,
            AuditEvent(
                class_id=class_id,
                actor=actor,
                action=action,
                subject_id=rule_id,
                before=before.model_dump(mode="json") if before else None,
                after=after.model_dump(mode="json") if after else None,
            ),
        )

    @staticmethod
    def _log_stale(entity: str, entity_id: str, revision: int) -> None:
        logger.info(
            "Stale %s write: id=%s, expected_revision=%d; caller must re-read",
            entity,
            entity_id,
            revision,
        )
