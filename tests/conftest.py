# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pytest configuration and shared fixtures.

Services are wired to the in-memory store adapters so unit tests need no
external services. SQLAlchemy adapters are tested against mocked sessions.
"""

from collections.abc import Awaitable, Callable, Iterator
from datetime import datetime, timezone
from typing import Any

import pytest

from admission_engine.core.config.settings import (
    AdmissionSettings,
    Settings,
    clear_settings_cache,
)
from admission_engine.domains.admission.service import AdmissionController
from admission_engine.domains.policy.models import PolicyRecord
from admission_engine.domains.policy.service import EnrollmentConfigService
from admission_engine.infrastructure.events.audit import InMemoryAuditSink
from admission_engine.infrastructure.events.bus import reset_event_bus
from admission_engine.infrastructure.stores.memory import (
    InMemoryAttributeSource,
    InMemoryEnrollmentStore,
    InMemoryPolicyStore,
)


# =============================================================================
# Marker Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )


# =============================================================================
# Global State
# =============================================================================


@pytest.fixture(autouse=True)
def reset_global_state() -> Iterator[None]:
    """Reset cached settings and the event bus singleton around each test."""
    clear_settings_cache()
    reset_event_bus()
    yield
    clear_settings_cache()
    reset_event_bus()


# =============================================================================
# Clock
# =============================================================================


class FixedClock:
    """Settable clock for enrollment window tests."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock() -> FixedClock:
    """Provide a clock fixed at 2025-09-01 12:00 UTC."""
    return FixedClock(datetime(2025, 9, 1, 12, 0, tzinfo=timezone.utc))


# =============================================================================
# Stores and Services
# =============================================================================


@pytest.fixture
def settings() -> Settings:
    """Provide development settings with a short decision timeout."""
    return Settings(
        environment="development",
        debug=True,
        admission=AdmissionSettings(decision_timeout_seconds=0.5),
    )


@pytest.fixture
def policy_store() -> InMemoryPolicyStore:
    """Provide an empty in-memory policy store."""
    return InMemoryPolicyStore()


@pytest.fixture
def enrollment_store() -> InMemoryEnrollmentStore:
    """Provide an empty in-memory enrollment store."""
    return InMemoryEnrollmentStore()


@pytest.fixture
def attribute_source() -> InMemoryAttributeSource:
    """Provide an empty attribute source."""
    return InMemoryAttributeSource()


@pytest.fixture
def audit_sink() -> InMemoryAuditSink:
    """Provide an audit sink that keeps events in memory."""
    return InMemoryAuditSink()


@pytest.fixture
def config_service(
    policy_store, enrollment_store, audit_sink, settings
) -> EnrollmentConfigService:
    """Create the configuration service over in-memory stores."""
    return EnrollmentConfigService(
        policy_store=policy_store,
        enrollment_store=enrollment_store,
        audit_sink=audit_sink,
        defaults=settings.policy_defaults,
    )


@pytest.fixture
def controller(
    policy_store, enrollment_store, attribute_source, audit_sink, settings, clock
) -> AdmissionController:
    """Create the admission controller over in-memory stores."""
    return AdmissionController(
        policy_store=policy_store,
        enrollment_store=enrollment_store,
        attribute_source=attribute_source,
        audit_sink=audit_sink,
        settings=settings,
        clock=clock,
    )


@pytest.fixture
def make_class(policy_store) -> Callable[..., Awaitable[str]]:
    """Provide a factory that creates a class policy row.

    Usage:
        class_id = await make_class(capacity=2, waitlist_capacity=1)
    """

    async def _make(class_id: str = "class-101", **fields: Any) -> str:
        await policy_store.create_policy(class_id, PolicyRecord(**fields))
        return class_id

    return _make


# =============================================================================
# Helper Fixtures
# =============================================================================


@pytest.fixture
def sample_staff_id() -> str:
    """Provide a sample staff member ID for testing."""
    return "staff-550e8400"
