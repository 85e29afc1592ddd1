# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Store contracts and in-memory adapters.

Example:
    from admission_engine.infrastructure.stores import (
        InMemoryEnrollmentStore,
        InMemoryPolicyStore,
    )

    policy_store = InMemoryPolicyStore()
    await policy_store.create_policy("class-1")
"""

from admission_engine.infrastructure.stores.base import (
    AttributeSource,
    ClassUnit,
    EnrollmentStore,
    PolicyStore,
)
from admission_engine.infrastructure.stores.memory import (
    InMemoryAttributeSource,
    InMemoryEnrollmentStore,
    InMemoryPolicyStore,
)

__all__ = [
    # Contracts
    "PolicyStore",
    "EnrollmentStore",
    "ClassUnit",
    "AttributeSource",
    # In-memory adapters
    "InMemoryPolicyStore",
    "InMemoryEnrollmentStore",
    "InMemoryAttributeSource",
]
