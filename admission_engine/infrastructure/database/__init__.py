# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Database infrastructure for PostgreSQL persistence.

This package provides SQLAlchemy async connections and the store adapters
that persist policies, rules, enrollments, waitlists and audit events.

Example:
    from admission_engine.infrastructure.database import (
        SqlAlchemyEnrollmentStore,
        SqlAlchemyPolicyStore,
        get_sessionmaker,
        init_database,
    )

    await init_database(settings)
    sessionmaker = get_sessionmaker()
    policy_store = SqlAlchemyPolicyStore(sessionmaker)
    enrollment_store = SqlAlchemyEnrollmentStore(sessionmaker)
"""

from admission_engine.infrastructure.database.connection import (
    DatabaseError,
    check_database_connection,
    close_database,
    get_engine,
    get_session,
    get_sessionmaker,
    init_database,
    session_scope,
)
from admission_engine.infrastructure.database.models import Base
from admission_engine.infrastructure.database.stores import (
    SqlAlchemyAuditSink,
    SqlAlchemyEnrollmentStore,
    SqlAlchemyPolicyStore,
)

__all__ = [
    # Connection
    "DatabaseError",
    "init_database",
    "close_database",
    "get_engine",
    "get_sessionmaker",
    "get_session",
    "session_scope",
    "check_database_connection",
    # Models
    "Base",
    # Stores
    "SqlAlchemyPolicyStore",
    "SqlAlchemyEnrollmentStore",
    "SqlAlchemyAuditSink",
]
