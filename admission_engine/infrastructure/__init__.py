# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Infrastructure layer for the admission engine.

This package contains:
- Store contracts and in-memory adapters
- Database connections and SQLAlchemy adapters (PostgreSQL)
- The audit event bus
"""
