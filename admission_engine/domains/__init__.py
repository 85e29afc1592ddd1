# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Domain services layer for the admission engine.

Domains:
    policy: Enrollment policy, prerequisite and restriction management.
    admission: Admission decisions, waitlisting and promotion.
"""
