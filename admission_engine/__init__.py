"""Enrollment Admission Engine.

Enrollment configuration and admission control for capacity-bounded
classes: policy validation, concurrent policy editing, and atomic
admit/waitlist/reject decisions with FIFO waitlist promotion.

Copyright (C) 2025 Global Digital Labs (gdlabs.io)
SPDX-License-Identifier: LGPL-3.0-or-later
"""

__version__ = "1.0.0"
