# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Centralized event type definitions for the admission engine.

Every audit event's ``action`` is one of these constants, and the event
bus publishes audit events under the same string.

Adding a new event:
1. Add constant to appropriate class here
2. Publisher automatically works, wildcard subscribers such as
   ``enrollment.admission.*`` catch new events
"""


class EventTypes:
    """All event types organized by subject."""

    class Policy:
        """Enrollment policy mutations."""

        UPDATED = "enrollment.policy.updated"

    class Prerequisite:
        """Prerequisite rule mutations."""

        ADDED = "enrollment.prerequisite.added"
        UPDATED = "enrollment.prerequisite.updated"
        REMOVED = "enrollment.prerequisite.removed"

    class Restriction:
        """Restriction rule mutations."""

        ADDED = "enrollment.restriction.added"
        UPDATED = "enrollment.restriction.updated"
        REMOVED = "enrollment.restriction.removed"

    class Admission:
        """Admission decisions."""

        ADMITTED = "enrollment.admission.admitted"
        WAITLISTED = "enrollment.admission.waitlisted"
        REJECTED = "enrollment.admission.rejected"

    class Waitlist:
        """Waitlist movement."""

        PROMOTED = "enrollment.waitlist.promoted"
        LEFT = "enrollment.waitlist.left"

    class Seat:
        """Seat lifecycle."""

        RELEASED = "enrollment.seat.released"
