# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Core package for the admission engine.

This package contains shared building blocks:
- config: Engine configuration and settings
- errors: Exception hierarchy shared by every domain
"""
