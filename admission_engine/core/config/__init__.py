# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Configuration package for the admission engine.

Example:
    >>> from admission_engine.core.config import get_settings
    >>> settings = get_settings()
    >>> print(settings.environment)
    'development'
"""

from admission_engine.core.config.settings import (
    AdmissionSettings,
    DatabaseSettings,
    PolicyDefaultsSettings,
    Settings,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    # Settings
    "Settings",
    "get_settings",
    "clear_settings_cache",
    # Subsettings
    "DatabaseSettings",
    "PolicyDefaultsSettings",
    "AdmissionSettings",
]
