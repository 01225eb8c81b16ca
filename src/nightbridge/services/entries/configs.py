"""Entries service configuration models.

See Also:
    [EntriesSync][nightbridge.services.entries.EntriesSync]: The service
        class that consumes this configuration.
    [BaseServiceConfig][nightbridge.core.base_service.BaseServiceConfig]:
        Base class providing ``interval`` and ``max_consecutive_failures``.
"""

from __future__ import annotations

from nightbridge.core.base_service import BaseServiceConfig


class EntriesConfig(BaseServiceConfig):
    """Glucose entries loop configuration (defaults to a 5 minute cadence)."""
