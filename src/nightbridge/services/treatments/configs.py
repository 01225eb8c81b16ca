"""Treatments service configuration models.

See Also:
    [TreatmentsSync][nightbridge.services.treatments.TreatmentsSync]: The
        service class that consumes this configuration.
    [BaseServiceConfig][nightbridge.core.base_service.BaseServiceConfig]:
        Base class providing ``interval`` and ``max_consecutive_failures``.
"""

from __future__ import annotations

from datetime import timedelta

from pydantic import Field

from nightbridge.core.base_service import BaseServiceConfig


class TreatmentsConfig(BaseServiceConfig):
    """Treatments and basal profile loop configuration.

    Attributes:
        profile_name: Profile whose basal schedule receives observed basal
            changes; ``None`` targets the sink's default profile.
        pairing_window: Seconds within which a bolus and a carb record of
            the same device are combined into one meal bolus.
    """

    profile_name: str | None = Field(
        default=None,
        min_length=1,
        description="Profile to update (None = the sink's default profile)",
    )
    pairing_window: float = Field(
        default=300.0,
        ge=0.0,
        description="Seconds between a bolus and its carbs (inclusive)",
    )

    @property
    def pairing_window_delta(self) -> timedelta:
        return timedelta(seconds=self.pairing_window)
