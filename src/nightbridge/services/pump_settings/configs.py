"""Pump settings service configuration models.

See Also:
    [PumpSettingsSync][nightbridge.services.pump_settings.PumpSettingsSync]:
        The service class that consumes this configuration.
    [BaseServiceConfig][nightbridge.core.base_service.BaseServiceConfig]:
        Base class providing ``interval`` and ``max_consecutive_failures``.
"""

from __future__ import annotations

from pydantic import Field

from nightbridge.core.base_service import BaseServiceConfig


class PumpSettingsConfig(BaseServiceConfig):
    """Pump settings loop configuration.

    The loop refuses to start without ``profile_name``: pump settings
    replace whole schedules, so they are only written to a profile the
    user named explicitly.
    """

    enabled: bool = Field(default=False, description="Start this loop from the CLI")
    interval: float = Field(
        default=12 * 3600.0,
        gt=0.0,
        description="Seconds between the starts of two cycles",
    )
    profile_name: str | None = Field(
        default=None,
        min_length=1,
        description="Profile that receives the pump's settings (required)",
    )
    import_basal_rate: bool = Field(default=True, description="Copy the basal program")
    import_carb_ratio: bool = Field(default=False, description="Copy insulin/carb ratios")
    import_sensitivity: bool = Field(default=False, description="Copy insulin sensitivity")
    import_targets: bool = Field(default=False, description="Copy glucose targets")
    settings_file: str | None = Field(
        default=None,
        description="YAML/JSON pump settings export read by the CLI",
    )
