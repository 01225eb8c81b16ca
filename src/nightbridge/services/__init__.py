"""Synchronization services built on [BaseService][nightbridge.core.base_service.BaseService].

Attributes:
    EntriesSync: Glucose readings to sink entries.
    TreatmentsSync: Insulin and carbs to treatments, basal changes to the
        profile.
    PumpSettingsSync: Pump programs to the profile.
"""

from .entries import EntriesConfig, EntriesSync
from .pump_settings import PumpSettingsConfig, PumpSettingsSync
from .treatments import TreatmentsConfig, TreatmentsSync


__all__ = [
    "EntriesConfig",
    "EntriesSync",
    "PumpSettingsConfig",
    "PumpSettingsSync",
    "TreatmentsConfig",
    "TreatmentsSync",
]
