"""Pure helpers for the pump settings service."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any


if TYPE_CHECKING:
    from nightbridge.models import Profile, PumpSettings

    from .configs import PumpSettingsConfig


_logger = logging.getLogger(__name__)


def apply_pump_settings(
    profile: Profile,
    settings: PumpSettings,
    profile_name: str,
    config: PumpSettingsConfig,
) -> Profile:
    """Return *profile* with the enabled pump schedules copied into *profile_name*.

    A profile that does not exist yet is seeded from the default profile.
    Schedules the pump reports as empty are never copied, so a partial
    read cannot wipe a schedule.
    """
    current = profile.resolve_config(profile_name)
    selected = (
        ("basal", config.import_basal_rate, settings.basal_schedule),
        ("carbratio", config.import_carb_ratio, settings.insulin_carb_ratio),
        ("sens", config.import_sensitivity, settings.insulin_sensitivity),
        ("target_low", config.import_targets, settings.target_low_schedule),
        ("target_high", config.import_targets, settings.target_high_schedule),
    )
    changes: dict[str, Any] = {}
    for field_name, enabled, schedule in selected:
        if not enabled:
            continue
        if not schedule:
            _logger.warning("pump_schedule_empty field=%s", field_name)
            continue
        changes[field_name] = schedule
    return profile.with_config(profile_name, current.with_changes(**changes))
