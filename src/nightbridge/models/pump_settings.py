"""Pump configuration snapshot.

A [PumpSettings][nightbridge.models.pump_settings.PumpSettings] instance is
a full (not incremental) view of the pump's programmed schedules, as
scraped from the data source by a
[PumpSettingsSource][nightbridge.services.common.types.PumpSettingsSource].
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ._validation import validate_mapping
from .nightscout import TimeValue


if TYPE_CHECKING:
    from collections.abc import Mapping


def _schedule(raw: Any) -> tuple[TimeValue, ...]:
    if not isinstance(raw, list):
        return ()
    return tuple(sorted((TimeValue.from_dict(e) for e in raw), key=lambda e: e.time_as_seconds))


def _single_value_schedule(value: float | None) -> tuple[TimeValue, ...]:
    return () if value is None else (TimeValue.at_minute(0, value),)


@dataclass(frozen=True, slots=True)
class PumpSettings:
    """Schedules programmed on the pump.

    Attributes:
        basal_schedule: Active basal program (U/h), sorted by time of day.
        insulin_carb_ratio: Grams of carbs covered by one unit, by time of day.
        insulin_sensitivity: Glucose drop per unit, by time of day.
        target_low: Lower glucose target, if the pump has one.
        target_high: Upper glucose target, if the pump has one.
    """

    basal_schedule: tuple[TimeValue, ...] = ()
    insulin_carb_ratio: tuple[TimeValue, ...] = ()
    insulin_sensitivity: tuple[TimeValue, ...] = ()
    target_low: float | None = None
    target_high: float | None = None

    @property
    def target_low_schedule(self) -> tuple[TimeValue, ...]:
        return _single_value_schedule(self.target_low)

    @property
    def target_high_schedule(self) -> tuple[TimeValue, ...]:
        return _single_value_schedule(self.target_high)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PumpSettings:
        """Build from a mapping using the sink's schedule entry shape."""
        validate_mapping(data, "pump settings")
        low = data.get("target_low")
        high = data.get("target_high")
        return cls(
            basal_schedule=_schedule(data.get("basal")),
            insulin_carb_ratio=_schedule(data.get("carbratio")),
            insulin_sensitivity=_schedule(data.get("sens")),
            target_low=float(low) if low is not None else None,
            target_high=float(high) if high is not None else None,
        )
