"""
Sink-side shapes: glucose entries, treatments, and the device profile.

All models are frozen dataclasses with ``to_dict()`` producing the JSON
document the monitoring log accepts and ``from_dict()`` reading it back.
[Profile][nightbridge.models.nightscout.Profile] and
[ProfileConfig][nightbridge.models.nightscout.ProfileConfig] keep every
field they do not model in ``extra`` so that a round trip through this
package never drops user edits made elsewhere.

See Also:
    [nightbridge.services.common.mapping][]: Produces entries and
        treatments from source records.
    [nightbridge.services.common.basal][]: Produces updated basal
        schedules stored in [ProfileConfig][nightbridge.models.nightscout.ProfileConfig].
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, ClassVar

from ._validation import (
    deep_freeze,
    thaw,
    validate_aware_datetime,
    validate_mapping,
    validate_str_not_empty,
)
from .constants import APP_NAME, TreatmentEventType


if TYPE_CHECKING:
    from collections.abc import Mapping


_TIME_OF_DAY = re.compile(r"^(\d{1,2}):(\d{2})$")
_SECONDS_PER_DAY = 86_400


def _to_millis(value: datetime) -> int:
    return int(value.timestamp() * 1000)


def _from_millis(value: Any) -> datetime:
    return datetime.fromtimestamp(int(value) / 1000, tz=UTC)


# =============================================================================
# Entries
# =============================================================================


@dataclass(frozen=True, slots=True)
class Entry:
    """Glucose reading stored by the sink.

    Attributes:
        date: Timezone-aware time of the reading.
        sgv: Sensor glucose value in mg/dL.
        device: Tag of the device that produced the reading.
        direction: Trend arrow, if known.
        app: Name of the uploading application.
    """

    date: datetime
    sgv: int
    device: str
    direction: str | None = None
    app: str = APP_NAME

    TYPE: ClassVar[str] = "sgv"

    def __post_init__(self) -> None:
        validate_aware_datetime(self.date, "date")
        if isinstance(self.sgv, bool) or not isinstance(self.sgv, int):
            raise TypeError(f"sgv must be an int, got {type(self.sgv).__name__}")

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": self.TYPE,
            "sgv": self.sgv,
            "date": _to_millis(self.date),
            "dateString": self.date.isoformat(),
            "device": self.device,
            "app": self.app,
        }
        if self.direction is not None:
            data["direction"] = self.direction
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Entry:
        validate_mapping(data, "entry")
        return cls(
            date=_from_millis(data["date"]),
            sgv=int(data["sgv"]),
            device=str(data.get("device", "")),
            direction=data.get("direction"),
            app=str(data.get("app", APP_NAME)),
        )


# =============================================================================
# Treatments
# =============================================================================


def _treatment_dict(
    event_type: TreatmentEventType,
    created_at: datetime,
    device: str,
    app: str,
    notes: str,
    **fields: Any,
) -> dict[str, Any]:
    data: dict[str, Any] = {
        "eventType": event_type.value,
        "created_at": created_at.isoformat(),
        "date": _to_millis(created_at),
        "device": device,
        "app": app,
        **fields,
    }
    if notes:
        data["notes"] = notes
    return data


@dataclass(frozen=True, slots=True)
class MealBolusTreatment:
    """Bolus delivered for a meal: one bolus record plus its carb record."""

    EVENT_TYPE: ClassVar[TreatmentEventType] = TreatmentEventType.MEAL_BOLUS

    created_at: datetime
    insulin: float
    carbs: float
    device: str
    notes: str = ""
    app: str = APP_NAME

    def __post_init__(self) -> None:
        validate_aware_datetime(self.created_at, "created_at")

    def to_dict(self) -> dict[str, Any]:
        return _treatment_dict(
            self.EVENT_TYPE,
            self.created_at,
            self.device,
            self.app,
            self.notes,
            insulin=self.insulin,
            carbs=self.carbs,
        )


@dataclass(frozen=True, slots=True)
class CorrectionBolusTreatment:
    """Bolus delivered without carbohydrates."""

    EVENT_TYPE: ClassVar[TreatmentEventType] = TreatmentEventType.CORRECTION_BOLUS

    created_at: datetime
    insulin: float
    device: str
    notes: str = ""
    app: str = APP_NAME

    def __post_init__(self) -> None:
        validate_aware_datetime(self.created_at, "created_at")

    def to_dict(self) -> dict[str, Any]:
        return _treatment_dict(
            self.EVENT_TYPE,
            self.created_at,
            self.device,
            self.app,
            self.notes,
            insulin=self.insulin,
        )


@dataclass(frozen=True, slots=True)
class CarbCorrectionTreatment:
    """Carbohydrates taken without insulin (e.g. treating a low)."""

    EVENT_TYPE: ClassVar[TreatmentEventType] = TreatmentEventType.CARB_CORRECTION

    created_at: datetime
    carbs: float
    device: str
    notes: str = ""
    app: str = APP_NAME

    def __post_init__(self) -> None:
        validate_aware_datetime(self.created_at, "created_at")

    def to_dict(self) -> dict[str, Any]:
        return _treatment_dict(
            self.EVENT_TYPE,
            self.created_at,
            self.device,
            self.app,
            self.notes,
            carbs=self.carbs,
        )


Treatment = MealBolusTreatment | CorrectionBolusTreatment | CarbCorrectionTreatment


def treatment_from_dict(data: Mapping[str, Any]) -> Treatment:
    """Rebuild a treatment from a sink document, dispatching on ``eventType``.

    Raises:
        ValueError: If ``eventType`` is not one produced by this package.
    """
    validate_mapping(data, "treatment")
    try:
        event_type = TreatmentEventType(data.get("eventType"))
    except ValueError as e:
        raise ValueError(f"Unsupported eventType: {data.get('eventType')!r}") from e

    if "created_at" in data:
        created_at = datetime.fromisoformat(str(data["created_at"]).replace("Z", "+00:00"))
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=UTC)
    else:
        created_at = _from_millis(data["date"])
    common: dict[str, Any] = {
        "created_at": created_at,
        "device": str(data.get("device", "")),
        "notes": str(data.get("notes", "")),
        "app": str(data.get("app", APP_NAME)),
    }

    if event_type == TreatmentEventType.MEAL_BOLUS:
        return MealBolusTreatment(
            insulin=float(data["insulin"]), carbs=float(data["carbs"]), **common
        )
    if event_type == TreatmentEventType.CORRECTION_BOLUS:
        return CorrectionBolusTreatment(insulin=float(data["insulin"]), **common)
    return CarbCorrectionTreatment(carbs=float(data["carbs"]), **common)


# =============================================================================
# Profile
# =============================================================================


@dataclass(frozen=True, slots=True)
class TimeValue:
    """One entry of a time-of-day schedule (basal rates, ratios, targets).

    Attributes:
        time: Time of day as ``HH:MM``.
        value: Scheduled value from ``time`` until the next entry.
        time_as_seconds: Seconds since midnight for ``time``.
    """

    time: str
    value: float
    time_as_seconds: int

    def __post_init__(self) -> None:
        match = _TIME_OF_DAY.match(self.time) if isinstance(self.time, str) else None
        if match is None:
            raise ValueError(f"time must be HH:MM, got {self.time!r}")
        if not 0 <= self.time_as_seconds < _SECONDS_PER_DAY:
            raise ValueError(f"time_as_seconds out of range: {self.time_as_seconds}")

    @classmethod
    def at_minute(cls, minute_of_day: int, value: float) -> TimeValue:
        """Build an entry for the given minute of the day."""
        hours, minutes = divmod(minute_of_day, 60)
        return cls(time=f"{hours:02d}:{minutes:02d}", value=value, time_as_seconds=minute_of_day * 60)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TimeValue:
        validate_mapping(data, "schedule entry")
        time = str(data["time"])
        seconds = data.get("timeAsSeconds")
        if seconds is None:
            match = _TIME_OF_DAY.match(time)
            if match is None:
                raise ValueError(f"time must be HH:MM, got {time!r}")
            seconds = int(match.group(1)) * 3600 + int(match.group(2)) * 60
        return cls(time=time, value=float(data["value"]), time_as_seconds=int(seconds))

    def to_dict(self) -> dict[str, Any]:
        return {"time": self.time, "value": self.value, "timeAsSeconds": self.time_as_seconds}


def _schedule(raw: list[Any]) -> tuple[TimeValue, ...]:
    return tuple(TimeValue.from_dict(item) for item in raw)


@dataclass(frozen=True, slots=True)
class ProfileConfig:
    """Settings of one named profile.

    Only the list-shaped schedules this bridge writes are modeled; everything
    else (``dia``, ``units``, ``timezone``, scalar ``carbratio`` values from
    older sites, ...) is preserved in ``extra`` as received. A schedule left
    as ``None`` is absent from the document and is not written back.
    """

    basal: tuple[TimeValue, ...] | None = None
    carbratio: tuple[TimeValue, ...] | None = None
    sens: tuple[TimeValue, ...] | None = None
    target_low: tuple[TimeValue, ...] | None = None
    target_high: tuple[TimeValue, ...] | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    _SCHEDULES: ClassVar[tuple[str, ...]] = (
        "basal",
        "carbratio",
        "sens",
        "target_low",
        "target_high",
    )

    def __post_init__(self) -> None:
        validate_mapping(self.extra, "extra")
        object.__setattr__(self, "extra", deep_freeze(self.extra))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ProfileConfig:
        validate_mapping(data, "profile config")
        schedules = {
            name: _schedule(data[name])
            for name in cls._SCHEDULES
            if isinstance(data.get(name), list)
        }
        extra = {k: v for k, v in data.items() if k not in schedules}
        return cls(**schedules, extra=extra)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = thaw(self.extra)
        for name in self._SCHEDULES:
            schedule = getattr(self, name)
            if schedule is not None:
                data[name] = [entry.to_dict() for entry in schedule]
        return data

    def with_changes(self, **changes: Any) -> ProfileConfig:
        return replace(self, **changes)


@dataclass(frozen=True, slots=True)
class Profile:
    """The sink's profile document: named configs plus the default name.

    Attributes:
        default_profile: Name of the profile the sink treats as active.
        store: Mapping of profile name to
            [ProfileConfig][nightbridge.models.nightscout.ProfileConfig].
        extra: Every other document field (``_id``, ``startDate``, ...).
    """

    default_profile: str
    store: Mapping[str, ProfileConfig]
    extra: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        validate_str_not_empty(self.default_profile, "default_profile")
        validate_mapping(self.store, "store")
        validate_mapping(self.extra, "extra")
        object.__setattr__(self, "store", deep_freeze(dict(self.store)))
        object.__setattr__(self, "extra", deep_freeze(self.extra))

    def resolve_config(self, name: str | None) -> ProfileConfig:
        """Return the config stored under *name*, else the default profile's.

        A profile that does not exist yet is seeded from the default one, so
        its other settings start out identical to what the sink uses now.
        """
        if name is not None and name in self.store:
            return self.store[name]
        if self.default_profile in self.store:
            return self.store[self.default_profile]
        return ProfileConfig()

    def with_config(self, name: str, config: ProfileConfig) -> Profile:
        """Return a copy with *config* stored under *name*."""
        return replace(self, store={**self.store, name: config})

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Profile:
        validate_mapping(data, "profile")
        store_raw = data.get("store") or {}
        validate_mapping(store_raw, "store")
        return cls(
            default_profile=str(data.get("defaultProfile", "")),
            store={name: ProfileConfig.from_dict(cfg) for name, cfg in store_raw.items()},
            extra={k: v for k, v in data.items() if k not in ("defaultProfile", "store")},
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = thaw(self.extra)
        data["defaultProfile"] = self.default_profile
        data["store"] = {name: cfg.to_dict() for name, cfg in self.store.items()}
        return data
