"""
Immutable device records as reported by the data source.

Every record the source exposes is one variant of the
``PatientRecord`` tagged union (glucose, carb, bolus, basal). Records are
paired with the device that produced them in
[PatientRecordWithDeviceData][nightbridge.models.records.PatientRecordWithDeviceData],
whose [key][nightbridge.models.records.PatientRecordWithDeviceData.key]
is the stable identity used to deduplicate carried-forward records across
cycles.

Parsing is lenient for kind-specific values that the treatment identifier
is responsible for judging (a carb value that is not a number is kept and
later deferred), but strict for the envelope (type and timestamp).

See Also:
    [nightbridge.services.common.mapping][]: Converts records into sink
        entries and treatments.
    [nightbridge.clients.diasend][]: Produces these records from the
        source API.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, tzinfo
from typing import TYPE_CHECKING, Any, ClassVar, NamedTuple

from ._validation import (
    parse_timestamp,
    validate_aware_datetime,
    validate_instance,
    validate_mapping,
    validate_str_not_empty,
)
from .constants import BolusKind, GlucoseUnit, RecordType


if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping


_MEAL_FLAG_MARKER = "ezcarb"


@dataclass(frozen=True, slots=True)
class RecordFlag:
    """A device flag attached to a record (e.g. ``1035 Bolus type ezcarb``)."""

    code: int
    description: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RecordFlag:
        return cls(code=int(data.get("flag", 0)), description=str(data.get("description", "")))


@dataclass(frozen=True, slots=True)
class DeviceInfo:
    """Identity of the device that produced a record.

    Attributes:
        serial: Device serial number, the part of the identity used for
            correlation and deduplication.
        manufacturer: Device manufacturer as reported by the source.
        model: Device model name.
        device_type: Source-specific device category.
    """

    serial: str
    manufacturer: str = ""
    model: str = ""
    device_type: str = ""

    def __post_init__(self) -> None:
        validate_str_not_empty(self.serial, "serial")

    @property
    def label(self) -> str:
        """Human-readable device tag used in sink documents."""
        name = " ".join(part for part in (self.manufacturer, self.model) if part)
        return f"{name} ({self.serial})" if name else self.serial

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DeviceInfo:
        validate_mapping(data, "device")
        return cls(
            serial=str(data.get("serial", "")),
            manufacturer=str(data.get("manufacturer", "")),
            model=str(data.get("model", "")),
            device_type=str(data.get("deviceType", data.get("type", ""))),
        )


@dataclass(frozen=True, slots=True)
class GlucoseRecord:
    """Glucose reading.

    Attributes:
        created_at: Timezone-aware time of the reading.
        value: Reading in ``unit``.
        unit: Unit of ``value``.
        flags: Device flags (calibration, manual entry, ...).
    """

    RECORD_TYPE: ClassVar[RecordType] = RecordType.GLUCOSE

    created_at: datetime
    value: float
    unit: GlucoseUnit = GlucoseUnit.MMOL_L
    flags: tuple[RecordFlag, ...] = ()

    def __post_init__(self) -> None:
        validate_aware_datetime(self.created_at, "created_at")
        if isinstance(self.value, bool) or not isinstance(self.value, int | float):
            raise TypeError(f"value must be a number, got {type(self.value).__name__}")
        if not math.isfinite(self.value):
            raise ValueError("value must be finite")


@dataclass(frozen=True, slots=True)
class CarbRecord:
    """Carbohydrate intake.

    ``value`` is kept exactly as reported (the source sends grams as a
    string); [grams][nightbridge.models.records.CarbRecord.grams] returns
    ``None`` when it cannot be interpreted.
    """

    RECORD_TYPE: ClassVar[RecordType] = RecordType.CARB

    created_at: datetime
    value: Any
    flags: tuple[RecordFlag, ...] = ()

    def __post_init__(self) -> None:
        validate_aware_datetime(self.created_at, "created_at")

    @property
    def grams(self) -> float | None:
        return _as_number(self.value)


@dataclass(frozen=True, slots=True)
class BolusRecord:
    """Bolus insulin delivery.

    Attributes:
        created_at: Timezone-aware delivery time.
        total_units: Total delivered insulin in units, ``None`` if missing.
        kind: Delivery kind; a ``MEAL`` bolus needs a carb counterpart.
        spike_units: Immediate part of a combo bolus, if any.
        programmed_meal_units: Insulin the calculator programmed for carbs.
        flags: Device flags.
    """

    RECORD_TYPE: ClassVar[RecordType] = RecordType.INSULIN_BOLUS

    created_at: datetime
    total_units: float | None
    kind: BolusKind = BolusKind.NORMAL
    spike_units: float | None = None
    programmed_meal_units: float | None = None
    flags: tuple[RecordFlag, ...] = ()

    def __post_init__(self) -> None:
        validate_aware_datetime(self.created_at, "created_at")
        validate_instance(self.kind, BolusKind, "kind")


@dataclass(frozen=True, slots=True)
class BasalRecord:
    """Basal rate change (units per hour), effective for ``duration`` if known."""

    RECORD_TYPE: ClassVar[RecordType] = RecordType.INSULIN_BASAL

    created_at: datetime
    rate: float
    duration: timedelta | None = None
    flags: tuple[RecordFlag, ...] = ()

    def __post_init__(self) -> None:
        validate_aware_datetime(self.created_at, "created_at")
        if isinstance(self.rate, bool) or not isinstance(self.rate, int | float):
            raise TypeError(f"rate must be a number, got {type(self.rate).__name__}")
        if self.rate < 0:
            raise ValueError("rate must be non-negative")


PatientRecord = GlucoseRecord | CarbRecord | BolusRecord | BasalRecord


class RecordKey(NamedTuple):
    """Stable identity of a record: device serial, timestamp, and kind.

    Survives serialization boundaries, unlike object identity.
    """

    device_serial: str
    created_at: str
    record_type: RecordType

    def __str__(self) -> str:
        return f"{self.device_serial}/{self.record_type.value}/{self.created_at}"


@dataclass(frozen=True, slots=True)
class PatientRecordWithDeviceData:
    """A patient record paired with its originating device.

    Attributes:
        record: The record variant.
        device: Device that produced the record.
        key: Cached [RecordKey][nightbridge.models.records.RecordKey].
    """

    record: PatientRecord
    device: DeviceInfo
    _key: RecordKey = field(init=False, repr=False, compare=False, hash=False)

    def __post_init__(self) -> None:
        validate_instance(self.device, DeviceInfo, "device")
        if not isinstance(self.record, GlucoseRecord | CarbRecord | BolusRecord | BasalRecord):
            raise TypeError(f"record must be a PatientRecord, got {type(self.record).__name__}")
        key = RecordKey(
            device_serial=self.device.serial,
            created_at=self.record.created_at.isoformat(),
            record_type=self.record.RECORD_TYPE,
        )
        object.__setattr__(self, "_key", key)

    @property
    def key(self) -> RecordKey:
        return self._key

    @property
    def type(self) -> RecordType:
        return self.record.RECORD_TYPE

    @property
    def created_at(self) -> datetime:
        return self.record.created_at


# =============================================================================
# Parsing
# =============================================================================


def _as_number(value: Any) -> float | None:
    """Interpret *value* as a finite float, or return ``None``."""
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _parse_flags(raw: Any) -> tuple[RecordFlag, ...]:
    if not isinstance(raw, list):
        return ()
    return tuple(RecordFlag.from_dict(f) for f in raw if isinstance(f, dict))


def _bolus_kind(raw: Mapping[str, Any], flags: Iterable[RecordFlag]) -> BolusKind:
    programmed_meal = _as_number(raw.get("programmed_meal"))
    if programmed_meal is not None and programmed_meal > 0:
        return BolusKind.MEAL
    if any(_MEAL_FLAG_MARKER in f.description.lower() for f in flags):
        return BolusKind.MEAL
    return BolusKind.NORMAL


def parse_patient_record(raw: Mapping[str, Any], tz: tzinfo) -> PatientRecord:
    """Build a record variant from one source JSON object.

    Args:
        raw: Source object with at least ``type`` and ``created_at``.
        tz: Timezone used to localize offset-less timestamps.

    Raises:
        ValueError: On an unknown ``type``, a missing or malformed
            timestamp, or an unusable glucose/basal value.
    """
    validate_mapping(raw, "record")
    try:
        record_type = RecordType(raw.get("type"))
    except ValueError as e:
        raise ValueError(f"Unsupported record type: {raw.get('type')!r}") from e

    created_at = parse_timestamp(raw.get("created_at"), tz)
    flags = _parse_flags(raw.get("flags"))

    if record_type == RecordType.GLUCOSE:
        value = _as_number(raw.get("value"))
        if value is None:
            raise ValueError(f"Glucose value is not a number: {raw.get('value')!r}")
        unit_raw = str(raw.get("unit", GlucoseUnit.MMOL_L)).lower()
        unit = GlucoseUnit.MG_DL if unit_raw == GlucoseUnit.MG_DL else GlucoseUnit.MMOL_L
        return GlucoseRecord(created_at=created_at, value=value, unit=unit, flags=flags)

    if record_type == RecordType.CARB:
        return CarbRecord(created_at=created_at, value=raw.get("value"), flags=flags)

    if record_type == RecordType.INSULIN_BOLUS:
        return BolusRecord(
            created_at=created_at,
            total_units=_as_number(raw.get("total_value")),
            kind=_bolus_kind(raw, flags),
            spike_units=_as_number(raw.get("spike_value")),
            programmed_meal_units=_as_number(raw.get("programmed_meal")),
            flags=flags,
        )

    rate = _as_number(raw.get("value"))
    if rate is None:
        raise ValueError(f"Basal rate is not a number: {raw.get('value')!r}")
    duration_s = _as_number(raw.get("duration"))
    return BasalRecord(
        created_at=created_at,
        rate=rate,
        duration=timedelta(seconds=duration_s) if duration_s is not None else None,
        flags=flags,
    )
