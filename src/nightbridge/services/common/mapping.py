"""Record mapper: pure, stateless record -> sink shape transforms."""

from __future__ import annotations

from typing import TYPE_CHECKING

from nightbridge.models import (
    MGDL_PER_MMOLL,
    BolusRecord,
    CarbCorrectionTreatment,
    CarbRecord,
    CorrectionBolusTreatment,
    Entry,
    GlucoseRecord,
    GlucoseUnit,
    MealBolusTreatment,
)


if TYPE_CHECKING:
    from nightbridge.models import PatientRecordWithDeviceData


def to_mg_dl(value: float, unit: GlucoseUnit) -> int:
    """Convert a glucose value to whole mg/dL."""
    if unit == GlucoseUnit.MG_DL:
        return round(value)
    return round(value * MGDL_PER_MMOLL)


def glucose_record_to_entry(item: PatientRecordWithDeviceData) -> Entry:
    """Map a glucose record 1:1 onto a sink entry.

    Raises:
        TypeError: If *item* does not hold a glucose record.
    """
    record = item.record
    if not isinstance(record, GlucoseRecord):
        raise TypeError(f"expected a glucose record, got {item.type}")
    return Entry(
        date=record.created_at,
        sgv=to_mg_dl(record.value, record.unit),
        device=item.device.label,
    )


def meal_bolus_treatment(
    bolus: PatientRecordWithDeviceData, carbs: PatientRecordWithDeviceData
) -> MealBolusTreatment:
    """Combine a bolus and its carb record into one meal bolus.

    The treatment is stamped with the bolus time; the caller guarantees
    that both values are usable numbers.
    """
    bolus_record = bolus.record
    carb_record = carbs.record
    assert isinstance(bolus_record, BolusRecord)  # noqa: S101  # Checked by the identifier
    assert bolus_record.total_units is not None  # noqa: S101
    assert isinstance(carb_record, CarbRecord)  # noqa: S101  # Checked by the identifier
    assert carb_record.grams is not None  # noqa: S101
    return MealBolusTreatment(
        created_at=bolus_record.created_at,
        insulin=bolus_record.total_units,
        carbs=carb_record.grams,
        device=bolus.device.label,
    )


def correction_bolus_treatment(bolus: PatientRecordWithDeviceData) -> CorrectionBolusTreatment:
    record = bolus.record
    assert isinstance(record, BolusRecord)  # noqa: S101  # Checked by the identifier
    assert record.total_units is not None  # noqa: S101
    return CorrectionBolusTreatment(
        created_at=record.created_at,
        insulin=record.total_units,
        device=bolus.device.label,
    )


def carb_correction_treatment(carbs: PatientRecordWithDeviceData) -> CarbCorrectionTreatment:
    record = carbs.record
    assert isinstance(record, CarbRecord)  # noqa: S101  # Checked by the identifier
    assert record.grams is not None  # noqa: S101
    return CarbCorrectionTreatment(
        created_at=record.created_at,
        carbs=record.grams,
        device=carbs.device.label,
    )
