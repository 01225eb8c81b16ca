"""
Treatment identifier: correlates carb and bolus records into treatments.

Given one batch of device records,
[identify_treatments()][nightbridge.services.common.treatments.identify_treatments]
partitions every carb and bolus record into exactly one of two buckets:

* **resolved**: the record became (or contributed to) a treatment;
* **unprocessed**: the record could not be interpreted yet and should be
  retried once the next batch brings more context.

Pairing rules:
    A bolus pairs with the nearest carb record of the **same device**
    whose timestamp lies within ``pairing_window`` (inclusive) of the
    bolus. Meal boluses are matched first, then normal boluses, each group
    in chronological order. Each carb record serves at most one bolus;
    ties go to the earlier carb, then to the smaller record key. The
    result never depends on input order.

    ============================  ===================================
    Situation                     Outcome
    ============================  ===================================
    bolus + carb counterpart      one meal bolus (carb contributes)
    normal bolus, no counterpart  correction bolus
    meal bolus, no counterpart    unprocessed
    carb, no bolus claims it      carb correction
    unusable value                unprocessed
    ============================  ===================================

Treatments are emitted in the order of the bolus or carb record that
produced them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

from nightbridge.core.exceptions import CorrelationError
from nightbridge.models import BolusKind, BolusRecord, CarbRecord

from .mapping import carb_correction_treatment, correction_bolus_treatment, meal_bolus_treatment


if TYPE_CHECKING:
    from collections.abc import Iterable

    from nightbridge.models import PatientRecordWithDeviceData, RecordKey, Treatment


logger = logging.getLogger(__name__)

DEFAULT_PAIRING_WINDOW = timedelta(minutes=5)


@dataclass(frozen=True, slots=True)
class IdentificationResult:
    """Outcome of one identification pass.

    Attributes:
        treatments: Treatments in the order of the records that produced them.
        unprocessed_records: Records to retry with the next batch.
        resolved_records: Records consumed by a treatment, including carb
            records that contributed to a meal bolus.
    """

    treatments: tuple[Treatment, ...] = ()
    unprocessed_records: tuple[PatientRecordWithDeviceData, ...] = ()
    resolved_records: tuple[PatientRecordWithDeviceData, ...] = ()


def _sort_key(item: PatientRecordWithDeviceData) -> tuple[object, str]:
    return (item.created_at, str(item.key))


def _bolus_order(item: PatientRecordWithDeviceData) -> tuple[object, ...]:
    record = item.record
    meal_first = isinstance(record, BolusRecord) and record.kind == BolusKind.MEAL
    return (not meal_first, *_sort_key(item))


def _unusable_reason(item: PatientRecordWithDeviceData) -> str | None:
    """Return why *item* cannot become a treatment, or ``None``."""
    record = item.record
    if isinstance(record, CarbRecord):
        grams = record.grams
        if grams is None or grams <= 0:
            return f"carb value is not a positive number: {record.value!r}"
    elif isinstance(record, BolusRecord):
        if record.total_units is None or record.total_units < 0:
            return f"bolus total is not a non-negative number: {record.total_units!r}"
    return None


def _pair_boluses(
    boluses: list[PatientRecordWithDeviceData],
    carbs: list[PatientRecordWithDeviceData],
    window: timedelta,
) -> dict[RecordKey, PatientRecordWithDeviceData]:
    """Greedily assign each bolus its nearest unclaimed same-device carb.

    Meal boluses choose first, so a nearby normal bolus never takes the
    carb record a meal bolus was delivered for.
    """
    carbs_by_device: dict[str, list[PatientRecordWithDeviceData]] = {}
    for carb in sorted(carbs, key=_sort_key):
        carbs_by_device.setdefault(carb.device.serial, []).append(carb)

    claimed: set[RecordKey] = set()
    pairs: dict[RecordKey, PatientRecordWithDeviceData] = {}
    for bolus in sorted(boluses, key=_bolus_order):
        candidates = [
            carb
            for carb in carbs_by_device.get(bolus.device.serial, [])
            if carb.key not in claimed and abs(carb.created_at - bolus.created_at) <= window
        ]
        if not candidates:
            continue
        best = min(
            candidates,
            key=lambda c: (abs(c.created_at - bolus.created_at), c.created_at, str(c.key)),
        )
        claimed.add(best.key)
        pairs[bolus.key] = best
    return pairs


def identify_treatments(
    records: Iterable[PatientRecordWithDeviceData],
    *,
    pairing_window: timedelta = DEFAULT_PAIRING_WINDOW,
) -> IdentificationResult:
    """Turn a batch of records into treatments.

    Glucose and basal records are ignored. A record key that occurs more
    than once is considered once (first occurrence wins).

    Args:
        records: The full record batch; carb and bolus records are the
            candidates, and counterparts are searched among them.
        pairing_window: Maximum distance between a bolus and its carbs.

    Returns:
        An [IdentificationResult][nightbridge.services.common.treatments.IdentificationResult]
        in which every distinct carb/bolus record appears exactly once,
        either resolved or unprocessed.

    Raises:
        ValueError: If *pairing_window* is negative.
    """
    if pairing_window < timedelta(0):
        raise ValueError(f"pairing_window must be non-negative, got {pairing_window}")

    candidates: list[PatientRecordWithDeviceData] = []
    seen: set[RecordKey] = set()
    for item in records:
        if not isinstance(item.record, CarbRecord | BolusRecord) or item.key in seen:
            continue
        seen.add(item.key)
        candidates.append(item)

    problems = {item.key: reason for item in candidates if (reason := _unusable_reason(item))}
    usable = [item for item in candidates if item.key not in problems]
    pairs = _pair_boluses(
        [item for item in usable if isinstance(item.record, BolusRecord)],
        [item for item in usable if isinstance(item.record, CarbRecord)],
        pairing_window,
    )
    contributors = {carb.key for carb in pairs.values()}

    treatments: list[Treatment] = []
    unprocessed: list[PatientRecordWithDeviceData] = []
    resolved: list[PatientRecordWithDeviceData] = []

    for item in candidates:
        try:
            if item.key in problems:
                raise CorrelationError(problems[item.key])
            record = item.record
            if isinstance(record, BolusRecord):
                carbs = pairs.get(item.key)
                if carbs is not None:
                    treatments.append(meal_bolus_treatment(item, carbs))
                elif record.kind == BolusKind.MEAL:
                    raise CorrelationError("meal bolus has no carb record within the window")
                else:
                    treatments.append(correction_bolus_treatment(item))
            elif item.key not in contributors:
                treatments.append(carb_correction_treatment(item))
        except CorrelationError as e:
            logger.debug("record_deferred key=%s reason=%s", item.key, e)
            unprocessed.append(item)
        else:
            resolved.append(item)

    return IdentificationResult(
        treatments=tuple(treatments),
        unprocessed_records=tuple(unprocessed),
        resolved_records=tuple(resolved),
    )
