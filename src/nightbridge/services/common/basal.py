"""Basal profile merger: folds observed basal changes into a schedule.

Schedules are keyed by minute of the day. A basal record lands on the
minute of its wall-clock time (seconds dropped); when several records
fall on the same minute the latest one wins. Merging is pure and
idempotent: merging the same records into the result again changes
nothing.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from nightbridge.models import BasalRecord, TimeValue


if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from nightbridge.models import PatientRecordWithDeviceData


def minute_of_day(item: PatientRecordWithDeviceData) -> int:
    """Wall-clock minute of the day at which *item* was recorded."""
    created_at = item.created_at
    return created_at.hour * 60 + created_at.minute


def basal_record_to_time_value(item: PatientRecordWithDeviceData) -> TimeValue:
    """Map a basal record onto a schedule entry.

    Raises:
        TypeError: If *item* does not hold a basal record.
    """
    record = item.record
    if not isinstance(record, BasalRecord):
        raise TypeError(f"expected a basal record, got {item.type}")
    return TimeValue.at_minute(minute_of_day(item), record.rate)


def merge_basal_schedule(
    existing: Sequence[TimeValue],
    records: Iterable[PatientRecordWithDeviceData],
) -> tuple[TimeValue, ...]:
    """Overlay observed basal changes onto an existing schedule.

    Entries of *existing* at minutes no record touches are kept; every
    other minute takes the rate of its latest basal record. Non-basal
    records are ignored.

    Returns:
        The merged schedule sorted by time of day.
    """
    merged: dict[int, TimeValue] = {entry.time_as_seconds: entry for entry in existing}
    observed = sorted(
        (item for item in records if isinstance(item.record, BasalRecord)),
        key=lambda item: (item.created_at, str(item.key)),
    )
    for item in observed:
        entry = basal_record_to_time_value(item)
        merged[entry.time_as_seconds] = entry
    return tuple(merged[seconds] for seconds in sorted(merged))
