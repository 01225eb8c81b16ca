"""Shared domain types for the synchronization services.

Collaborator protocols consumed by the orchestrators, and the cycle state
threaded by the [Looper][nightbridge.core.looper.Looper]. Keeping them in
their own module avoids circular imports between service packages and the
concrete clients.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from nightbridge.models._validation import validate_aware_datetime


if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from nightbridge.models import (
        Entry,
        PatientRecordWithDeviceData,
        Profile,
        PumpSettings,
        RecordKey,
        Treatment,
    )


# Granularity of the fetch cursor
CURSOR_STEP = timedelta(seconds=1)


def utc_now() -> datetime:
    return datetime.now(UTC)


# =============================================================================
# Collaborators
# =============================================================================


@runtime_checkable
class RecordSource(Protocol):
    """Fetches device records created in ``[date_from, date_to)``.

    Raises ``AuthenticationError`` or ``TransportError`` on failure.
    """

    async def fetch_records(
        self, date_from: datetime, date_to: datetime
    ) -> list[PatientRecordWithDeviceData]: ...


@runtime_checkable
class EntrySink(Protocol):
    """Stores glucose entries and echoes the stored ones back."""

    async def report_entries(self, entries: Sequence[Entry]) -> list[Entry]: ...


@runtime_checkable
class TreatmentSink(Protocol):
    """Stores treatments and echoes the stored ones back."""

    async def report_treatments(self, treatments: Sequence[Treatment]) -> list[Treatment]: ...


@runtime_checkable
class ProfileStore(Protocol):
    """Reads and replaces the sink's profile document."""

    async def fetch_profile(self) -> Profile: ...

    async def update_profile(self, profile: Profile) -> Profile: ...


@runtime_checkable
class PumpSettingsSource(Protocol):
    """Retrieves a full snapshot of the pump's programmed settings."""

    async def fetch_pump_settings(self) -> PumpSettings: ...


# =============================================================================
# Cycle State
# =============================================================================


@dataclass(frozen=True, slots=True)
class CycleState:
    """State threaded from one synchronization cycle to the next.

    Attributes:
        date_from: Inclusive lower bound of the next fetch window.
        previous_records: Records deferred by the previous cycle, each
            identity at most once.
    """

    date_from: datetime
    previous_records: tuple[PatientRecordWithDeviceData, ...] = ()

    def __post_init__(self) -> None:
        validate_aware_datetime(self.date_from, "date_from")
        keys = [r.key for r in self.previous_records]
        if len(keys) != len(set(keys)):
            raise ValueError("previous_records must not contain duplicate record keys")

    @property
    def previous_keys(self) -> frozenset[RecordKey]:
        return frozenset(r.key for r in self.previous_records)

    def advance(
        self,
        latest_processed: datetime | None,
        deferred: Iterable[PatientRecordWithDeviceData] = (),
    ) -> CycleState:
        """Return the state for the next cycle.

        The cursor moves to ``latest_processed + 1 s`` but never backwards;
        without any processed record it stays put.
        """
        date_from = self.date_from
        if latest_processed is not None:
            date_from = max(date_from, latest_processed + CURSOR_STEP)
        return CycleState(date_from=date_from, previous_records=tuple(deferred))
