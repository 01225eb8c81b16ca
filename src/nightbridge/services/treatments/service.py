"""Treatments service: insulin and carbs to treatments, basal to the profile.

Each cycle:

1. Fetch every record created in ``[date_from, now)``.
2. Combine the records deferred by the previous cycle with the fresh ones
   that are not already among them (matched by
   [RecordKey][nightbridge.models.records.RecordKey]).
3. Run [identify_treatments][nightbridge.services.common.treatments.identify_treatments]
   over the combined batch.
4. Concurrently report the treatments and, when basal records were
   fetched, merge them into the profile's basal schedule with
   [merge_basal_schedule][nightbridge.services.common.basal.merge_basal_schedule]
   and write the profile back if it changed. Both operations settle
   before the cycle ends; one failure is re-raised as is, two are raised
   together as an ``ExceptionGroup``.
5. Carry forward the unresolved fresh records. A record that was already
   carried forward and still cannot be resolved is dropped with a
   ``records_dropped`` warning.
6. Move the cursor one second past the newest fresh record that was
   resolved or merged.

A failed cycle leaves the state untouched, so the next attempt fetches
the same window with the same carried-forward records.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import TYPE_CHECKING, Any, ClassVar

from nightbridge.core.base_service import BaseService
from nightbridge.models import RecordType, ServiceName
from nightbridge.services.common.basal import merge_basal_schedule
from nightbridge.services.common.treatments import identify_treatments
from nightbridge.services.common.types import CycleState, utc_now

from .configs import TreatmentsConfig


if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence
    from datetime import datetime

    from nightbridge.models import PatientRecordWithDeviceData, Treatment
    from nightbridge.services.common.types import ProfileStore, RecordSource, TreatmentSink


class TreatmentsSync(BaseService[TreatmentsConfig, CycleState]):
    """Treatments and basal profile synchronization loop.

    See Also:
        [TreatmentsConfig][nightbridge.services.treatments.TreatmentsConfig]:
            Configuration model for this service.
        [CycleState][nightbridge.services.common.types.CycleState]: Cursor
            and carried-forward records threaded between cycles.
    """

    SERVICE_NAME: ClassVar[ServiceName] = ServiceName.TREATMENTS
    CONFIG_CLASS: ClassVar[type[TreatmentsConfig]] = TreatmentsConfig

    def __init__(
        self,
        source: RecordSource,
        sink: TreatmentSink,
        profile_store: ProfileStore,
        config: TreatmentsConfig | None = None,
        *,
        clock: Callable[[], datetime] = utc_now,
        metrics_enabled: bool = False,
    ) -> None:
        super().__init__(config=config, metrics_enabled=metrics_enabled)
        self._config: TreatmentsConfig
        self._source = source
        self._sink = sink
        self._profile_store = profile_store
        self._clock = clock

    def initial_state(self) -> CycleState:
        """Start one interval in the past with nothing carried forward."""
        return CycleState(date_from=self._clock() - timedelta(seconds=self._config.interval))

    async def run(self, state: CycleState) -> CycleState:
        date_to = self._clock()
        self._logger.info(
            "cycle_started",
            date_from=state.date_from.isoformat(),
            date_to=date_to.isoformat(),
            carried=len(state.previous_records),
        )
        fresh = await self._source.fetch_records(state.date_from, date_to)
        self.set_gauge("records_fetched", len(fresh))

        previous_keys = state.previous_keys
        combined = [*state.previous_records, *(r for r in fresh if r.key not in previous_keys)]
        result = identify_treatments(combined, pairing_window=self._config.pairing_window_delta)
        basal = [r for r in fresh if r.type == RecordType.INSULIN_BASAL]

        operations: list[Awaitable[Any]] = []
        if result.treatments:
            operations.append(self._report_treatments(result.treatments))
        if basal:
            operations.append(self._sync_basal_profile(basal))
        outcomes = await asyncio.gather(*operations, return_exceptions=True)
        self._raise_failures(outcomes)

        deferred = [r for r in result.unprocessed_records if r.key not in previous_keys]
        dropped = [r for r in result.unprocessed_records if r.key in previous_keys]
        if dropped:
            self._logger.warning(
                "records_dropped",
                count=len(dropped),
                keys=",".join(str(r.key) for r in dropped),
            )
            self.inc_counter("records_dropped", len(dropped))
        if deferred:
            self._logger.info("records_deferred", count=len(deferred))
        self.set_gauge("records_deferred", len(deferred))

        processed = {r.key for r in result.resolved_records} | {r.key for r in basal}
        latest = max((r.created_at for r in fresh if r.key in processed), default=None)
        next_state = state.advance(latest, deferred)
        self._logger.info(
            "sync_completed",
            fetched=len(fresh),
            treatments=len(result.treatments),
            basal=len(basal),
            deferred=len(deferred),
            dropped=len(dropped),
            next_date_from=next_state.date_from.isoformat(),
        )
        return next_state

    @staticmethod
    def _raise_failures(outcomes: Sequence[Any]) -> None:
        """Re-raise the failures collected from the concurrent operations."""
        errors = [o for o in outcomes if isinstance(o, BaseException)]
        for error in errors:
            if not isinstance(error, Exception):
                raise error
        if len(errors) == 1:
            raise errors[0]
        if errors:
            raise ExceptionGroup("treatments cycle failed", errors)

    async def _report_treatments(self, treatments: Sequence[Treatment]) -> None:
        stored = await self._sink.report_treatments(treatments)
        self.inc_counter("treatments_reported", len(stored))
        self._logger.debug("treatments_reported", sent=len(treatments), stored=len(stored))

    async def _sync_basal_profile(self, basal: Sequence[PatientRecordWithDeviceData]) -> None:
        """Merge observed basal changes into the target profile."""
        profile = await self._profile_store.fetch_profile()
        name = self._config.profile_name or profile.default_profile
        current = profile.resolve_config(name)
        merged = merge_basal_schedule(current.basal or (), basal)
        if merged == current.basal:
            self._logger.debug("profile_unchanged", profile=name)
            return
        await self._profile_store.update_profile(
            profile.with_config(name, current.with_changes(basal=merged))
        )
        self.inc_counter("profile_updates")
        self._logger.info("profile_updated", profile=name, basal_entries=len(merged))
