"""Entries service: forwards glucose readings to the monitoring log.

Each cycle:

1. Fetch every record created in ``[date_from, now)`` from the
   [RecordSource][nightbridge.services.common.types.RecordSource].
2. Map the glucose records 1:1 onto entries with
   [glucose_record_to_entry][nightbridge.services.common.mapping.glucose_record_to_entry]
   (mmol/L converted to mg/dL).
3. Report them to the [EntrySink][nightbridge.services.common.types.EntrySink]
   unless there are none.
4. Move the cursor to one second past the newest reported reading.

Records of every other type are ignored here; the
[TreatmentsSync][nightbridge.services.treatments.TreatmentsSync] loop
handles them.

Examples:
    ```python
    entries = EntriesSync(source=diasend, sink=nightscout)
    async with entries:
        await entries.run_forever()
    ```
"""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING, ClassVar

from nightbridge.core.base_service import BaseService
from nightbridge.models import RecordType, ServiceName
from nightbridge.services.common.mapping import glucose_record_to_entry
from nightbridge.services.common.types import CycleState, utc_now

from .configs import EntriesConfig


if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from nightbridge.services.common.types import EntrySink, RecordSource


class EntriesSync(BaseService[EntriesConfig, CycleState]):
    """Glucose entries synchronization loop.

    See Also:
        [EntriesConfig][nightbridge.services.entries.EntriesConfig]:
            Configuration model for this service.
    """

    SERVICE_NAME: ClassVar[ServiceName] = ServiceName.ENTRIES
    CONFIG_CLASS: ClassVar[type[EntriesConfig]] = EntriesConfig

    def __init__(
        self,
        source: RecordSource,
        sink: EntrySink,
        config: EntriesConfig | None = None,
        *,
        clock: Callable[[], datetime] = utc_now,
        metrics_enabled: bool = False,
    ) -> None:
        super().__init__(config=config, metrics_enabled=metrics_enabled)
        self._config: EntriesConfig
        self._source = source
        self._sink = sink
        self._clock = clock

    def initial_state(self) -> CycleState:
        """Start one interval in the past."""
        return CycleState(date_from=self._clock() - timedelta(seconds=self._config.interval))

    async def run(self, state: CycleState) -> CycleState:
        date_to = self._clock()
        self._logger.info(
            "cycle_started", date_from=state.date_from.isoformat(), date_to=date_to.isoformat()
        )
        records = await self._source.fetch_records(state.date_from, date_to)
        glucose = [r for r in records if r.type == RecordType.GLUCOSE]
        self.set_gauge("records_fetched", len(records))

        if not glucose:
            self._logger.info("sync_completed", fetched=len(records), reported=0)
            return state

        entries = [glucose_record_to_entry(r) for r in glucose]
        stored = await self._sink.report_entries(entries)
        self.inc_counter("entries_reported", len(stored))

        next_state = state.advance(max(r.created_at for r in glucose))
        self._logger.info(
            "sync_completed",
            fetched=len(records),
            reported=len(stored),
            next_date_from=next_state.date_from.isoformat(),
        )
        return next_state
