"""
Unit tests for services.treatments module.

Tests:
- TreatmentsConfig defaults and validation
- Fetch window and cursor advancement
- Carry-forward of unresolved records and dropping after a second deferral
- Basal merge into the target profile (default or named)
- Concurrent report/profile update and error aggregation
- Empty windows report nothing
"""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from nightbridge.core.exceptions import SinkError, TransportError
from nightbridge.models import (
    BolusKind,
    CarbCorrectionTreatment,
    CorrectionBolusTreatment,
    MealBolusTreatment,
    Profile,
    TimeValue,
)
from nightbridge.services.common.types import CycleState
from nightbridge.services.treatments import TreatmentsConfig, TreatmentsSync


@pytest.fixture
def service(mock_source, mock_treatment_sink, mock_profile_store, clock) -> TreatmentsSync:
    return TreatmentsSync(
        source=mock_source,
        sink=mock_treatment_sink,
        profile_store=mock_profile_store,
        config=TreatmentsConfig(interval=300.0),
        clock=clock,
    )


def _reported(mock_treatment_sink):
    return list(mock_treatment_sink.report_treatments.await_args.args[0])


# ============================================================================
# Configuration
# ============================================================================


class TestTreatmentsConfig:
    """TreatmentsConfig defaults and validation."""

    def test_defaults(self) -> None:
        config = TreatmentsConfig()
        assert config.interval == 300.0
        assert config.profile_name is None
        assert config.pairing_window_delta == timedelta(minutes=5)

    def test_negative_pairing_window_rejected(self) -> None:
        with pytest.raises(ValueError):
            TreatmentsConfig(pairing_window=-1)

    def test_empty_profile_name_rejected(self) -> None:
        with pytest.raises(ValueError):
            TreatmentsConfig(profile_name="")


# ============================================================================
# Window and Cursor
# ============================================================================


class TestWindow:
    """Fetch window and cursor handling."""

    def test_initial_state_one_interval_back(self, service, clock) -> None:
        state = service.initial_state()
        assert state.date_from == clock() - timedelta(seconds=300)
        assert state.previous_records == ()

    @pytest.mark.asyncio
    async def test_fetches_from_cursor_to_now(self, service, mock_source, clock, at) -> None:
        await service.run(CycleState(date_from=at()))
        mock_source.fetch_records.assert_awaited_once_with(at(), clock())

    @pytest.mark.asyncio
    async def test_empty_window_reports_nothing(
        self, service, mock_treatment_sink, mock_profile_store, at
    ) -> None:
        state = CycleState(date_from=at())

        next_state = await service.run(state)

        assert next_state == state
        mock_treatment_sink.report_treatments.assert_not_awaited()
        mock_profile_store.fetch_profile.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cursor_moves_past_newest_resolved(
        self, service, mock_source, make_bolus, make_carb, at
    ) -> None:
        mock_source.fetch_records.return_value = [
            make_carb(at(minutes=1)),
            make_bolus(at(minutes=3)),
            make_bolus(at(minutes=40), total_units=1.0),
        ]

        next_state = await service.run(CycleState(date_from=at()))

        assert next_state.date_from == at(minutes=40, seconds=1)

    @pytest.mark.asyncio
    async def test_cursor_ignores_deferred_records(
        self, service, mock_source, make_bolus, at
    ) -> None:
        mock_source.fetch_records.return_value = [
            make_bolus(at(minutes=1)),
            make_bolus(at(minutes=9), kind=BolusKind.MEAL),
        ]

        next_state = await service.run(CycleState(date_from=at()))

        assert next_state.date_from == at(minutes=1, seconds=1)

    @pytest.mark.asyncio
    async def test_cursor_never_moves_backwards(
        self, service, mock_source, make_bolus, at
    ) -> None:
        mock_source.fetch_records.return_value = [make_bolus(at(minutes=-10))]

        next_state = await service.run(CycleState(date_from=at()))

        assert next_state.date_from == at()


# ============================================================================
# Carry-forward
# ============================================================================


class TestCarryForward:
    """Deferred records are retried once, then dropped."""

    @pytest.mark.asyncio
    async def test_meal_bolus_resolved_when_carbs_arrive(
        self, service, mock_source, mock_treatment_sink, make_bolus, make_carb, at
    ) -> None:
        bolus = make_bolus(at(minutes=2), kind=BolusKind.MEAL, total_units=5.0)
        mock_source.fetch_records.return_value = [bolus]

        first = await service.run(CycleState(date_from=at()))

        assert first.previous_records == (bolus,)
        mock_treatment_sink.report_treatments.assert_not_awaited()

        mock_source.fetch_records.return_value = [make_carb(at(minutes=1), value="50")]
        second = await service.run(first)

        (treatment,) = _reported(mock_treatment_sink)
        assert isinstance(treatment, MealBolusTreatment)
        assert (treatment.insulin, treatment.carbs) == (5.0, 50.0)
        assert second.previous_records == ()

    @pytest.mark.asyncio
    async def test_refetched_previous_record_not_duplicated(
        self, service, mock_source, mock_treatment_sink, make_bolus, make_carb, at
    ) -> None:
        bolus = make_bolus(at(minutes=2), kind=BolusKind.MEAL)
        carb = make_carb(at(minutes=3))
        state = CycleState(date_from=at(), previous_records=(bolus,))
        mock_source.fetch_records.return_value = [bolus, carb]

        await service.run(state)

        assert len(_reported(mock_treatment_sink)) == 1

    @pytest.mark.asyncio
    async def test_deferred_twice_is_dropped(
        self, service, mock_source, make_bolus, at, caplog
    ) -> None:
        bolus = make_bolus(at(minutes=2), kind=BolusKind.MEAL)
        state = CycleState(date_from=at(), previous_records=(bolus,))
        mock_source.fetch_records.return_value = []

        next_state = await service.run(state)

        assert next_state.previous_records == ()
        assert "records_dropped" in caplog.text

    @pytest.mark.asyncio
    async def test_carry_forward_has_no_duplicates(
        self, service, mock_source, make_bolus, make_carb, at
    ) -> None:
        old = make_bolus(at(minutes=1), kind=BolusKind.MEAL)
        new = make_carb(at(minutes=30), value="x")
        mock_source.fetch_records.return_value = [old, new, new]

        next_state = await service.run(CycleState(date_from=at(), previous_records=(old,)))

        keys = [r.key for r in next_state.previous_records]
        assert keys == [new.key]

    @pytest.mark.asyncio
    async def test_treatments_in_record_order(
        self, service, mock_source, mock_treatment_sink, make_bolus, make_carb, other_pump, at
    ) -> None:
        mock_source.fetch_records.return_value = [
            make_bolus(at(minutes=1)),
            make_carb(at(minutes=2), device=other_pump),
        ]

        await service.run(CycleState(date_from=at()))

        assert [type(t) for t in _reported(mock_treatment_sink)] == [
            CorrectionBolusTreatment,
            CarbCorrectionTreatment,
        ]


# ============================================================================
# Basal Profile
# ============================================================================


class TestBasalProfile:
    """Observed basal changes merged into the profile."""

    @pytest.mark.asyncio
    async def test_merges_into_default_profile(
        self, service, mock_source, mock_profile_store, make_basal, at
    ) -> None:
        # BASE_TIME is 12:00 UTC
        mock_source.fetch_records.return_value = [make_basal(at(minutes=30), rate=0.65)]

        next_state = await service.run(CycleState(date_from=at()))

        updated = mock_profile_store.update_profile.await_args.args[0]
        basal = updated.store["Default"].basal
        assert TimeValue.at_minute(12 * 60 + 30, 0.65) in basal
        assert updated.store["Default"].extra["dia"] == 5
        assert updated.extra["_id"] == "abc123"
        assert next_state.date_from == at(minutes=30, seconds=1)

    @pytest.mark.asyncio
    async def test_named_profile_seeded_from_default(
        self, mock_source, mock_treatment_sink, mock_profile_store, clock, make_basal, at
    ) -> None:
        service = TreatmentsSync(
            mock_source,
            mock_treatment_sink,
            mock_profile_store,
            TreatmentsConfig(profile_name="Diasend"),
            clock=clock,
        )
        mock_source.fetch_records.return_value = [make_basal(at(), rate=1.5)]

        await service.run(CycleState(date_from=at()))

        updated = mock_profile_store.update_profile.await_args.args[0]
        assert set(updated.store) == {"Default", "Diasend"}
        assert updated.store["Diasend"].carbratio == updated.store["Default"].carbratio
        assert TimeValue.at_minute(12 * 60, 1.5) in updated.store["Diasend"].basal
        assert TimeValue.at_minute(12 * 60, 1.5) not in updated.store["Default"].basal

    @pytest.mark.asyncio
    async def test_unchanged_schedule_not_written(
        self, service, mock_source, mock_profile_store, make_basal, at
    ) -> None:
        # Default schedule already has 0.8 U/h at 00:00
        mock_source.fetch_records.return_value = [make_basal(at(hours=12), rate=0.8)]

        await service.run(CycleState(date_from=at()))

        mock_profile_store.fetch_profile.assert_awaited_once()
        mock_profile_store.update_profile.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_basal_write_leaves_unmodeled_fields_alone(
        self, service, mock_source, mock_profile_store, make_basal, at
    ) -> None:
        stored = {
            "defaultProfile": "Default",
            "store": {"Default": {"dia": 4, "carbratio": 10, "sens": 50}},
        }
        mock_profile_store.fetch_profile.return_value = Profile.from_dict(stored)
        mock_source.fetch_records.return_value = [make_basal(at(), rate=1.2)]

        await service.run(CycleState(date_from=at()))

        written = mock_profile_store.update_profile.await_args.args[0].to_dict()
        assert written["store"]["Default"] == {
            "dia": 4,
            "carbratio": 10,
            "sens": 50,
            "basal": [{"time": "12:00", "value": 1.2, "timeAsSeconds": 43200}],
        }

    @pytest.mark.asyncio
    async def test_no_basal_no_profile_access(
        self, service, mock_source, mock_profile_store, make_bolus, at
    ) -> None:
        mock_source.fetch_records.return_value = [make_bolus(at())]

        await service.run(CycleState(date_from=at()))

        mock_profile_store.fetch_profile.assert_not_awaited()


# ============================================================================
# Failures
# ============================================================================


class TestFailures:
    """Collaborator failures propagate after both operations settle."""

    @pytest.mark.asyncio
    async def test_source_failure_propagates(self, service, mock_source, at) -> None:
        mock_source.fetch_records.side_effect = TransportError("down")
        with pytest.raises(TransportError):
            await service.run(CycleState(date_from=at()))

    @pytest.mark.asyncio
    async def test_report_failure_still_updates_profile(
        self,
        service,
        mock_source,
        mock_treatment_sink,
        mock_profile_store,
        make_bolus,
        make_basal,
        at,
    ) -> None:
        mock_source.fetch_records.return_value = [make_bolus(at()), make_basal(at(), rate=2.0)]
        mock_treatment_sink.report_treatments.side_effect = SinkError("rejected")

        with pytest.raises(SinkError, match="rejected"):
            await service.run(CycleState(date_from=at()))

        mock_profile_store.update_profile.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_both_failures_raise_group(
        self,
        service,
        mock_source,
        mock_treatment_sink,
        mock_profile_store,
        make_bolus,
        make_basal,
        at,
    ) -> None:
        mock_source.fetch_records.return_value = [make_bolus(at()), make_basal(at(), rate=2.0)]
        mock_treatment_sink.report_treatments.side_effect = SinkError("treatments")
        mock_profile_store.fetch_profile = AsyncMock(side_effect=SinkError("profile"))

        with pytest.raises(ExceptionGroup) as exc_info:
            await service.run(CycleState(date_from=at()))

        assert {str(e) for e in exc_info.value.exceptions} == {"treatments", "profile"}
