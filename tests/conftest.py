"""
Pytest configuration and shared fixtures for Nightbridge tests.

Provides:
- Record factories for glucose, carb, bolus, and basal records
- Mock collaborators (record source, sinks, profile store)
- A controllable wall clock for the orchestrators
- Custom pytest markers for test categorization
"""

import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from nightbridge.models import (
    BasalRecord,
    BolusKind,
    BolusRecord,
    CarbRecord,
    DeviceInfo,
    GlucoseRecord,
    GlucoseUnit,
    PatientRecordWithDeviceData,
    Profile,
    ProfileConfig,
    TimeValue,
)


BASE_TIME = datetime(2024, 3, 1, 12, 0, tzinfo=UTC)

RecordFactory = Callable[..., PatientRecordWithDeviceData]


# ============================================================================
# Logging Configuration
# ============================================================================


@pytest.fixture(scope="session", autouse=True)
def setup_logging() -> None:
    """Configure logging for tests."""
    logging.basicConfig(level=logging.DEBUG)


# ============================================================================
# Devices and Records
# ============================================================================


@pytest.fixture
def pump() -> DeviceInfo:
    return DeviceInfo(serial="PUMP-1", manufacturer="Roche", model="Accu-Chek Insight")


@pytest.fixture
def other_pump() -> DeviceInfo:
    return DeviceInfo(serial="PUMP-2", manufacturer="Tandem", model="t:slim X2")


@pytest.fixture
def at() -> Callable[..., datetime]:
    """Return ``BASE_TIME`` shifted by the given ``timedelta`` keyword arguments."""

    def _at(**delta: float) -> datetime:
        return BASE_TIME + timedelta(**delta)

    return _at


@pytest.fixture
def make_glucose(pump: DeviceInfo) -> RecordFactory:
    def _make(
        created_at: datetime = BASE_TIME,
        value: float = 5.5,
        unit: GlucoseUnit = GlucoseUnit.MMOL_L,
        device: DeviceInfo | None = None,
    ) -> PatientRecordWithDeviceData:
        return PatientRecordWithDeviceData(
            record=GlucoseRecord(created_at=created_at, value=value, unit=unit),
            device=device or pump,
        )

    return _make


@pytest.fixture
def make_carb(pump: DeviceInfo) -> RecordFactory:
    def _make(
        created_at: datetime = BASE_TIME,
        value: Any = "30",
        device: DeviceInfo | None = None,
    ) -> PatientRecordWithDeviceData:
        return PatientRecordWithDeviceData(
            record=CarbRecord(created_at=created_at, value=value),
            device=device or pump,
        )

    return _make


@pytest.fixture
def make_bolus(pump: DeviceInfo) -> RecordFactory:
    def _make(
        created_at: datetime = BASE_TIME,
        total_units: float | None = 2.5,
        kind: BolusKind = BolusKind.NORMAL,
        device: DeviceInfo | None = None,
    ) -> PatientRecordWithDeviceData:
        return PatientRecordWithDeviceData(
            record=BolusRecord(created_at=created_at, total_units=total_units, kind=kind),
            device=device or pump,
        )

    return _make


@pytest.fixture
def make_basal(pump: DeviceInfo) -> RecordFactory:
    def _make(
        created_at: datetime = BASE_TIME,
        rate: float = 0.9,
        device: DeviceInfo | None = None,
    ) -> PatientRecordWithDeviceData:
        return PatientRecordWithDeviceData(
            record=BasalRecord(created_at=created_at, rate=rate),
            device=device or pump,
        )

    return _make


# ============================================================================
# Profiles
# ============================================================================


@pytest.fixture
def default_profile_config() -> ProfileConfig:
    return ProfileConfig(
        basal=(TimeValue.at_minute(0, 0.8), TimeValue.at_minute(360, 1.1)),
        carbratio=(TimeValue.at_minute(0, 10.0),),
        sens=(TimeValue.at_minute(0, 40.0),),
        extra={"dia": 5, "units": "mg/dl", "timezone": "UTC"},
    )


@pytest.fixture
def profile(default_profile_config: ProfileConfig) -> Profile:
    return Profile(
        default_profile="Default",
        store={"Default": default_profile_config},
        extra={"_id": "abc123", "startDate": "2024-01-01T00:00:00.000Z"},
    )


# ============================================================================
# Mock Collaborators
# ============================================================================


@pytest.fixture
def mock_source() -> MagicMock:
    source = MagicMock()
    source.fetch_records = AsyncMock(return_value=[])
    return source


@pytest.fixture
def mock_entry_sink() -> MagicMock:
    sink = MagicMock()
    sink.report_entries = AsyncMock(side_effect=lambda entries: list(entries))
    return sink


@pytest.fixture
def mock_treatment_sink() -> MagicMock:
    sink = MagicMock()
    sink.report_treatments = AsyncMock(side_effect=lambda treatments: list(treatments))
    return sink


@pytest.fixture
def mock_profile_store(profile: Profile) -> MagicMock:
    store = MagicMock()
    store.fetch_profile = AsyncMock(return_value=profile)
    store.update_profile = AsyncMock(side_effect=lambda p: p)
    return store


class FakeClock:
    """Wall clock that only moves when told to."""

    def __init__(self, now: datetime = BASE_TIME + timedelta(hours=1)) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now += timedelta(**delta)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ============================================================================
# Environment
# ============================================================================


@pytest.fixture
def credentials_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Set every credential environment variable to a dummy value."""
    monkeypatch.setenv("DIASEND_USERNAME", "user@example.org")
    monkeypatch.setenv("DIASEND_PASSWORD", "hunter2")  # pragma: allowlist secret
    monkeypatch.setenv("DIASEND_CLIENT_ID", "client-id")
    monkeypatch.setenv("DIASEND_CLIENT_SECRET", "client-secret")  # pragma: allowlist secret
    monkeypatch.setenv("NIGHTSCOUT_API_SECRET", "nightscout-secret")  # pragma: allowlist secret


# ============================================================================
# Pytest Hooks
# ============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark every test under ``tests/unit`` as a unit test."""
    for item in items:
        if "/unit/" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
