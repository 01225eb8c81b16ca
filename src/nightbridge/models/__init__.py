"""Pure frozen dataclasses with zero I/O.

Bottom layer of the package: depended upon by ``core``, ``clients`` and
``services``, depends only on the standard library.

Attributes:
    PatientRecordWithDeviceData: A source record plus its device identity.
        See [nightbridge.models.records][].
    Entry, MealBolusTreatment, CorrectionBolusTreatment,
    CarbCorrectionTreatment, Profile, ProfileConfig, TimeValue: Sink-side
        shapes. See [nightbridge.models.nightscout][].
    PumpSettings: Full pump configuration snapshot.
"""

from .constants import (
    APP_NAME,
    MGDL_PER_MMOLL,
    BolusKind,
    GlucoseUnit,
    RecordType,
    ServiceName,
    TreatmentEventType,
)
from .nightscout import (
    CarbCorrectionTreatment,
    CorrectionBolusTreatment,
    Entry,
    MealBolusTreatment,
    Profile,
    ProfileConfig,
    TimeValue,
    Treatment,
    treatment_from_dict,
)
from .pump_settings import PumpSettings
from .records import (
    BasalRecord,
    BolusRecord,
    CarbRecord,
    DeviceInfo,
    GlucoseRecord,
    PatientRecord,
    PatientRecordWithDeviceData,
    RecordFlag,
    RecordKey,
    parse_patient_record,
)


__all__ = [
    "APP_NAME",
    "MGDL_PER_MMOLL",
    "BasalRecord",
    "BolusKind",
    "BolusRecord",
    "CarbCorrectionTreatment",
    "CarbRecord",
    "CorrectionBolusTreatment",
    "DeviceInfo",
    "Entry",
    "GlucoseRecord",
    "GlucoseUnit",
    "MealBolusTreatment",
    "PatientRecord",
    "PatientRecordWithDeviceData",
    "Profile",
    "ProfileConfig",
    "PumpSettings",
    "RecordFlag",
    "RecordKey",
    "RecordType",
    "ServiceName",
    "TimeValue",
    "Treatment",
    "TreatmentEventType",
    "parse_patient_record",
    "treatment_from_dict",
]
