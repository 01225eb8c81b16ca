"""Pure building blocks shared by the synchronization services.

Attributes:
    identify_treatments: Carb/bolus correlation.
        See [nightbridge.services.common.treatments][].
    merge_basal_schedule: Basal profile merging.
        See [nightbridge.services.common.basal][].
    glucose_record_to_entry: Record mapping.
        See [nightbridge.services.common.mapping][].
    CycleState, RecordSource, EntrySink, TreatmentSink, ProfileStore,
    PumpSettingsSource: See [nightbridge.services.common.types][].
"""

from .basal import basal_record_to_time_value, merge_basal_schedule, minute_of_day
from .mapping import (
    carb_correction_treatment,
    correction_bolus_treatment,
    glucose_record_to_entry,
    meal_bolus_treatment,
    to_mg_dl,
)
from .treatments import DEFAULT_PAIRING_WINDOW, IdentificationResult, identify_treatments
from .types import (
    CURSOR_STEP,
    CycleState,
    EntrySink,
    ProfileStore,
    PumpSettingsSource,
    RecordSource,
    TreatmentSink,
    utc_now,
)


__all__ = [
    "CURSOR_STEP",
    "DEFAULT_PAIRING_WINDOW",
    "CycleState",
    "EntrySink",
    "IdentificationResult",
    "ProfileStore",
    "PumpSettingsSource",
    "RecordSource",
    "TreatmentSink",
    "basal_record_to_time_value",
    "carb_correction_treatment",
    "correction_bolus_treatment",
    "glucose_record_to_entry",
    "identify_treatments",
    "meal_bolus_treatment",
    "merge_basal_schedule",
    "minute_of_day",
    "to_mg_dl",
    "utc_now",
]
