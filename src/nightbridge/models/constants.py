"""Shared constants for the models layer.

Defines the enumerations used across record, treatment, and profile
models. Placing them here avoids circular imports between the record
parsers and the sink-side shapes.

See Also:
    [nightbridge.models.records][]: Uses
        [RecordType][nightbridge.models.constants.RecordType] as the
        discriminator of every patient record.
    [nightbridge.models.nightscout][]: Uses
        [TreatmentEventType][nightbridge.models.constants.TreatmentEventType]
        for the ``eventType`` of reported treatments.
"""

from __future__ import annotations

from enum import StrEnum


class RecordType(StrEnum):
    """Discriminator of a device record as reported by the data source.

    Attributes:
        GLUCOSE: CGM or meter glucose reading.
        CARB: Carbohydrate intake entered on the pump or app.
        INSULIN_BOLUS: Bolus insulin delivery.
        INSULIN_BASAL: Basal rate change.
    """

    GLUCOSE = "glucose"
    CARB = "carb"
    INSULIN_BOLUS = "insulin_bolus"
    INSULIN_BASAL = "insulin_basal"


class BolusKind(StrEnum):
    """Delivery kind of a bolus record.

    A ``MEAL`` bolus was programmed by the pump's bolus calculator for a
    meal and therefore always has a carbohydrate counterpart, even when the
    source has not uploaded it yet.
    """

    NORMAL = "normal"
    MEAL = "meal"


class GlucoseUnit(StrEnum):
    """Glucose concentration unit used by the data source."""

    MMOL_L = "mmol/l"
    MG_DL = "mg/dl"


class TreatmentEventType(StrEnum):
    """Nightscout ``eventType`` values produced by this bridge."""

    MEAL_BOLUS = "Meal Bolus"
    CORRECTION_BOLUS = "Correction Bolus"
    CARB_CORRECTION = "Carb Correction"


class ServiceName(StrEnum):
    """Canonical service identifiers used in logging and metrics.

    Attributes:
        ENTRIES: Glucose entries synchronization
            ([EntriesSync][nightbridge.services.entries.EntriesSync]).
        TREATMENTS: Treatments and basal profile synchronization
            ([TreatmentsSync][nightbridge.services.treatments.TreatmentsSync]).
        PUMP_SETTINGS: Periodic pump settings import
            ([PumpSettingsSync][nightbridge.services.pump_settings.PumpSettingsSync]).
    """

    ENTRIES = "entries"
    TREATMENTS = "treatments"
    PUMP_SETTINGS = "pump_settings"


# mg/dL per mmol/L for glucose
MGDL_PER_MMOLL = 18.0182

APP_NAME = "diasend"
