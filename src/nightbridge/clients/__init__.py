"""HTTP clients for the device-data source and the monitoring log.

Attributes:
    DiasendClient: [RecordSource][nightbridge.services.common.types.RecordSource]
        backed by the Diasend API.
    NightscoutClient: Entry/treatment sink and profile store backed by a
        Nightscout site.
    PumpSettingsFile: Pump settings read from a local export file.
"""

from .configs import DiasendConfig, NightscoutConfig
from .diasend import DiasendClient
from .nightscout import NightscoutClient, hash_api_secret
from .pump_settings import PumpSettingsFile


__all__ = [
    "DiasendClient",
    "DiasendConfig",
    "NightscoutClient",
    "NightscoutConfig",
    "PumpSettingsFile",
    "hash_api_secret",
]
