r"""Nightbridge -- Diasend to Nightscout synchronization.

Three independent polling loops move device data from the Diasend patient
API into a Nightscout site: glucose readings become entries, insulin and
carb records become treatments (with basal changes merged into the
profile), and pump programs are mirrored into a named profile.

Imports flow strictly downward:

```text
              services         Orchestrators, treatment identifier, basal merger
             /   |   \
          core clients utils   Looper, base service, logging, metrics; HTTP clients
             \   |   /
              models           Pure frozen dataclasses (zero I/O)
```

Note:
    Top-level imports (``from nightbridge import TreatmentsSync``) use lazy
    loading and resolve on first access.
"""

import importlib
from importlib.metadata import version as _get_version


__version__ = _get_version("nightbridge")

__all__ = [
    "BaseService",
    "BridgeConfig",
    "DiasendClient",
    "EntriesConfig",
    "EntriesSync",
    "Logger",
    "Looper",
    "NightscoutClient",
    "PatientRecordWithDeviceData",
    "Profile",
    "PumpSettings",
    "PumpSettingsConfig",
    "PumpSettingsSync",
    "TreatmentsConfig",
    "TreatmentsSync",
    "identify_treatments",
    "load_config",
    "merge_basal_schedule",
]

_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "BaseService": ("nightbridge.core", "BaseService"),
    "Logger": ("nightbridge.core", "Logger"),
    "Looper": ("nightbridge.core", "Looper"),
    "PatientRecordWithDeviceData": ("nightbridge.models", "PatientRecordWithDeviceData"),
    "Profile": ("nightbridge.models", "Profile"),
    "PumpSettings": ("nightbridge.models", "PumpSettings"),
    "DiasendClient": ("nightbridge.clients", "DiasendClient"),
    "NightscoutClient": ("nightbridge.clients", "NightscoutClient"),
    "EntriesConfig": ("nightbridge.services", "EntriesConfig"),
    "EntriesSync": ("nightbridge.services", "EntriesSync"),
    "PumpSettingsConfig": ("nightbridge.services", "PumpSettingsConfig"),
    "PumpSettingsSync": ("nightbridge.services", "PumpSettingsSync"),
    "TreatmentsConfig": ("nightbridge.services", "TreatmentsConfig"),
    "TreatmentsSync": ("nightbridge.services", "TreatmentsSync"),
    "identify_treatments": ("nightbridge.services.common", "identify_treatments"),
    "merge_basal_schedule": ("nightbridge.services.common", "merge_basal_schedule"),
    "BridgeConfig": ("nightbridge.config", "BridgeConfig"),
    "load_config": ("nightbridge.config", "load_config"),
}


def __getattr__(name: str) -> object:
    if name in _LAZY_IMPORTS:
        module_path, attr_name = _LAZY_IMPORTS[name]
        module = importlib.import_module(module_path)
        value = getattr(module, attr_name)
        globals()[name] = value  # Cache for subsequent access
        return value
    raise AttributeError(f"module 'nightbridge' has no attribute {name!r}")


def __dir__() -> list[str]:
    return __all__
