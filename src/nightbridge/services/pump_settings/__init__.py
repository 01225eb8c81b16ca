"""Pump settings service package.

Re-exports all public symbols::

    from nightbridge.services.pump_settings import PumpSettingsConfig, PumpSettingsSync
"""

from .configs import PumpSettingsConfig
from .service import PumpSettingsSync
from .utils import apply_pump_settings


__all__ = ["PumpSettingsConfig", "PumpSettingsSync", "apply_pump_settings"]
