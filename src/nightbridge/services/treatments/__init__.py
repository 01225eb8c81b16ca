"""Treatments service package.

Re-exports all public symbols::

    from nightbridge.services.treatments import TreatmentsConfig, TreatmentsSync
"""

from .configs import TreatmentsConfig
from .service import TreatmentsSync


__all__ = ["TreatmentsConfig", "TreatmentsSync"]
