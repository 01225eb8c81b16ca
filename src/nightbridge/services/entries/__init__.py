"""Entries service package.

Re-exports all public symbols::

    from nightbridge.services.entries import EntriesConfig, EntriesSync
"""

from .configs import EntriesConfig
from .service import EntriesSync


__all__ = ["EntriesConfig", "EntriesSync"]
