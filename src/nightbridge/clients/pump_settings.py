"""File-backed pump settings source.

Reads a pump settings export (YAML, or JSON which is valid YAML) using the
sink's schedule entry shape::

    basal:
      - {time: "00:00", value: 0.8}
      - {time: "06:30", value: 1.1}
    carbratio:
      - {time: "00:00", value: 10}
    sens:
      - {time: "00:00", value: 40}
    target_low: 90
    target_high: 120

The file is re-read on every call, so editing it takes effect on the next
cycle.

See Also:
    [PumpSettingsSource][nightbridge.services.common.types.PumpSettingsSource]:
        The protocol this class satisfies.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

from nightbridge.core.exceptions import ConfigurationError, TransportError
from nightbridge.core.logger import Logger
from nightbridge.core.yaml import load_yaml
from nightbridge.models import PumpSettings


class PumpSettingsFile:
    """[PumpSettingsSource][nightbridge.services.common.types.PumpSettingsSource] reading a local file."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._logger = Logger("pump_settings_file")

    @property
    def path(self) -> Path:
        return self._path

    async def fetch_pump_settings(self) -> PumpSettings:
        """Parse the file into [PumpSettings][nightbridge.models.pump_settings.PumpSettings].

        Raises:
            TransportError: If the file is missing or its content is unusable.
        """
        try:
            data = await asyncio.to_thread(load_yaml, str(self._path))
        except (FileNotFoundError, ConfigurationError) as e:
            raise TransportError(f"Cannot read pump settings {self._path}: {e}") from e
        try:
            settings = PumpSettings.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            raise TransportError(f"Invalid pump settings in {self._path}: {e}") from e
        self._logger.debug(
            "file_parsed", path=str(self._path), basal_entries=len(settings.basal_schedule)
        )
        return settings
