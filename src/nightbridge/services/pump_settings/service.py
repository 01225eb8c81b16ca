"""Pump settings service: mirrors the pump's programmed settings.

Each cycle reads a full snapshot from the
[PumpSettingsSource][nightbridge.services.common.types.PumpSettingsSource],
copies the enabled schedules into the configured profile with
[apply_pump_settings][nightbridge.services.pump_settings.utils.apply_pump_settings],
and writes the profile back when anything changed. The loop carries no
state between cycles.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, ClassVar

from nightbridge.core.base_service import BaseService
from nightbridge.core.exceptions import ConfigurationError
from nightbridge.models import ServiceName

from .configs import PumpSettingsConfig
from .utils import apply_pump_settings


if TYPE_CHECKING:
    from nightbridge.services.common.types import ProfileStore, PumpSettingsSource


class PumpSettingsSync(BaseService[PumpSettingsConfig, None]):
    """Pump settings synchronization loop.

    Raises:
        ConfigurationError: At construction when ``profile_name`` is not set.

    See Also:
        [PumpSettingsConfig][nightbridge.services.pump_settings.PumpSettingsConfig]:
            Configuration model for this service.
    """

    SERVICE_NAME: ClassVar[ServiceName] = ServiceName.PUMP_SETTINGS
    CONFIG_CLASS: ClassVar[type[PumpSettingsConfig]] = PumpSettingsConfig

    def __init__(
        self,
        source: PumpSettingsSource,
        profile_store: ProfileStore,
        config: PumpSettingsConfig | None = None,
        *,
        metrics_enabled: bool = False,
    ) -> None:
        super().__init__(config=config, metrics_enabled=metrics_enabled)
        self._config: PumpSettingsConfig
        if self._config.profile_name is None:
            raise ConfigurationError("pump_settings.profile_name is required")
        self._profile_name: str = self._config.profile_name
        self._source = source
        self._profile_store = profile_store

    def initial_state(self) -> None:
        return None

    async def run(self, state: None = None) -> None:
        self._logger.info("cycle_started", profile=self._profile_name)
        settings = await self._source.fetch_pump_settings()
        profile = await self._profile_store.fetch_profile()
        updated = apply_pump_settings(profile, settings, self._profile_name, self._config)
        if updated == profile:
            self._logger.info("sync_completed", profile=self._profile_name, updated=False)
            return
        await self._profile_store.update_profile(updated)
        self.inc_counter("profile_updates")
        self._logger.info("sync_completed", profile=self._profile_name, updated=True)
