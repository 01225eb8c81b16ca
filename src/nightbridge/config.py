"""Process-wide configuration loaded from one YAML file.

```yaml
timezone: Europe/Berlin
diasend:
  username_env: DIASEND_USERNAME
nightscout:
  url: https://my-site.example.org
metrics:
  enabled: false
entries:
  interval: 300
treatments:
  profile_name: Diasend
pump_settings:
  enabled: true
  profile_name: Diasend
  settings_file: config/pump_settings.yaml
```

Credentials are resolved from the environment while the file is
validated, so a missing secret is reported before any loop starts.
"""

from __future__ import annotations

from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, ValidationError, field_validator

from nightbridge.clients.configs import DiasendConfig, NightscoutConfig
from nightbridge.core.exceptions import ConfigurationError
from nightbridge.core.metrics import MetricsConfig
from nightbridge.core.yaml import load_yaml
from nightbridge.services.entries import EntriesConfig
from nightbridge.services.pump_settings import PumpSettingsConfig
from nightbridge.services.treatments import TreatmentsConfig


DEFAULT_CONFIG_PATH = Path("config") / "nightbridge.yaml"


class BridgeConfig(BaseModel):
    """Root configuration: clients, metrics, and one section per loop."""

    timezone: str = Field(
        default="UTC",
        description="IANA zone used to localize source timestamps without offset",
    )
    diasend: DiasendConfig
    nightscout: NightscoutConfig
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
    entries: EntriesConfig = Field(default_factory=EntriesConfig)
    treatments: TreatmentsConfig = Field(default_factory=TreatmentsConfig)
    pump_settings: PumpSettingsConfig = Field(default_factory=PumpSettingsConfig)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {v}") from e
        return v

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


def load_config(path: str | Path = DEFAULT_CONFIG_PATH) -> BridgeConfig:
    """Load and validate the YAML configuration.

    Raises:
        FileNotFoundError: If *path* does not exist.
        ConfigurationError: If the YAML is malformed or fails validation
            (including missing credential environment variables).
    """
    data = load_yaml(str(path))
    try:
        return BridgeConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration in {path}: {e}") from e
