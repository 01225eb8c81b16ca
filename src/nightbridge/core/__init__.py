"""Core layer providing the foundation for all synchronization services.

Depends only on ``nightbridge.models`` and is depended upon by
``nightbridge.clients`` and ``nightbridge.services``.

Attributes:
    Looper: Generic stateful polling scheduler.
        See [Looper][nightbridge.core.looper.Looper].
    BaseService: Abstract generic base class wrapping a Looper with
        lifecycle management, factories, and metrics helpers.
    Logger: Structured logger supporting key=value and JSON output modes.
    MetricsServer: Prometheus ``/metrics`` HTTP endpoint.
    load_yaml: Safe YAML loading with ``yaml.safe_load()``.
"""

from .base_service import BaseService, BaseServiceConfig, ConfigT, StateT
from .exceptions import (
    AuthenticationError,
    ConfigurationError,
    CorrelationError,
    NightbridgeError,
    SinkError,
    SourceError,
    TransportError,
)
from .logger import Logger, StructuredFormatter, format_kv_pairs
from .looper import Looper
from .metrics import (
    CYCLE_DURATION_SECONDS,
    SERVICE_COUNTER,
    SERVICE_GAUGE,
    SERVICE_INFO,
    MetricsConfig,
    MetricsServer,
)
from .yaml import load_yaml


__all__ = [
    "CYCLE_DURATION_SECONDS",
    "SERVICE_COUNTER",
    "SERVICE_GAUGE",
    "SERVICE_INFO",
    "AuthenticationError",
    "BaseService",
    "BaseServiceConfig",
    "ConfigT",
    "ConfigurationError",
    "CorrelationError",
    "Logger",
    "Looper",
    "MetricsConfig",
    "MetricsServer",
    "NightbridgeError",
    "SinkError",
    "SourceError",
    "StateT",
    "StructuredFormatter",
    "TransportError",
    "format_kv_pairs",
    "load_yaml",
]
