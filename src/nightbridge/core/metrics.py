"""
Prometheus metrics collection and HTTP exposition.

Module-level metric objects are shared by every loop in the process and
labelled by service name. [Looper][nightbridge.core.looper.Looper] records
cycle outcomes and durations automatically; services add their own counts
(records fetched, deferred, dropped, reported) through
``set_gauge()`` / ``inc_counter()`` on
[BaseService][nightbridge.core.base_service.BaseService].

Architecture:
    SERVICE_INFO:               Static metadata set once at startup.
    SERVICE_GAUGE:              Point-in-time values (current state).
    SERVICE_COUNTER:            Cumulative totals (monotonically increasing).
    CYCLE_DURATION_SECONDS:     Histogram of cycle latency.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Self

from aiohttp import web
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)
from pydantic import BaseModel, Field


if TYPE_CHECKING:
    from types import TracebackType


class MetricsConfig(BaseModel):
    """Configuration for metrics recording and the ``/metrics`` endpoint.

    Nothing is recorded or served unless ``enabled`` is True. Set ``host``
    to ``"0.0.0.0"`` in containers to allow external scraping.
    """

    enabled: bool = Field(default=False, description="Enable metrics collection")
    port: int = Field(default=8000, ge=1024, le=65535, description="Metrics HTTP port")
    host: str = Field(default="127.0.0.1", description="Metrics HTTP bind address")
    path: str = Field(default="/metrics", description="Metrics endpoint path")


SERVICE_INFO = Info(
    "nightbridge_service",
    "Synchronization loops running in this process",
    ["service"],
)

# Source uploads arrive every few minutes; pump scraping may take longer
CYCLE_DURATION_SECONDS = Histogram(
    "nightbridge_cycle_duration_seconds",
    "Duration of one synchronization cycle in seconds",
    ["service"],
    buckets=(0.5, 1, 2.5, 5, 10, 30, 60, 120, 300),
)

# Automatic names (Looper):
#   gauge:   consecutive_failures, last_cycle_timestamp
#   counter: cycles_success, cycles_failed, errors_{type}
# Service names:
#   gauge:   records_fetched, records_deferred
#   counter: entries_reported, treatments_reported, records_dropped
SERVICE_GAUGE = Gauge(
    "nightbridge_service_gauge",
    "Per-service point-in-time values",
    ["service", "name"],
)

SERVICE_COUNTER = Counter(
    "nightbridge_service_counter",
    "Per-service cumulative totals",
    ["service", "name"],
)


class MetricsServer:
    """``/metrics`` endpoint for the whole process, used as an async context manager.

    A disabled config makes entering and leaving no-ops, so callers never
    branch on ``enabled`` themselves.

    Example:
        async with MetricsServer(config.metrics) as server:
            if server.url:
                logger.info("metrics_server_started", url=server.url)
            ...
    """

    def __init__(self, config: MetricsConfig | None = None) -> None:
        self._config = config or MetricsConfig()
        self._runner: web.AppRunner | None = None

    @property
    def url(self) -> str | None:
        """Scrape URL while serving, else ``None``."""
        if self._runner is None:
            return None
        cfg = self._config
        return f"http://{cfg.host}:{cfg.port}{cfg.path}"

    async def __aenter__(self) -> Self:
        if self._config.enabled and self._runner is None:
            app = web.Application()
            app.router.add_get(self._config.path, _exposition)
            runner = web.AppRunner(app, access_log=None)
            await runner.setup()
            try:
                await web.TCPSite(runner, self._config.host, self._config.port).start()
            except OSError:
                await runner.cleanup()
                raise
            self._runner = runner
        return self

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: TracebackType | None,
    ) -> None:
        runner, self._runner = self._runner, None
        if runner is not None:
            await runner.cleanup()


async def _exposition(_request: web.Request) -> web.Response:
    return web.Response(body=generate_latest(), headers={"Content-Type": CONTENT_TYPE_LATEST})
