"""
Abstract base class for the synchronization services.

``BaseService[ConfigT, StateT]`` gives every service the same lifecycle:
structured logging via [Logger][nightbridge.core.logger.Logger], a
[Looper][nightbridge.core.looper.Looper] that threads the service's cycle
state from one [run()][nightbridge.core.base_service.BaseService.run]
call to the next, cooperative shutdown, YAML/dict factories, and optional
Prometheus metrics.

Collaborators (source, sink, profile store) are passed explicitly to each
service's constructor; nothing is read from global configuration.

See Also:
    [Looper][nightbridge.core.looper.Looper]: Scheduler driving
        [run_forever()][nightbridge.core.base_service.BaseService.run_forever].
    [BaseServiceConfig][nightbridge.core.base_service.BaseServiceConfig]:
        Base configuration model for all services.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from types import TracebackType
from typing import Any, ClassVar, Generic, Self, TypeVar, cast

from pydantic import BaseModel, Field

from nightbridge.models.constants import ServiceName

from .logger import Logger
from .looper import Looper
from .metrics import SERVICE_COUNTER, SERVICE_GAUGE, SERVICE_INFO
from .yaml import load_yaml


class BaseServiceConfig(BaseModel):
    """Configuration shared by every looping service.

    Subclass this to add service-specific fields.
    """

    enabled: bool = Field(default=True, description="Start this loop from the CLI")
    interval: float = Field(
        default=300.0,
        gt=0.0,
        description="Seconds between the starts of two cycles",
    )
    max_consecutive_failures: int = Field(
        default=0,
        ge=0,
        description="Stop after this many consecutive failed cycles (0 = unlimited)",
    )


ConfigT = TypeVar("ConfigT", bound=BaseServiceConfig)
StateT = TypeVar("StateT")


class BaseService(ABC, Generic[ConfigT, StateT]):
    """Abstract base class for all synchronization services.

    Subclasses set ``SERVICE_NAME`` and ``CONFIG_CLASS`` and implement
    [initial_state()][nightbridge.core.base_service.BaseService.initial_state]
    and [run()][nightbridge.core.base_service.BaseService.run].

    Note:
        The lifecycle is ``async with service:`` then
        [run_forever()][nightbridge.core.base_service.BaseService.run_forever]
        (or a single [run()][nightbridge.core.base_service.BaseService.run]
        with ``--once``). Entering the context clears any earlier shutdown
        request; leaving it requests shutdown.
    """

    SERVICE_NAME: ClassVar[ServiceName]
    CONFIG_CLASS: ClassVar[type[BaseServiceConfig]]

    def __init__(self, config: ConfigT | None = None, *, metrics_enabled: bool = False) -> None:
        self._config: ConfigT = (
            config if config is not None else cast("ConfigT", self.CONFIG_CLASS())
        )
        self._logger = Logger(self.SERVICE_NAME)
        self._metrics_enabled = metrics_enabled
        self._looper: Looper[StateT] = Looper(
            interval=self._config.interval,
            step=self.run,
            name=self.SERVICE_NAME,
            max_consecutive_failures=self._config.max_consecutive_failures,
            metrics_enabled=metrics_enabled,
        )

    @property
    def config(self) -> ConfigT:
        """The typed service configuration (read-only)."""
        return self._config

    @property
    def looper(self) -> Looper[StateT]:
        return self._looper

    @abstractmethod
    def initial_state(self) -> StateT:
        """Return the state for the first cycle."""

    @abstractmethod
    async def run(self, state: StateT) -> StateT:
        """Execute one cycle and return the state for the next one.

        Collaborator failures propagate to the
        [Looper][nightbridge.core.looper.Looper], which keeps the previous
        state and retries after the interval.
        """

    def request_shutdown(self) -> None:
        """Request a graceful stop at the next cycle boundary."""
        self._looper.stop()

    @property
    def is_running(self) -> bool:
        return self._looper.is_running

    async def run_forever(self, initial_state: StateT | None = None) -> StateT:
        """Run cycles until shutdown is requested or too many cycles fail.

        Returns:
            The state after the last successful cycle.
        """
        if self._metrics_enabled:
            SERVICE_INFO.labels(service=self.SERVICE_NAME).info(
                {"interval": str(self._config.interval)}
            )
        state = initial_state if initial_state is not None else self.initial_state()
        return await self._looper.loop(state)

    async def run_once(self, state: StateT | None = None) -> StateT:
        """Execute a single cycle without the failure boundary of the loop."""
        return await self.run(state if state is not None else self.initial_state())

    # -------------------------------------------------------------------------
    # Factory Methods
    # -------------------------------------------------------------------------

    @classmethod
    def from_yaml(cls, config_path: str, **kwargs: Any) -> Self:
        """Create a service from a YAML file holding its config section.

        Args:
            config_path: Path to the YAML file.
            **kwargs: Collaborators and options passed to the constructor.
        """
        return cls.from_dict(load_yaml(config_path), **kwargs)

    @classmethod
    def from_dict(cls, data: dict[str, Any], **kwargs: Any) -> Self:
        """Create a service from a config dict parsed into ``CONFIG_CLASS``."""
        config = cast("ConfigT", cls.CONFIG_CLASS(**data))
        return cls(config=config, **kwargs)

    # -------------------------------------------------------------------------
    # Context Manager
    # -------------------------------------------------------------------------

    async def __aenter__(self) -> Self:
        self._looper.reset()
        self._logger.info("service_started")
        return self

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: TracebackType | None,
    ) -> None:
        self._looper.stop()
        self._logger.info("service_stopped")

    # -------------------------------------------------------------------------
    # Custom Metrics
    # -------------------------------------------------------------------------

    def set_gauge(self, name: str, value: float) -> None:
        """Set a named gauge for this service; no-op with metrics disabled."""
        if not self._metrics_enabled:
            return
        SERVICE_GAUGE.labels(service=self.SERVICE_NAME, name=name).set(value)

    def inc_counter(self, name: str, value: float = 1) -> None:
        """Increment a named counter for this service; no-op with metrics disabled."""
        if not self._metrics_enabled:
            return
        SERVICE_COUNTER.labels(service=self.SERVICE_NAME, name=name).inc(value)
