"""CLI entry point for the Nightbridge synchronization loops.

Loads one configuration file, builds the Diasend and Nightscout clients,
and runs the selected loops concurrently as independent tasks: a loop
that stops (failure limit reached) never stops the others. SIGINT and
SIGTERM request a graceful shutdown of every loop.

Examples:
    ```bash
    python -m nightbridge
    python -m nightbridge --once --service entries
    python -m nightbridge --config /etc/nightbridge.yaml --log-level DEBUG
    ```
"""

import argparse
import asyncio
import logging
import signal
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from nightbridge.clients import DiasendClient, NightscoutClient, PumpSettingsFile
from nightbridge.config import DEFAULT_CONFIG_PATH, BridgeConfig, load_config
from nightbridge.core import ConfigurationError, MetricsServer
from nightbridge.core.base_service import BaseService
from nightbridge.core.logger import Logger, StructuredFormatter
from nightbridge.models.constants import ServiceName
from nightbridge.services import EntriesSync, PumpSettingsSync, TreatmentsSync


logger = Logger("cli")


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="nightbridge",
        description="Synchronize Diasend device data into Nightscout",
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help=f"Config path (default: {DEFAULT_CONFIG_PATH})",
    )

    parser.add_argument(
        "--service",
        action="append",
        choices=[name.value for name in ServiceName],
        help="Loop to run; repeatable (default: every enabled loop)",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Log level (default: INFO)",
    )

    parser.add_argument(
        "--once",
        action="store_true",
        help="Run one cycle of each loop and exit (default: run continuously)",
    )

    return parser.parse_args(argv)


def setup_logging(level: str) -> None:
    """Configure the root logger with structured formatting.

    Installs a ``StructuredFormatter`` on the root handler so that output
    from both ``Logger`` and plain ``logging.getLogger()`` calls is
    rendered as ``level name message key=value ...``.
    """
    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter())
    logging.root.addHandler(handler)
    logging.root.setLevel(getattr(logging, level))


def build_services(
    config: BridgeConfig,
    diasend: DiasendClient,
    nightscout: NightscoutClient,
    selected: Sequence[str] | None = None,
) -> list[BaseService[Any, Any]]:
    """Instantiate the requested loops.

    Without *selected*, every loop whose section has ``enabled: true``
    is built.

    Raises:
        ConfigurationError: If a requested loop cannot be configured.
    """
    if selected:
        names = set(selected)
    else:
        sections = {
            ServiceName.ENTRIES: config.entries,
            ServiceName.TREATMENTS: config.treatments,
            ServiceName.PUMP_SETTINGS: config.pump_settings,
        }
        names = {name.value for name, section in sections.items() if section.enabled}

    metrics_enabled = config.metrics.enabled
    services: list[BaseService[Any, Any]] = []
    if ServiceName.ENTRIES in names:
        services.append(
            EntriesSync(diasend, nightscout, config.entries, metrics_enabled=metrics_enabled)
        )
    if ServiceName.TREATMENTS in names:
        services.append(
            TreatmentsSync(
                diasend,
                nightscout,
                nightscout,
                config.treatments,
                metrics_enabled=metrics_enabled,
            )
        )
    if ServiceName.PUMP_SETTINGS in names:
        if config.pump_settings.settings_file is None:
            raise ConfigurationError("pump_settings.settings_file is required")
        services.append(
            PumpSettingsSync(
                PumpSettingsFile(config.pump_settings.settings_file),
                nightscout,
                config.pump_settings,
                metrics_enabled=metrics_enabled,
            )
        )
    return services


async def run_once(services: Sequence[BaseService[Any, Any]]) -> int:
    """Run one cycle of each loop concurrently.

    Returns:
        Exit code: 0 if every cycle succeeded, 1 otherwise.
    """

    async def _one(service: BaseService[Any, Any]) -> int:
        try:
            async with service:
                await service.run_once()
        except Exception as e:  # Intentionally broad: CLI error boundary for one-shot mode
            logger.error(f"{service.SERVICE_NAME}_failed", error=str(e))
            return 1
        logger.info(f"{service.SERVICE_NAME}_completed")
        return 0

    codes = await asyncio.gather(*(_one(s) for s in services))
    return max(codes, default=0)


async def run_forever(
    services: Sequence[BaseService[Any, Any]],
    config: BridgeConfig,
) -> int:
    """Run every loop until shutdown is requested.

    Returns:
        Exit code: 0 on clean shutdown, 1 if any loop crashed or reached
        its consecutive failure limit.
    """

    def handle_signal(sig: signal.Signals) -> None:
        logger.info("shutdown_signal", signal=sig.name)
        for service in services:
            service.request_shutdown()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, handle_signal, sig)

    async def _forever(service: BaseService[Any, Any]) -> int:
        try:
            async with service:
                await service.run_forever()
        except Exception as e:  # Intentionally broad: CLI error boundary for continuous mode
            logger.error(f"{service.SERVICE_NAME}_failed", error=str(e))
            return 1
        return 1 if service.looper.failure_limit_reached else 0

    try:
        async with MetricsServer(config.metrics) as metrics_server:
            if metrics_server.url:
                logger.info("metrics_server_started", url=metrics_server.url)
            codes = await asyncio.gather(*(_forever(s) for s in services))
        return max(codes, default=0)
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)


async def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point: parse args, load config, and run the loops."""
    args = parse_args(argv)
    setup_logging(args.log_level)

    try:
        config = load_config(args.config)
    except (FileNotFoundError, ConfigurationError) as e:
        logger.error("config_failed", path=str(args.config), error=str(e))
        return 1

    async with (
        DiasendClient(config.diasend, timezone=config.tz) as diasend,
        NightscoutClient(config.nightscout) as nightscout,
    ):
        try:
            services = build_services(config, diasend, nightscout, args.service)
        except ConfigurationError as e:
            logger.error("config_failed", path=str(args.config), error=str(e))
            return 1

        if not services:
            logger.warning("no_services_enabled")
            return 0

        logger.info("services_starting", services=",".join(s.SERVICE_NAME for s in services))
        try:
            if args.once:
                return await run_once(services)
            return await run_forever(services, config)
        except KeyboardInterrupt:
            logger.info("interrupted")
            return 130


def cli() -> None:
    """Synchronous entry point for console_scripts."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
