"""Process entrypoint: runs the application and metrics servers together.

Usage::

    SUCCESS_RATE=80 flakyapp --server-port 8080 --metrics-port 8000 --stop-timeout 10s
"""

import argparse
import asyncio
import sys
from collections.abc import Sequence

from flakyapp import __version__
from flakyapp.api.app_server import AppServer
from flakyapp.api.metrics_server import MetricsServer
from flakyapp.core.config import Settings, load_settings
from flakyapp.core.exceptions import ConfigurationError, FlakyAppError
from flakyapp.core.health import ReadinessFlag
from flakyapp.core.lifecycle import LifecycleManager, ServerDescriptor
from flakyapp.core.logging import LoggerConfigurator
from flakyapp.core.logging import logger as global_logger
from flakyapp.core.metrics_service import MetricsService
from flakyapp.core.protocols.health_state import HealthState
from flakyapp.core.responder import ResponseGenerator

logger = global_logger.with_context(operation="main")


def build_parser() -> argparse.ArgumentParser:
    """Command-line flags.  Unset flags fall through to the environment."""
    parser = argparse.ArgumentParser(
        prog="flakyapp",
        description="HTTP service that fails a configurable share of requests "
        "(SUCCESS_RATE environment variable, 0-100).",
    )
    parser.add_argument("--server-port", type=int, help="Port to listen for http requests")
    parser.add_argument("--metrics-port", type=int, help="Port to listen to for metrics")
    parser.add_argument("--stop-timeout", help="Server stop timeout, e.g. 10s")
    parser.add_argument(
        "--settle-delay", help="Delay between reporting unready and closing sockets, e.g. 5s"
    )
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING or ERROR")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def build_descriptors(
    settings: Settings,
    generator: ResponseGenerator,
    metrics: MetricsService,
    health: HealthState,
) -> list[ServerDescriptor]:
    """Describe the application listener and the metrics/health listener."""
    app_server = AppServer(generator, metrics.requests)
    metrics_server = MetricsServer(metrics.renderer, health)
    return [
        ServerDescriptor(
            name="app",
            app=app_server.app,
            host=settings.LISTEN_HOST,
            port=settings.SERVER_PORT,
            read_timeout=settings.READ_TIMEOUT,
            write_timeout=settings.WRITE_TIMEOUT,
            header_read_timeout=settings.READ_HEADER_TIMEOUT,
            gates_readiness=True,
        ),
        ServerDescriptor(
            name="metrics",
            app=metrics_server.app,
            host=settings.LISTEN_HOST,
            port=settings.METRICS_PORT,
            read_timeout=settings.READ_TIMEOUT,
            write_timeout=settings.WRITE_TIMEOUT,
        ),
    ]


def build_manager(settings: Settings, metrics: MetricsService | None = None) -> LifecycleManager:
    """Wire every component for ``settings`` into a ready-to-run manager."""
    health = ReadinessFlag()
    metrics = metrics or MetricsService.prometheus()
    generator = ResponseGenerator(
        settings.SUCCESS_RATE, processing_delay=settings.PROCESSING_DELAY
    )
    return LifecycleManager(
        build_descriptors(settings, generator, metrics, health),
        health=health,
        stop_timeout=settings.STOP_TIMEOUT,
        settle_delay=settings.SETTLE_DELAY,
        ready_when=settings.READY_WHEN,
    )


async def serve(settings: Settings) -> None:
    """Run both servers until a termination signal has been fully handled."""
    manager = build_manager(settings)
    manager.install_signal_handlers()
    try:
        await manager.run()
    finally:
        manager.remove_signal_handlers()


def main(argv: Sequence[str] | None = None) -> int:
    """Parse configuration, run the servers, and return the exit status."""
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings(
            SERVER_PORT=args.server_port,
            METRICS_PORT=args.metrics_port,
            STOP_TIMEOUT=args.stop_timeout,
            SETTLE_DELAY=args.settle_delay,
            LOG_LEVEL=args.log_level,
        )
    except ConfigurationError as e:
        LoggerConfigurator.setup()
        logger.error(f"Could not parse configuration: {e}")
        return 1

    LoggerConfigurator.setup(settings.LOG_LEVEL)
    logger.info(
        f"Starting with success rate {settings.SUCCESS_RATE}%, "
        f"stop timeout {settings.STOP_TIMEOUT}s, settle delay {settings.SETTLE_DELAY}s"
    )

    try:
        asyncio.run(serve(settings))
    except FlakyAppError as e:
        logger.error(f"Fatal: {e}")
        return 1
    return 0


def run() -> None:
    """Console-script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    run()
