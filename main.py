"""
Process entry point: runs the content engine until SIGINT/SIGTERM.
"""

import asyncio
import signal

from config.settings import get_settings
from container import container, container_manager
from infrastructure.monitoring import configure_structlog, get_logger

logger = get_logger(__name__)


async def run(create_tables: bool = False) -> None:
    settings = get_settings()
    configure_structlog(
        log_level=settings.monitoring.log_level,
        log_format=settings.monitoring.log_format,
    )

    if not settings.llm.active_api_key:
        logger.warning(
            "llm_api_key_missing",
            provider=settings.llm.provider,
            note="every generation will return fallback content",
        )

    if settings.monitoring.enable_prometheus:
        container.metrics().start_server(settings.monitoring.prometheus_port)
        logger.info("metrics_server_started", port=settings.monitoring.prometheus_port)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    await container_manager.initialize(create_tables=create_tables)
    logger.info(
        "application_startup_complete",
        environment=settings.environment,
        max_batch_size=settings.batch.max_batch_size,
        flush_interval=settings.batch.flush_interval,
    )

    try:
        await stop.wait()
        logger.info("shutdown_signal_received")
    finally:
        await container_manager.cleanup()
        logger.info("application_shutdown_complete")


def main() -> None:
    asyncio.run(run(create_tables=get_settings().is_development))


if __name__ == "__main__":
    main()
