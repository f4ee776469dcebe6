"""
Dynamic configuration reader service.

Keeps the configuration of one application warm in memory, refreshes it
periodically from PostgreSQL and on change notifications from Redis
Streams. No HTTP/gRPC server.
"""

import asyncio
import contextlib
import signal
from functools import partial

from dynconfig.config.settings import Settings
from dynconfig.database.postgres import PostgresClient
from dynconfig.events.client import RedisClient
from dynconfig.events.subscriber import EventSubscriber
from dynconfig.handlers.event_handler import ConfigEventHandler
from dynconfig.logger.logger import get_logger, init_logger
from dynconfig.logger.postgres_writer import PostgresWriter
from dynconfig.logger.types import Category, category, param
from dynconfig.reader.reader import ConfigurationReader
from dynconfig.repository.config_repository import PostgresConfigStore


async def shutdown(
    reader: ConfigurationReader,
    redis_client: RedisClient | None,
    subscriber: EventSubscriber | None,
    store: PostgresConfigStore,
    log_writer: PostgresWriter,
) -> None:
    """Graceful shutdown."""
    logger = get_logger()
    logger.info("Shutting down configuration reader...")

    # 1. Stop reading notifications
    if subscriber:
        await subscriber.stop()

    # 2. Stop refreshing and close connections
    reader.close()
    store.close()
    if redis_client:
        await redis_client.close()

    logger.info("Shutdown complete")

    # 3. Flush remaining logs
    await log_writer.close()


async def main() -> None:
    """Main entry point."""
    settings = Settings()

    log_writer = PostgresWriter(
        dsn=settings.postgres.dsn,
        batch_size=100,
        flush_interval=5.0,
    )
    await log_writer.connect()

    init_logger(
        service_name=settings.service_name,
        environment=settings.environment,
        writer=log_writer,
        level=settings.log_level,
    )
    logger = get_logger()

    logger.info(
        "Starting configuration reader",
        param("environment", settings.environment),
        param("service_name", settings.service_name),
        param("version", settings.service_version),
        param("application_name", settings.reader.application_name),
        param("refresh_interval_ms", settings.reader.refresh_interval_ms),
    )

    store = PostgresConfigStore(PostgresClient(settings.postgres))
    if store.ensure_schema():
        logger.info("Configuration table ready", category(Category.DATABASE))

    reader = ConfigurationReader(
        settings.reader.application_name,
        settings.postgres.dsn,
        settings.reader.refresh_interval_ms,
        store=store,
    )

    ready = await asyncio.to_thread(reader.wait_until_ready, settings.reader.ready_timeout)
    logger.info(
        "Configuration loaded" if ready else "Configuration warm-up still running",
        category(Category.CACHE),
        param("items", len(reader.keys())),
    )

    redis_client: RedisClient | None = None
    subscriber: EventSubscriber | None = None
    if settings.redis.is_configured:
        redis_client = RedisClient(settings.redis)
        subscriber = EventSubscriber(
            redis_client=redis_client,
            consumer_group=settings.redis.consumer_group,
            streams=settings.redis.subscribe_streams,
        )

    loop = asyncio.get_running_loop()
    shutdown_event = asyncio.Event()

    def signal_handler(sig: int) -> None:
        logger.info("Received signal", param("signal", sig))
        shutdown_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, partial(signal_handler, sig))

    try:
        tasks = [asyncio.create_task(shutdown_event.wait())]

        if redis_client and subscriber:
            try:
                await redis_client.connect()
                logger.info(
                    "Connected to messenger (Redis)",
                    category(Category.MESSENGER),
                    param("host", settings.redis.host),
                    param("port", settings.redis.port),
                )
                handler = ConfigEventHandler(reader)
                tasks.append(asyncio.create_task(subscriber.consume(handler.handle)))
            except ConnectionError as e:
                # Periodic refresh keeps working without notifications
                logger.error("Change notifications disabled", e, category(Category.MESSENGER))
                redis_client = None
                subscriber = None

        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)

        for task in pending:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    except Exception as e:
        logger.error("Fatal error in configuration reader service", e)
    finally:
        await shutdown(reader, redis_client, subscriber, store, log_writer)


def run() -> None:
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
