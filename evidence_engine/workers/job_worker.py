"""
Background worker that drains the job queue.

This worker runs continuously and:
- Polls for pending jobs every interval_seconds and dispatches them
- Writes the liveness heartbeat on every cycle
- Logs errors in a cycle without crashing
- Supports graceful shutdown on SIGINT/SIGTERM
- Loads configuration from environment and config files
"""

import asyncio
import logging
import signal
import sys
from typing import NoReturn

from evidence_engine.core.storage.postgres import get_db
from evidence_engine.workers.triggers import (
    JobTriggers,
    TriggerConfig,
    build_triggers,
    load_trigger_config,
)

logger = logging.getLogger(__name__)

# Global event for graceful shutdown
shutdown_event = asyncio.Event()


def setup_logging(log_level: str) -> None:
    """
    Configure logging for the worker.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def handle_signal(signum: int, frame: object) -> None:
    """Handle SIGINT/SIGTERM for graceful shutdown."""
    signal_name = signal.Signals(signum).name
    logger.info(f"Received signal {signal_name}, shutting down gracefully...")
    shutdown_event.set()


async def run_worker(
    triggers: JobTriggers,
    config: TriggerConfig,
    max_cycles: int | None = None,
) -> int:
    """
    Main worker loop.

    Calls poll_once() every interval until shutdown_event is set. A failing
    cycle is logged and the loop carries on.

    Args:
        triggers: Wired trigger layer.
        config: Worker configuration.
        max_cycles: Stop after this many cycles (None runs until shutdown).

    Returns:
        Number of cycles run.
    """
    logger.info(
        f"Starting worker with interval={config.interval_seconds}s, "
        f"max_concurrency={config.max_concurrency}"
    )

    cycles = 0
    while not shutdown_event.is_set():
        try:
            stats = await triggers.poll_once()
            if stats["processed"]:
                logger.info(
                    f"Cycle complete: processed={stats['processed']}, "
                    f"successful={stats['successful']}, failed={stats['failed']}, "
                    f"skipped={stats['skipped']}"
                )
        except Exception as e:
            logger.error(f"Error in poll cycle: {e}", exc_info=True)

        cycles += 1
        if max_cycles is not None and cycles >= max_cycles:
            break

        # Sleep in small chunks to respond quickly to shutdown signal
        loop = asyncio.get_running_loop()
        sleep_end = loop.time() + config.interval_seconds
        while not shutdown_event.is_set() and loop.time() < sleep_end:
            await asyncio.sleep(min(1.0, max(0.0, sleep_end - loop.time())))

    logger.info("Worker stopped")
    return cycles


async def main_async() -> None:
    """Load configuration, connect to the database and run the worker loop."""
    config = load_trigger_config()
    setup_logging(config.log_level)

    logger.info("Job worker starting...")
    logger.info(f"Configuration: {config}")

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    # Initialize database connection (fatal if fails)
    try:
        db = await get_db()
        logger.info("Database connection established")
    except Exception as e:
        logger.critical(f"Cannot connect to database: {e}", exc_info=True)
        sys.exit(1)

    try:
        await run_worker(build_triggers(db, config=config), config)
    finally:
        try:
            await db.disconnect()
            logger.info("Database connection closed")
        except Exception as e:
            logger.error(f"Error closing database connection: {e}")


def main() -> NoReturn:
    """Entry point for evidence-worker."""
    try:
        asyncio.run(main_async())
    except SystemExit:
        raise
    except Exception as e:
        logger.critical(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)

    sys.exit(0)


if __name__ == "__main__":
    main()
