"""Background Worker for the Medication Reminder Service.

This module runs the batched family escalation on a timer, in its own
process, unsynchronized with reminder clients.

The worker:
- Runs continuously, sweeping every 5 minutes (ESCALATION_SWEEP_INTERVAL)
- Finds doses in the last SWEEP_WINDOW_MINUTES whose missed count reached
  the user's threshold
- Sends one SMS per (dose x contact) through Twilio and logs every attempt
- Logs errors and keeps going; nothing is retried within a sweep
"""

import asyncio
import signal
import sys
from typing import Optional

import database
import escalation
import sms_gateway
from config import settings
from logger_config import setup_logger
from schemas import SweepResult

# Configure logging
logger = setup_logger(__name__, 'worker.log')

# Global flag for graceful shutdown
shutdown_requested = False


def signal_handler(signum, frame):
    """Handle shutdown signals gracefully."""
    global shutdown_requested
    logger.info(f"Received signal {signum}, initiating graceful shutdown...")
    shutdown_requested = True


async def process_escalation_sweep() -> Optional[SweepResult]:
    """Run one escalation sweep against the database.

    The Twilio client is blocking, so the sweep runs in a worker thread.

    Returns:
        SweepResult: Summary of the run, None if it failed
    """
    db = database.SessionLocal()
    try:
        gateway = sms_gateway.get_sms_gateway()
        result = await asyncio.to_thread(escalation.run_escalation_sweep, db, gateway)

        if result.breaches:
            logger.info(
                f"Sweep found {result.breaches} breach(es): {result.sent} sent, "
                f"{result.failed} failed, {result.duplicates_skipped} duplicate(s) skipped"
            )
        else:
            logger.debug("No missed-dose thresholds reached at this time")
        if result.failed_users:
            logger.warning(f"Sweep failed for user(s): {', '.join(result.failed_users)}")
        return result

    except Exception as e:
        logger.error(f"Error in process_escalation_sweep: {str(e)}", exc_info=True)
        return None
    finally:
        db.close()


async def worker_loop():
    """Main worker loop that runs continuously.

    Sweeps at the configured interval until a shutdown signal arrives.
    """
    logger.info("Background worker started")
    logger.info(f"Worker enabled: {settings.WORKER_ENABLED}")
    logger.info(f"Sweep interval: {settings.ESCALATION_SWEEP_INTERVAL} seconds")
    logger.info(f"Sweep window: {settings.SWEEP_WINDOW_MINUTES} minutes")
    logger.info(f"Duplicate alert suppression: {settings.ESCALATION_DEDUPE_ENABLED}")

    if not settings.WORKER_ENABLED:
        logger.warning("Worker is disabled in configuration. Exiting.")
        return

    iteration = 0
    while not shutdown_requested:
        try:
            iteration += 1
            logger.debug(f"Worker iteration {iteration} started")

            await process_escalation_sweep()

            logger.debug(f"Worker iteration {iteration} completed")

            # Break sleep into 1-second intervals to allow quick shutdown
            for _ in range(settings.ESCALATION_SWEEP_INTERVAL):
                if shutdown_requested:
                    break
                await asyncio.sleep(1)

        except Exception as e:
            logger.error(f"Error in worker loop iteration {iteration}: {str(e)}", exc_info=True)
            await asyncio.sleep(5)

    logger.info("Background worker shutting down gracefully")


def main():
    """Main entry point for the background worker."""
    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    logger.info("=" * 60)
    logger.info("Medication Reminder Service - Escalation Worker")
    logger.info("=" * 60)

    try:
        asyncio.run(worker_loop())
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt")
    except Exception as e:
        logger.error(f"Fatal error in background worker: {str(e)}", exc_info=True)
        sys.exit(1)

    logger.info("Background worker stopped")
    sys.exit(0)


if __name__ == "__main__":
    main()
