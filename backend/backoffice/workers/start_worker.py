#!/usr/bin/env python3
"""Start the ARQ worker for order sync jobs.

WHAT:
    Single worker that handles:
    - Order syncs enqueued from the API
    - Scheduled 15-minute order syncs (built-in cron)

USAGE:
    # From backend directory:
    python -m backoffice.workers.start_worker

    # Or directly with arq:
    arq backoffice.workers.arq_worker.WorkerSettings
"""

import logging
import sys

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

logger = logging.getLogger(__name__)


def main():
    """Start the ARQ worker."""
    from arq import run_worker

    from backoffice.workers.arq_worker import WorkerSettings

    logger.info("=" * 60)
    logger.info("Starting ARQ Worker")
    logger.info("=" * 60)
    logger.info("Handles: Order sync jobs, Scheduled order syncs (cron)")
    logger.info("Queue: arq:queue")
    logger.info("Cron: Every 15 min (:00, :15, :30, :45)")
    logger.info("=" * 60)

    try:
        run_worker(WorkerSettings)
    except KeyboardInterrupt:
        logger.info("Worker stopped by user")
        sys.exit(0)
    except Exception as e:
        logger.exception("Worker failed: %s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
