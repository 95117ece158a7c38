"""ARQ job enqueueing utilities.

WHAT:
    Async helper to enqueue order sync jobs to the ARQ worker.

WHY:
    - Lets the API hand long syncs to the worker
    - All syncs share one job id, so a trigger arriving while a sync is
      queued or running is dropped instead of starting a second sync

USAGE:
    from backoffice.workers.arq_enqueue import enqueue_order_sync_job

    job_id = await enqueue_order_sync_job(actor)
"""

from __future__ import annotations

import logging
from typing import Optional

from arq import create_pool
from arq.connections import ArqRedis

from backoffice.services.activity_logger import Actor
from backoffice.workers.arq_worker import QUEUE_NAME, SYNC_JOB_ID, SYNC_JOB_NAME, get_redis_settings

logger = logging.getLogger(__name__)

# Global pool reference
_arq_pool: Optional[ArqRedis] = None


async def get_arq_pool() -> ArqRedis:
    """Get or create ARQ Redis pool."""
    global _arq_pool
    if _arq_pool is None:
        logger.info("[ARQ-ENQUEUE] Creating new Redis pool...")
        _arq_pool = await create_pool(get_redis_settings())
        logger.info("[ARQ-ENQUEUE] Redis pool created successfully")
    return _arq_pool


async def enqueue_order_sync_job(actor: Actor) -> Optional[str]:
    """Enqueue an order sync.

    Returns:
        The job id, or None when a sync is already queued or running.
    """
    pool = await get_arq_pool()

    job = await pool.enqueue_job(
        SYNC_JOB_NAME,
        actor.uid,
        actor.label,
        _job_id=SYNC_JOB_ID,
        _queue_name=QUEUE_NAME,
    )

    if job:
        logger.info("[ARQ] Enqueued order sync job %s for %s", job.job_id, actor.uid)
        return job.job_id

    logger.info("[ARQ] Order sync already queued or running, skipped trigger from %s", actor.uid)
    return None
