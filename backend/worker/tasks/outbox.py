"""Celery task draining the delivery outbox.

Runs every minute (configured in beat_schedule). Each run delivers the
due messages and reschedules or dead-letters the failures.
"""

import asyncio

import structlog

from worker.celery_app import celery_app

logger = structlog.get_logger(__name__)


@celery_app.task(
    name="worker.tasks.outbox.drain_outbox",
    queue="notifications",
)
def drain_outbox(limit: int = None):
    """Deliver due outbox messages."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(_drain(limit))
    except Exception as exc:
        logger.error("outbox_drain_failed", error=str(exc), exc_info=True)
        return {"status": "error", "error": str(exc)}
    finally:
        loop.close()


async def _drain(limit: int = None) -> dict:
    from db.worker_session import worker_session
    from triggers.outbox import DeliveryOutbox

    async with worker_session() as session:
        return await DeliveryOutbox(session).drain(limit=limit)
