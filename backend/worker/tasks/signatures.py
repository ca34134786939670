"""Celery task for the signature expiration sweep.

Scheduled every SIGNATURE_SWEEP_INTERVAL_HOURS hours. Two overlapping
runs are not prevented; the reminder flags keep a second run from
sending the same reminder twice once the first has committed.
"""

import asyncio

import structlog

from worker.celery_app import celery_app

logger = structlog.get_logger(__name__)


@celery_app.task(
    name="worker.tasks.signatures.sweep_expiring_signatures",
    queue="default",
)
def sweep_expiring_signatures():
    """Send due reminders and expire stale signature requests."""
    logger.info("signature_sweep_task_started")

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        result = loop.run_until_complete(_sweep())
        logger.info("signature_sweep_task_completed", **result)
        return result
    except Exception as exc:
        logger.error("signature_sweep_task_failed", error=str(exc), exc_info=True)
        return {"status": "error", "error": str(exc)}
    finally:
        loop.close()


async def _sweep() -> dict:
    from db.worker_session import worker_session
    from services.signature_expiration import run_signature_sweep

    async with worker_session() as session:
        result = await run_signature_sweep(session)
        return result.to_dict()
