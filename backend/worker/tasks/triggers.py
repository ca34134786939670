"""Celery tasks for trigger-related operations."""

import asyncio
from typing import Optional

import structlog

from core.constants import TriggerSource
from worker.celery_app import celery_app

logger = structlog.get_logger(__name__)


@celery_app.task(
    name="worker.tasks.triggers.fire_trigger_async",
    queue="triggers",
)
def fire_trigger_async(
    trigger_key: str,
    context: Optional[dict] = None,
    user_id: Optional[str] = None,
    trigger_source: str = TriggerSource.API.value,
    triggered_by: Optional[str] = None,
):
    """Fire a trigger from code that cannot await (sync handlers, scripts).

    Args:
        trigger_key: Catalog key to fire
        context: Variables for rendering and conditions
    """
    logger.info("trigger_task_received", trigger_key=trigger_key)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(
            _fire(trigger_key, context or {}, user_id, trigger_source, triggered_by)
        )
    finally:
        loop.close()


async def _fire(
    trigger_key: str,
    context: dict,
    user_id: Optional[str],
    trigger_source: str,
    triggered_by: Optional[str],
) -> dict:
    from db.worker_session import worker_session
    from triggers.dispatcher import fire_trigger

    async with worker_session() as session:
        report = await fire_trigger(
            trigger_key,
            context,
            user_id=user_id,
            trigger_source=trigger_source,
            triggered_by=triggered_by,
            db=session,
        )
    if report is None:
        return {"trigger_key": trigger_key, "fired": False}
    return {"fired": True, **report.to_dict()}
