"""Action activity API.

Read-only view over the dispatch log: every sent, failed or skipped
action, whether it came from a trigger, the outbox or the signature
sweep.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.dependencies import get_current_active_user, get_db
from core.security import TokenPayload
from services.activity_service import ActivityService

router = APIRouter()


def _activity_to_dict(a) -> dict:
    return {
        "id": a.id,
        "trigger_action_id": a.trigger_action_id,
        "trigger_id": a.trigger_id,
        "action_template_id": a.action_template_id,
        "action_type": a.action_type,
        "recipient": a.recipient,
        "recipient_name": a.recipient_name,
        "subject": a.subject,
        "status": a.status,
        "status_message": a.status_message,
        "trigger_source": a.trigger_source,
        "triggered_by": a.triggered_by,
        "context_data": a.context_data,
        "retry_count": a.retry_count,
        "executed_at": a.executed_at.isoformat() if a.executed_at else None,
    }


@router.get("")
async def list_activity(
    status: Optional[str] = Query(None),
    action_type: Optional[str] = Query(None),
    trigger_id: Optional[str] = Query(None),
    days: Optional[int] = Query(None, ge=1, le=365),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    current_user: TokenPayload = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    """Most recent activity first, with optional filters."""
    items, total = await ActivityService(db).list_activity(
        status=status,
        action_type=action_type,
        trigger_id=trigger_id,
        days=days,
        limit=limit,
        offset=offset,
    )
    return {
        "items": [_activity_to_dict(a) for a in items],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


@router.get("/summary")
async def activity_summary(
    days: int = Query(30, ge=1, le=365),
    current_user: TokenPayload = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    return await ActivityService(db).summary(days)
