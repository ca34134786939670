"""Delivery outbox API: inspect queued messages and drain on demand."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.dependencies import get_current_active_user, get_db
from core.security import TokenPayload
from triggers.outbox import DeliveryOutbox

router = APIRouter()


def _message_to_dict(m) -> dict:
    return {
        "id": m.id,
        "channel": m.channel,
        "recipient": m.recipient,
        "status": m.status,
        "not_before": m.not_before.isoformat() if m.not_before else None,
        "attempts_made": m.attempts_made,
        "attempts_remaining": m.attempts_remaining,
        "last_error": m.last_error,
        "trigger_id": m.trigger_id,
        "trigger_action_id": m.trigger_action_id,
        "trigger_source": m.trigger_source,
    }


@router.get("")
async def list_outbox(
    status: Optional[str] = Query(None, description="pending, delivered or dead"),
    limit: int = Query(100, ge=1, le=500),
    current_user: TokenPayload = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    messages = await DeliveryOutbox(db).list_messages(status=status, limit=limit)
    return {"items": [_message_to_dict(m) for m in messages], "count": len(messages)}


@router.post("/drain", summary="Deliver every due message now")
async def drain_outbox(
    current_user: TokenPayload = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    return await DeliveryOutbox(db).drain()
