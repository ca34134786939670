"""
Integration API Routes.

Endpoints for external systems authenticated with an API key
(``X-API-Key: <key_id>.<secret>``) rather than a user token. Every call
counts against the key's hourly quota.
"""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.dependencies import get_db
from core.api_keys import APIKeyInfo, require_api_permission
from core.constants import TriggerSource
from triggers.dispatcher import TriggerDispatcher

logger = structlog.get_logger(__name__)

router = APIRouter()


# ─── Schemas ─────────────────────────────────────────────────────────

class IntegrationFireRequest(BaseModel):
    context: dict = Field(default_factory=dict)
    user_id: Optional[str] = None


# ─── Endpoints ───────────────────────────────────────────────────────

@router.post("/triggers/{trigger_key}/fire")
async def fire_trigger_from_integration(
    trigger_key: str,
    request: IntegrationFireRequest,
    response: Response,
    api_key: APIKeyInfo = Depends(require_api_permission("triggers.fire")),
    db: AsyncSession = Depends(get_db),
):
    """Fire a catalog trigger on behalf of an external system."""
    response.headers["X-RateLimit-Limit"] = str(api_key.rate_limit)
    response.headers["X-RateLimit-Remaining"] = str(api_key.remaining)
    if api_key.reset_time:
        response.headers["X-RateLimit-Reset"] = api_key.reset_time

    report = await TriggerDispatcher(db).fire(
        trigger_key,
        request.context,
        user_id=request.user_id,
        trigger_source=TriggerSource.INTEGRATION.value,
        triggered_by=f"api_key:{api_key.key_id}",
    )
    logger.info(
        "integration_trigger_fired",
        trigger_key=trigger_key,
        api_key=api_key.key_id,
        configured=report is not None,
    )
    if report is None:
        return {"trigger_key": trigger_key, "fired": False, "message": "Trigger not configured or inactive"}
    return {"fired": True, **report.to_dict()}
