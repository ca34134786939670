"""Action activity log: recording attempts and aggregating them."""

from datetime import datetime
from typing import Any, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.constants import ActivityStatus
from core.utils import utc_now_naive, window_start
from db.models.action_activity import ActionActivity
from services.base import BaseService


class ActivityService(BaseService[ActionActivity]):
    """Writes one row per attempted or skipped action, and reads them back."""

    def __init__(self, db: AsyncSession):
        super().__init__(ActionActivity, db)

    async def record(
        self,
        *,
        action_type: str,
        status: ActivityStatus,
        status_message: Optional[str] = None,
        recipient: Optional[str] = None,
        recipient_name: Optional[str] = None,
        subject: Optional[str] = None,
        trigger_action_id: Optional[str] = None,
        trigger_id: Optional[str] = None,
        action_template_id: Optional[str] = None,
        trigger_source: str = "api",
        triggered_by: Optional[str] = None,
        context_data: Optional[dict[str, Any]] = None,
        response_data: Optional[dict[str, Any]] = None,
        retry_count: int = 0,
        executed_at: Optional[datetime] = None,
    ) -> ActionActivity:
        activity = ActionActivity(
            trigger_action_id=trigger_action_id,
            trigger_id=trigger_id,
            action_template_id=action_template_id,
            action_type=action_type,
            recipient=recipient,
            recipient_name=recipient_name,
            subject=subject[:255] if subject else subject,
            status=ActivityStatus(status).value,
            status_message=status_message,
            trigger_source=trigger_source or "api",
            triggered_by=triggered_by or "system",
            context_data=context_data,
            response_data=response_data,
            retry_count=retry_count,
            executed_at=executed_at or utc_now_naive(),
        )
        self.db.add(activity)
        await self.db.flush()
        return activity

    async def list_activity(
        self,
        status: Optional[str] = None,
        action_type: Optional[str] = None,
        trigger_id: Optional[str] = None,
        days: Optional[int] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> tuple[Sequence[ActionActivity], int]:
        query = select(ActionActivity)
        count_query = select(func.count()).select_from(ActionActivity)
        clauses = []
        if status:
            clauses.append(ActionActivity.status == status)
        if action_type:
            clauses.append(ActionActivity.action_type == action_type)
        if trigger_id:
            clauses.append(ActionActivity.trigger_id == trigger_id)
        if days:
            clauses.append(ActionActivity.executed_at >= window_start(days))
        for clause in clauses:
            query = query.where(clause)
            count_query = count_query.where(clause)

        result = await self.db.execute(
            query.order_by(ActionActivity.executed_at.desc()).offset(offset).limit(limit)
        )
        total = (await self.db.execute(count_query)).scalar() or 0
        return result.scalars().all(), total

    async def summary(self, days: int = 30) -> dict:
        """Counts by status and by channel over the trailing window."""
        since = window_start(days)
        result = await self.db.execute(
            select(ActionActivity.action_type, ActionActivity.status, func.count())
            .where(ActionActivity.executed_at >= since)
            .group_by(ActionActivity.action_type, ActionActivity.status)
        )

        by_status = {s.value: 0 for s in ActivityStatus}
        by_channel: dict[str, dict[str, int]] = {}
        total = 0
        for action_type, status, count in result.all():
            by_status[status] = by_status.get(status, 0) + count
            channel = by_channel.setdefault(action_type, {s.value: 0 for s in ActivityStatus})
            channel[status] = channel.get(status, 0) + count
            total += count

        attempted = by_status[ActivityStatus.SENT.value] + by_status[ActivityStatus.FAILED.value]
        return {
            "period_days": days,
            "total": total,
            "by_status": by_status,
            "by_channel": by_channel,
            "success_rate": round(by_status[ActivityStatus.SENT.value] / attempted * 100, 1)
            if attempted else 0.0,
        }
