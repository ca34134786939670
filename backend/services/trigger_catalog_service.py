"""Trigger catalog and trigger action management."""

import re
from typing import Any, Optional, Sequence

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import ConflictError, NotFoundError, ValidationError
from db.models.action_template import ActionTemplate
from db.models.trigger import TriggerAction, TriggerCatalogEntry
from services.base import BaseService

logger = structlog.get_logger(__name__)

TRIGGER_KEY_RE = re.compile(r"^[a-z][a-z0-9_]*$")

_ENTRY_FIELDS = ("name", "description", "category", "context_schema", "is_active")
_ACTION_FIELDS = (
    "sequence_order",
    "conditions",
    "requires_email_preference",
    "requires_sms_preference",
    "delay_seconds",
    "retry_on_failure",
    "max_retries",
    "is_active",
)


class TriggerCatalogService(BaseService[TriggerCatalogEntry]):
    """CRUD for catalog entries and the ordered actions beneath them."""

    def __init__(self, db: AsyncSession):
        super().__init__(TriggerCatalogEntry, db)

    # ─── Catalog ───────────────────────────────────────────

    async def get_by_key(self, trigger_key: str) -> Optional[TriggerCatalogEntry]:
        result = await self.db.execute(
            select(TriggerCatalogEntry).where(
                TriggerCatalogEntry.trigger_key == trigger_key,
                TriggerCatalogEntry.is_deleted == False,  # noqa: E712
            )
        )
        return result.scalar_one_or_none()

    async def list_entries(
        self,
        category: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> list[tuple[TriggerCatalogEntry, int]]:
        """Entries ordered by key, each with its count of active actions."""
        entries, _ = await self.list(
            limit=500,
            order_by="trigger_key",
            order_desc=False,
            filters={"category": category, "is_active": is_active},
        )
        counts = await self._action_counts([e.id for e in entries])
        return [(entry, counts.get(entry.id, 0)) for entry in entries]

    async def _action_counts(self, trigger_ids: list[str]) -> dict[str, int]:
        if not trigger_ids:
            return {}
        result = await self.db.execute(
            select(TriggerAction.trigger_id, func.count())
            .where(
                TriggerAction.trigger_id.in_(trigger_ids),
                TriggerAction.is_active == True,  # noqa: E712
                TriggerAction.is_deleted == False,  # noqa: E712
            )
            .group_by(TriggerAction.trigger_id)
        )
        return {trigger_id: count for trigger_id, count in result.all()}

    async def action_count(self, trigger_id: str) -> int:
        return (await self._action_counts([trigger_id])).get(trigger_id, 0)

    async def create_entry(self, data: dict[str, Any]) -> TriggerCatalogEntry:
        """Create a catalog entry.

        Raises:
            ValidationError: on a missing name or malformed trigger_key
            ConflictError: when the trigger_key is already taken
        """
        key = (data.get("trigger_key") or "").strip()
        if not TRIGGER_KEY_RE.match(key):
            raise ValidationError(
                "trigger_key must be lowercase letters, digits and underscores, starting with a letter",
                field="trigger_key",
            )
        if not (data.get("name") or "").strip():
            raise ValidationError("Trigger name is required", field="name")

        existing = await self.db.execute(
            select(TriggerCatalogEntry.id).where(TriggerCatalogEntry.trigger_key == key)
        )
        if existing.first():
            raise ConflictError(f"Trigger key '{key}' already exists")

        entry = await self.create({
            "trigger_key": key,
            **{f: data.get(f) for f in _ENTRY_FIELDS if data.get(f) is not None},
        })
        logger.info("trigger_created", trigger_id=entry.id, trigger_key=key)
        return entry

    async def update_entry(self, trigger_id: str, data: dict[str, Any]) -> TriggerCatalogEntry:
        """Update an entry; trigger_key is write-once."""
        entry = await self.get_or_404(trigger_id)
        new_key = data.get("trigger_key")
        if new_key is not None and new_key != entry.trigger_key:
            raise ValidationError("trigger_key cannot be changed after creation", field="trigger_key")
        if "name" in data and data["name"] is not None and not data["name"].strip():
            raise ValidationError("Trigger name is required", field="name")

        await self.apply_updates(entry, {f: data.get(f) for f in _ENTRY_FIELDS})
        return entry

    async def delete_entry(self, trigger_id: str) -> None:
        if not await self.soft_delete(trigger_id):
            raise NotFoundError(f"Trigger {trigger_id} not found")
        logger.info("trigger_deleted", trigger_id=trigger_id)

    # ─── Trigger actions ───────────────────────────────────

    async def list_actions(self, trigger_id: str) -> Sequence[TriggerAction]:
        """Actions of a trigger in execution order.

        sequence_order is only a sort key; duplicates fall back to
        insertion order.
        """
        await self.get_or_404(trigger_id)
        result = await self.db.execute(
            select(TriggerAction)
            .where(
                TriggerAction.trigger_id == trigger_id,
                TriggerAction.is_deleted == False,  # noqa: E712
            )
            .order_by(
                TriggerAction.sequence_order.asc(),
                TriggerAction.created_at.asc(),
                TriggerAction.id.asc(),
            )
        )
        return result.scalars().all()

    async def next_sequence_order(self, trigger_id: str) -> int:
        result = await self.db.execute(
            select(func.max(TriggerAction.sequence_order)).where(
                TriggerAction.trigger_id == trigger_id,
                TriggerAction.is_deleted == False,  # noqa: E712
            )
        )
        current = result.scalar()
        return (current or 0) + 1

    async def _get_action(self, trigger_id: str, action_id: str) -> TriggerAction:
        result = await self.db.execute(
            select(TriggerAction).where(
                TriggerAction.id == action_id,
                TriggerAction.trigger_id == trigger_id,
                TriggerAction.is_deleted == False,  # noqa: E712
            )
        )
        action = result.scalar_one_or_none()
        if action is None:
            raise NotFoundError(f"Trigger action {action_id} not found")
        return action

    @staticmethod
    def _check_action_fields(data: dict[str, Any]) -> None:
        for field in ("delay_seconds", "max_retries"):
            value = data.get(field)
            if value is not None and value < 0:
                raise ValidationError(f"{field} must be >= 0", field=field)
        conditions = data.get("conditions")
        if conditions is not None and not isinstance(conditions, dict):
            raise ValidationError("conditions must be an object", field="conditions")

    async def add_action(self, trigger_id: str, data: dict[str, Any]) -> TriggerAction:
        """Attach a template to a trigger.

        Without an explicit sequence_order the action goes last
        (max existing + 1, or 1).
        """
        await self.get_or_404(trigger_id)
        template_id = data.get("action_template_id")
        template = await self.db.get(ActionTemplate, template_id) if template_id else None
        if template is None or template.is_deleted:
            raise ValidationError("Action template not found", field="action_template_id")
        self._check_action_fields(data)

        fields = {f: data.get(f) for f in _ACTION_FIELDS if data.get(f) is not None}
        if "sequence_order" not in fields:
            fields["sequence_order"] = await self.next_sequence_order(trigger_id)

        action = TriggerAction(trigger_id=trigger_id, action_template_id=template.id, **fields)
        self.db.add(action)
        await self.db.flush()
        await self.db.refresh(action, attribute_names=["template", "trigger"])
        logger.info(
            "trigger_action_added",
            trigger_id=trigger_id,
            action_id=action.id,
            sequence_order=action.sequence_order,
        )
        return action

    async def update_action(
        self, trigger_id: str, action_id: str, data: dict[str, Any]
    ) -> TriggerAction:
        action = await self._get_action(trigger_id, action_id)
        self._check_action_fields(data)
        await self.apply_updates(action, {f: data.get(f) for f in _ACTION_FIELDS})
        return action

    async def remove_action(self, trigger_id: str, action_id: str) -> None:
        """Detach a template from a trigger (the link row is deleted)."""
        action = await self._get_action(trigger_id, action_id)
        await self.db.delete(action)
        await self.db.flush()
        logger.info("trigger_action_removed", trigger_id=trigger_id, action_id=action_id)
