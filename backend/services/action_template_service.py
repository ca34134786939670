"""Action template service: validated CRUD, duplication and preview."""

from typing import Any, Optional, Sequence

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import TemplateInUseError, ValidationError
from db.models.action_template import ActionTemplate
from db.models.trigger import TriggerAction, TriggerCatalogEntry
from notifications.action_configs import parse_action_type, parse_variables, validate_config
from notifications.rendering import render_config, template_variables
from services.base import BaseService

logger = structlog.get_logger(__name__)

COPY_SUFFIX = " (Copy)"


class ActionTemplateService(BaseService[ActionTemplate]):
    """Action template operations.

    Every write validates the channel config for the template's action
    type before anything is flushed.
    """

    def __init__(self, db: AsyncSession):
        super().__init__(ActionTemplate, db)

    @staticmethod
    def _require_name(name: Optional[str]) -> str:
        if not name or not name.strip():
            raise ValidationError("Template name is required", field="name")
        return name.strip()

    async def list_templates(
        self,
        action_type: Optional[str] = None,
        category: Optional[str] = None,
        is_active: Optional[bool] = None,
        limit: int = 200,
    ) -> Sequence[ActionTemplate]:
        items, _ = await self.list(
            limit=limit,
            order_by="name",
            order_desc=False,
            filters={"action_type": action_type, "category": category, "is_active": is_active},
        )
        return items

    async def get_by_name(self, name: str) -> Optional[ActionTemplate]:
        result = await self.db.execute(
            select(ActionTemplate)
            .where(ActionTemplate.name == name, ActionTemplate.is_deleted == False)  # noqa: E712
            .order_by(ActionTemplate.created_at)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def create_template(self, data: dict[str, Any]) -> ActionTemplate:
        """Validate and create a template.

        Raises:
            ValidationError: naming the first invalid field; nothing is persisted
        """
        name = self._require_name(data.get("name"))
        action_type = parse_action_type(data.get("action_type") or "")
        config = validate_config(action_type.value, data.get("config"))
        variables = parse_variables(data.get("variables"))

        template = await self.create({
            "name": name,
            "description": data.get("description"),
            "action_type": action_type.value,
            "category": data.get("category"),
            "config": config,
            "variables": variables,
            "is_active": data.get("is_active", True),
            "version": 1,
        })
        logger.info("action_template_created", template_id=template.id, action_type=action_type.value)
        return template

    async def update_template(self, template_id: str, data: dict[str, Any]) -> ActionTemplate:
        """Apply a partial update; config is re-validated against the resulting type."""
        template = await self.get_or_404(template_id)

        changes: dict[str, Any] = {}
        if "name" in data and data["name"] is not None:
            changes["name"] = self._require_name(data["name"])
        for key in ("description", "category", "is_active"):
            if key in data and data[key] is not None:
                changes[key] = data[key]

        action_type = template.action_type
        if data.get("action_type") is not None:
            action_type = parse_action_type(data["action_type"]).value
            changes["action_type"] = action_type

        config = data.get("config")
        if config is not None or action_type != template.action_type:
            changes["config"] = validate_config(
                action_type, config if config is not None else template.config
            )

        if "variables" in data and data["variables"] is not None:
            changes["variables"] = parse_variables(data["variables"])

        if not changes:
            return template

        changes["version"] = (template.version or 1) + 1
        await self.apply_updates(template, changes)
        logger.info("action_template_updated", template_id=template.id, version=template.version)
        return template

    async def duplicate_template(self, template_id: str) -> ActionTemplate:
        """Copy a template; the copy starts inactive at version 1."""
        source = await self.get_or_404(template_id)
        copy = await self.create({
            "name": f"{source.name}{COPY_SUFFIX}",
            "description": source.description,
            "action_type": source.action_type,
            "category": source.category,
            "config": dict(source.config or {}),
            "variables": dict(source.variables or {}),
            "is_active": False,
            "version": 1,
        })
        logger.info("action_template_duplicated", source_id=source.id, template_id=copy.id)
        return copy

    async def blocking_triggers(self, template_id: str) -> list[str]:
        """Trigger keys with an active link to the template."""
        result = await self.db.execute(
            select(TriggerCatalogEntry.trigger_key)
            .join(TriggerAction, TriggerAction.trigger_id == TriggerCatalogEntry.id)
            .where(
                TriggerAction.action_template_id == template_id,
                TriggerAction.is_active == True,  # noqa: E712
                TriggerAction.is_deleted == False,  # noqa: E712
                TriggerCatalogEntry.is_deleted == False,  # noqa: E712
            )
            .distinct()
            .order_by(TriggerCatalogEntry.trigger_key)
        )
        return list(result.scalars().all())

    async def delete_template(self, template_id: str) -> None:
        """Soft-delete a template.

        Raises:
            TemplateInUseError: while any active trigger action references it
        """
        template = await self.get_or_404(template_id)
        triggers = await self.blocking_triggers(template.id)
        if triggers:
            raise TemplateInUseError(template.name, triggers)

        template.soft_delete()
        await self.db.flush()
        logger.info("action_template_deleted", template_id=template.id)

    def variables_of(self, template: ActionTemplate) -> dict[str, str]:
        """Referenced tokens, with declared descriptions where available."""
        declared = template.variables or {}
        names = template_variables(template.action_type, template.config or {})
        result = {name: declared.get(name, "") for name in names}
        for name, description in declared.items():
            result.setdefault(name, description)
        return result

    def preview(self, template: ActionTemplate, sample_values: dict[str, Any]) -> dict:
        """Render the config against sample values without sending anything."""
        config = template.config or {}
        names = template_variables(template.action_type, config)
        return {
            "template_id": template.id,
            "action_type": template.action_type,
            "rendered": render_config(template.action_type, config, sample_values),
            "variables": names,
            "missing": [name for name in names if not sample_values.get(name)],
        }
