"""Tests for TriggerCatalogService: catalog entries and trigger actions."""

import pytest

from core.exceptions import ConflictError, NotFoundError, ValidationError
from services.action_template_service import ActionTemplateService
from services.trigger_catalog_service import TriggerCatalogService


@pytest.mark.integration
class TestCatalogEntries:

    @pytest.mark.parametrize("key", ["Signature", "1st_event", "with-dash", "", "_lead"])
    @pytest.mark.asyncio
    async def test_rejects_malformed_keys(self, db_session, key):
        with pytest.raises(ValidationError) as exc_info:
            await TriggerCatalogService(db_session).create_entry({"trigger_key": key, "name": "X"})
        assert exc_info.value.field == "trigger_key"

    @pytest.mark.asyncio
    async def test_duplicate_key_conflicts(self, db_session, make_trigger):
        await make_trigger("prospect_created")
        with pytest.raises(ConflictError):
            await make_trigger("prospect_created")

    @pytest.mark.asyncio
    async def test_name_required(self, db_session):
        with pytest.raises(ValidationError) as exc_info:
            await TriggerCatalogService(db_session).create_entry({"trigger_key": "ok_key", "name": " "})
        assert exc_info.value.field == "name"

    @pytest.mark.asyncio
    async def test_trigger_key_is_write_once(self, db_session, make_trigger):
        entry = await make_trigger("application_submitted")
        svc = TriggerCatalogService(db_session)

        with pytest.raises(ValidationError) as exc_info:
            await svc.update_entry(entry.id, {"trigger_key": "renamed"})
        assert exc_info.value.field == "trigger_key"

        updated = await svc.update_entry(entry.id, {"trigger_key": "application_submitted", "name": "Submitted"})
        assert updated.name == "Submitted"
        assert updated.trigger_key == "application_submitted"

    @pytest.mark.asyncio
    async def test_soft_delete_hides_key(self, db_session, make_trigger):
        entry = await make_trigger("user_registered")
        svc = TriggerCatalogService(db_session)
        await svc.delete_entry(entry.id)
        assert await svc.get_by_key("user_registered") is None
        with pytest.raises(NotFoundError):
            await svc.delete_entry(entry.id)

    @pytest.mark.asyncio
    async def test_list_counts_active_actions(self, db_session, make_trigger, make_template, link_action):
        busy = await make_trigger("b_event")
        idle = await make_trigger("a_event")
        template = await make_template()
        await link_action(busy, template)
        await link_action(busy, template, is_active=False)
        await link_action(busy, template)

        listed = await TriggerCatalogService(db_session).list_entries()
        assert [(entry.trigger_key, count) for entry, count in listed] == [("a_event", 0), ("b_event", 2)]
        assert idle.id == listed[0][0].id


@pytest.mark.integration
class TestTriggerActions:

    @pytest.mark.asyncio
    async def test_default_sequence_goes_last(self, db_session, make_trigger, make_template, link_action):
        trigger = await make_trigger()
        template = await make_template()

        first = await link_action(trigger, template)
        assert first.sequence_order == 1

        await link_action(trigger, template, sequence_order=7)
        last = await link_action(trigger, template)
        assert last.sequence_order == 8

    @pytest.mark.asyncio
    async def test_list_orders_by_sequence_then_insertion(self, db_session, make_trigger, make_template, link_action):
        trigger = await make_trigger()
        template = await make_template()
        early = await link_action(trigger, template, sequence_order=2)
        first = await link_action(trigger, template, sequence_order=1)
        late = await link_action(trigger, template, sequence_order=2)

        actions = await TriggerCatalogService(db_session).list_actions(trigger.id)
        assert [a.id for a in actions] == [first.id, early.id, late.id]

    @pytest.mark.asyncio
    async def test_requires_live_template(self, db_session, make_trigger, make_template):
        trigger = await make_trigger()
        template = await make_template()
        await ActionTemplateService(db_session).delete_template(template.id)

        svc = TriggerCatalogService(db_session)
        with pytest.raises(ValidationError) as exc_info:
            await svc.add_action(trigger.id, {"action_template_id": template.id})
        assert exc_info.value.field == "action_template_id"
        with pytest.raises(ValidationError):
            await svc.add_action(trigger.id, {})

    @pytest.mark.asyncio
    async def test_rejects_negative_delay(self, db_session, make_trigger, make_template, link_action):
        trigger = await make_trigger()
        template = await make_template()
        with pytest.raises(ValidationError) as exc_info:
            await link_action(trigger, template, delay_seconds=-5)
        assert exc_info.value.field == "delay_seconds"

    @pytest.mark.asyncio
    async def test_update_action(self, db_session, make_trigger, make_template, link_action):
        trigger = await make_trigger()
        action = await link_action(trigger, await make_template())
        updated = await TriggerCatalogService(db_session).update_action(
            trigger.id, action.id, {"delay_seconds": 120, "conditions": {"roleKey": "owner"}}
        )
        assert updated.delay_seconds == 120
        assert updated.conditions == {"roleKey": "owner"}

    @pytest.mark.asyncio
    async def test_remove_action_deletes_link_row(self, db_session, make_trigger, make_template, link_action):
        from db.models.trigger import TriggerAction

        trigger = await make_trigger()
        action = await link_action(trigger, await make_template())
        svc = TriggerCatalogService(db_session)
        await svc.remove_action(trigger.id, action.id)

        assert await db_session.get(TriggerAction, action.id) is None
        assert await svc.list_actions(trigger.id) == []

    @pytest.mark.asyncio
    async def test_action_scoped_to_its_trigger(self, db_session, make_trigger, make_template, link_action):
        owner = await make_trigger()
        other = await make_trigger()
        action = await link_action(owner, await make_template())
        with pytest.raises(NotFoundError):
            await TriggerCatalogService(db_session).remove_action(other.id, action.id)
