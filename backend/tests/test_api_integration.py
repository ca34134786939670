"""Integration tests for API endpoints.

These tests exercise the full HTTP stack: FastAPI → route → service → DB.
Uses an in-memory SQLite database for speed and isolation.
"""

import pytest

from core.utils import utc_now_naive


async def _create_template(client, auth_headers, **overrides) -> dict:
    body = {
        "name": "Welcome Email",
        "action_type": "email",
        "config": {
            "subject": "Welcome {{firstName}}",
            "htmlContent": "<p>Hi {{firstName}} from {{companyName}}</p>",
        },
    }
    body.update(overrides)
    resp = await client.post("/api/v1/action-templates/", json=body, headers=auth_headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


async def _create_trigger(client, auth_headers, trigger_key: str = "prospect_created") -> dict:
    resp = await client.post(
        "/api/v1/trigger-catalog/",
        json={"trigger_key": trigger_key, "name": "Prospect Created", "category": "prospect"},
        headers=auth_headers,
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


# ─── Auth ───

class TestAuthRequired:

    @pytest.mark.asyncio
    async def test_templates_need_token(self, client):
        resp = await client.get("/api/v1/action-templates/")
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_bad_token(self, client):
        resp = await client.get("/api/v1/activity", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401


# ─── Action Templates ───

class TestActionTemplatesApi:

    @pytest.mark.asyncio
    async def test_create_and_get(self, client, auth_headers):
        created = await _create_template(client, auth_headers)
        assert created["version"] == 1

        resp = await client.get(f"/api/v1/action-templates/{created['id']}", headers=auth_headers)
        assert resp.status_code == 200
        assert resp.json()["config"]["htmlContent"].startswith("<p>Hi")

    @pytest.mark.asyncio
    async def test_invalid_config_is_422_with_field(self, client, auth_headers):
        resp = await client.post(
            "/api/v1/action-templates/",
            json={"name": "Bad", "action_type": "sms", "config": {}},
            headers=auth_headers,
        )
        assert resp.status_code == 422
        assert resp.json()["field"] == "config.message"

    @pytest.mark.asyncio
    async def test_update_duplicate_preview_variables(self, client, auth_headers):
        created = await _create_template(client, auth_headers)
        template_id = created["id"]

        resp = await client.put(
            f"/api/v1/action-templates/{template_id}", json={"description": "edited"}, headers=auth_headers
        )
        assert resp.json()["version"] == 2

        resp = await client.post(f"/api/v1/action-templates/{template_id}/duplicate", headers=auth_headers)
        assert resp.status_code == 201
        assert resp.json()["name"] == "Welcome Email (Copy)"
        assert resp.json()["is_active"] is False

        resp = await client.post(
            f"/api/v1/action-templates/{template_id}/preview",
            json={"values": {"firstName": "Ana"}},
            headers=auth_headers,
        )
        preview = resp.json()
        assert preview["rendered"]["subject"] == "Welcome Ana"
        assert preview["missing"] == ["companyName"]

        resp = await client.get(f"/api/v1/action-templates/{template_id}/variables", headers=auth_headers)
        assert set(resp.json()["variables"]) == {"firstName", "companyName"}

    @pytest.mark.asyncio
    async def test_extract_variables(self, client, auth_headers):
        resp = await client.post(
            "/api/v1/action-templates/extract-variables",
            json={"texts": ["Hello {{name}}, visit {{url}}", "{{name}}"]},
            headers=auth_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["variables"] == ["name", "url"]

    @pytest.mark.asyncio
    async def test_delete_in_use_is_409(self, client, auth_headers):
        template = await _create_template(client, auth_headers)
        trigger = await _create_trigger(client, auth_headers)
        resp = await client.post(
            f"/api/v1/trigger-catalog/{trigger['id']}/actions",
            json={"action_template_id": template["id"]},
            headers=auth_headers,
        )
        action = resp.json()

        resp = await client.delete(f"/api/v1/action-templates/{template['id']}", headers=auth_headers)
        assert resp.status_code == 409
        assert resp.json()["triggers"] == ["prospect_created"]

        await client.put(
            f"/api/v1/trigger-catalog/{trigger['id']}/actions/{action['id']}",
            json={"is_active": False},
            headers=auth_headers,
        )
        resp = await client.delete(f"/api/v1/action-templates/{template['id']}", headers=auth_headers)
        assert resp.status_code == 204

    @pytest.mark.asyncio
    async def test_missing_template_is_404(self, client, auth_headers):
        resp = await client.get("/api/v1/action-templates/does-not-exist", headers=auth_headers)
        assert resp.status_code == 404


# ─── Trigger Catalog ───

class TestTriggerCatalogApi:

    @pytest.mark.asyncio
    async def test_duplicate_key_is_409(self, client, auth_headers):
        await _create_trigger(client, auth_headers)
        resp = await client.post(
            "/api/v1/trigger-catalog/",
            json={"trigger_key": "prospect_created", "name": "Again"},
            headers=auth_headers,
        )
        assert resp.status_code == 409

    @pytest.mark.asyncio
    async def test_key_change_rejected(self, client, auth_headers):
        trigger = await _create_trigger(client, auth_headers)
        resp = await client.put(
            f"/api/v1/trigger-catalog/{trigger['id']}",
            json={"trigger_key": "renamed"},
            headers=auth_headers,
        )
        assert resp.status_code == 422
        assert resp.json()["field"] == "trigger_key"

    @pytest.mark.asyncio
    async def test_actions_listed_with_template_info(self, client, auth_headers):
        template = await _create_template(client, auth_headers)
        trigger = await _create_trigger(client, auth_headers)
        for _ in range(2):
            await client.post(
                f"/api/v1/trigger-catalog/{trigger['id']}/actions",
                json={"action_template_id": template["id"]},
                headers=auth_headers,
            )

        resp = await client.get(f"/api/v1/trigger-catalog/{trigger['id']}/actions", headers=auth_headers)
        actions = resp.json()
        assert [a["sequence_order"] for a in actions] == [1, 2]
        assert actions[0]["template_name"] == "Welcome Email"
        assert actions[0]["action_type"] == "email"

        resp = await client.get("/api/v1/trigger-catalog/", headers=auth_headers)
        assert resp.json()[0]["action_count"] == 2

        resp = await client.delete(
            f"/api/v1/trigger-catalog/{trigger['id']}/actions/{actions[0]['id']}", headers=auth_headers
        )
        assert resp.status_code == 204

    @pytest.mark.asyncio
    async def test_test_fire(self, client, auth_headers, email_channel, test_user):
        template = await _create_template(client, auth_headers)
        trigger = await _create_trigger(client, auth_headers)
        await client.post(
            f"/api/v1/trigger-catalog/{trigger['id']}/actions",
            json={"action_template_id": template["id"]},
            headers=auth_headers,
        )

        resp = await client.post(
            "/api/v1/trigger-catalog/prospect_created/test-fire",
            json={"context": {"email": "ana@example.com", "firstName": "Ana", "companyName": "Acme"}},
            headers=auth_headers,
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["fired"] is True
        assert data["sent"] == 1
        assert email_channel.sent[0].title == "Welcome Ana"

        resp = await client.get("/api/v1/activity", headers=auth_headers)
        item = resp.json()["items"][0]
        assert item["trigger_source"] == "manual"
        assert item["triggered_by"] == test_user.id

        resp = await client.get("/api/v1/activity/summary", headers=auth_headers)
        summary = resp.json()
        assert summary["by_status"]["sent"] == 1
        assert summary["by_channel"]["email"]["sent"] == 1
        assert summary["success_rate"] == 100.0

    @pytest.mark.asyncio
    async def test_test_fire_unknown_key(self, client, auth_headers):
        resp = await client.post("/api/v1/trigger-catalog/nothing_here/test-fire", json={}, headers=auth_headers)
        assert resp.status_code == 200
        assert resp.json()["fired"] is False


# ─── Activity / Outbox / Signatures ───

class TestOperationsApi:

    @pytest.mark.asyncio
    async def test_activity_summary_empty(self, client, auth_headers):
        resp = await client.get("/api/v1/activity/summary?days=7", headers=auth_headers)
        data = resp.json()
        assert data["period_days"] == 7
        assert data["total"] == 0
        assert data["success_rate"] == 0.0

    @pytest.mark.asyncio
    async def test_outbox_drain_and_list(self, client, auth_headers, db_session, email_channel):
        from core.constants import ActionType
        from notifications.channels import Notification
        from triggers.outbox import DeliveryOutbox

        await DeliveryOutbox(db_session).enqueue(
            Notification(channel=ActionType.EMAIL, recipient="ana@example.com", title="Queued", message="m"),
        )

        resp = await client.post("/api/v1/outbox/drain", headers=auth_headers)
        assert resp.json()["delivered"] == 1

        resp = await client.get("/api/v1/outbox?status=delivered", headers=auth_headers)
        assert resp.json()["count"] == 1
        assert email_channel.sent[0].title == "Queued"

    @pytest.mark.asyncio
    async def test_sweep_and_status(self, client, auth_headers, make_signature):
        await make_signature(age_days=9, now=utc_now_naive())

        resp = await client.post("/api/v1/signatures/sweep", headers=auth_headers)
        assert resp.status_code == 200
        assert resp.json()["expired"] == 1

        resp = await client.get("/api/v1/signatures/sweep/status", headers=auth_headers)
        assert resp.json()["last_result"]["expired"] == 1


# ─── External Integrations ───

class TestIntegrationFireApi:

    @pytest.mark.asyncio
    async def test_fire_with_api_key(self, client, auth_headers, make_api_key, email_channel):
        template = await _create_template(client, auth_headers)
        trigger = await _create_trigger(client, auth_headers)
        await client.post(
            f"/api/v1/trigger-catalog/{trigger['id']}/actions",
            json={"action_template_id": template["id"]},
            headers=auth_headers,
        )
        raw_key, row = await make_api_key(rate_limit=10)

        resp = await client.post(
            "/api/v1/integrations/triggers/prospect_created/fire",
            json={"context": {"email": "lead@example.com", "firstName": "Lee"}},
            headers={"X-API-Key": raw_key},
        )

        assert resp.status_code == 200, resp.text
        assert resp.json()["sent"] == 1
        assert resp.headers["X-RateLimit-Limit"] == "10"
        assert resp.headers["X-RateLimit-Remaining"] == "9"
        assert "X-RateLimit-Reset" in resp.headers
        assert email_channel.sent[0].recipient == "lead@example.com"

        resp = await client.get("/api/v1/activity", headers=auth_headers)
        item = resp.json()["items"][0]
        assert item["trigger_source"] == "integration"
        assert item["triggered_by"] == f"api_key:{row.key_id}"

    @pytest.mark.asyncio
    async def test_missing_key_is_401(self, client):
        resp = await client.post("/api/v1/integrations/triggers/prospect_created/fire", json={})
        assert resp.status_code == 401
        assert resp.json()["detail"] == "API key required"

    @pytest.mark.asyncio
    async def test_permission_required(self, client, make_api_key):
        raw_key, _ = await make_api_key(permissions=["templates.read"])
        resp = await client.post(
            "/api/v1/integrations/triggers/prospect_created/fire", json={}, headers={"X-API-Key": raw_key}
        )
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_hourly_quota_is_429(self, client, make_api_key):
        raw_key, _ = await make_api_key(rate_limit=2)
        url = "/api/v1/integrations/triggers/unconfigured_event/fire"
        for _ in range(2):
            resp = await client.post(url, json={}, headers={"X-API-Key": raw_key})
            assert resp.status_code == 200
            assert resp.json()["fired"] is False

        resp = await client.post(url, json={}, headers={"X-API-Key": raw_key})
        assert resp.status_code == 429
        body = resp.json()
        assert body["limit"] == 2
        assert body["reset_time"]
