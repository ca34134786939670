"""Database seed script. Creates the admin user, the trigger catalog and
the signature email templates with their trigger links.

Run: python -m scripts.seed

Idempotent: existing rows (matched by email, trigger_key or template
name) are left untouched.
"""

import asyncio
import os
import sys

# Ensure project root is in path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.constants import REMINDER_1_DAY_TEMPLATE, REMINDER_3_DAY_TEMPLATE  # noqa: E402


SIGNATURE_CONTEXT = {
    "type": "object",
    "properties": {
        "ownerName": {"type": "string"},
        "ownerEmail": {"type": "string"},
        "companyName": {"type": "string"},
        "roleKey": {"type": "string"},
        "agentName": {"type": "string"},
    },
    "required": ["ownerEmail"],
}

TRIGGERS = [
    {
        "trigger_key": "signature_requested",
        "name": "Signature Requested",
        "description": "A signature is requested from an owner or guarantor",
        "category": "application",
        "context_schema": SIGNATURE_CONTEXT,
    },
    {
        "trigger_key": "signature_captured",
        "name": "Signature Captured",
        "description": "A signature was captured successfully",
        "category": "application",
        "context_schema": SIGNATURE_CONTEXT,
    },
    {
        "trigger_key": "signature_expired",
        "name": "Signature Expired",
        "description": "A signature request passed its 7-day window",
        "category": "application",
        "context_schema": SIGNATURE_CONTEXT,
    },
    {
        "trigger_key": "prospect_created",
        "name": "Prospect Created",
        "description": "An agent created a new merchant prospect",
        "category": "prospect",
    },
    {
        "trigger_key": "application_submitted",
        "name": "Application Submitted",
        "description": "A merchant application was submitted for review",
        "category": "application",
    },
    {
        "trigger_key": "user_registered",
        "name": "User Registered",
        "description": "A new back-office user account was created",
        "category": "user",
    },
]

_SIGNER_VARIABLES = {
    "ownerName": "Signer name",
    "ownerEmail": "Signer email",
    "companyName": "Company name",
    "signatureUrl": "URL to the signature capture page",
    "agentName": "Agent handling the application",
}

TEMPLATES = [
    {
        "name": "Signature Request Email",
        "description": "Email asking an owner or guarantor to sign",
        "action_type": "email",
        "category": "application",
        "config": {
            "subject": "Signature Required - {{companyName}}",
            "htmlContent": (
                "<h2>Signature Required</h2>"
                "<p>Dear {{ownerName}},</p>"
                "<p>Your digital signature is required for the "
                "<strong>{{companyName}}</strong> merchant application.</p>"
                '<p><a href="{{signatureUrl}}">Provide Signature</a></p>'
                "<p>This link expires in 7 days. Questions? Contact your agent {{agentName}}.</p>"
            ),
            "textContent": (
                "Dear {{ownerName}},\n\n"
                "Your digital signature is required for the {{companyName}} merchant application.\n"
                "Sign here: {{signatureUrl}}\n\n"
                "This link expires in 7 days. Questions? Contact your agent {{agentName}}."
            ),
        },
        "variables": _SIGNER_VARIABLES,
    },
    {
        "name": "Signature Captured Confirmation",
        "description": "Confirmation sent after a signature is captured",
        "action_type": "email",
        "category": "application",
        "config": {
            "subject": "Signature Received - {{companyName}}",
            "htmlContent": (
                "<h2>Signature Received</h2>"
                "<p>Dear {{ownerName}},</p>"
                "<p>Thank you for signing for <strong>{{companyName}}</strong>. "
                "Your agent {{agentName}} will keep you posted.</p>"
            ),
            "textContent": (
                "Dear {{ownerName}},\n\n"
                "Thank you for signing for {{companyName}}. "
                "Your agent {{agentName}} will keep you posted."
            ),
        },
        "variables": {k: v for k, v in _SIGNER_VARIABLES.items() if k != "signatureUrl"},
    },
    {
        "name": REMINDER_3_DAY_TEMPLATE,
        "description": "Reminder sent 3 days before a signature request expires",
        "action_type": "email",
        "category": "application",
        "config": {
            "subject": "Reminder: Signature Required - {{companyName}}",
            "htmlContent": (
                "<h2>Signature Required</h2>"
                "<p>Dear {{ownerName}},</p>"
                "<p>Your signature is still required for the "
                "<strong>{{companyName}}</strong> merchant application. "
                "The link expires in <strong>3 days</strong>.</p>"
                '<p><a href="{{signatureUrl}}">Sign Now</a></p>'
                "<p><small>Questions? Contact your agent {{agentName}}.</small></p>"
            ),
            "textContent": (
                "Dear {{ownerName}},\n\n"
                "Your signature is still required for the {{companyName}} merchant application.\n"
                "The link expires in 3 days: {{signatureUrl}}\n\n"
                "Questions? Contact your agent {{agentName}}."
            ),
        },
        "variables": _SIGNER_VARIABLES,
    },
    {
        "name": REMINDER_1_DAY_TEMPLATE,
        "description": "Final reminder sent 1 day before a signature request expires",
        "action_type": "email",
        "category": "application",
        "config": {
            "subject": "URGENT: Signature Required Today - {{companyName}}",
            "htmlContent": (
                "<h2>Final Reminder: Signature Required</h2>"
                "<p>Dear {{ownerName}},</p>"
                "<p><strong>URGENT:</strong> your signature link for "
                "<strong>{{companyName}}</strong> expires in less than 24 hours.</p>"
                '<p><a href="{{signatureUrl}}">Sign Now</a></p>'
                "<p><small>Questions? Contact your agent {{agentName}}.</small></p>"
            ),
            "textContent": (
                "Dear {{ownerName}},\n\n"
                "URGENT: your signature link for {{companyName}} expires in less than 24 hours.\n"
                "Sign now: {{signatureUrl}}\n\n"
                "Questions? Contact your agent {{agentName}}."
            ),
        },
        "variables": _SIGNER_VARIABLES,
    },
    {
        "name": "Signature Expired Notification",
        "description": "Sent to the signer when a signature request expires",
        "action_type": "email",
        "category": "application",
        "config": {
            "subject": "Signature Request Expired - {{companyName}}",
            "htmlContent": (
                "<h2>Signature Request Expired</h2>"
                "<p>Dear {{ownerName}},</p>"
                "<p>The signature request sent on {{originalRequestDate}} for "
                "<strong>{{companyName}}</strong> has expired. "
                "Please contact your agent {{agentName}} for a new link.</p>"
            ),
            "textContent": (
                "Dear {{ownerName}},\n\n"
                "The signature request sent on {{originalRequestDate}} for {{companyName}} "
                "has expired. Please contact your agent {{agentName}} for a new link."
            ),
        },
        "variables": {
            "ownerName": "Signer name",
            "companyName": "Company name",
            "originalRequestDate": "Date the signature was requested (YYYY-MM-DD)",
            "agentName": "Agent handling the application",
        },
    },
]

# (trigger_key, template name); reminders are sent by the sweep, not by triggers
LINKS = [
    ("signature_requested", "Signature Request Email"),
    ("signature_captured", "Signature Captured Confirmation"),
    ("signature_expired", "Signature Expired Notification"),
]


async def seed():
    """Seed the database with default data."""
    from sqlalchemy import select

    from core.security import hash_password
    from db.database import AsyncSessionLocal, init_db
    from db.models.trigger import TriggerAction
    from db.models.user import User
    from services.action_template_service import ActionTemplateService
    from services.trigger_catalog_service import TriggerCatalogService

    # Initialize DB tables
    await init_db()

    async with AsyncSessionLocal() as db:
        # 1. Admin user
        admin_email = os.environ.get("ADMIN_EMAIL", "admin@backoffice.local")
        admin_password = os.environ.get("ADMIN_PASSWORD", "admin123!")
        result = await db.execute(select(User).where(User.email == admin_email))
        if result.scalar_one_or_none() is None:
            db.add(User(
                email=admin_email,
                username="admin",
                password_hash=hash_password(admin_password),
                first_name="Admin",
                last_name="User",
                role="admin",
                is_active=True,
            ))
            await db.flush()
            print(f"[seed] Created admin user: {admin_email}")
        else:
            print(f"[seed] Admin user exists: {admin_email}")

        # 2. Trigger catalog
        catalog = TriggerCatalogService(db)
        triggers = {}
        for definition in TRIGGERS:
            entry = await catalog.get_by_key(definition["trigger_key"])
            if entry is None:
                entry = await catalog.create_entry(definition)
                print(f"[seed] Created trigger: {entry.trigger_key}")
            triggers[entry.trigger_key] = entry
        print(f"[seed] {len(triggers)} triggers ready")

        # 3. Action templates
        template_svc = ActionTemplateService(db)
        templates = {}
        for definition in TEMPLATES:
            template = await template_svc.get_by_name(definition["name"])
            if template is None:
                template = await template_svc.create_template(definition)
                print(f"[seed] Created template: {template.name}")
            templates[template.name] = template
        print(f"[seed] {len(templates)} templates ready")

        # 4. Trigger links
        for trigger_key, template_name in LINKS:
            entry, template = triggers[trigger_key], templates[template_name]
            existing = await db.execute(
                select(TriggerAction.id).where(
                    TriggerAction.trigger_id == entry.id,
                    TriggerAction.action_template_id == template.id,
                )
            )
            if existing.first():
                print(f"[seed] Link exists: {trigger_key} -> {template_name}")
                continue
            await catalog.add_action(entry.id, {
                "action_template_id": template.id,
                "retry_on_failure": True,
                "max_retries": 3,
            })
            print(f"[seed] Linked {trigger_key} -> {template_name}")

        await db.commit()
        print("[seed] Done")


if __name__ == "__main__":
    asyncio.run(seed())
