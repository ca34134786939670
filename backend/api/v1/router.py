"""API v1 aggregated router.

All v1 endpoints are registered here and mounted under /api/v1 in main.py.
This makes it trivial to add /api/v2 later without touching existing routes.
"""

from fastapi import APIRouter

from api.routes import (
    action_templates,
    activity,
    health,
    outbox,
    signatures,
    trigger_catalog,
)
from api.routes import integrations as integrations_routes

api_v1_router = APIRouter()

# Health (no auth required)
api_v1_router.include_router(
    health.router,
    tags=["Health"],
)

# Action templates
api_v1_router.include_router(
    action_templates.router,
    prefix="/action-templates",
    tags=["Action Templates"],
)

# Trigger catalog and linked actions
api_v1_router.include_router(
    trigger_catalog.router,
    prefix="/trigger-catalog",
    tags=["Trigger Catalog"],
)

# Dispatch log
api_v1_router.include_router(
    activity.router,
    prefix="/activity",
    tags=["Activity"],
)

# Signature expiration sweep
api_v1_router.include_router(
    signatures.router,
    prefix="/signatures",
    tags=["Signatures"],
)

# Delivery outbox
api_v1_router.include_router(
    outbox.router,
    prefix="/outbox",
    tags=["Outbox"],
)

# External integrations (API-key authenticated)
api_v1_router.include_router(
    integrations_routes.router,
    prefix="/integrations",
    tags=["External Integrations"],
)
