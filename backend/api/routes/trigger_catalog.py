"""Trigger catalog API routes: entries, linked actions and test firing."""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, status as http_status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.dependencies import get_current_active_user, get_db
from core.constants import TriggerSource
from core.security import TokenPayload
from services.trigger_catalog_service import TriggerCatalogService
from triggers.dispatcher import TriggerDispatcher

router = APIRouter()


# -- Schemas --

class TriggerCatalogCreate(BaseModel):
    trigger_key: str
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    context_schema: Optional[dict] = None
    is_active: bool = True


class TriggerCatalogUpdate(BaseModel):
    trigger_key: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    context_schema: Optional[dict] = None
    is_active: Optional[bool] = None


class TriggerCatalogResponse(BaseModel):
    id: str
    trigger_key: str
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    context_schema: Optional[dict] = None
    is_active: bool
    action_count: int = 0
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TriggerActionCreate(BaseModel):
    action_template_id: str
    sequence_order: Optional[int] = None
    conditions: Optional[dict] = None
    requires_email_preference: bool = False
    requires_sms_preference: bool = False
    delay_seconds: int = 0
    retry_on_failure: bool = True
    max_retries: int = 3
    is_active: bool = True


class TriggerActionUpdate(BaseModel):
    sequence_order: Optional[int] = None
    conditions: Optional[dict] = None
    requires_email_preference: Optional[bool] = None
    requires_sms_preference: Optional[bool] = None
    delay_seconds: Optional[int] = None
    retry_on_failure: Optional[bool] = None
    max_retries: Optional[int] = None
    is_active: Optional[bool] = None


class TriggerActionResponse(BaseModel):
    id: str
    trigger_id: str
    action_template_id: str
    template_name: Optional[str] = None
    action_type: Optional[str] = None
    sequence_order: int
    conditions: Optional[dict] = None
    requires_email_preference: bool
    requires_sms_preference: bool
    delay_seconds: int
    retry_on_failure: bool
    max_retries: int
    is_active: bool


class TestFireRequest(BaseModel):
    context: dict = Field(default_factory=dict)
    user_id: Optional[str] = None


def _entry_to_response(entry, action_count: int = 0) -> TriggerCatalogResponse:
    return TriggerCatalogResponse(
        id=entry.id,
        trigger_key=entry.trigger_key,
        name=entry.name,
        description=entry.description,
        category=entry.category,
        context_schema=entry.context_schema,
        is_active=entry.is_active,
        action_count=action_count,
        created_at=entry.created_at,
    )


def _action_to_response(a) -> TriggerActionResponse:
    template = a.template
    return TriggerActionResponse(
        id=a.id,
        trigger_id=a.trigger_id,
        action_template_id=a.action_template_id,
        template_name=template.name if template else None,
        action_type=template.action_type if template else None,
        sequence_order=a.sequence_order,
        conditions=a.conditions,
        requires_email_preference=a.requires_email_preference,
        requires_sms_preference=a.requires_sms_preference,
        delay_seconds=a.delay_seconds,
        retry_on_failure=a.retry_on_failure,
        max_retries=a.max_retries,
        is_active=a.is_active,
    )


# -- Catalog CRUD --

@router.get("/", response_model=List[TriggerCatalogResponse], summary="List trigger catalog")
async def list_trigger_catalog(
    category: Optional[str] = None,
    is_active: Optional[bool] = None,
    current_user: TokenPayload = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    svc = TriggerCatalogService(db)
    entries = await svc.list_entries(category=category, is_active=is_active)
    return [_entry_to_response(entry, count) for entry, count in entries]


@router.post(
    "/",
    response_model=TriggerCatalogResponse,
    status_code=http_status.HTTP_201_CREATED,
    summary="Create catalog entry",
)
async def create_trigger_catalog_entry(
    request: TriggerCatalogCreate,
    current_user: TokenPayload = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    entry = await TriggerCatalogService(db).create_entry(request.model_dump())
    return _entry_to_response(entry)


@router.get("/{trigger_id}", response_model=TriggerCatalogResponse, summary="Get catalog entry")
async def get_trigger_catalog_entry(
    trigger_id: str,
    current_user: TokenPayload = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    svc = TriggerCatalogService(db)
    entry = await svc.get_or_404(trigger_id)
    return _entry_to_response(entry, await svc.action_count(entry.id))


@router.put("/{trigger_id}", response_model=TriggerCatalogResponse, summary="Update catalog entry")
async def update_trigger_catalog_entry(
    trigger_id: str,
    request: TriggerCatalogUpdate,
    current_user: TokenPayload = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    svc = TriggerCatalogService(db)
    entry = await svc.update_entry(trigger_id, request.model_dump(exclude_unset=True))
    return _entry_to_response(entry, await svc.action_count(entry.id))


@router.delete(
    "/{trigger_id}",
    status_code=http_status.HTTP_204_NO_CONTENT,
    summary="Delete catalog entry",
)
async def delete_trigger_catalog_entry(
    trigger_id: str,
    current_user: TokenPayload = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    await TriggerCatalogService(db).delete_entry(trigger_id)


# -- Trigger actions --

@router.get(
    "/{trigger_id}/actions",
    response_model=List[TriggerActionResponse],
    summary="List actions of a trigger",
)
async def list_trigger_actions(
    trigger_id: str,
    current_user: TokenPayload = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    actions = await TriggerCatalogService(db).list_actions(trigger_id)
    return [_action_to_response(a) for a in actions]


@router.post(
    "/{trigger_id}/actions",
    response_model=TriggerActionResponse,
    status_code=http_status.HTTP_201_CREATED,
    summary="Attach a template to a trigger",
)
async def add_trigger_action(
    trigger_id: str,
    request: TriggerActionCreate,
    current_user: TokenPayload = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    action = await TriggerCatalogService(db).add_action(trigger_id, request.model_dump())
    return _action_to_response(action)


@router.put(
    "/{trigger_id}/actions/{action_id}",
    response_model=TriggerActionResponse,
    summary="Update a trigger action",
)
async def update_trigger_action(
    trigger_id: str,
    action_id: str,
    request: TriggerActionUpdate,
    current_user: TokenPayload = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    svc = TriggerCatalogService(db)
    action = await svc.update_action(trigger_id, action_id, request.model_dump(exclude_unset=True))
    return _action_to_response(action)


@router.delete(
    "/{trigger_id}/actions/{action_id}",
    status_code=http_status.HTTP_204_NO_CONTENT,
    summary="Detach a template from a trigger",
)
async def remove_trigger_action(
    trigger_id: str,
    action_id: str,
    current_user: TokenPayload = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    await TriggerCatalogService(db).remove_action(trigger_id, action_id)


# -- Firing --

@router.post("/{trigger_key}/test-fire", summary="Fire a trigger with a sample context")
async def test_fire_trigger(
    trigger_key: str,
    request: TestFireRequest,
    current_user: TokenPayload = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    report = await TriggerDispatcher(db).fire(
        trigger_key,
        request.context,
        user_id=request.user_id,
        trigger_source=TriggerSource.MANUAL.value,
        triggered_by=current_user.sub,
    )
    if report is None:
        return {"trigger_key": trigger_key, "fired": False, "message": "Trigger not configured or inactive"}
    return {"fired": True, **report.to_dict()}
