"""Action template API routes: CRUD, duplicate, preview and variables."""

from datetime import datetime
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, status as http_status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.dependencies import get_current_active_user, get_db
from core.security import TokenPayload
from notifications.rendering import extract_variables
from services.action_template_service import ActionTemplateService

router = APIRouter()


# -- Schemas --

class ActionTemplateCreate(BaseModel):
    name: str
    description: Optional[str] = None
    action_type: str
    category: Optional[str] = None
    config: Any = None
    variables: Any = None
    is_active: bool = True


class ActionTemplateUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    action_type: Optional[str] = None
    category: Optional[str] = None
    config: Any = None
    variables: Any = None
    is_active: Optional[bool] = None


class ActionTemplateResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    action_type: str
    category: Optional[str] = None
    config: dict
    variables: dict
    is_active: bool
    version: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PreviewRequest(BaseModel):
    values: dict[str, Any] = Field(default_factory=dict)


class ExtractVariablesRequest(BaseModel):
    texts: List[str] = Field(default_factory=list)


def _template_to_response(t) -> ActionTemplateResponse:
    return ActionTemplateResponse(
        id=t.id,
        name=t.name,
        description=t.description,
        action_type=t.action_type,
        category=t.category,
        config=t.config or {},
        variables=t.variables or {},
        is_active=t.is_active,
        version=t.version or 1,
        created_at=t.created_at,
        updated_at=t.updated_at,
    )


# -- CRUD --

@router.get("/", response_model=List[ActionTemplateResponse], summary="List action templates")
async def list_action_templates(
    action_type: Optional[str] = None,
    category: Optional[str] = None,
    is_active: Optional[bool] = None,
    current_user: TokenPayload = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    svc = ActionTemplateService(db)
    templates = await svc.list_templates(action_type=action_type, category=category, is_active=is_active)
    return [_template_to_response(t) for t in templates]


@router.post(
    "/",
    response_model=ActionTemplateResponse,
    status_code=http_status.HTTP_201_CREATED,
    summary="Create action template",
)
async def create_action_template(
    request: ActionTemplateCreate,
    current_user: TokenPayload = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    svc = ActionTemplateService(db)
    template = await svc.create_template(request.model_dump())
    return _template_to_response(template)


@router.post("/extract-variables", summary="Extract {{variables}} from text")
async def extract_template_variables(
    request: ExtractVariablesRequest,
    current_user: TokenPayload = Depends(get_current_active_user),
):
    return {"variables": extract_variables(*request.texts)}


@router.get("/{template_id}", response_model=ActionTemplateResponse, summary="Get action template")
async def get_action_template(
    template_id: str,
    current_user: TokenPayload = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    template = await ActionTemplateService(db).get_or_404(template_id)
    return _template_to_response(template)


@router.put("/{template_id}", response_model=ActionTemplateResponse, summary="Update action template")
async def update_action_template(
    template_id: str,
    request: ActionTemplateUpdate,
    current_user: TokenPayload = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    svc = ActionTemplateService(db)
    template = await svc.update_template(template_id, request.model_dump(exclude_unset=True))
    return _template_to_response(template)


@router.delete(
    "/{template_id}",
    status_code=http_status.HTTP_204_NO_CONTENT,
    summary="Delete action template",
)
async def delete_action_template(
    template_id: str,
    current_user: TokenPayload = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    await ActionTemplateService(db).delete_template(template_id)


# -- Actions --

@router.post(
    "/{template_id}/duplicate",
    response_model=ActionTemplateResponse,
    status_code=http_status.HTTP_201_CREATED,
    summary="Duplicate action template",
)
async def duplicate_action_template(
    template_id: str,
    current_user: TokenPayload = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    copy = await ActionTemplateService(db).duplicate_template(template_id)
    return _template_to_response(copy)


@router.post("/{template_id}/preview", summary="Render a template with sample values")
async def preview_action_template(
    template_id: str,
    request: PreviewRequest,
    current_user: TokenPayload = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    svc = ActionTemplateService(db)
    template = await svc.get_or_404(template_id)
    return svc.preview(template, request.values)


@router.get("/{template_id}/variables", summary="Variables referenced by a template")
async def get_action_template_variables(
    template_id: str,
    current_user: TokenPayload = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    svc = ActionTemplateService(db)
    template = await svc.get_or_404(template_id)
    return {"template_id": template.id, "variables": svc.variables_of(template)}
