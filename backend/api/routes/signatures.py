"""Signature expiration sweep: run on demand and report the last run."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.dependencies import get_current_active_user, get_db
from core.security import TokenPayload
from services.signature_expiration import run_signature_sweep, sweep_status

router = APIRouter()


@router.post("/sweep", summary="Run the signature expiration sweep now")
async def run_sweep(
    current_user: TokenPayload = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    result = await run_signature_sweep(db)
    return result.to_dict()


@router.get("/sweep/status", summary="Result of the last sweep in this process")
async def get_sweep_status(
    current_user: TokenPayload = Depends(get_current_active_user),
):
    return sweep_status.to_dict()
