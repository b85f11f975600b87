import uuid
from typing import Literal, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from ..auth import CurrentUser, require_admin
from ..database import get_db_async
from ..logger import get_logger
from ..pagination import DEFAULT_PAGE_SIZE, InvalidCursor, clamp_limit
from ..schemas import AdminStats, AdminUserPage, BanIn, SuccessOut
from ..services import admin, vibes

logger = get_logger(__name__)

# Every route here requires an admin
router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


@router.get("/stats", response_model=AdminStats)
async def stats(db: AsyncSession = Depends(get_db_async)):
    return await admin.get_dashboard_stats(db)

@router.get("/users", response_model=AdminUserPage)
async def list_users(
    search: Optional[str] = None,
    status: Optional[Literal["active", "banned"]] = None,
    cursor: Optional[str] = None,
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1),
    db: AsyncSession = Depends(get_db_async),
):
    try:
        return await admin.list_users(db, search, status, cursor, clamp_limit(limit))
    except InvalidCursor:
        raise HTTPException(status_code=400, detail="Invalid cursor")

@router.post("/users/{user_id}/ban", response_model=SuccessOut)
async def ban(user_id: uuid.UUID, payload: Optional[BanIn] = None, db: AsyncSession = Depends(get_db_async), me: CurrentUser = Depends(require_admin)):
    if user_id == me.user_id:
        raise HTTPException(status_code=400, detail="Cannot ban yourself")
    if not await admin.ban_user(db, user_id, payload.reason if payload else ""):
        raise HTTPException(status_code=404, detail="User not found or already banned")
    logger.info(f"admin {me.username} banned {user_id}")
    return SuccessOut()

@router.post("/users/{user_id}/unban", response_model=SuccessOut)
async def unban(user_id: uuid.UUID, db: AsyncSession = Depends(get_db_async), me: CurrentUser = Depends(require_admin)):
    if not await admin.unban_user(db, user_id):
        raise HTTPException(status_code=404, detail="User not found or not banned")
    logger.info(f"admin {me.username} unbanned {user_id}")
    return SuccessOut()

@router.delete("/vibes/{vibe_id}", response_model=SuccessOut)
async def remove_vibe(vibe_id: uuid.UUID, db: AsyncSession = Depends(get_db_async), me: CurrentUser = Depends(require_admin)):
    if not await vibes.delete_vibe(db, vibe_id):
        raise HTTPException(status_code=404, detail="Vibe not found")
    logger.info(f"admin {me.username} removed vibe {vibe_id}")
    return SuccessOut()
