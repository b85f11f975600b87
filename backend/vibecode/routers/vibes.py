import uuid
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from ..auth import CurrentUser, get_optional_user, require_not_banned
from ..database import get_db_async
from ..pagination import DEFAULT_PAGE_SIZE, InvalidCursor, clamp_limit
from ..schemas import (
    CommentCreated,
    CommentDeleted,
    CommentIn,
    CommentPage,
    CreateVibeIn,
    FeedPage,
    FeedSort,
    ReactionList,
    ReactionResult,
    SuccessOut,
    TodayOut,
    VibeOut,
)
from ..services import comments, reactions, vibes

router = APIRouter(prefix="/vibes", tags=["vibes"])

MAX_CAPTION_LENGTH = 500


def _viewer(me: Optional[CurrentUser]) -> Optional[uuid.UUID]:
    return me.user_id if me else None

# ---- Feeds ----
# Global chronological feed
@router.get("", response_model=FeedPage)
async def feed(
    cursor: Optional[str] = None,
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1),
    db: AsyncSession = Depends(get_db_async),
    me: Optional[CurrentUser] = Depends(get_optional_user),
):
    try:
        return await vibes.get_feed(db, _viewer(me), cursor, clamp_limit(limit))
    except InvalidCursor:
        raise HTTPException(status_code=400, detail="Invalid cursor")

# Daily gate: has the caller posted today (UTC)?
@router.get("/today", response_model=TodayOut)
async def today(db: AsyncSession = Depends(get_db_async), me: CurrentUser = Depends(require_not_banned)):
    vibe = await vibes.get_today_vibe(db, me.user_id)
    return TodayOut(hasPostedToday=vibe is not None, vibe=vibe)

@router.get("/discovery", response_model=FeedPage)
async def discovery(
    cursor: Optional[str] = None,
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1),
    sort: FeedSort = "recent",
    db: AsyncSession = Depends(get_db_async),
    me: Optional[CurrentUser] = Depends(get_optional_user),
):
    try:
        return await vibes.get_discovery_feed(db, _viewer(me), cursor, clamp_limit(limit), sort)
    except InvalidCursor:
        raise HTTPException(status_code=400, detail="Invalid cursor")

@router.get("/following", response_model=FeedPage)
async def following_feed(
    cursor: Optional[str] = None,
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1),
    db: AsyncSession = Depends(get_db_async),
    me: CurrentUser = Depends(require_not_banned),
):
    try:
        return await vibes.get_following_feed(db, me.user_id, cursor, clamp_limit(limit))
    except InvalidCursor:
        raise HTTPException(status_code=400, detail="Invalid cursor")

# ---- Single vibes ----
@router.get("/{vibe_id}", response_model=VibeOut)
async def get_vibe(vibe_id: uuid.UUID, db: AsyncSession = Depends(get_db_async), me: Optional[CurrentUser] = Depends(get_optional_user)):
    vibe = await vibes.get_vibe(db, vibe_id, _viewer(me))
    if not vibe:
        raise HTTPException(status_code=404, detail="Vibe not found")
    return vibe

# Create or replace today's vibe (image already uploaded through a presigned URL)
@router.post("", status_code=201, response_model=VibeOut)
async def create_vibe(payload: CreateVibeIn, db: AsyncSession = Depends(get_db_async), me: CurrentUser = Depends(require_not_banned)):
    caption = (payload.caption or "").strip() or None
    if caption and len(caption) > MAX_CAPTION_LENGTH:
        raise HTTPException(status_code=400, detail="Caption must be 500 characters or less")

    return await vibes.create_or_replace_today_vibe(
        db,
        me.user_id,
        image_url=payload.imageUrl.strip(),
        image_key=payload.imageKey.strip(),
        caption=caption,
    )

@router.delete("/{vibe_id}", response_model=SuccessOut)
async def delete_vibe(vibe_id: uuid.UUID, db: AsyncSession = Depends(get_db_async), me: CurrentUser = Depends(require_not_banned)):
    if not await vibes.delete_vibe(db, vibe_id, owner_id=me.user_id):
        raise HTTPException(status_code=404, detail="Vibe not found or not authorized")
    return SuccessOut()

# ---- Reactions ----
@router.post("/{vibe_id}/reactions", response_model=ReactionResult)
async def add_reaction(vibe_id: uuid.UUID, db: AsyncSession = Depends(get_db_async), me: CurrentUser = Depends(require_not_banned)):
    try:
        count = await reactions.add_reaction(db, vibe_id, me.user_id)
    except reactions.VibeNotFound:
        raise HTTPException(status_code=404, detail="Vibe not found")
    except reactions.AlreadyReacted:
        raise HTTPException(status_code=409, detail="Already reacted to this vibe")
    return ReactionResult(reactionCount=count)

@router.delete("/{vibe_id}/reactions", response_model=ReactionResult)
async def remove_reaction(vibe_id: uuid.UUID, db: AsyncSession = Depends(get_db_async), me: CurrentUser = Depends(require_not_banned)):
    try:
        count = await reactions.remove_reaction(db, vibe_id, me.user_id)
    except reactions.ReactionNotFound:
        raise HTTPException(status_code=404, detail="Reaction not found")
    return ReactionResult(reactionCount=count)

@router.get("/{vibe_id}/reactions", response_model=ReactionList)
async def list_reactions(vibe_id: uuid.UUID, db: AsyncSession = Depends(get_db_async)):
    try:
        return await reactions.list_reactions(db, vibe_id)
    except reactions.VibeNotFound:
        raise HTTPException(status_code=404, detail="Vibe not found")

# ---- Comments ----
@router.get("/{vibe_id}/comments", response_model=CommentPage)
async def list_comments(
    vibe_id: uuid.UUID,
    cursor: Optional[str] = None,
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1),
    db: AsyncSession = Depends(get_db_async),
):
    try:
        return await comments.list_comments(db, vibe_id, cursor, clamp_limit(limit))
    except comments.VibeNotFound:
        raise HTTPException(status_code=404, detail="Vibe not found")
    except InvalidCursor:
        raise HTTPException(status_code=400, detail="Invalid cursor")

@router.post("/{vibe_id}/comments", status_code=201, response_model=CommentCreated)
async def add_comment(vibe_id: uuid.UUID, payload: CommentIn, db: AsyncSession = Depends(get_db_async), me: CurrentUser = Depends(require_not_banned)):
    content = payload.content.strip()
    if not content:
        raise HTTPException(status_code=400, detail="Comment content is required")
    if len(content) > comments.MAX_COMMENT_LENGTH:
        raise HTTPException(status_code=400, detail="Comment must be 280 characters or less")

    try:
        comment, count = await comments.add_comment(db, vibe_id, me.user_id, content)
    except comments.VibeNotFound:
        raise HTTPException(status_code=404, detail="Vibe not found")
    return CommentCreated(comment=comment, commentCount=count)

@router.delete("/{vibe_id}/comments/{comment_id}", response_model=CommentDeleted)
async def delete_comment(vibe_id: uuid.UUID, comment_id: uuid.UUID, db: AsyncSession = Depends(get_db_async), me: CurrentUser = Depends(require_not_banned)):
    if not await comments.delete_comment(db, vibe_id, comment_id, me.user_id):
        raise HTTPException(status_code=404, detail="Comment not found or not authorized")
    return CommentDeleted(commentCount=await comments.count_comments(db, vibe_id))
