from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from ..auth import CurrentUser, get_optional_user, require_not_banned
from ..database import get_db_async
from ..models import User
from ..pagination import DEFAULT_PAGE_SIZE, InvalidCursor, clamp_limit
from ..schemas import FeedPage, FollowOut, MeOut, OnlineUser, OnlineUsersOut, StreakOut, SuccessOut, UpdateProfileIn, UserPage, UserProfile
from ..services import presence, users, vibes
from ..services.streaks import get_streak
from .auth import me_out

router = APIRouter(prefix="/users", tags=["users"])


async def _user_or_404(db: AsyncSession, username: str) -> User:
    u = await users.get_by_username(db, username)
    if not u:
        raise HTTPException(status_code=404, detail="User not found")
    return u

# ---- Current user ----
@router.get("/me", response_model=MeOut)
async def get_me(db: AsyncSession = Depends(get_db_async), me: CurrentUser = Depends(require_not_banned)):
    u = await db.get(User, me.user_id)
    if not u:
        raise HTTPException(status_code=404, detail="User not found")
    return me_out(u)

@router.patch("/me", response_model=MeOut)
async def update_me(payload: UpdateProfileIn, db: AsyncSession = Depends(get_db_async), me: CurrentUser = Depends(require_not_banned)):
    display_name = payload.displayName.strip() if payload.displayName is not None else None
    if display_name is not None and not display_name:
        raise HTTPException(status_code=400, detail="Display name must not be empty")

    u = await users.update_profile(db, me.user_id, display_name=display_name, bio=payload.bio)
    if not u:
        raise HTTPException(status_code=404, detail="User not found")
    return me_out(u)

# Presence heartbeat
@router.patch("/me/presence", response_model=SuccessOut)
async def heartbeat(db: AsyncSession = Depends(get_db_async), me: CurrentUser = Depends(require_not_banned)):
    await presence.update_presence(db, me.user_id)
    return SuccessOut()

@router.get("/me/following/online", response_model=OnlineUsersOut)
async def online_following(db: AsyncSession = Depends(get_db_async), me: CurrentUser = Depends(require_not_banned)):
    online = await presence.get_online_following(db, me.user_id)
    return OnlineUsersOut(users=[
        OnlineUser(
            id=u.id,
            username=u.username,
            displayName=u.display_name,
            avatarUrl=u.avatar_url,
            lastActiveAt=u.last_active_at,
        )
        for u in online
    ])

# ---- Profiles ----
@router.get("/{username}", response_model=UserProfile)
async def get_user(username: str, db: AsyncSession = Depends(get_db_async), me: Optional[CurrentUser] = Depends(get_optional_user)):
    u = await _user_or_404(db, username)
    return await users.get_profile(db, u, me.user_id if me else None)

@router.get("/{username}/vibes", response_model=FeedPage)
async def user_vibes(
    username: str,
    cursor: Optional[str] = None,
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1),
    db: AsyncSession = Depends(get_db_async),
    me: Optional[CurrentUser] = Depends(get_optional_user),
):
    u = await _user_or_404(db, username)
    try:
        return await vibes.get_user_vibes(db, u.id, me.user_id if me else None, cursor, clamp_limit(limit))
    except InvalidCursor:
        raise HTTPException(status_code=400, detail="Invalid cursor")

@router.get("/{username}/streak", response_model=StreakOut)
async def user_streak(username: str, db: AsyncSession = Depends(get_db_async)):
    u = await _user_or_404(db, username)
    return await get_streak(db, u.id)

# ---- Follows ----
@router.post("/{username}/follow", response_model=FollowOut)
async def follow_user(username: str, db: AsyncSession = Depends(get_db_async), me: CurrentUser = Depends(require_not_banned)):
    target = await _user_or_404(db, username)
    if target.id == me.user_id:
        raise HTTPException(status_code=400, detail="Cannot follow yourself")
    await users.follow(db, me.user_id, target.id)
    return FollowOut(following=True)

@router.delete("/{username}/follow", response_model=FollowOut)
async def unfollow_user(username: str, db: AsyncSession = Depends(get_db_async), me: CurrentUser = Depends(require_not_banned)):
    target = await _user_or_404(db, username)
    if not await users.unfollow(db, me.user_id, target.id):
        raise HTTPException(status_code=404, detail="Not following this user")
    return FollowOut(following=False)

@router.get("/{username}/followers", response_model=UserPage)
async def followers(username: str, cursor: Optional[str] = None, limit: int = Query(DEFAULT_PAGE_SIZE, ge=1), db: AsyncSession = Depends(get_db_async)):
    u = await _user_or_404(db, username)
    try:
        return await users.get_followers(db, u.id, cursor, clamp_limit(limit))
    except InvalidCursor:
        raise HTTPException(status_code=400, detail="Invalid cursor")

@router.get("/{username}/following", response_model=UserPage)
async def following(username: str, cursor: Optional[str] = None, limit: int = Query(DEFAULT_PAGE_SIZE, ge=1), db: AsyncSession = Depends(get_db_async)):
    u = await _user_or_404(db, username)
    try:
        return await users.get_following(db, u.id, cursor, clamp_limit(limit))
    except InvalidCursor:
        raise HTTPException(status_code=400, detail="Invalid cursor")
