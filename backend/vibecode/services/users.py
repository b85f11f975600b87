import uuid
from typing import Optional
from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from ..logger import get_logger
from ..models import Follow, User, Vibe, utcnow
from ..pagination import decode_cursor, paginate, parse_datetime
from ..schemas import UserPage, UserProfile
from .presence import is_user_online
from .vibes import to_user_summary

logger = get_logger(__name__)


# Active (not banned) user by username
async def get_by_username(db: AsyncSession, username: str) -> Optional[User]:
    return await db.scalar(
        select(User).where(User.username == username.strip().lower(), User.deleted_at.is_(None))
    )

async def is_following(db: AsyncSession, follower_id: uuid.UUID, following_id: uuid.UUID) -> bool:
    found = await db.scalar(
        select(Follow.follower_id)
        .where(Follow.follower_id == follower_id, Follow.following_id == following_id)
        .limit(1)
    )
    return found is not None

async def get_profile(db: AsyncSession, user: User, viewer_id: Optional[uuid.UUID] = None) -> UserProfile:
    vibe_count = await db.scalar(select(func.count()).select_from(Vibe).where(Vibe.user_id == user.id))
    follower_count = await db.scalar(select(func.count()).select_from(Follow).where(Follow.following_id == user.id))
    following_count = await db.scalar(select(func.count()).select_from(Follow).where(Follow.follower_id == user.id))

    i_follow = False
    online = False
    if viewer_id is not None:
        i_follow = viewer_id != user.id and await is_following(db, viewer_id, user.id)
        # presence is only visible to followers (and to the user themself)
        if i_follow or viewer_id == user.id:
            online = await is_user_online(db, user.id)

    return UserProfile(
        id=user.id,
        username=user.username,
        displayName=user.display_name,
        avatarUrl=user.avatar_url,
        bio=user.bio,
        createdAt=user.created_at,
        vibeCount=vibe_count or 0,
        followerCount=follower_count or 0,
        followingCount=following_count or 0,
        isFollowing=i_follow,
        isOnline=online,
    )

# Applies the given profile fields; None means "leave unchanged"
async def update_profile(db: AsyncSession, user_id: uuid.UUID, display_name: Optional[str] = None, bio: Optional[str] = None) -> Optional[User]:
    user = await db.get(User, user_id)
    if user is None:
        return None

    if display_name is not None:
        user.display_name = display_name
    if bio is not None:
        user.bio = bio
    if display_name is not None or bio is not None:
        user.updated_at = utcnow()
        await db.commit()
    return user

# Returns False when already following
async def follow(db: AsyncSession, follower_id: uuid.UUID, following_id: uuid.UUID) -> bool:
    if follower_id == following_id:
        raise ValueError("Cannot follow yourself")
    if await is_following(db, follower_id, following_id):
        return False

    db.add(Follow(follower_id=follower_id, following_id=following_id))
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        return False
    logger.info(f"user {follower_id} followed {following_id}")
    return True

# Returns False when there was nothing to remove
async def unfollow(db: AsyncSession, follower_id: uuid.UUID, following_id: uuid.UUID) -> bool:
    result = await db.execute(
        delete(Follow)
        .where(Follow.follower_id == follower_id, Follow.following_id == following_id)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount > 0

async def _follow_page(db: AsyncSession, user_id: uuid.UUID, direction: str, cursor: Optional[str], limit: int) -> UserPage:
    if direction == "followers":
        # people following user_id
        query = select(User, Follow.created_at).join(Follow, Follow.follower_id == User.id).where(Follow.following_id == user_id)
    else:
        # people user_id follows
        query = select(User, Follow.created_at).join(Follow, Follow.following_id == User.id).where(Follow.follower_id == user_id)

    query = query.where(User.deleted_at.is_(None))
    if cursor:
        created_at, other_id = decode_cursor(cursor, parse_datetime, uuid.UUID)
        query = query.where(
            or_(
                Follow.created_at < created_at,
                and_(Follow.created_at == created_at, User.id < other_id),
            )
        )
    query = query.order_by(Follow.created_at.desc(), User.id.desc()).limit(limit + 1)

    rows = (await db.execute(query)).all()
    page, next_cursor, has_more = paginate(rows, limit, lambda row: (row.created_at, row.User.id))
    return UserPage(users=[to_user_summary(row.User) for row in page], nextCursor=next_cursor, hasMore=has_more)

async def get_followers(db: AsyncSession, user_id: uuid.UUID, cursor: Optional[str], limit: int) -> UserPage:
    return await _follow_page(db, user_id, "followers", cursor, limit)

async def get_following(db: AsyncSession, user_id: uuid.UUID, cursor: Optional[str], limit: int) -> UserPage:
    return await _follow_page(db, user_id, "following", cursor, limit)
