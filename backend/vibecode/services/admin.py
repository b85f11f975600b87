import uuid
from datetime import datetime, time, timezone
from typing import Optional
from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from ..auth import is_admin_user
from ..logger import get_logger
from ..models import Follow, User, Vibe, utcnow
from ..pagination import decode_cursor, paginate, parse_datetime
from ..schemas import AdminStats, AdminUser, AdminUserPage
from .presence import online_cutoff
from .tokens import revoke_all_tokens

logger = get_logger(__name__)


def start_of_day(now: datetime) -> datetime:
    return datetime.combine(now.date(), time.min, tzinfo=timezone.utc)

async def _count(db: AsyncSession, query) -> int:
    return int(await db.scalar(query) or 0)

async def get_dashboard_stats(db: AsyncSession, now: Optional[datetime] = None) -> AdminStats:
    now = now or utcnow()
    midnight = start_of_day(now)
    active = User.deleted_at.is_(None)

    return AdminStats(
        totalUsers=await _count(db, select(func.count()).select_from(User).where(active)),
        activeToday=await _count(db, select(func.count()).select_from(User).where(active, User.last_active_at > midnight)),
        totalVibes=await _count(db, select(func.count()).select_from(Vibe)),
        vibesToday=await _count(db, select(func.count()).select_from(Vibe).where(Vibe.vibe_date == now.date())),
        newUsersToday=await _count(db, select(func.count()).select_from(User).where(active, User.created_at > midnight)),
        bannedUsers=await _count(db, select(func.count()).select_from(User).where(User.deleted_at.is_not(None))),
        onlineNow=await _count(db, select(func.count()).select_from(User).where(active, User.last_active_at > online_cutoff(now))),
    )

async def list_users(db: AsyncSession, search: Optional[str], status: Optional[str], cursor: Optional[str], limit: int) -> AdminUserPage:
    vibe_count = select(func.count()).select_from(Vibe).where(Vibe.user_id == User.id).scalar_subquery()
    follower_count = select(func.count()).select_from(Follow).where(Follow.following_id == User.id).scalar_subquery()
    query = select(User, vibe_count.label("vibe_count"), follower_count.label("follower_count"))

    if search:
        pattern = f"%{search.strip().lower()}%"
        query = query.where(or_(func.lower(User.username).like(pattern), func.lower(User.display_name).like(pattern)))
    if status == "active":
        query = query.where(User.deleted_at.is_(None))
    elif status == "banned":
        query = query.where(User.deleted_at.is_not(None))

    if cursor:
        created_at, user_id = decode_cursor(cursor, parse_datetime, uuid.UUID)
        query = query.where(
            or_(User.created_at < created_at, and_(User.created_at == created_at, User.id < user_id))
        )
    query = query.order_by(User.created_at.desc(), User.id.desc()).limit(limit + 1)

    rows = (await db.execute(query)).all()
    page, next_cursor, has_more = paginate(rows, limit, lambda row: (row.User.created_at, row.User.id))
    users = [
        AdminUser(
            id=row.User.id,
            username=row.User.username,
            displayName=row.User.display_name,
            avatarUrl=row.User.avatar_url,
            isAdmin=is_admin_user(row.User.username, row.User.is_admin),
            createdAt=row.User.created_at,
            lastActiveAt=row.User.last_active_at,
            deletedAt=row.User.deleted_at,
            vibeCount=row.vibe_count or 0,
            followerCount=row.follower_count or 0,
        )
        for row in page
    ]
    return AdminUserPage(users=users, nextCursor=next_cursor, hasMore=has_more)

# Soft delete; also revokes refresh tokens so the user cannot mint new access tokens
async def ban_user(db: AsyncSession, user_id: uuid.UUID, reason: str = "") -> bool:
    result = await db.execute(
        update(User)
        .where(User.id == user_id, User.deleted_at.is_(None))
        .values(deleted_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await db.rollback()
        return False
    await revoke_all_tokens(db, user_id, commit=False)
    await db.commit()
    logger.info(f"banned user {user_id}: {reason or 'no reason given'}")
    return True

async def unban_user(db: AsyncSession, user_id: uuid.UUID) -> bool:
    result = await db.execute(
        update(User)
        .where(User.id == user_id, User.deleted_at.is_not(None))
        .values(deleted_at=None)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    if result.rowcount > 0:
        logger.info(f"unbanned user {user_id}")
    return result.rowcount > 0
