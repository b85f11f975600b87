import uuid
from datetime import date
from typing import Optional
from sqlalchemy import and_, delete, exists, false, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select
from ..logger import get_logger
from ..models import Comment, Follow, Reaction, User, Vibe, utcnow
from ..pagination import decode_cursor, paginate, parse_datetime, parse_int
from ..schemas import FeedPage, UserSummary, VibeOut

logger = get_logger(__name__)


def utc_today() -> date:
    return utcnow().date()

def to_user_summary(user: User) -> UserSummary:
    return UserSummary(
        id=user.id,
        username=user.username,
        displayName=user.display_name,
        avatarUrl=user.avatar_url,
    )

def to_vibe_out(row) -> VibeOut:
    vibe: Vibe = row.Vibe
    return VibeOut(
        id=vibe.id,
        user=to_user_summary(row.User),
        imageUrl=vibe.image_url,
        caption=vibe.caption,
        vibeDate=vibe.vibe_date,
        createdAt=vibe.created_at,
        reactionCount=vibe.reaction_count,
        hasVibed=bool(row.has_vibed),
    )

# Vibe + author + per-viewer "has reacted" flag, hiding banned authors
def vibe_select(viewer_id: Optional[uuid.UUID]) -> Select:
    if viewer_id is not None:
        has_vibed = exists().where(Reaction.vibe_id == Vibe.id, Reaction.user_id == viewer_id)
    else:
        has_vibed = false()
    return (
        select(Vibe, User, has_vibed.label("has_vibed"))
        .join(User, User.id == Vibe.user_id)
        .where(User.deleted_at.is_(None))
    )

# Applies keyset ordering + cursor, fetches limit+1 rows and builds the page
async def _run_feed(db: AsyncSession, query: Select, cursor: Optional[str], limit: int, sort: str = "recent") -> FeedPage:
    if sort == "popular":
        if cursor:
            count, created_at, vibe_id = decode_cursor(cursor, parse_int, parse_datetime, uuid.UUID)
            query = query.where(
                or_(
                    Vibe.reaction_count < count,
                    and_(
                        Vibe.reaction_count == count,
                        or_(
                            Vibe.created_at < created_at,
                            and_(Vibe.created_at == created_at, Vibe.id < vibe_id),
                        ),
                    ),
                )
            )
        query = query.order_by(Vibe.reaction_count.desc(), Vibe.created_at.desc(), Vibe.id.desc())
        cursor_key = lambda row: (row.Vibe.reaction_count, row.Vibe.created_at, row.Vibe.id)
    else:
        if cursor:
            created_at, vibe_id = decode_cursor(cursor, parse_datetime, uuid.UUID)
            query = query.where(
                or_(
                    Vibe.created_at < created_at,
                    and_(Vibe.created_at == created_at, Vibe.id < vibe_id),
                )
            )
        query = query.order_by(Vibe.created_at.desc(), Vibe.id.desc())
        cursor_key = lambda row: (row.Vibe.created_at, row.Vibe.id)

    rows = (await db.execute(query.limit(limit + 1))).all()
    page, next_cursor, has_more = paginate(rows, limit, cursor_key)
    return FeedPage(vibes=[to_vibe_out(row) for row in page], nextCursor=next_cursor, hasMore=has_more)

# Global chronological feed
async def get_feed(db: AsyncSession, viewer_id: Optional[uuid.UUID], cursor: Optional[str], limit: int) -> FeedPage:
    return await _run_feed(db, vibe_select(viewer_id), cursor, limit)

# Vibes from users the viewer follows
async def get_following_feed(db: AsyncSession, user_id: uuid.UUID, cursor: Optional[str], limit: int) -> FeedPage:
    followed = select(Follow.following_id).where(Follow.follower_id == user_id)
    query = vibe_select(user_id).where(Vibe.user_id.in_(followed))
    return await _run_feed(db, query, cursor, limit)

# Public discovery feed, by recency or by reaction count
async def get_discovery_feed(db: AsyncSession, viewer_id: Optional[uuid.UUID], cursor: Optional[str], limit: int, sort: str = "recent") -> FeedPage:
    return await _run_feed(db, vibe_select(viewer_id), cursor, limit, sort)

# One user's vibe history
async def get_user_vibes(db: AsyncSession, owner_id: uuid.UUID, viewer_id: Optional[uuid.UUID], cursor: Optional[str], limit: int) -> FeedPage:
    query = vibe_select(viewer_id).where(Vibe.user_id == owner_id)
    return await _run_feed(db, query, cursor, limit)

# Vibe id if it exists and its author is not banned
async def visible_vibe_id(db: AsyncSession, vibe_id: uuid.UUID) -> Optional[uuid.UUID]:
    return await db.scalar(
        select(Vibe.id).join(User, User.id == Vibe.user_id).where(Vibe.id == vibe_id, User.deleted_at.is_(None))
    )

async def get_vibe(db: AsyncSession, vibe_id: uuid.UUID, viewer_id: Optional[uuid.UUID] = None) -> Optional[VibeOut]:
    row = (await db.execute(vibe_select(viewer_id).where(Vibe.id == vibe_id))).first()
    return to_vibe_out(row) if row else None

# The user's vibe for the given (default: current UTC) date, if any
async def get_today_vibe(db: AsyncSession, user_id: uuid.UUID, today: Optional[date] = None) -> Optional[VibeOut]:
    query = vibe_select(user_id).where(Vibe.user_id == user_id, Vibe.vibe_date == (today or utc_today()))
    row = (await db.execute(query.limit(1))).first()
    return to_vibe_out(row) if row else None

async def _upsert_today(db: AsyncSession, user_id: uuid.UUID, image_url: str, image_key: str, caption: Optional[str], today: date) -> uuid.UUID:
    existing = await db.scalar(select(Vibe).where(Vibe.user_id == user_id, Vibe.vibe_date == today))
    if existing:
        existing.image_url = image_url
        existing.image_key = image_key
        existing.caption = caption
        existing.created_at = utcnow()
        await db.commit()
        logger.info(f"replaced vibe {existing.id} for user {user_id} on {today}")
        return existing.id

    vibe = Vibe(user_id=user_id, image_url=image_url, image_key=image_key, caption=caption, vibe_date=today)
    db.add(vibe)
    await db.commit()
    logger.info(f"created vibe {vibe.id} for user {user_id} on {today}")
    return vibe.id

# Creates today's vibe or replaces it; the vibe id and its reactions survive a replace
async def create_or_replace_today_vibe(
    db: AsyncSession,
    user_id: uuid.UUID,
    image_url: str,
    image_key: str,
    caption: Optional[str] = None,
    today: Optional[date] = None,
) -> VibeOut:
    today = today or utc_today()
    try:
        vibe_id = await _upsert_today(db, user_id, image_url, image_key, caption, today)
    except IntegrityError:
        # a concurrent request inserted today's row first, replace it instead
        await db.rollback()
        vibe_id = await _upsert_today(db, user_id, image_url, image_key, caption, today)

    vibe = await get_vibe(db, vibe_id, user_id)
    if vibe is None:
        raise RuntimeError("failed to fetch created vibe")
    return vibe

# Deletes a vibe with its reactions and comments; restricted to its owner unless owner_id is None
async def delete_vibe(db: AsyncSession, vibe_id: uuid.UUID, owner_id: Optional[uuid.UUID] = None) -> bool:
    query = select(Vibe).where(Vibe.id == vibe_id)
    if owner_id is not None:
        query = query.where(Vibe.user_id == owner_id)
    vibe = await db.scalar(query)
    if vibe is None:
        return False

    await db.execute(delete(Reaction).where(Reaction.vibe_id == vibe.id))
    await db.execute(delete(Comment).where(Comment.vibe_id == vibe.id))
    await db.delete(vibe)
    await db.commit()
    logger.info(f"deleted vibe {vibe_id}")
    return True
