import uuid
from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from ..models import Follow, User, utcnow

# Users active within this window count as online
ONLINE_THRESHOLD = timedelta(minutes=5)
ONLINE_FOLLOWING_LIMIT = 20


def online_cutoff(now: Optional[datetime] = None) -> datetime:
    return (now or utcnow()) - ONLINE_THRESHOLD

# Heartbeat: stamps last_active_at (last write wins)
async def update_presence(db: AsyncSession, user_id: uuid.UUID, now: Optional[datetime] = None) -> None:
    await db.execute(
        update(User).where(User.id == user_id).values(last_active_at=now or utcnow())
    )
    await db.commit()

# Followed users seen in the last 5 minutes, most recent first
async def get_online_following(db: AsyncSession, user_id: uuid.UUID, now: Optional[datetime] = None) -> list[User]:
    result = await db.scalars(
        select(User)
        .join(Follow, Follow.following_id == User.id)
        .where(
            Follow.follower_id == user_id,
            User.deleted_at.is_(None),
            User.last_active_at > online_cutoff(now),
        )
        .order_by(User.last_active_at.desc())
        .limit(ONLINE_FOLLOWING_LIMIT)
    )
    return list(result.all())

async def is_user_online(db: AsyncSession, user_id: uuid.UUID, now: Optional[datetime] = None) -> bool:
    found = await db.scalar(
        select(User.id)
        .where(User.id == user_id, User.last_active_at > online_cutoff(now))
        .limit(1)
    )
    return found is not None
