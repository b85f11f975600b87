import uuid
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from ..logger import get_logger
from ..models import Reaction, User, Vibe
from ..schemas import ReactionList, ReactionOut
from .vibes import to_user_summary, visible_vibe_id

logger = get_logger(__name__)


class VibeNotFound(Exception):
    pass


class AlreadyReacted(Exception):
    pass


class ReactionNotFound(Exception):
    pass


async def _reaction_count(db: AsyncSession, vibe_id: uuid.UUID) -> int:
    return int(await db.scalar(select(Vibe.reaction_count).where(Vibe.id == vibe_id)) or 0)

# Adds the user's reaction and bumps the vibe's counter in one transaction
async def add_reaction(db: AsyncSession, vibe_id: uuid.UUID, user_id: uuid.UUID) -> int:
    if await visible_vibe_id(db, vibe_id) is None:
        raise VibeNotFound(str(vibe_id))

    existing = await db.scalar(
        select(Reaction.id).where(Reaction.vibe_id == vibe_id, Reaction.user_id == user_id)
    )
    if existing is not None:
        raise AlreadyReacted(str(vibe_id))

    db.add(Reaction(vibe_id=vibe_id, user_id=user_id))
    await db.execute(
        update(Vibe)
        .where(Vibe.id == vibe_id)
        .values(reaction_count=Vibe.reaction_count + 1)
        .execution_options(synchronize_session=False)
    )
    try:
        await db.commit()
    except IntegrityError:
        # lost a race against the same user's concurrent add
        await db.rollback()
        raise AlreadyReacted(str(vibe_id))

    logger.info(f"user {user_id} reacted to vibe {vibe_id}")
    return await _reaction_count(db, vibe_id)

# Removes the user's reaction and decrements the counter
async def remove_reaction(db: AsyncSession, vibe_id: uuid.UUID, user_id: uuid.UUID) -> int:
    result = await db.execute(
        delete(Reaction)
        .where(Reaction.vibe_id == vibe_id, Reaction.user_id == user_id)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await db.rollback()
        raise ReactionNotFound(str(vibe_id))

    await db.execute(
        update(Vibe)
        .where(Vibe.id == vibe_id, Vibe.reaction_count > 0)
        .values(reaction_count=Vibe.reaction_count - 1)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    logger.info(f"user {user_id} removed reaction from vibe {vibe_id}")
    return await _reaction_count(db, vibe_id)

async def list_reactions(db: AsyncSession, vibe_id: uuid.UUID) -> ReactionList:
    if await visible_vibe_id(db, vibe_id) is None:
        raise VibeNotFound(str(vibe_id))

    rows = (await db.execute(
        select(Reaction, User)
        .join(User, User.id == Reaction.user_id)
        .where(Reaction.vibe_id == vibe_id, User.deleted_at.is_(None))
        .order_by(Reaction.created_at.desc())
    )).all()

    reactions = [
        ReactionOut(id=row.Reaction.id, user=to_user_summary(row.User), createdAt=row.Reaction.created_at)
        for row in rows
    ]
    return ReactionList(reactions=reactions, total=len(reactions))
