import uuid
from typing import Optional
from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from ..logger import get_logger
from ..models import Comment, User
from ..pagination import decode_cursor, paginate, parse_datetime
from ..schemas import CommentOut, CommentPage
from .vibes import to_user_summary, visible_vibe_id

logger = get_logger(__name__)

MAX_COMMENT_LENGTH = 280


class VibeNotFound(Exception):
    pass


def to_comment_out(comment: Comment, author: User) -> CommentOut:
    return CommentOut(
        id=comment.id,
        vibeId=comment.vibe_id,
        content=comment.content,
        createdAt=comment.created_at,
        user=to_user_summary(author),
    )

# Comments by banned users are left in place but not shown or counted
def _visible_comments(vibe_id: uuid.UUID):
    return (
        select(Comment, User)
        .join(User, User.id == Comment.user_id)
        .where(Comment.vibe_id == vibe_id, User.deleted_at.is_(None))
    )

async def count_comments(db: AsyncSession, vibe_id: uuid.UUID) -> int:
    total = await db.scalar(
        select(func.count())
        .select_from(Comment)
        .join(User, User.id == Comment.user_id)
        .where(Comment.vibe_id == vibe_id, User.deleted_at.is_(None))
    )
    return int(total or 0)

async def add_comment(db: AsyncSession, vibe_id: uuid.UUID, user_id: uuid.UUID, content: str) -> tuple[CommentOut, int]:
    if await visible_vibe_id(db, vibe_id) is None:
        raise VibeNotFound(str(vibe_id))

    comment = Comment(vibe_id=vibe_id, user_id=user_id, content=content)
    db.add(comment)
    await db.commit()
    logger.info(f"user {user_id} commented on vibe {vibe_id}")

    author = await db.get(User, user_id)
    return to_comment_out(comment, author), await count_comments(db, vibe_id)

# Oldest first, keyset on (created_at, id)
async def list_comments(db: AsyncSession, vibe_id: uuid.UUID, cursor: Optional[str], limit: int) -> CommentPage:
    if await visible_vibe_id(db, vibe_id) is None:
        raise VibeNotFound(str(vibe_id))

    query = _visible_comments(vibe_id)
    if cursor:
        created_at, comment_id = decode_cursor(cursor, parse_datetime, uuid.UUID)
        query = query.where(
            or_(
                Comment.created_at > created_at,
                and_(Comment.created_at == created_at, Comment.id > comment_id),
            )
        )
    query = query.order_by(Comment.created_at.asc(), Comment.id.asc()).limit(limit + 1)

    rows = (await db.execute(query)).all()
    page, next_cursor, has_more = paginate(rows, limit, lambda row: (row.Comment.created_at, row.Comment.id))
    return CommentPage(
        comments=[to_comment_out(row.Comment, row.User) for row in page],
        nextCursor=next_cursor,
        hasMore=has_more,
        total=await count_comments(db, vibe_id),
    )

# Only the comment's author may delete it
async def delete_comment(db: AsyncSession, vibe_id: uuid.UUID, comment_id: uuid.UUID, user_id: uuid.UUID) -> bool:
    result = await db.execute(
        delete(Comment)
        .where(Comment.id == comment_id, Comment.vibe_id == vibe_id, Comment.user_id == user_id)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    if result.rowcount > 0:
        logger.info(f"user {user_id} deleted comment {comment_id}")
    return result.rowcount > 0
