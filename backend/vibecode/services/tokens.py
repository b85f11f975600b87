import uuid
from datetime import timedelta
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from ..auth import REFRESH_TOKEN_TTL
from ..models import RefreshToken, utcnow


# Records an issued refresh token (caller commits)
def store_refresh_token(db: AsyncSession, user_id: uuid.UUID, token: str) -> None:
    db.add(RefreshToken(
        user_id=user_id,
        token=token,
        expires_at=utcnow() + timedelta(seconds=REFRESH_TOKEN_TTL),
    ))

# True when the token is known, unexpired and not revoked
async def is_refresh_token_valid(db: AsyncSession, user_id: uuid.UUID, token: str) -> bool:
    found = await db.scalar(
        select(RefreshToken.id).where(
            RefreshToken.user_id == user_id,
            RefreshToken.token == token,
            RefreshToken.expires_at > utcnow(),
            RefreshToken.revoked_at.is_(None),
        )
    )
    return found is not None

# Revokes the old token and stores the new one in a single transaction
async def rotate_refresh_token(db: AsyncSession, user_id: uuid.UUID, old_token: str, new_token: str) -> None:
    await db.execute(
        update(RefreshToken)
        .where(RefreshToken.user_id == user_id, RefreshToken.token == old_token)
        .values(revoked_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    store_refresh_token(db, user_id, new_token)
    await db.commit()

# Logout everywhere / ban
async def revoke_all_tokens(db: AsyncSession, user_id: uuid.UUID, commit: bool = True) -> None:
    await db.execute(
        update(RefreshToken)
        .where(RefreshToken.user_id == user_id, RefreshToken.revoked_at.is_(None))
        .values(revoked_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if commit:
        await db.commit()
