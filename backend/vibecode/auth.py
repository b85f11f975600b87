import os
import time
import uuid
from dataclasses import dataclass
from typing import Optional
import bcrypt
import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from .database import get_db_async
from .logger import get_logger
from .models import User

logger = get_logger(__name__)

# Loads .env (database.py already called load_dotenv)
JWT_SECRET = os.getenv("JWT_SECRET")
if not JWT_SECRET:
    raise RuntimeError("JWT_SECRET is not set")

JWT_ALGORITHM = "HS256"
ACCESS_TOKEN_TTL = int(os.getenv("JWT_ACCESS_EXPIRY_MINUTES", "15")) * 60
REFRESH_TOKEN_TTL = int(os.getenv("JWT_REFRESH_EXPIRY_DAYS", "7")) * 24 * 60 * 60

ACCESS_COOKIE = "access_token"
REFRESH_COOKIE = "refresh_token"

ADMIN_USERNAMES = {
    name.strip().lower()
    for name in os.getenv("ADMIN_USERNAMES", "").split(",")
    if name.strip()
}

BANNED_MESSAGE = "Your account has been suspended due to a policy violation"

bearer_scheme = HTTPBearer(auto_error=False)


class TokenError(Exception):
    pass


class WrongTokenType(TokenError):
    pass


# Identity carried by a verified access token
@dataclass(frozen=True)
class CurrentUser:
    user_id: uuid.UUID
    username: str


# Hashes a raw (plain-text) password with bcrypt and returns the hash
def hash_password(raw_password: str) -> str:
    return bcrypt.hashpw(raw_password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")

# Verifies a raw password against a stored bcrypt hash
def verify_password(raw_password: str, hashed: str) -> bool:
    return bcrypt.checkpw(raw_password.encode("utf-8"), hashed.encode("utf-8"))

# Creates a signed JWT of the given type ("access" or "refresh")
def generate_token(user_id: uuid.UUID, username: str, token_type: str, ttl: Optional[int] = None) -> str:
    now = int(time.time())
    if ttl is None:
        ttl = ACCESS_TOKEN_TTL if token_type == "access" else REFRESH_TOKEN_TTL

    payload = {
        "userId": str(user_id),
        "username": username,
        "type": token_type,
        "iat": now,
        "exp": now + ttl,
        # unique id so two tokens minted in the same second differ
        "jti": uuid.uuid4().hex,
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)

# Returns (access_token, refresh_token)
def generate_tokens(user_id: uuid.UUID, username: str) -> tuple[str, str]:
    return (
        generate_token(user_id, username, "access"),
        generate_token(user_id, username, "refresh"),
    )

# Verifies signature, expiry and token type, returns the identity inside
def decode_token(token: str, expected_type: str = "access") -> CurrentUser:
    try:
        data = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.InvalidTokenError as exc:
        raise TokenError(str(exc)) from exc

    if data.get("type") != expected_type:
        raise WrongTokenType(f"expected {expected_type} token")

    try:
        return CurrentUser(user_id=uuid.UUID(data["userId"]), username=str(data["username"]))
    except (KeyError, TypeError, ValueError) as exc:
        raise TokenError("malformed token payload") from exc

# Cookie first, then Authorization: Bearer
def extract_access_token(request: Request, creds: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    token = request.cookies.get(ACCESS_COOKIE)
    if token:
        return token
    if creds is not None and creds.scheme.lower() == "bearer" and creds.credentials:
        return creds.credentials
    return None

# --- Dependencies ---
# Verifies the access token, no database lookup
async def get_current_user(request: Request, creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> CurrentUser:
    token = extract_access_token(request, creds)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")

    try:
        return decode_token(token, "access")
    except WrongTokenType:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token type")
    except TokenError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")

# Same as get_current_user but anonymous (None) on any failure
async def get_optional_user(request: Request, creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> Optional[CurrentUser]:
    token = extract_access_token(request, creds)
    if not token:
        return None
    try:
        return decode_token(token, "access")
    except TokenError:
        return None

# Rejects soft-deleted (banned) users. Fails open when the lookup itself errors.
async def require_not_banned(me: CurrentUser = Depends(get_current_user), db: AsyncSession = Depends(get_db_async)) -> CurrentUser:
    try:
        row = (await db.execute(select(User.deleted_at).where(User.id == me.user_id))).first()
    except SQLAlchemyError:
        logger.exception(f"ban check failed for user {me.user_id}, allowing request")
        await db.rollback()
        return me

    if row is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    if row.deleted_at is not None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=BANNED_MESSAGE)
    return me

def is_admin_user(username: str, is_admin_flag: bool) -> bool:
    return bool(is_admin_flag) or username.lower() in ADMIN_USERNAMES

async def require_admin(me: CurrentUser = Depends(require_not_banned), db: AsyncSession = Depends(get_db_async)) -> CurrentUser:
    row = (await db.execute(select(User.username, User.is_admin).where(User.id == me.user_id))).first()
    if row is None or not is_admin_user(row.username, row.is_admin):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return me
