import os
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from ..auth import (
    ACCESS_COOKIE,
    ACCESS_TOKEN_TTL,
    BANNED_MESSAGE,
    REFRESH_COOKIE,
    REFRESH_TOKEN_TTL,
    CurrentUser,
    TokenError,
    decode_token,
    generate_tokens,
    get_current_user,
    hash_password,
    is_admin_user,
    require_not_banned,
    verify_password,
)
from ..database import get_db_async
from ..logger import get_logger
from ..models import User
from ..schemas import AuthOut, LoginIn, MeOut, RefreshIn, RegisterIn, SuccessOut
from ..services.tokens import is_refresh_token_valid, revoke_all_tokens, rotate_refresh_token, store_refresh_token

logger = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

COOKIE_SECURE = os.getenv("COOKIE_SECURE", "false").lower() in ("1", "true", "yes")


def me_out(user: User) -> MeOut:
    return MeOut(
        id=user.id,
        username=user.username,
        displayName=user.display_name,
        avatarUrl=user.avatar_url,
        bio=user.bio,
        createdAt=user.created_at,
        isAdmin=is_admin_user(user.username, user.is_admin),
    )

def set_auth_cookies(response: Response, access_token: str, refresh_token: str) -> None:
    response.set_cookie(ACCESS_COOKIE, access_token, max_age=ACCESS_TOKEN_TTL, httponly=True, secure=COOKIE_SECURE, samesite="lax")
    response.set_cookie(REFRESH_COOKIE, refresh_token, max_age=REFRESH_TOKEN_TTL, httponly=True, secure=COOKIE_SECURE, samesite="lax", path="/auth")

# Issues a fresh token pair, records the refresh token and sets cookies
async def issue_tokens(db: AsyncSession, response: Response, user: User) -> AuthOut:
    access_token, refresh_token = generate_tokens(user.id, user.username)
    store_refresh_token(db, user.id, refresh_token)
    await db.commit()
    set_auth_cookies(response, access_token, refresh_token)
    return AuthOut(accessToken=access_token, refreshToken=refresh_token, user=me_out(user))


@router.post("/register", status_code=201, response_model=AuthOut)
async def register(payload: RegisterIn, response: Response, db: AsyncSession = Depends(get_db_async)):
    username = payload.username.strip().lower()

    existing = await db.scalar(select(User).where(User.username == username))
    if existing:
        raise HTTPException(status_code=409, detail="Username already taken")

    u = User(
        username=username,
        password_hash=hash_password(payload.password),
        display_name=(payload.displayName or username).strip(),
    )
    db.add(u)
    try:
        await db.commit()
    except IntegrityError:
        # a concurrent registration took the name between the check and the insert
        await db.rollback()
        raise HTTPException(status_code=409, detail="Username already taken")
    logger.info(f"registered user {u.id} ({username})")
    return await issue_tokens(db, response, u)

@router.post("/login", response_model=AuthOut)
async def login(payload: LoginIn, response: Response, db: AsyncSession = Depends(get_db_async)):
    u = await db.scalar(select(User).where(User.username == payload.username.strip().lower()))
    if not u or not verify_password(payload.password, u.password_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    if u.deleted_at is not None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=BANNED_MESSAGE)

    return await issue_tokens(db, response, u)

# Rotates the refresh token: the presented one is revoked, a new pair is issued
@router.post("/refresh", response_model=AuthOut)
async def refresh(request: Request, response: Response, payload: Optional[RefreshIn] = None, db: AsyncSession = Depends(get_db_async)):
    token = request.cookies.get(REFRESH_COOKIE) or (payload.refreshToken if payload else None)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Refresh token required")

    try:
        claims = decode_token(token, "refresh")
    except TokenError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired refresh token")

    u = await db.get(User, claims.user_id)
    if u is None or not await is_refresh_token_valid(db, u.id, token):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired refresh token")
    if u.deleted_at is not None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=BANNED_MESSAGE)

    access_token, refresh_token = generate_tokens(u.id, u.username)
    await rotate_refresh_token(db, u.id, token, refresh_token)
    set_auth_cookies(response, access_token, refresh_token)
    return AuthOut(accessToken=access_token, refreshToken=refresh_token, user=me_out(u))

@router.post("/logout", response_model=SuccessOut)
async def logout(response: Response, db: AsyncSession = Depends(get_db_async), me: CurrentUser = Depends(get_current_user)):
    await revoke_all_tokens(db, me.user_id)
    response.delete_cookie(ACCESS_COOKIE)
    response.delete_cookie(REFRESH_COOKIE, path="/auth")
    return SuccessOut()

@router.get("/me", response_model=MeOut)
async def whoami(db: AsyncSession = Depends(get_db_async), me: CurrentUser = Depends(require_not_banned)):
    u = await db.get(User, me.user_id)
    if not u:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return me_out(u)
