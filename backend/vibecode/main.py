import os
from contextlib import asynccontextmanager
from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
from .database import engine, get_db_async
from .errors import register_exception_handlers
from .logger import get_logger
from .models import Base
from .routers import admin, auth, uploads, users, vibes

logger = get_logger(__name__)

# Create tables on startup (async engine + sync-bridge)
async def init_models():
    async with engine.begin() as conn:
        # run_sync lets us call the synchronous create_all() using this async connection
        await conn.run_sync(Base.metadata.create_all)

@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_models()
    logger.info("database schema ready")
    yield
    await engine.dispose()
    logger.info("database connection pool closed")

app = FastAPI(title="VibeCode API", lifespan=lifespan)

# CORS configuration; credentials are allowed because auth rides on cookies
FRONTEND_ORIGIN = os.getenv("FRONTEND_ORIGIN")
if not FRONTEND_ORIGIN:
    raise RuntimeError("FRONTEND_ORIGIN is not set in environment variables.")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in FRONTEND_ORIGIN.split(",") if origin.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(auth.router)
app.include_router(users.router)
app.include_router(vibes.router)
app.include_router(uploads.router)
app.include_router(admin.router)

@app.get("/health")
async def health(db: AsyncSession = Depends(get_db_async)):
    await db.execute(text("SELECT 1"))
    return {"status": "ok"}
