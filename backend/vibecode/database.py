import os
from dotenv import load_dotenv
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker

# DATABASE_URL, DB_ECHO and the pool sizes may come from a local .env
load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL is not set in environment variables")

DB_ECHO = os.getenv("DB_ECHO", "false").lower() in ("1", "true", "yes")


# Keyword arguments for create_async_engine; SQLite has no server-side pool to size
def engine_options(url: str) -> dict:
    options = {"echo": DB_ECHO, "pool_pre_ping": True}
    if make_url(url).get_backend_name() != "sqlite":
        options["pool_size"] = int(os.getenv("DB_POOL_SIZE", "5"))
        options["max_overflow"] = int(os.getenv("DB_MAX_OVERFLOW", "10"))
    return options

# Shared asyncpg pool for the API process
engine = create_async_engine(DATABASE_URL, **engine_options(DATABASE_URL))

# Sessions keep loaded rows usable after commit so routes can serialize them
AsyncSessionLocal = async_sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)

# One session per request; an error escaping the route discards uncommitted work
async def get_db_async():
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
