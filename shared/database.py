import ssl as _ssl
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from shared.config import settings

_db_url = settings.DATABASE_URL
if _db_url:
    _db_url = _db_url.replace("postgresql://", "postgresql+asyncpg://")
    # Strip sslmode param (asyncpg uses ssl connect_arg instead)
    _db_url = _db_url.split("?sslmode=")[0] if "?sslmode=" in _db_url else _db_url
else:
    _db_url = "sqlite+aiosqlite:///./sdca.db"

_engine_kwargs = {"echo": settings.LOG_LEVEL == "DEBUG"}
if _db_url.startswith("postgresql"):
    _engine_kwargs.update(pool_size=5, max_overflow=10)
    if "supabase" in _db_url:
        _ssl_ctx = _ssl.create_default_context()
        _ssl_ctx.check_hostname = False
        _ssl_ctx.verify_mode = _ssl.CERT_NONE
        _engine_kwargs["connect_args"] = {"ssl": _ssl_ctx}

engine = create_async_engine(_db_url, **_engine_kwargs)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db():
    async with async_session() as session:
        yield session
