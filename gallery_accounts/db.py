from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from gallery_accounts.core.config import settings


def _engine_options(url: str) -> dict:
    if make_url(url).get_backend_name() != "postgresql":
        return {}
    # Keep pools lean (adjust for your workload)
    return {
        "pool_size": 5,
        "max_overflow": 5,
        "pool_recycle": 1800,
        "pool_pre_ping": True,
        "connect_args": {"server_settings": {"statement_timeout": "30000"}},  # 30s
    }


engine = create_async_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))

SessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

async def get_session() -> AsyncSession:
    async with SessionLocal() as session:
        yield session
