from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
import os
import sys
import asyncio
from dotenv import load_dotenv, find_dotenv

# На Windows psycopg3 работает только с selector event loop
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Важно: при запуске из разных директорий load_dotenv() может не найти корневой .env
load_dotenv(find_dotenv(usecwd=True), override=False)


def build_database_url() -> str:
    """DATABASE_URL с драйвером psycopg3 (или из DB_* переменных)"""
    raw = os.getenv("DATABASE_URL")
    if not raw:
        db_host = os.getenv("DB_HOST", "localhost")
        db_port = os.getenv("DB_PORT", "5432")
        db_user = os.getenv("DB_USER", "onec_user")
        db_password = os.getenv("DB_PASSWORD", "onec_password")
        db_name = os.getenv("DB_NAME", "onec_exchange")
        return f"postgresql+psycopg://{db_user}:{db_password}@{db_host}:{db_port}/{db_name}"

    # Приводим драйвер к psycopg3
    if raw.startswith("postgresql+asyncpg://"):
        raw = raw.replace("postgresql+asyncpg://", "postgresql+psycopg://", 1)
    elif raw.startswith("postgresql://"):
        raw = raw.replace("postgresql://", "postgresql+psycopg://", 1)
    elif raw.startswith("postgres://"):
        raw = raw.replace("postgres://", "postgresql+psycopg://", 1)
    return raw


DATABASE_URL = build_database_url()

# Создаем async engine
engine = create_async_engine(
    DATABASE_URL,
    echo=False,
    pool_pre_ping=True,
)

# Создаем async session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False
)

Base = declarative_base()


async def get_db():
    """Dependency для получения async DB сессии"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
