import os

# До импорта onec_exchange: движок приложения не должен смотреть на PostgreSQL
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest
from sqlalchemy import event, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from onec_exchange import models  # noqa: F401
from onec_exchange.config import ExchangeSettings
from onec_exchange.database.connection import Base
from onec_exchange.services.exchange_events import ExchangeEventBus
from onec_exchange.services.exchange_service import ExchangeService
from onec_exchange.services.run_registry import ExchangeRunRegistry


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'exchange.db'}")

    # SAVEPOINT в SQLite работает только если BEGIN выдаём сами
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def settings(tmp_path):
    return ExchangeSettings(data_dir=str(tmp_path / "1c-exchange"), max_execution_time=60)


@pytest.fixture
def events():
    return ExchangeEventBus()


@pytest.fixture
def registry():
    return ExchangeRunRegistry()


@pytest.fixture
def run_import(session_factory, settings, events, registry):
    """Кладёт XML в каталог обмена и импортирует его в отдельной сессии"""

    async def _run(xml: str, filename: str = "import.xml", exchange_type: str = "catalog", **overrides):
        run_settings = settings.model_copy(update=overrides) if overrides else settings
        directory = run_settings.type_dir(exchange_type)
        directory.mkdir(parents=True, exist_ok=True)
        (directory / filename).write_text(xml, encoding="utf-8")
        async with session_factory() as session:
            service = ExchangeService(session, run_settings, registry=registry, events=events)
            return await service.import_file(exchange_type, filename)

    return _run


@pytest.fixture
def fetch_all(session_factory):
    """Все строки модели (свежая сессия, без кэша identity map)"""

    async def _fetch(model, *criteria):
        async with session_factory() as session:
            query = select(model)
            for criterion in criteria:
                query = query.where(criterion)
            return list((await session.execute(query)).scalars().all())

    return _fetch
