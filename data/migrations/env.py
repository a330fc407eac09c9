from logging.config import fileConfig
from sqlalchemy import engine_from_config
from sqlalchemy import pool
from alembic import context
import os
import sys
from dotenv import load_dotenv

# Добавляем путь к backend
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../../backend'))

# Загружаем .env из корня проекта
env_path = os.path.join(os.path.dirname(__file__), '../../.env')
if os.path.exists(env_path):
    load_dotenv(env_path, encoding='utf-8', override=False)
else:
    load_dotenv(encoding='utf-8')

# this is the Alembic Config object
config = context.config

# Interpret the config file for Python logging.
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# add your model's MetaData object here
from onec_exchange.database.connection import Base, build_database_url
from onec_exchange import models  # noqa: F401  регистрирует таблицы в Base.metadata

target_metadata = Base.metadata

# Строим URL подключения (psycopg3, как и приложение)
database_url = build_database_url()

# Отладочный вывод (скрываем пароль)
url_parts = database_url.split('@')
if len(url_parts) > 1:
    print(f"Database connection: postgresql://***:***@{url_parts[1]}")

config.set_main_option("sqlalchemy.url", database_url.replace('%', '%%'))


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode."""
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode.

    Используем синхронный engine_from_config с тем же URL, что и приложение:
    psycopg3 поддерживает оба режима.
    """
    connectable = engine_from_config(
        config.get_section(config.config_ini_section),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata)

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
