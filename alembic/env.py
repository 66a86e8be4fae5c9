from logging.config import fileConfig

from dotenv import load_dotenv
from sqlalchemy import create_engine, pool, text

from alembic import context

# DATABASE_* may live in .env
load_dotenv()

from cms_agent.config.settings import DatabaseSettings  # noqa: E402
from cms_agent.db.models import Base  # noqa: E402

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

db = DatabaseSettings()
SCHEMA = db.schema_
DATABASE_URL = (
    f"postgresql+psycopg://{db.user}:{db.password}@{db.host or 'localhost'}:{db.port}/{db.name}"
)

target_metadata = Base.metadata


def include_name(name, type_, parent_names):
    """Autogenerate only looks at the agent schema."""
    if type_ == "schema":
        return name == SCHEMA
    return True


def _configure(**kwargs) -> None:
    context.configure(
        target_metadata=target_metadata,
        version_table_schema=SCHEMA,
        include_schemas=True,
        include_name=include_name,
        **kwargs,
    )


def run_migrations_offline() -> None:
    _configure(url=DATABASE_URL, literal_binds=True, dialect_opts={"paramstyle": "named"})
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = create_engine(DATABASE_URL, poolclass=pool.NullPool)

    with connectable.connect() as connection:
        connection.execute(text(f"CREATE SCHEMA IF NOT EXISTS {SCHEMA}"))
        connection.commit()

        _configure(connection=connection)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
