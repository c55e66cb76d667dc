from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, override

from sqlalchemy import MetaData, event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from common.core.lifecycle import Lifecycle
from common.utils import JsonSnakeCaseModel, decode_json, encode_json_str, get_logger

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

logger = get_logger()

_SUPPORTED_DRIVERS = ("postgresql+asyncpg", "sqlite+aiosqlite")


class DBConfig(JsonSnakeCaseModel):
    url: str
    echo: bool = False
    pool_size: int = 10
    pool_max_overflow: int = 5
    pool_recycle: int = 300

    @property
    def driver(self) -> str:
        return make_url(self.url).drivername

    @property
    def db_name(self) -> str:
        return make_url(self.url).database or ":memory:"


class Db(Lifecycle):
    """Owns the async engine for the order and catalog store.

    Postgres gets a pooled engine. SQLite is used for local runs and tests; an in-memory
    database is pinned to one connection so every session sees the same tables.
    """

    engine: AsyncEngine

    def __init__(self, config: DBConfig) -> None:
        super().__init__()
        if config.driver not in _SUPPORTED_DRIVERS:
            raise ValueError(f"Unsupported database driver: {config.driver}")
        self._config = config

        engine_kwargs: dict[str, Any] = {
            "json_serializer": encode_json_str,
            "json_deserializer": decode_json,
            "echo": config.echo,
        }
        if config.driver == "postgresql+asyncpg":
            engine_kwargs.update(
                pool_size=config.pool_size,
                max_overflow=config.pool_max_overflow,
                pool_recycle=config.pool_recycle,
                pool_pre_ping=True,
            )
        elif config.db_name == ":memory:":
            engine_kwargs.update(poolclass=StaticPool, connect_args={"check_same_thread": False})

        self.engine = create_async_engine(config.url, **engine_kwargs)
        if config.driver == "sqlite+aiosqlite":
            _use_explicit_sqlite_transactions(self.engine)

    @property
    @override
    def _name_for_log(self) -> str:
        return f"Db[{self._config.db_name}]"

    @override
    async def _start(self) -> None:
        pass

    @override
    async def _stop(self) -> None:
        await self.engine.dispose()

    async def create_all(self, metadata: MetaData) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(metadata.create_all)
        logger.info("Database schema ready", tables=sorted(metadata.tables))

    @asynccontextmanager
    async def new_session(self) -> AsyncGenerator[AsyncSession]:
        async with AsyncSession(self.engine, expire_on_commit=False, autoflush=False) as session:
            yield session


def _use_explicit_sqlite_transactions(engine: AsyncEngine) -> None:
    """Hand BEGIN to SQLAlchemy so claim updates and their reads share one transaction."""

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection: Any, _: Any) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN")
