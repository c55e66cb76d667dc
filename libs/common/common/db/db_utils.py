"""Column types and registry shared by the storefront's declarative models."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import JSON, DateTime, MetaData, Numeric, TypeDecorator
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB
from sqlalchemy.orm import registry

from common.utils.json_model import JsonModel

if TYPE_CHECKING:
    from sqlalchemy.engine import Dialect
    from sqlalchemy.sql.schema import _NamingSchemaParameter as NamingSchemaParameter  # pyright: ignore[reportPrivateUsage]
    from sqlalchemy.types import TypeEngine

convention: NamingSchemaParameter = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

# Native JSONB on Postgres, plain JSON text elsewhere
JsonB = JSON().with_variant(PG_JSONB, "postgresql")


class DateTimeUTC(TypeDecorator[datetime]):
    """Timezone-aware timestamp: stored in UTC, always returned with ``tzinfo``.

    SQLite drops the offset on write, so results without one are read back as UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    @property
    def python_type(self) -> type[datetime]:
        return datetime

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        if value is None:
            return value
        if not value.tzinfo:
            raise TypeError("tzinfo is required")
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        if value is None or value.tzinfo is not None:
            return value
        return value.replace(tzinfo=UTC)


class PydanticJson[TModel: JsonModel](TypeDecorator[TModel | None]):
    """A ``JsonModel`` stored as its JSON wire form."""

    impl = JSON
    cache_ok = True

    _deserialize: Callable[[dict[str, Any]], TModel | None]

    def __init__(self, deserialize: Callable[[dict[str, Any]], TModel | None], *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._deserialize = deserialize

    def process_bind_param(self, value: TModel | None, dialect: Dialect) -> dict[str, Any] | None:
        return value.to_dict(mode="json") if value is not None else None

    def process_result_value(self, value: dict[str, Any] | None, dialect: Dialect) -> TModel | None:
        return self._deserialize(value) if value is not None else None


def create_registry(custom_annotation_map: dict[Any, type[TypeEngine[Any]] | TypeEngine[Any]] | None = None) -> registry:
    type_annotation_map: dict[Any, type[TypeEngine[Any]] | TypeEngine[Any]] = {
        datetime: DateTimeUTC,
        # Currency amounts
        Decimal: Numeric(12, 2),
        dict: JsonB,
    }
    if custom_annotation_map is not None:
        type_annotation_map.update(custom_annotation_map)
    return registry(metadata=MetaData(naming_convention=convention), type_annotation_map=type_annotation_map)
