from datetime import datetime

from sqlalchemy.orm import DeclarativeBase as _DeclarativeBase
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from common.db.db_utils import DateTimeUTC, create_registry


class Base(_DeclarativeBase):
    __abstract__ = True

    registry = create_registry()

    created_at: Mapped[datetime] = mapped_column(DateTimeUTC(), server_default=func.current_timestamp())
    updated_at: Mapped[datetime] = mapped_column(
        DateTimeUTC(),
        server_default=func.current_timestamp(),
        onupdate=func.current_timestamp(),
    )
