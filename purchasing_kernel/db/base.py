"""
Declarative base and column types shared by every ORM model.

Column conventions:
    - ``id`` is a uuid4 stored as ``String(36)`` (``UUIDString``).
    - Money and quantities are ``Numeric(38, 9)`` read back as ``Decimal``.
    - Timestamps are ``UTCDateTime``: aware UTC in, aware UTC out, even on
      SQLite which stores them without an offset.

Nothing here imports from services, domain or modules.
"""

from datetime import UTC, date, datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import Date, DateTime, Numeric, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """``uuid.UUID`` stored as its 36-character string form."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else UUID(value)


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime normalized to UTC on write and tagged UTC on read."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"Naive datetime not allowed: {value!r}")
        return value.astimezone(UTC)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


class Base(DeclarativeBase):
    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9, asdecimal=True),
        datetime: UTCDateTime(),
        date: Date(),
        UUID: UUIDString(),
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Adds ``created_at`` / ``updated_at``.

    Both are set by the repository from the service clock rather than by a
    server default, so a reloaded row carries the same instants as the
    domain object that was saved.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)
