"""
Module: billing_kernel.db.base
Responsibility: Declarative base shared by the tenant and scheduler tables.
Architecture position: Kernel > DB.  Lowest import target in the kernel;
    every model module imports from here and this module imports nothing
    from the billing packages.

Invariants enforced:
    - Every row has a uuid4 primary key, stored as 36-character text so the
      same schema runs on PostgreSQL and SQLite.
    - Constraint and index names are deterministic (``naming_convention``),
      so migrations can refer to them.
    - Rows written by the scheduler record which actor created and last
      touched them (``created_by_id`` / ``updated_by_id``).
"""

from datetime import datetime
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Integer, MetaData, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class UUIDString(TypeDecorator):
    """``uuid.UUID`` on the Python side, ``VARCHAR(36)`` in the database."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else UUID(value)


class Base(DeclarativeBase):
    """
    Declarative base for all billing tables.

    Annotated columns default to: ``datetime`` -> timestamptz, ``UUID`` ->
    UUIDString, ``int`` -> INTEGER.  Schedule columns that hold tenant-local
    wall clock values override this with a naive ``DateTime``.
    """

    metadata = MetaData(naming_convention=NAMING_CONVENTION)

    type_annotation_map: ClassVar[dict] = {
        datetime: DateTime(timezone=True),
        UUID: UUIDString(),
        int: Integer,
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Adds creation / modification timestamps and actor ids.

    ``created_at`` defaults to the database clock but may be supplied
    explicitly; generation log rows use the injected scheduler clock so
    ordering is reproducible under test.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
    created_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    updated_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
