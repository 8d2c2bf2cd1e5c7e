"""
Module: ledger_kernel.db.base
Responsibility: Declarative bases shared by every ledger model: the UUID
    primary key, the column types used for money, quantities and counters,
    and the acting-user columns on tracked rows.
Architecture position: Kernel > DB.  Imported by models/ only; imports
    nothing from the kernel.

Invariants enforced:
    - Every row has a uuid4 primary key, stored as String(36) so SQLite and
      PostgreSQL schemas are identical.
    - Decimal annotations map to Numeric(38, 9): amounts are rounded to
      2 places by the services, quantities keep up to 9.
    - int annotations map to BigInteger (journal and document counters).
    - Tracked rows record created_by_id; updated_at / updated_by_id are the
      only columns the immutability listeners let change on a frozen row.

Audit relevance:
    created_by_id is the opaque actor id passed to every service call.  The
    kernel stores it and never interprets it.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """UUID in Python, String(36) in the database."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else UUID(value)


class Base(DeclarativeBase):
    """Base for untracked rows (counters); see TrackedBase for the rest."""

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        UUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Rows that record who created and last touched them.

    Contract:
        created_by_id is required on insert.  Services set updated_by_id
        when an actor changes a row (stock, settlement, status, void).
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
    created_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    updated_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
