"""
Module: payroll_kernel.db.base
Responsibility: Declarative base, column types, and the envelope columns
    every configuration table shares (status, version, authorship).
Architecture position: Kernel > DB.  Imported by every model module; MUST NOT
    import from models/, repositories/, services/, selectors/ or domain/.

Invariants enforced:
    - Primary keys are uuid4 values stored as 36-character strings, so the
      same schema works on PostgreSQL and SQLite.
    - Salaries, amounts and rates map to Numeric(38, 9); never float.
    - Timestamps are written as UTC and always read back timezone-aware.
    - ``version`` starts at 1; only the repository's conditional UPDATEs
      change it, together with ``status`` and the approval columns.

Audit relevance:
    created_by, approved_by and approved_at record who drafted and who
    authorised each configuration row.  The full history lives in the audit
    log.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, DateTime, Numeric, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """UUID in a String(36) column."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else UUID(str(value))


class UTCDateTime(TypeDecorator):
    """
    Aware datetime, stored in UTC.

    Naive values are refused on write.  SQLite returns naive values on read;
    they are tagged UTC so a round trip compares equal.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("naive datetime values are not accepted")
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: UTCDateTime(),
        UUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class ConfigurationBase(Base):
    """
    Lifecycle columns of a configuration row.

    Concrete tables add one column per payload field (see
    ``models.configuration.ConfigurationModel``) and a CHECK constraint
    limiting ``status`` to DRAFT / APPROVED / REJECTED.
    """

    __abstract__ = True

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="DRAFT")
    version: Mapped[int] = mapped_column(BigInteger, nullable=False, default=1)

    created_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    approved_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
