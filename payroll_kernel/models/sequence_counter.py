"""
Module: payroll_kernel.models.sequence_counter
Responsibility: Named monotonic counters backing SequenceService.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One row per sequence name (UNIQUE).
    - current_value only ever grows; rows are locked FOR UPDATE while
      incremented.
    - Write-group rows (``lock_group``) count the writes they have
      serialised; their value is never read.
"""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import Base


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row represents a named sequence with its current value.
    Row-level locking ensures monotonicity under concurrency.
    """

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
