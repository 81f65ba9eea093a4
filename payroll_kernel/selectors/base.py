"""
Module: payroll_kernel.selectors.base
Responsibility: Common base for read-side queries over configuration rows.
Architecture position: Kernel > Selectors.  May import from db/, models/,
    domain/ and repositories/; never from services/.

Invariants enforced:
    - Selectors only read: no add, delete, flush or commit on the session.
    - Results are ConfigurationRecord DTOs or frozen summaries, never ORM rows.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseSelector(ABC):
    """Holds the caller's session; the caller owns its transaction."""

    def __init__(self, session: Session):
        self.session = session
