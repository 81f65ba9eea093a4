"""
SequenceService -- gap-free ordering for audit log entries.

Responsibility:
    Allocates the ``seq`` value of each audit row from a named counter row
    held ``FOR UPDATE`` until the caller's transaction ends.  Two lifecycle
    operations committing at once therefore append to the audit chain one
    after the other, and each reads the previous row's hash only after the
    other has committed.  The same rows double as named write groups that
    serialise same-name insurance bracket writes.

Architecture position:
    Kernel > Services.  Called by AuditTrail for ``seq`` and by
    LifecycleManager for write groups (see ``ConfigurationModel.write_group``).

Invariants enforced:
    - The counter row is the only source of ``seq``; ``MAX(seq) + 1`` is
      never used.
    - A rolled-back audit write rolls back its increment, so a degraded
      lifecycle operation leaves no hole in the sequence.

Failure modes:
    - DBAPIError from the lock or the flush propagates; AuditTrail maps it
      to AuditWriteError.
"""

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from payroll_kernel.logging_config import get_logger
from payroll_kernel.models.sequence_counter import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:
    """Locked counters.  Never commits; the caller owns the transaction."""

    AUDIT_LOG = "audit_log"

    def __init__(self, session: Session):
        self._session = session

    def _lock(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _create(self, sequence_name: str, start: int = 0) -> SequenceCounter | None:
        """Insert the counter at ``start``; None if a concurrent writer inserted it first."""
        savepoint = self._session.begin_nested()
        counter = SequenceCounter(name=sequence_name, current_value=start)
        self._session.add(counter)
        try:
            self._session.flush()
        except IntegrityError:
            savepoint.rollback()
            logger.debug("sequence_counter_race", extra={"sequence_name": sequence_name})
            return None
        savepoint.commit()
        return counter

    def next_value(self, sequence_name: str) -> int:
        """Increment and return the named counter, creating it at 1 on first use."""
        counter = self._lock(sequence_name)
        if counter is None:
            counter = self._create(sequence_name) or self._lock(sequence_name)

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "audit_sequence_allocated",
            extra={"sequence_name": sequence_name, "seq": counter.current_value},
        )
        return counter.current_value

    def lock_group(self, group_name: str) -> None:
        """
        Hold the named write group until the caller's transaction ends.

        Taken with an UPDATE rather than SELECT ... FOR UPDATE so that on
        SQLite the database write lock is acquired before the caller reads
        anything; a second writer waits here and then reads the first
        writer's committed rows.
        """
        bump = (
            update(SequenceCounter)
            .where(SequenceCounter.name == group_name)
            .values(current_value=SequenceCounter.current_value + 1)
            .execution_options(synchronize_session=False)
        )
        if self._session.execute(bump).rowcount != 1:
            if self._create(group_name, start=1) is None:
                self._session.execute(bump)
        logger.debug("write_group_locked", extra={"group": group_name})
