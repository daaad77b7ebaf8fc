"""
SequenceService -- monotonic sequence allocation for document numbers.

Responsibility:
    Provides strictly monotonically increasing sequence numbers used to
    build purchase order, goods receipt and purchase return numbers
    (``PO-2024-0001``, ``GR-2024-0001``, ``PR-2024-0001``).

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by PurchaseOrderService after validation succeeds, so rejected
    operations never consume a number.

Invariants enforced:
    - Sequence monotonicity: the locked counter row (or the in-memory
      counter guarded by a lock) is the sole source of truth for the next
      value.  The aggregate-max-plus-one anti-pattern is never used.
    - SequenceService does not commit; the value becomes visible when the
      caller's transaction commits and is returned on rollback.

Failure modes:
    - ValueError for an empty sequence name.
    - A concurrent insert of the same new counter is absorbed: the losing
      savepoint rolls back and the existing row is incremented instead.
"""

import threading
from typing import Protocol

from sqlalchemy import BigInteger, String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from purchasing_kernel.db.base import Base
from purchasing_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceAllocator(Protocol):
    """Anything that hands out the next value of a named sequence."""

    def next_value(self, sequence_name: str) -> int: ...


class SequenceCounter(Base):
    """One row per named sequence, holding the last value handed out."""

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(80), nullable=False, unique=True)
    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


class SequenceService:
    """
    Database-backed allocator over the ``sequence_counters`` table.

    The counter row is read ``FOR UPDATE`` (ignored by SQLite, honoured by
    PostgreSQL) so two transactions allocating from the same sequence queue
    behind each other.  The increment is flushed but never committed here;
    it lands, or disappears, with the caller's transaction.
    """

    def __init__(self, session: Session):
        self._session = session

    def _locked_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _start_counter(self, sequence_name: str) -> SequenceCounter | None:
        """Insert the first row of a sequence at 1; ``None`` if another writer got there first."""
        savepoint = self._session.begin_nested()
        try:
            self._session.add(SequenceCounter(name=sequence_name, current_value=1))
            self._session.flush()
        except IntegrityError:
            savepoint.rollback()
            logger.debug("sequence_counter_race_retry", extra={"sequence_name": sequence_name})
            return None
        savepoint.commit()
        return self._locked_counter(sequence_name)

    def next_value(self, sequence_name: str) -> int:
        """Return the next value (starting at 1) of ``sequence_name``."""
        if not sequence_name:
            raise ValueError("sequence_name must be non-empty")

        counter = self._locked_counter(sequence_name)
        if counter is None:
            started = self._start_counter(sequence_name)
            if started is not None:
                value = started.current_value
                logger.debug("sequence_allocated", extra={"sequence_name": sequence_name, "value": value})
                return value
            counter = self._locked_counter(sequence_name)
            if counter is None:
                raise RuntimeError(f"Sequence counter {sequence_name!r} vanished after insert race")

        counter.current_value += 1
        self._session.flush()
        value = counter.current_value
        logger.debug("sequence_allocated", extra={"sequence_name": sequence_name, "value": value})
        return value

    def current_value(self, sequence_name: str) -> int | None:
        """Last value handed out, or ``None`` for a sequence never used."""
        return self._session.execute(
            select(SequenceCounter.current_value).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()


class InMemorySequenceService:
    """Process-local allocator used with the in-memory repository."""

    def __init__(self, start: dict[str, int] | None = None):
        self._values: dict[str, int] = dict(start or {})
        self._lock = threading.Lock()

    def next_value(self, sequence_name: str) -> int:
        if not sequence_name:
            raise ValueError("sequence_name must be non-empty")
        with self._lock:
            value = self._values.get(sequence_name, 0) + 1
            self._values[sequence_name] = value
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": value},
        )
        return value

    def current_value(self, sequence_name: str) -> int | None:
        with self._lock:
            return self._values.get(sequence_name)
