"""
SequenceService -- named document-number counters.

Responsibility:
    Issues strictly increasing numbers for named series (payment numbers
    today; any other document series a caller registers by name).  Journal
    piece sequences do not use this service; they live on the Journal row
    (JournalRegistry.next_sequence).

Architecture position:
    Kernel > Services.  Called by PaymentService.

Invariants enforced:
    - Allocation is a single ``UPDATE ... SET current_value = current_value + 1``
      followed by a read-back in the same transaction.  The UPDATE takes the
      row lock, so concurrent callers serialize and never see the same value.
    - A counter row is created lazily at 1 on first use.  Two transactions
      creating the same counter race on the unique name; the loser retries
      the increment.
    - Rolling back the caller's transaction (or savepoint) returns the value.

Failure modes:
    - IntegrityError only if the counter vanished between the losing insert
      and the retry, which the kernel never does.
"""

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.sequence import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:
    """
    Counters for document numbering.

    Usage:
        number = SequenceService(session).next_document_number(
            SequenceService.PAYMENT, "PAY-"
        )
    """

    PAYMENT = "payment"

    def __init__(self, session: Session):
        self.session = session

    def _increment(self, name: str) -> int | None:
        result = self.session.execute(
            update(SequenceCounter)
            .where(SequenceCounter.name == name)
            .values(current_value=SequenceCounter.current_value + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return None
        return self.session.execute(
            select(SequenceCounter.current_value).where(SequenceCounter.name == name)
        ).scalar_one()

    def _create(self, name: str) -> int:
        try:
            with self.session.begin_nested():
                self.session.add(SequenceCounter(name=name, current_value=1))
                self.session.flush()
            return 1
        except IntegrityError:
            logger.debug("sequence_counter_race_retry", extra={"sequence_name": name})
            value = self._increment(name)
            if value is None:
                raise
            return value

    def next_value(self, sequence_name: str) -> int:
        """Issue the next value of a series, starting at 1."""
        value = self._increment(sequence_name)
        if value is None:
            value = self._create(sequence_name)
        logger.debug("sequence_allocated", extra={"sequence_name": sequence_name, "value": value})
        return value

    def next_document_number(self, sequence_name: str, prefix: str, width: int = 6) -> str:
        """``{prefix}{value:0{width}d}``, e.g. PAY-000042."""
        return f"{prefix}{self.next_value(sequence_name):0{width}d}"

    def current_value(self, sequence_name: str) -> int | None:
        """Last value issued, or None for a series never used."""
        return self.session.execute(
            select(SequenceCounter.current_value).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()
