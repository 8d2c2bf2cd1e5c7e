"""
JournalRegistry -- named journals and their entry-numbering sequences.

Responsibility:
    Creates and looks up journals, resolves the default journal per role,
    and issues journal sequence numbers.

Architecture position:
    Kernel > Services.  Consumed by LedgerEngine.

Invariants enforced:
    - next_sequence() is an atomic fetch-and-increment.  It issues
      ``UPDATE journals SET next_sequence = next_sequence + 1`` first and
      reads the row back inside the same transaction.  The UPDATE takes the
      row lock, so two concurrent callers can never read the same value,
      and a rolled-back caller returns its value.
    - next_sequence() is independent of line validation: LedgerEngine calls
      it only after the lines passed validation.

Failure modes:
    - JournalNotFoundError for an unknown or inactive code.
    - MissingConfigurationError when a role has no configured journal, or
      the configured code does not exist.
"""

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session
from sqlalchemy.orm.util import identity_key

from ledger_kernel.domain.defaults import PostingDefaults
from ledger_kernel.domain.values import JournalRole
from ledger_kernel.exceptions import JournalNotFoundError, MissingConfigurationError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.journal import Journal, JournalType
from ledger_kernel.services.base import BaseService

logger = get_logger("services.journal_registry")


class JournalRegistry(BaseService):
    """
    Journals and their counters.

    Guarantees:
        - Sequence values per journal are strictly increasing, never reused.
    """

    def __init__(self, session: Session, defaults: PostingDefaults | None = None, clock=None):
        super().__init__(session, clock)
        self.defaults = defaults or PostingDefaults()

    def create_journal(
        self,
        code: str,
        label: str,
        journal_type: JournalType,
        actor_id: UUID,
        counterpart_account_id: UUID | None = None,
    ) -> Journal:
        journal = Journal(
            code=code,
            label=label,
            journal_type=JournalType(journal_type),
            next_sequence=1,
            counterpart_account_id=counterpart_account_id,
            created_by_id=actor_id,
        )
        self.session.add(journal)
        self.session.flush()
        logger.info(
            "journal_created",
            extra={"journal_code": journal.code, "journal_type": journal.journal_type},
        )
        return journal

    def find(self, code: str) -> Journal | None:
        return self.session.execute(
            select(Journal).where(Journal.code == (code or "").strip().upper())
        ).scalar_one_or_none()

    def get(self, code: str) -> Journal:
        """Active journal by code."""
        journal = self.find(code)
        if journal is None or not journal.is_active:
            raise JournalNotFoundError(code)
        return journal

    def resolve_default_journal(self, role: JournalRole) -> Journal:
        """
        Return the configured default journal for ``role``.

        Raises:
            MissingConfigurationError: role unconfigured, or the configured
                code is unknown or inactive.
        """
        role = JournalRole(role)
        code = self.defaults.journal_code(role)
        journal = self.find(code)
        if journal is None or not journal.is_active:
            logger.error(
                "default_journal_unresolved",
                extra={"role": role.value, "journal_code": code},
            )
            raise MissingConfigurationError(
                f"default_journals.{role.value}", f"journal {code} not available"
            )
        return journal

    def next_sequence(self, journal_code: str) -> int:
        """
        Atomically issue the journal's next sequence value.

        Postconditions:
            Returns the value the counter held before the increment.  The
            journal row stays locked until the caller's transaction ends.
        """
        code = (journal_code or "").strip().upper()
        result = self.session.execute(
            update(Journal)
            .where(Journal.code == code, Journal.is_active.is_(True))
            .values(next_sequence=Journal.next_sequence + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise JournalNotFoundError(journal_code)

        journal_id, counter = self.session.execute(
            select(Journal.id, Journal.next_sequence).where(Journal.code == code)
        ).one()
        issued = counter - 1

        # A loaded Journal still holds the pre-increment counter
        loaded = self.session.identity_map.get(identity_key(Journal, journal_id))
        if loaded is not None:
            self.session.expire(loaded, ["next_sequence"])

        logger.debug(
            "journal_sequence_issued",
            extra={"journal_code": code, "sequence": issued},
        )
        return issued
