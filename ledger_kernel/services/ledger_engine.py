"""
LedgerEngine -- posting and voiding of double-entry ledger entries.

Responsibility:
    Turns a set of weighted debit/credit lines into a persisted, numbered,
    balanced LedgerEntry, and voids a posted entry by appending its full
    reversal.  Maintains the origin document's posting mark and the
    accounts' running totals in the same unit of work.

Architecture position:
    Kernel > Services.  Uses AccountRegistry and JournalRegistry; called by
    DocumentPostingService and by any orchestrator posting manual entries.

Posting sequence (all inside one savepoint):
    1. validate_entry_lines()          -- pure, before any I/O
    2. posting gate (optional)         -- ClosedFiscalYearError
    3. journal + account resolution    -- NotFound errors
    4. posting-mark pre-check          -- AlreadyPostedError
    5. journal next_sequence()         -- atomic counter
    6. entry + lines flush             -- DuplicatePieceNumberError on clash
    7. posting-mark insert             -- AlreadyPostedError on race
    8. SQL-side running totals         -- account-id order

Invariants enforced:
    - Nothing is persisted unless every step succeeds.  A failure rolls
      back the savepoint, including the consumed journal sequence.
    - The "already posted" guard is the unique (origin_kind, origin_id)
      constraint on posting_marks, written in the same unit as the entry.
      The pre-check only gives the common case a clean error; the
      constraint settles concurrent races.
    - Voiding never deletes: the original becomes void, a reversing entry
      with debit/credit swapped is posted, and the posting mark is released
      so the document can be posted again.

Failure modes:
    - ValidationError subclasses from validate_entry_lines().
    - AccountNotFoundError, AccountInactiveError, JournalNotFoundError.
    - AlreadyPostedError, DuplicatePieceNumberError, ClosedFiscalYearError.
    - EntryNotFoundError, EntryNotPostedError, EntryAlreadyVoidedError.

Audit relevance:
    Every posted and voided entry logs its id, piece number and origin.
    created_by_id on entries and lines records the acting user.
"""

from collections import defaultdict
from collections.abc import Callable, Sequence
from datetime import date
from decimal import Decimal, localcontext
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_kernel.db.types import MONEY_PRECISION, ZERO
from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.entry_validation import rounded_sides, validate_entry_lines
from ledger_kernel.domain.values import DocumentRef, LineSpec, actor_str
from ledger_kernel.exceptions import (
    AlreadyPostedError,
    ClosedFiscalYearError,
    DuplicatePieceNumberError,
    EntryAlreadyVoidedError,
    EntryNotFoundError,
    EntryNotPostedError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.journal import Journal
from ledger_kernel.models.ledger import EntryStatus, LedgerEntry, LedgerLine, PostingMark
from ledger_kernel.services.account_registry import AccountRegistry
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.journal_registry import JournalRegistry

logger = get_logger("services.ledger_engine")

PostingGate = Callable[[date], bool]


class LedgerEngine(BaseService):
    """
    Double-entry posting engine.

    Contract:
        post_entry() and void_entry() each run in a savepoint of the
        caller's transaction and flush; the caller commits.

    Guarantees:
        - Every persisted entry balances at 2-decimal precision and has a
          non-zero total.
        - Piece numbers and journal sequences are never reused.
        - At most one live entry per origin document.

    Non-goals:
        - Deciding when a document is postable.  Fiscal-year locking is
          the posting gate's business; the engine only asks it.
    """

    def __init__(
        self,
        session: Session,
        accounts: AccountRegistry,
        journals: JournalRegistry,
        clock: Clock | None = None,
        posting_gate: PostingGate | None = None,
    ):
        super().__init__(session, clock)
        self.accounts = accounts
        self.journals = journals
        self.posting_gate = posting_gate

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    @staticmethod
    def validate_entry_lines(lines: Sequence[LineSpec]) -> tuple[Decimal, Decimal]:
        """Pre-commit validator; see ledger_kernel.domain.entry_validation."""
        return validate_entry_lines(lines)

    def _check_gate(self, entry_date: date) -> None:
        if self.posting_gate is not None and not self.posting_gate(entry_date):
            logger.warning(
                "posting_gate_refused",
                extra={"entry_date": entry_date.isoformat()},
            )
            raise ClosedFiscalYearError(entry_date.isoformat())

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_entry(self, entry_id: UUID) -> LedgerEntry:
        entry = self.session.get(LedgerEntry, entry_id)
        if entry is None:
            raise EntryNotFoundError(str(entry_id))
        return entry

    def find_posting_mark(self, origin: DocumentRef) -> PostingMark | None:
        return self.session.execute(
            select(PostingMark).where(
                PostingMark.origin_kind == origin.kind.value,
                PostingMark.origin_id == origin.id,
            )
        ).scalar_one_or_none()

    def is_posted(self, origin: DocumentRef) -> bool:
        return self.find_posting_mark(origin) is not None

    def entries_for_origin(self, origin: DocumentRef) -> list[LedgerEntry]:
        """All entries (posted, void, reversals) recorded for a document."""
        return list(
            self.session.execute(
                select(LedgerEntry)
                .where(
                    LedgerEntry.origin_kind == origin.kind.value,
                    LedgerEntry.origin_id == origin.id,
                )
                .order_by(LedgerEntry.posted_at, LedgerEntry.sequence)
            ).scalars()
        )

    # ------------------------------------------------------------------
    # Posting
    # ------------------------------------------------------------------

    def post_entry(
        self,
        entry_date: date,
        journal_code: str,
        label: str,
        lines: Sequence[LineSpec],
        origin: DocumentRef | None,
        actor_id: UUID,
        piece_number: str | None = None,
    ) -> LedgerEntry:
        """
        Validate, number and persist a balanced entry.

        Args:
            entry_date: Accounting date of the entry.
            journal_code: Code of an active journal.
            label: Free-text entry label.
            lines: At least two LineSpecs.
            origin: Document being posted; None for a manual entry with no
                posting guard.
            actor_id: Acting user, stored on the entry and its lines.
            piece_number: Caller-chosen piece number.  Defaults to
                ``{JOURNAL}-{YYYY}-{sequence:05d}``.

        Returns:
            The posted LedgerEntry.
        """
        with LogContext.bind(
            document_ref=str(origin) if origin else None,
            actor_id=actor_str(actor_id),
        ):
            return self._post_entry(
                entry_date, journal_code, label, lines, origin, actor_id, piece_number
            )

    def _post_entry(
        self,
        entry_date: date,
        journal_code: str,
        label: str,
        lines: Sequence[LineSpec],
        origin: DocumentRef | None,
        actor_id: UUID,
        piece_number: str | None,
    ) -> LedgerEntry:
        debits, credits = validate_entry_lines(lines)
        self._check_gate(entry_date)

        with self.session.begin_nested():
            journal = self.journals.get(journal_code)
            accounts = self.accounts.resolve_for_posting(line.account_number for line in lines)

            if origin is not None:
                existing = self.find_posting_mark(origin)
                if existing is not None:
                    raise AlreadyPostedError(str(origin), str(existing.entry_id))

            sequence = self.journals.next_sequence(journal.code)
            entry = LedgerEntry(
                piece_number=self._piece_number(journal, sequence, entry_date, piece_number),
                entry_date=entry_date,
                journal=journal,
                sequence=sequence,
                label=label,
                origin_kind=origin.kind.value if origin else None,
                origin_id=origin.id if origin else None,
                origin_number=origin.number if origin else None,
                status=EntryStatus.POSTED,
                total_debit=debits,
                total_credit=credits,
                posted_at=self.clock.now(),
                created_by_id=actor_id,
            )
            for line_seq, spec in enumerate(lines, start=1):
                debit, credit = rounded_sides(spec)
                entry.lines.append(
                    LedgerLine(
                        account=accounts[str(spec.account_number).strip()],
                        line_seq=line_seq,
                        label=spec.label or label,
                        debit=debit,
                        credit=credit,
                        reconciliation_code=spec.reconciliation_code,
                        created_by_id=actor_id,
                    )
                )

            self._flush_entry(entry, piece_number)
            if origin is not None:
                self._insert_posting_mark(origin, entry, actor_id)
            self._apply_totals(entry)

        logger.info(
            "entry_posted",
            extra={
                "entry_id": str(entry.id),
                "piece_number": entry.piece_number,
                "journal_code": journal.code,
                "sequence": sequence,
                "origin": str(origin) if origin else None,
                "total": str(debits),
                "line_count": len(lines),
                "actor_id": actor_str(actor_id),
            },
        )
        return entry

    def _piece_number(
        self,
        journal: Journal,
        sequence: int,
        entry_date: date,
        requested: str | None,
    ) -> str:
        if requested:
            requested = requested.strip()
            taken = self.session.execute(
                select(LedgerEntry.id).where(LedgerEntry.piece_number == requested)
            ).first()
            if taken is not None:
                raise DuplicatePieceNumberError(requested)
            return requested
        return f"{journal.code}-{entry_date.year}-{sequence:05d}"

    def _flush_entry(self, entry: LedgerEntry, requested_piece: str | None) -> None:
        self.session.add(entry)
        savepoint = self.session.begin_nested()
        try:
            self.session.flush()
        except IntegrityError:
            savepoint.rollback()
            # Only a caller-chosen number can collide; generated ones carry
            # a sequence that is unique per journal
            if requested_piece:
                raise DuplicatePieceNumberError(entry.piece_number) from None
            raise
        savepoint.commit()

    def _insert_posting_mark(
        self, origin: DocumentRef, entry: LedgerEntry, actor_id: UUID
    ) -> None:
        savepoint = self.session.begin_nested()
        try:
            self.session.add(
                PostingMark(
                    origin_kind=origin.kind.value,
                    origin_id=origin.id,
                    origin_number=origin.number,
                    entry_id=entry.id,
                    created_by_id=actor_id,
                )
            )
            self.session.flush()
        except IntegrityError:
            savepoint.rollback()
            winner = self.find_posting_mark(origin)
            logger.warning(
                "posting_mark_race_lost",
                extra={"origin": str(origin)},
            )
            raise AlreadyPostedError(
                str(origin), str(winner.entry_id) if winner else None
            ) from None
        savepoint.commit()

    def _apply_totals(self, entry: LedgerEntry) -> None:
        movements: dict[UUID, list[Decimal]] = defaultdict(lambda: [ZERO, ZERO])
        with localcontext(prec=MONEY_PRECISION):
            for line in entry.lines:
                movements[line.account_id][0] += line.debit
                movements[line.account_id][1] += line.credit
        self.accounts.accumulate_totals(
            {account_id: (d, c) for account_id, (d, c) in movements.items()}
        )

    # ------------------------------------------------------------------
    # Voiding
    # ------------------------------------------------------------------

    def void_entry(
        self,
        entry_id: UUID,
        actor_id: UUID,
        reason: str | None = None,
        void_date: date | None = None,
    ) -> LedgerEntry:
        """
        Void a posted entry by posting its reversal.

        Returns:
            The reversing entry.  The original is left in place with
            status void.
        """
        with LogContext.bind(entry_id=str(entry_id), actor_id=actor_str(actor_id)):
            return self._void_entry(entry_id, actor_id, reason, void_date)

    def _void_entry(
        self,
        entry_id: UUID,
        actor_id: UUID,
        reason: str | None,
        void_date: date | None,
    ) -> LedgerEntry:
        reversal_date = void_date or self.clock.today()
        self._check_gate(reversal_date)

        with self.session.begin_nested():
            original = self.session.execute(
                select(LedgerEntry)
                .where(LedgerEntry.id == entry_id)
                .with_for_update(of=LedgerEntry)
                .execution_options(populate_existing=True)
            ).unique().scalar_one_or_none()
            if original is None:
                raise EntryNotFoundError(str(entry_id))
            if original.is_void:
                raise EntryAlreadyVoidedError(str(entry_id))
            if not original.is_posted:
                raise EntryNotPostedError(str(entry_id), EntryStatus(original.status).value)

            journal = original.journal
            sequence = self.journals.next_sequence(journal.code)
            reversal = LedgerEntry(
                piece_number=self._piece_number(journal, sequence, reversal_date, None),
                entry_date=reversal_date,
                journal=journal,
                sequence=sequence,
                label=f"Reversal of {original.piece_number}",
                origin_kind=original.origin_kind,
                origin_id=original.origin_id,
                origin_number=original.origin_number,
                status=EntryStatus.POSTED,
                total_debit=original.total_credit,
                total_credit=original.total_debit,
                posted_at=self.clock.now(),
                reversal_of=original,
                created_by_id=actor_id,
            )
            for line in original.lines:
                reversal.lines.append(
                    LedgerLine(
                        account_id=line.account_id,
                        line_seq=line.line_seq,
                        label=line.label,
                        debit=line.credit,
                        credit=line.debit,
                        reconciliation_code=line.reconciliation_code,
                        created_by_id=actor_id,
                    )
                )
            self.session.add(reversal)

            original.status = EntryStatus.VOID
            original.voided_at = self.clock.now()
            original.void_reason = reason
            original.updated_by_id = actor_id

            self.session.execute(
                delete(PostingMark).where(PostingMark.entry_id == original.id)
            )
            self.session.flush()
            self._apply_totals(reversal)

        logger.info(
            "entry_voided",
            extra={
                "entry_id": str(original.id),
                "piece_number": original.piece_number,
                "reversal_entry_id": str(reversal.id),
                "reversal_piece_number": reversal.piece_number,
                "reason": reason,
                "actor_id": actor_str(actor_id),
            },
        )
        return reversal
