"""
PaymentService -- the payment posting flow.

Responsibility:
    Registers the open balance of receivable and payable documents,
    records payments against them through the pure PaymentAllocator, and
    keeps every affected document's paid amount and settlement status in
    step with the payments that count.

Architecture position:
    Kernel > Services.  Uses PaymentAllocator (ledger_engines) for the plan
    and SequenceService for payment numbers.

Invariants enforced:
    - OpenDocument.amount_paid is recomputed from scratch after every
      change: the sum of the allocations of VALIDATED payments.  Pending,
      void and failed payments keep their allocation rows but do not count.
    - New payments are planned against the committed balance: allocations
      of PENDING and VALIDATED payments.  Validating a pending payment can
      therefore never push a document past its total.
    - Documents are locked (SELECT ... FOR UPDATE) in the caller's order
      before the allocator reads their balances, and carry a version
      counter; concurrent payments against one document serialize.
    - The allocator's leftover is stored on the payment as
      unapplied_amount and logged, never dropped.
    - A receivable is settled by incoming payments only, a payable by
      outgoing payments only.

Failure modes:
    - InvalidAmountError: amount <= 0, or a negative document total.
    - InvalidPaymentTargetError: no documents, a duplicate document, or a
      direction mismatch.
    - DocumentNotFoundError, PaymentNotFoundError.
    - PaymentNotApplicableError: illegal status transition.
    - OptimisticLockError.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ledger_engines.allocation import (
    AllocationPlan,
    OpenBalance,
    PaymentAllocator,
    settlement_status,
)
from ledger_kernel.db.types import ZERO, coerce_decimal, fits_storage, round_money
from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.values import DocumentRef, actor_str
from ledger_kernel.exceptions import (
    DocumentNotFoundError,
    InvalidAmountError,
    InvalidPaymentTargetError,
    OptimisticLockError,
    PaymentNotApplicableError,
    PaymentNotFoundError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.payment import (
    SETTLING_DIRECTION,
    DocumentDirection,
    OpenDocument,
    Payment,
    PaymentAllocation,
    PaymentDirection,
    PaymentMethod,
    PaymentStatus,
)
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.sequence_service import SequenceService

logger = get_logger("services.payment")


@dataclass(frozen=True)
class PaymentApplication:
    """Outcome of recording one payment."""

    payment: Payment
    plan: AllocationPlan
    documents: tuple[OpenDocument, ...]

    @property
    def leftover(self) -> Decimal:
        return self.plan.leftover


def _as_amount(value) -> Decimal:
    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            amount = Decimal(str(value))
        except (InvalidOperation, ValueError):
            raise InvalidAmountError(str(value), "not a number") from None
    if not fits_storage(amount):
        raise InvalidAmountError(str(value), "not a finite number within storage range")
    return amount


class PaymentService(BaseService):
    """
    Records payments and maintains document settlement.

    Contract:
        Mutating calls run in a savepoint of the caller's transaction.

    Guarantees:
        - For every document: amount_paid == sum of applied amounts of its
          validated payments; settlement_status derives from it with a
          strict ``>=`` for paid.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        allocator: PaymentAllocator | None = None,
        sequences: SequenceService | None = None,
        number_prefix: str = "PAY-",
    ):
        super().__init__(session, clock)
        self.allocator = allocator or PaymentAllocator()
        self.sequences = sequences or SequenceService(session)
        self.number_prefix = number_prefix

    # ------------------------------------------------------------------
    # Open documents
    # ------------------------------------------------------------------

    def _find_document(self, ref: DocumentRef, lock: bool = False) -> OpenDocument | None:
        stmt = select(OpenDocument).where(
            OpenDocument.document_kind == ref.kind.value,
            OpenDocument.document_id == ref.id,
        )
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self.session.execute(stmt).scalar_one_or_none()

    def get_document(self, ref: DocumentRef) -> OpenDocument:
        document = self._find_document(ref)
        if document is None:
            raise DocumentNotFoundError(str(ref))
        return document

    def register_document(
        self,
        ref: DocumentRef,
        direction: DocumentDirection,
        total_due: Decimal,
        actor_id: UUID,
        due_date: date | None = None,
    ) -> OpenDocument:
        """
        Register (or refresh) the payable balance of a document.

        Registering an already known document updates its total and due
        date and re-derives its settlement status.
        """
        direction = DocumentDirection(direction)
        total = round_money(_as_amount(total_due))
        if total < ZERO:
            raise InvalidAmountError(str(total_due), "document total cannot be negative")

        with self.session.begin_nested():
            document = self._find_document(ref, lock=True)
            if document is None:
                document = OpenDocument(
                    document_kind=ref.kind.value,
                    document_id=ref.id,
                    document_number=ref.number,
                    direction=direction,
                    due_date=due_date,
                    total_due=total,
                    amount_paid=ZERO,
                    settlement_status=settlement_status(ZERO, total),
                    created_by_id=actor_id,
                )
                self.session.add(document)
                self.session.flush()
                event = "open_document_registered"
            else:
                if document.direction != direction.value:
                    raise InvalidPaymentTargetError(
                        str(ref), f"already registered as {document.direction}"
                    )
                document.total_due = total
                document.due_date = due_date
                document.updated_by_id = actor_id
                self._recompute(document)
                event = "open_document_refreshed"

        logger.info(
            event,
            extra={
                "document_ref": str(ref),
                "direction": direction.value,
                "total_due": str(total),
                "settlement_status": document.settlement_status,
            },
        )
        return document

    def _allocated(self, document: OpenDocument, statuses: Sequence[PaymentStatus]) -> Decimal:
        total = self.session.execute(
            select(func.sum(PaymentAllocation.applied_amount))
            .join(Payment, Payment.id == PaymentAllocation.payment_id)
            .where(
                PaymentAllocation.document_id == document.id,
                Payment.status.in_([s.value for s in statuses]),
            )
        ).scalar_one()
        return round_money(coerce_decimal(total))

    def paid_amount(self, document: OpenDocument) -> Decimal:
        """Sum of allocations of validated payments, straight from the rows."""
        return self._allocated(document, (PaymentStatus.VALIDATED,))

    def committed_amount(self, document: OpenDocument) -> Decimal:
        """
        Balance already spoken for: allocations of pending and validated
        payments.  New payments are planned against this, so a pending
        payment cannot be overtaken and applied twice once validated.
        """
        return self._allocated(document, (PaymentStatus.PENDING, PaymentStatus.VALIDATED))

    def _flush(self) -> None:
        try:
            self.session.flush()
        except StaleDataError as exc:
            logger.warning("payment_write_conflict", extra={"detail": str(exc)})
            raise OptimisticLockError("OpenDocument", "-") from None

    def _recompute(self, document: OpenDocument) -> None:
        self._flush()
        paid = self.paid_amount(document)
        document.amount_paid = paid
        document.settlement_status = settlement_status(paid, document.total_due)

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def get_payment(self, payment_id: UUID, lock: bool = False) -> Payment:
        stmt = select(Payment).where(Payment.id == payment_id)
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        payment = self.session.execute(stmt).scalar_one_or_none()
        if payment is None:
            raise PaymentNotFoundError(str(payment_id))
        return payment

    def record_payment(
        self,
        amount: Decimal,
        direction: PaymentDirection,
        method: PaymentMethod,
        documents: Sequence[DocumentRef],
        actor_id: UUID,
        paid_at: datetime | None = None,
        external_reference: str | None = None,
        notes: str | None = None,
        status: PaymentStatus = PaymentStatus.VALIDATED,
    ) -> PaymentApplication:
        """
        Record a payment and apply it to documents in the given order.

        Args:
            documents: Target documents, already in priority order (see
                ledger_engines.allocation.order_by_due_date).
            status: VALIDATED (counts immediately) or PENDING (allocated
                but not counted until validate_payment()); either way the
                allocation reserves the document balance.

        Returns:
            PaymentApplication with the persisted payment, the plan and the
            refreshed documents.
        """
        amount = round_money(_as_amount(amount))
        if amount <= ZERO:
            raise InvalidAmountError(str(amount), "payment amount must be positive")
        direction = PaymentDirection(direction)
        method = PaymentMethod(method)
        status = PaymentStatus(status)
        if status not in (PaymentStatus.VALIDATED, PaymentStatus.PENDING):
            raise PaymentNotApplicableError("new", status.value, "record")
        if not documents:
            raise InvalidPaymentTargetError("-", "a payment needs at least one document")
        seen: set[tuple[str, str]] = set()
        for ref in documents:
            key = (ref.kind.value, ref.id)
            if key in seen:
                raise InvalidPaymentTargetError(str(ref), "document listed twice")
            seen.add(key)

        with LogContext.bind(document_ref=str(documents[0]), actor_id=actor_str(actor_id)):
            with self.session.begin_nested():
                locked: list[OpenDocument] = []
                for ref in documents:
                    document = self._find_document(ref, lock=True)
                    if document is None:
                        raise DocumentNotFoundError(str(ref))
                    if SETTLING_DIRECTION[DocumentDirection(document.direction)] != direction:
                        raise InvalidPaymentTargetError(
                            str(ref),
                            f"{document.direction} document cannot take a {direction.value} payment",
                        )
                    locked.append(document)

                plan = self.allocator.allocate(
                    amount,
                    [
                        OpenBalance(
                            document_id=str(d.id),
                            total_due=d.total_due,
                            already_paid=self.committed_amount(d),
                            due_date=d.due_date,
                        )
                        for d in locked
                    ],
                )

                first = documents[0]
                payment = Payment(
                    number=self.sequences.next_document_number(
                        SequenceService.PAYMENT, self.number_prefix
                    ),
                    amount=amount,
                    direction=direction,
                    method=method,
                    status=status,
                    target_kind=first.kind.value,
                    target_id=first.id,
                    target_number=first.number,
                    paid_at=paid_at or self.clock.now(),
                    unapplied_amount=plan.leftover,
                    external_reference=external_reference,
                    notes=notes,
                    created_by_id=actor_id,
                )
                self.session.add(payment)

                by_id = {str(d.id): d for d in locked}
                for position, allocation in enumerate(plan.allocations, start=1):
                    self.session.add(
                        PaymentAllocation(
                            payment=payment,
                            document_id=by_id[allocation.document_id].id,
                            position=position,
                            applied_amount=allocation.applied_amount,
                            created_by_id=actor_id,
                        )
                    )

                for document in locked:
                    self._recompute(document)
                self._flush()

            logger.info(
                "payment_recorded",
                extra={
                    "payment_id": str(payment.id),
                    "payment_number": payment.number,
                    "amount": str(amount),
                    "direction": direction.value,
                    "status": status.value,
                    "documents_funded": len(plan.allocations),
                    "unapplied_amount": str(plan.leftover),
                },
            )
        return PaymentApplication(payment=payment, plan=plan, documents=tuple(locked))

    def _transition(
        self,
        payment_id: UUID,
        actor_id: UUID,
        target: PaymentStatus,
        allowed_from: tuple[PaymentStatus, ...],
        action: str,
    ) -> Payment:
        with LogContext.bind(payment_id=str(payment_id), actor_id=actor_str(actor_id)):
            return self._apply_transition(payment_id, actor_id, target, allowed_from, action)

    def _apply_transition(
        self,
        payment_id: UUID,
        actor_id: UUID,
        target: PaymentStatus,
        allowed_from: tuple[PaymentStatus, ...],
        action: str,
    ) -> Payment:
        with self.session.begin_nested():
            payment = self.get_payment(payment_id, lock=True)
            current = PaymentStatus(payment.status)
            if current not in allowed_from:
                raise PaymentNotApplicableError(str(payment_id), current.value, action)

            payment.status = target
            payment.updated_by_id = actor_id

            # Lock in id order; callers may void payments concurrently
            documents = sorted(
                (allocation.document for allocation in payment.allocations),
                key=lambda d: str(d.id),
            )
            for document in documents:
                self.session.refresh(document, with_for_update=True)
                self._recompute(document)
            self._flush()

        logger.info(
            f"payment_{target.value}",
            extra={
                "payment_id": str(payment.id),
                "payment_number": payment.number,
                "previous_status": current.value,
                "documents_affected": len(documents),
                "actor_id": actor_str(actor_id),
            },
        )
        return payment

    def validate_payment(self, payment_id: UUID, actor_id: UUID) -> Payment:
        """Pending -> validated; its allocations start counting."""
        return self._transition(
            payment_id, actor_id, PaymentStatus.VALIDATED, (PaymentStatus.PENDING,), "validate"
        )

    def void_payment(self, payment_id: UUID, actor_id: UUID) -> Payment:
        """Cancel a payment; its allocations stop counting."""
        return self._transition(
            payment_id,
            actor_id,
            PaymentStatus.VOID,
            (PaymentStatus.PENDING, PaymentStatus.VALIDATED),
            "void",
        )

    def fail_payment(self, payment_id: UUID, actor_id: UUID) -> Payment:
        """Mark a payment as failed (bounced, rejected); its allocations stop counting."""
        return self._transition(
            payment_id,
            actor_id,
            PaymentStatus.FAILED,
            (PaymentStatus.PENDING, PaymentStatus.VALIDATED),
            "fail",
        )
