"""
Module: ledger_kernel.selectors.reconciliation_selector
Responsibility: Replays the append-only streams (ledger lines, stock
    movements, payment allocations) and compares them with the projections
    the services maintain (account totals, stock levels, product totals,
    document paid amounts).
Architecture position: Kernel > Selectors.  May import from models/ and
    selectors/base.py.

Invariants checked:
    - Account.total_debit / total_credit == sum of the lines of posted and
      void entries on the account.  A void entry's lines stay in the
      stream; its reversal offsets them.
    - StockLevel.quantity == sum of movements at that location.
    - Product.quantity_on_hand == sum of its levels; no level negative.
    - OpenDocument.amount_paid == sum of allocations of validated payments.

Failure modes:
    - None.  An empty list means the projections agree with the streams.

Audit relevance:
    The projections are caches.  These queries are how an auditor proves
    the caches were never edited behind the streams' back.
"""

from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ledger_kernel.db.types import ZERO, coerce_decimal, round_money
from ledger_kernel.models.account import Account, AccountNature
from ledger_kernel.models.inventory import Product, StockLevel, StockMovement
from ledger_kernel.models.ledger import EntryStatus, LedgerEntry, LedgerLine
from ledger_kernel.models.payment import OpenDocument, Payment, PaymentAllocation, PaymentStatus
from ledger_kernel.selectors.base import BaseSelector

_BOOKED_STATUSES = (EntryStatus.POSTED.value, EntryStatus.VOID.value)


@dataclass(frozen=True)
class AccountDiscrepancy:
    account_number: str
    recorded_debit: Decimal
    recorded_credit: Decimal
    replayed_debit: Decimal
    replayed_credit: Decimal


@dataclass(frozen=True)
class StockDiscrepancy:
    """
    One disagreement between a stock projection and its source.

    check is ``level_vs_movements``, ``total_vs_levels`` or
    ``negative_level``; warehouse_id is None for product-level checks.
    """

    check: str
    product_id: UUID
    warehouse_id: UUID | None
    recorded: Decimal
    replayed: Decimal


@dataclass(frozen=True)
class SettlementDiscrepancy:
    document_kind: str
    document_id: str
    recorded_paid: Decimal
    replayed_paid: Decimal


@dataclass(frozen=True)
class TrialBalanceRow:
    account_number: str
    account_label: str
    nature: AccountNature
    debit_total: Decimal
    credit_total: Decimal

    @property
    def balance(self) -> Decimal:
        """Balance signed by the account's nature."""
        if self.nature == AccountNature.DEBIT:
            return self.debit_total - self.credit_total
        return self.credit_total - self.debit_total


def _money(value) -> Decimal:
    return round_money(coerce_decimal(value))


class ReconciliationSelector(BaseSelector):
    """
    Consistency checks between projections and streams.

    Guarantees:
        - Read-only.  Results are sorted for stable comparison.
    """

    def __init__(self, session: Session):
        super().__init__(session)

    def _replayed_account_sums(self) -> dict[UUID, tuple[Decimal, Decimal]]:
        rows = self.session.execute(
            select(
                LedgerLine.account_id,
                func.sum(LedgerLine.debit),
                func.sum(LedgerLine.credit),
            )
            .join(LedgerEntry, LedgerEntry.id == LedgerLine.entry_id)
            .where(LedgerEntry.status.in_(_BOOKED_STATUSES))
            .group_by(LedgerLine.account_id)
        ).all()
        return {account_id: (_money(d), _money(c)) for account_id, d, c in rows}

    def account_discrepancies(self) -> list[AccountDiscrepancy]:
        replayed = self._replayed_account_sums()
        result = []
        for account in self.session.execute(select(Account).order_by(Account.number)).scalars():
            debit, credit = replayed.get(account.id, (ZERO, ZERO))
            if _money(account.total_debit) != debit or _money(account.total_credit) != credit:
                result.append(
                    AccountDiscrepancy(
                        account_number=account.number,
                        recorded_debit=_money(account.total_debit),
                        recorded_credit=_money(account.total_credit),
                        replayed_debit=debit,
                        replayed_credit=credit,
                    )
                )
        return result

    def stock_discrepancies(self) -> list[StockDiscrepancy]:
        movement_sums = {
            (product_id, warehouse_id): coerce_decimal(total)
            for product_id, warehouse_id, total in self.session.execute(
                select(
                    StockMovement.product_id,
                    StockMovement.warehouse_id,
                    func.sum(StockMovement.quantity),
                ).group_by(StockMovement.product_id, StockMovement.warehouse_id)
            ).all()
        }

        result: list[StockDiscrepancy] = []
        level_sums: dict[UUID, Decimal] = defaultdict(lambda: ZERO)
        seen_locations = set()
        for level in self.session.execute(select(StockLevel)).scalars():
            key = (level.product_id, level.warehouse_id)
            seen_locations.add(key)
            level_sums[level.product_id] += level.quantity
            replayed = movement_sums.get(key, ZERO)
            if level.quantity != replayed:
                result.append(
                    StockDiscrepancy(
                        "level_vs_movements", level.product_id, level.warehouse_id,
                        level.quantity, replayed,
                    )
                )
            if level.quantity < ZERO:
                result.append(
                    StockDiscrepancy(
                        "negative_level", level.product_id, level.warehouse_id,
                        level.quantity, ZERO,
                    )
                )

        # Movements at a location that has no level row at all
        for (product_id, warehouse_id), total in movement_sums.items():
            if (product_id, warehouse_id) not in seen_locations and total != ZERO:
                result.append(
                    StockDiscrepancy("level_vs_movements", product_id, warehouse_id, ZERO, total)
                )

        for product in self.session.execute(select(Product)).scalars():
            summed = level_sums.get(product.id, ZERO)
            if product.quantity_on_hand != summed:
                result.append(
                    StockDiscrepancy(
                        "total_vs_levels", product.id, None, product.quantity_on_hand, summed
                    )
                )

        return sorted(result, key=lambda d: (d.check, str(d.product_id), str(d.warehouse_id)))

    def settlement_discrepancies(self) -> list[SettlementDiscrepancy]:
        paid = {
            document_id: _money(total)
            for document_id, total in self.session.execute(
                select(PaymentAllocation.document_id, func.sum(PaymentAllocation.applied_amount))
                .join(Payment, Payment.id == PaymentAllocation.payment_id)
                .where(Payment.status == PaymentStatus.VALIDATED.value)
                .group_by(PaymentAllocation.document_id)
            ).all()
        }
        result = []
        for document in self.session.execute(
            select(OpenDocument).order_by(OpenDocument.document_kind, OpenDocument.document_id)
        ).scalars():
            replayed = paid.get(document.id, ZERO)
            if _money(document.amount_paid) != replayed:
                result.append(
                    SettlementDiscrepancy(
                        document.document_kind,
                        document.document_id,
                        _money(document.amount_paid),
                        replayed,
                    )
                )
        return result

    def trial_balance(self) -> list[TrialBalanceRow]:
        """Per-account debit/credit totals replayed from booked entries."""
        replayed = self._replayed_account_sums()
        rows = []
        for account in self.session.execute(select(Account).order_by(Account.number)).scalars():
            if account.id not in replayed:
                continue
            debit, credit = replayed[account.id]
            rows.append(
                TrialBalanceRow(
                    account_number=account.number,
                    account_label=account.label,
                    nature=AccountNature(account.nature),
                    debit_total=debit,
                    credit_total=credit,
                )
            )
        return rows
