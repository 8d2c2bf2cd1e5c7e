"""Selectors for the ledger kernel (read side)."""

from ledger_kernel.selectors.base import BaseSelector
from ledger_kernel.selectors.reconciliation_selector import (
    AccountDiscrepancy,
    ReconciliationSelector,
    SettlementDiscrepancy,
    StockDiscrepancy,
    TrialBalanceRow,
)

__all__ = [
    "AccountDiscrepancy",
    "BaseSelector",
    "ReconciliationSelector",
    "SettlementDiscrepancy",
    "StockDiscrepancy",
    "TrialBalanceRow",
]
