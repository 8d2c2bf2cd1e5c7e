"""
Pure calculation engines -- no database, no clock, no I/O.

Every public engine call is wrapped by ``@traced_engine`` and emits a
LEDGER_ENGINE_TRACE record.
"""

from ledger_engines.allocation import (
    Allocation,
    AllocationPlan,
    OpenBalance,
    PaymentAllocator,
    order_by_due_date,
    settlement_status,
)
from ledger_engines.costing import CostingEngine
from ledger_engines.totals import (
    DiscountType,
    DocumentTotals,
    DocumentTotalsCalculator,
    LineTotals,
    TotalsLine,
)

__all__ = [
    "Allocation",
    "AllocationPlan",
    "CostingEngine",
    "DiscountType",
    "DocumentTotals",
    "DocumentTotalsCalculator",
    "LineTotals",
    "OpenBalance",
    "PaymentAllocator",
    "TotalsLine",
    "order_by_due_date",
    "settlement_status",
]
