"""Domain models for the ledger kernel."""

from ledger_kernel.models.account import (
    Account,
    AccountNature,
    StatementType,
    classify_account_number,
)
from ledger_kernel.models.inventory import (
    INBOUND_KINDS,
    OUTBOUND_KINDS,
    MovementKind,
    Product,
    StockLevel,
    StockMovement,
    Warehouse,
)
from ledger_kernel.models.journal import Journal, JournalType
from ledger_kernel.models.ledger import (
    EntryStatus,
    LedgerEntry,
    LedgerLine,
    PostingMark,
)
from ledger_kernel.models.payment import (
    DocumentDirection,
    OpenDocument,
    Payment,
    PaymentAllocation,
    PaymentDirection,
    PaymentMethod,
    PaymentStatus,
    SettlementStatus,
)
from ledger_kernel.models.sequence import SequenceCounter

__all__ = [
    "Account",
    "AccountNature",
    "DocumentDirection",
    "EntryStatus",
    "INBOUND_KINDS",
    "Journal",
    "JournalType",
    "LedgerEntry",
    "LedgerLine",
    "MovementKind",
    "OUTBOUND_KINDS",
    "OpenDocument",
    "Payment",
    "PaymentAllocation",
    "PaymentDirection",
    "PaymentMethod",
    "PaymentStatus",
    "PostingMark",
    "Product",
    "SequenceCounter",
    "SettlementStatus",
    "StatementType",
    "StockLevel",
    "StockMovement",
    "Warehouse",
    "classify_account_number",
]
