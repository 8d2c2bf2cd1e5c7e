"""Services for the ledger kernel (write side)."""

from ledger_kernel.services.account_registry import AccountRegistry
from ledger_kernel.services.document_posting import DocumentPostingService
from ledger_kernel.services.inventory_ledger import InventoryLedger, StockLine
from ledger_kernel.services.journal_registry import JournalRegistry
from ledger_kernel.services.ledger_engine import LedgerEngine
from ledger_kernel.services.payment_service import PaymentApplication, PaymentService
from ledger_kernel.services.sequence_service import SequenceService

__all__ = [
    "AccountRegistry",
    "DocumentPostingService",
    "InventoryLedger",
    "JournalRegistry",
    "LedgerEngine",
    "PaymentApplication",
    "PaymentService",
    "SequenceService",
    "StockLine",
]
