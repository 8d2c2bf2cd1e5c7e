"""Pure domain values for the ledger kernel -- no I/O."""

from ledger_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from ledger_kernel.domain.defaults import PostingDefaults
from ledger_kernel.domain.values import (
    AccountRole,
    DocumentKind,
    DocumentRef,
    JournalRole,
    LineSpec,
    SettlementStatus,
)

__all__ = [
    "AccountRole",
    "Clock",
    "DeterministicClock",
    "DocumentKind",
    "DocumentRef",
    "JournalRole",
    "LineSpec",
    "PostingDefaults",
    "SettlementStatus",
    "SystemClock",
]
