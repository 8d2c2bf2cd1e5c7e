"""
Ledger Kernel

The consistency core of a small trading business back office:
- Balanced double-entry posting with per-journal numbering
- Multi-warehouse stock movements with weighted-average costing
- Payment allocation against open receivables and payables
- Idempotent, atomic units of work
"""

__version__ = "0.1.0"
