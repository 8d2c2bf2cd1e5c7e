"""
Config -> Kernel Bridges.

Functions that convert LedgerSettings into kernel-compatible inputs.  They
live in ledger_config (the producer) because the kernel must never import
ledger_config.

Usage:
    from ledger_config.bridges import build_posting_defaults, build_posting_gate

    settings = get_settings()
    accounts = AccountRegistry(session, build_posting_defaults(settings))
    engine = LedgerEngine(session, accounts, journals,
                          posting_gate=build_posting_gate(settings))
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import date

from ledger_config.schema import LedgerSettings
from ledger_kernel.domain.defaults import PostingDefaults


def build_posting_defaults(settings: LedgerSettings) -> PostingDefaults:
    return PostingDefaults(
        accounts=dict(settings.default_accounts),
        journals=dict(settings.default_journals),
    )


def build_posting_gate(settings: LedgerSettings) -> Callable[[date], bool] | None:
    """Gate refusing dates on or before ``closed_through``; None when unset."""
    closed_through = settings.closed_through
    if closed_through is None:
        return None

    def gate(entry_date: date) -> bool:
        return entry_date > closed_through

    return gate
