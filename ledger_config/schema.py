"""
LedgerSettings schema.

The human-authored settings of one ledger installation: which account
plays each posting role, which journal receives each kind of entry, the
default warehouse, numbering prefixes and the fiscal lock date.  YAML is
parsed into this type by the loader; bridges turn it into kernel inputs.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date

from ledger_kernel.domain.values import AccountRole, JournalRole
from ledger_kernel.exceptions import MissingConfigurationError


@dataclass(frozen=True)
class LedgerSettings:
    """
    Injected configuration struct.

    Guarantees:
        - Keys of default_accounts / default_journals are role enums; the
          loader rejects unknown role names.
    """

    default_accounts: Mapping[AccountRole, str] = field(default_factory=dict)
    default_journals: Mapping[JournalRole, str] = field(default_factory=dict)
    default_warehouse_code: str | None = None
    payment_number_prefix: str = "PAY-"
    # Entries dated on or before this date are refused by the posting gate
    closed_through: date | None = None
    database_url: str | None = None

    def require(
        self,
        account_roles: Iterable[AccountRole] = (),
        journal_roles: Iterable[JournalRole] = (),
    ) -> None:
        """
        Startup validation of the roles a deployment depends on.

        Raises:
            MissingConfigurationError: first role without a value.
        """
        for role in account_roles:
            if not self.default_accounts.get(AccountRole(role)):
                raise MissingConfigurationError(f"default_accounts.{AccountRole(role).value}")
        for role in journal_roles:
            if not self.default_journals.get(JournalRole(role)):
                raise MissingConfigurationError(f"default_journals.{JournalRole(role).value}")

    def require_all(self) -> None:
        self.require(list(AccountRole), list(JournalRole))
