"""
PostingDefaults -- injected configuration consumed by the registries.

Responsibility:
    Carries the default account number per AccountRole and the default
    journal code per JournalRole.  Built once at startup (see
    ``ledger_config.bridges``) and handed to AccountRegistry and
    JournalRegistry at construction.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  The kernel never reads
    configuration files itself.

Invariants enforced:
    - Lookups of an unconfigured role raise MissingConfigurationError.
      There is no fallback to None.
    - ``require()`` lets a caller validate the roles it depends on at
      startup instead of at the first posting.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from ledger_kernel.domain.values import AccountRole, JournalRole
from ledger_kernel.exceptions import MissingConfigurationError


def _freeze(mapping: Mapping, key_type) -> Mapping:
    return MappingProxyType({key_type(k): str(v) for k, v in mapping.items() if v})


@dataclass(frozen=True)
class PostingDefaults:
    """Default accounts and journals by role."""

    accounts: Mapping[AccountRole, str] = field(default_factory=dict)
    journals: Mapping[JournalRole, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "accounts", _freeze(self.accounts, AccountRole))
        object.__setattr__(self, "journals", _freeze(self.journals, JournalRole))

    def account_number(self, role: AccountRole) -> str:
        try:
            return self.accounts[AccountRole(role)]
        except KeyError:
            raise MissingConfigurationError(f"default_accounts.{AccountRole(role).value}") from None

    def journal_code(self, role: JournalRole) -> str:
        try:
            return self.journals[JournalRole(role)]
        except KeyError:
            raise MissingConfigurationError(f"default_journals.{JournalRole(role).value}") from None

    def require(
        self,
        account_roles: Iterable[AccountRole] = (),
        journal_roles: Iterable[JournalRole] = (),
    ) -> None:
        """Raise MissingConfigurationError for the first unconfigured role."""
        for role in account_roles:
            self.account_number(role)
        for role in journal_roles:
            self.journal_code(role)
