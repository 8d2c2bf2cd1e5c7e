"""
AccountRegistry -- chart-of-accounts lookup and running totals.

Responsibility:
    Opens and looks up accounts, classifies account numbers by nature,
    resolves the configured default account for a posting role, and
    applies posted amounts to the accounts' running debit/credit totals.

Architecture position:
    Kernel > Services.  Consumed by LedgerEngine and DocumentPostingService.

Invariants enforced:
    - Nature is derived from the number (models/account.py); the registry
      offers no way to set it.
    - resolve_default_account() raises MissingConfigurationError when the
      role is unconfigured OR the configured number is absent from the
      chart.  A posting that needs the role is blocked, never skipped.
    - Running totals are updated with SQL-side increments
      (``total_debit = total_debit + :amount``) in ascending account-id
      order, so concurrent postings neither lose updates nor deadlock on
      lock order.

Failure modes:
    - AccountNotFoundError / AccountInactiveError for posting lookups.
    - InvalidAccountNumberError when opening an account with a bad number.
"""

from collections.abc import Iterable, Mapping
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ledger_kernel.domain.defaults import PostingDefaults
from ledger_kernel.domain.values import AccountRole
from ledger_kernel.exceptions import (
    AccountInactiveError,
    AccountNotFoundError,
    MissingConfigurationError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account, AccountNature, classify_account_number
from ledger_kernel.services.base import BaseService

logger = get_logger("services.account_registry")


class AccountRegistry(BaseService):
    """
    Chart of accounts.

    Contract:
        Constructed with the PostingDefaults that name the default account
        per role.  All lookups go through the caller's session.
    """

    def __init__(self, session: Session, defaults: PostingDefaults | None = None, clock=None):
        super().__init__(session, clock)
        self.defaults = defaults or PostingDefaults()

    # ------------------------------------------------------------------
    # Chart maintenance
    # ------------------------------------------------------------------

    def open_account(
        self,
        number: str,
        label: str,
        actor_id: UUID,
        is_reconcilable: bool = False,
        is_third_party: bool = False,
        is_system: bool = False,
    ) -> Account:
        """Create an account; class, statement type and nature are derived."""
        account = Account(
            number=number,
            label=label,
            is_reconcilable=is_reconcilable,
            is_third_party=is_third_party,
            is_system=is_system,
            created_by_id=actor_id,
        )
        self.session.add(account)
        self.session.flush()
        logger.info(
            "account_opened",
            extra={
                "account_number": account.number,
                "account_class": account.account_class,
                "nature": account.nature.value,
            },
        )
        return account

    def deactivate(self, number: str, actor_id: UUID) -> Account:
        account = self.get_by_number(number)
        account.is_active = False
        account.updated_by_id = actor_id
        self.session.flush()
        logger.info("account_deactivated", extra={"account_number": number})
        return account

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get(self, account_id: UUID) -> Account:
        account = self.session.get(Account, account_id)
        if account is None:
            raise AccountNotFoundError(str(account_id))
        return account

    def find_by_number(self, number: str) -> Account | None:
        return self.session.execute(
            select(Account).where(Account.number == str(number).strip())
        ).scalar_one_or_none()

    def get_by_number(self, number: str) -> Account:
        account = self.find_by_number(number)
        if account is None:
            raise AccountNotFoundError(str(number))
        return account

    def resolve_for_posting(self, numbers: Iterable[str]) -> dict[str, Account]:
        """
        Load every referenced account, failing on the first unknown or
        inactive one.  Returns a number -> Account map.
        """
        wanted = {str(n).strip() for n in numbers}
        found = {
            a.number: a
            for a in self.session.execute(
                select(Account).where(Account.number.in_(wanted))
            ).scalars()
        }
        for number in sorted(wanted):
            account = found.get(number)
            if account is None:
                raise AccountNotFoundError(number)
            if not account.is_active:
                raise AccountInactiveError(number)
        return found

    @staticmethod
    def nature_of(number: str) -> AccountNature:
        """Nature of an account number without touching the database."""
        return classify_account_number(number)[2]

    def resolve_default_account(self, role: AccountRole) -> Account:
        """
        Return the configured default account for ``role``.

        Raises:
            MissingConfigurationError: role unconfigured, or configured
                number missing from the chart or inactive.
        """
        role = AccountRole(role)
        number = self.defaults.account_number(role)
        account = self.find_by_number(number)
        if account is None or not account.is_active:
            reason = "not in chart of accounts" if account is None else "account is inactive"
            logger.error(
                "default_account_unresolved",
                extra={"role": role.value, "account_number": number, "reason": reason},
            )
            raise MissingConfigurationError(
                f"default_accounts.{role.value}", f"account {number} {reason}"
            )
        return account

    # ------------------------------------------------------------------
    # Running totals
    # ------------------------------------------------------------------

    def accumulate_totals(self, movements: Mapping[UUID, tuple[Decimal, Decimal]]) -> None:
        """
        Add (debit, credit) amounts to each account's running totals.

        Applied in ascending account-id order with SQL-side arithmetic so
        the database, not this process, performs the read-modify-write.
        """
        for account_id in sorted(movements, key=str):
            debit, credit = movements[account_id]
            self.session.execute(
                update(Account)
                .where(Account.id == account_id)
                .values(
                    total_debit=Account.total_debit + debit,
                    total_credit=Account.total_credit + credit,
                )
                .execution_options(synchronize_session=False)
            )
        # In-session Account objects now hold stale totals
        for account in self.session.identity_map.values():
            if isinstance(account, Account) and account.id in movements:
                self.session.expire(account, ["total_debit", "total_credit"])
