"""
Typed Exception Hierarchy for the Ledger Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Every failure in this kernel aborts the unit of work that raised it. The
caller (an orchestrator, an API layer, a batch job) decides what to tell the
user and whether to retry. That decision depends on the CATEGORY of failure,
so callers must be able to catch by type instead of parsing messages:

  1. Every error has a TYPED exception class
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        engine.post_entry(...)
    except UnbalancedEntryError as e:
        return {"error": e.code, "debits": e.debits, "credits": e.credits}
    except AlreadyPostedError as e:
        entry = get_entry(e.entry_id)  # idempotent success for the caller

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LedgerKernelError (base)
    |
    +-- ValidationError                 rejected before any write
    |   +-- UnbalancedEntryError
    |   +-- EmptyEntryError
    |   +-- InvalidEntryLineError
    |   +-- InvalidAccountNumberError
    |   +-- InvalidQuantityError
    |   +-- InvalidAmountError
    |   +-- InvalidPaymentTargetError
    |
    +-- ConflictError                   rejected, no partial state, caller may retry
    |   +-- AlreadyPostedError
    |   +-- DuplicatePieceNumberError
    |   +-- InsufficientStockError
    |   +-- NoStockAtLocationError
    |   +-- EntryNotPostedError
    |   +-- EntryAlreadyVoidedError
    |   +-- PaymentNotApplicableError
    |   +-- ClosedFiscalYearError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- ConfigurationError              fatal, operators fix setup rather than retry
    |   +-- MissingConfigurationError
    |
    +-- NotFoundError                   rejected before mutation
    |   +-- AccountNotFoundError
    |   +-- AccountInactiveError
    |   +-- JournalNotFoundError
    |   +-- ProductNotFoundError
    |   +-- WarehouseNotFoundError
    |   +-- EntryNotFoundError
    |   +-- DocumentNotFoundError
    |   +-- PaymentNotFoundError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
HANDLING PATTERNS
===============================================================================

1. CONFIGURATION ERRORS ARE NOT RETRYABLE:

    except ConfigurationError as e:
        alert_operator(e.code, e.setting)

2. CONCURRENCY ERRORS ARE RETRYABLE:

    except ConcurrencyError:
        retry_with_backoff(...)

3. CODES ARE CLASS ATTRIBUTES so they can be documented and matched without
   instantiating the exception.

===============================================================================
"""


class LedgerKernelError(Exception):
    """
    Base exception for all ledger kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "LEDGER_KERNEL_ERROR"


# Validation errors


class ValidationError(LedgerKernelError):
    """Base exception for input that is rejected before any write."""

    code: str = "VALIDATION_ERROR"


class UnbalancedEntryError(ValidationError):
    """Entry debits do not equal credits after 2-decimal rounding."""

    code: str = "UNBALANCED_ENTRY"

    def __init__(self, debits: str, credits: str):
        self.debits = debits
        self.credits = credits
        super().__init__(f"Unbalanced entry: debits={debits}, credits={credits}")


class EmptyEntryError(ValidationError):
    """Entry balances but records nothing (total is zero)."""

    code: str = "EMPTY_ENTRY"

    def __init__(self):
        super().__init__("Entry total is zero; nothing to record")


class InvalidEntryLineError(ValidationError):
    """A line, or the set of lines, is malformed."""

    code: str = "INVALID_ENTRY_LINE"

    def __init__(self, line_index: int | None, reason: str):
        self.line_index = line_index
        self.reason = reason
        where = f"line {line_index}" if line_index is not None else "entry"
        super().__init__(f"Invalid {where}: {reason}")


class InvalidAccountNumberError(ValidationError):
    """Account number does not match the chart-of-accounts pattern."""

    code: str = "INVALID_ACCOUNT_NUMBER"

    def __init__(self, number: str, reason: str):
        self.number = number
        self.reason = reason
        super().__init__(f"Invalid account number '{number}': {reason}")


class InvalidQuantityError(ValidationError):
    """Stock movement quantity is zero or has the wrong sign for its kind."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, quantity: str, reason: str):
        self.quantity = quantity
        self.reason = reason
        super().__init__(f"Invalid quantity {quantity}: {reason}")


class InvalidAmountError(ValidationError):
    """Monetary amount is not strictly positive."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, amount: str, reason: str):
        self.amount = amount
        self.reason = reason
        super().__init__(f"Invalid amount {amount}: {reason}")


class InvalidPaymentTargetError(ValidationError):
    """Payment cannot be applied to the given document."""

    code: str = "INVALID_PAYMENT_TARGET"

    def __init__(self, document_ref: str, reason: str):
        self.document_ref = document_ref
        self.reason = reason
        super().__init__(f"Cannot apply payment to {document_ref}: {reason}")


# Conflict errors


class ConflictError(LedgerKernelError):
    """Base exception for requests that conflict with current state."""

    code: str = "CONFLICT"


class AlreadyPostedError(ConflictError):
    """Origin document already has a ledger entry."""

    code: str = "ALREADY_POSTED"

    def __init__(self, document_ref: str, entry_id: str | None = None):
        self.document_ref = document_ref
        self.entry_id = entry_id
        suffix = f" as entry {entry_id}" if entry_id else ""
        super().__init__(f"Document {document_ref} already posted{suffix}")


class DuplicatePieceNumberError(ConflictError):
    """A caller-supplied piece number is already taken."""

    code: str = "DUPLICATE_PIECE_NUMBER"

    def __init__(self, piece_number: str):
        self.piece_number = piece_number
        super().__init__(f"Piece number already used: {piece_number}")


class InsufficientStockError(ConflictError):
    """Outbound movement would drive a quantity negative."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        product_id: str,
        warehouse_id: str,
        available: str,
        requested: str,
        scope: str = "warehouse",
    ):
        self.product_id = product_id
        self.warehouse_id = warehouse_id
        self.available = available
        self.requested = requested
        self.scope = scope
        super().__init__(
            f"Insufficient stock ({scope}) for product {product_id} at "
            f"warehouse {warehouse_id}: available={available}, requested={requested}"
        )


class NoStockAtLocationError(ConflictError):
    """Outbound movement against a warehouse that never held the product."""

    code: str = "NO_STOCK_AT_LOCATION"

    def __init__(self, product_id: str, warehouse_id: str):
        self.product_id = product_id
        self.warehouse_id = warehouse_id
        super().__init__(
            f"No stock record for product {product_id} at warehouse {warehouse_id}"
        )


class EntryNotPostedError(ConflictError):
    """Only posted entries can be voided."""

    code: str = "ENTRY_NOT_POSTED"

    def __init__(self, entry_id: str, status: str):
        self.entry_id = entry_id
        self.status = status
        super().__init__(f"Cannot void entry {entry_id}: status is {status}, not posted")


class EntryAlreadyVoidedError(ConflictError):
    """Entry has already been voided."""

    code: str = "ENTRY_ALREADY_VOIDED"

    def __init__(self, entry_id: str):
        self.entry_id = entry_id
        super().__init__(f"Entry {entry_id} has already been voided")


class PaymentNotApplicableError(ConflictError):
    """Payment status does not allow the requested transition."""

    code: str = "PAYMENT_NOT_APPLICABLE"

    def __init__(self, payment_id: str, status: str, action: str):
        self.payment_id = payment_id
        self.status = status
        self.action = action
        super().__init__(f"Cannot {action} payment {payment_id} in status {status}")


class ClosedFiscalYearError(ConflictError):
    """The posting gate refused the entry date."""

    code: str = "CLOSED_FISCAL_YEAR"

    def __init__(self, entry_date: str):
        self.entry_date = entry_date
        super().__init__(f"Fiscal year is closed for date {entry_date}")


# Concurrency errors


class ConcurrencyError(LedgerKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# Configuration errors


class ConfigurationError(LedgerKernelError):
    """Base exception for setup problems."""

    code: str = "CONFIGURATION_ERROR"


class MissingConfigurationError(ConfigurationError):
    """A required default account or journal is not configured."""

    code: str = "MISSING_CONFIGURATION"

    def __init__(self, setting: str, reason: str = "not configured"):
        self.setting = setting
        self.reason = reason
        super().__init__(f"Missing configuration '{setting}': {reason}")


# Not-found errors


class NotFoundError(LedgerKernelError):
    """Base exception for unknown references."""

    code: str = "NOT_FOUND"


class AccountNotFoundError(NotFoundError):
    """Account with given number or id was not found."""

    code: str = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_ref: str):
        self.account_ref = account_ref
        super().__init__(f"Account not found: {account_ref}")


class AccountInactiveError(NotFoundError):
    """Account exists but is closed for posting."""

    code: str = "ACCOUNT_INACTIVE"

    def __init__(self, account_number: str):
        self.account_number = account_number
        super().__init__(f"Account {account_number} is inactive")


class JournalNotFoundError(NotFoundError):
    """Journal with given code was not found (or is inactive)."""

    code: str = "JOURNAL_NOT_FOUND"

    def __init__(self, journal_code: str):
        self.journal_code = journal_code
        super().__init__(f"Journal not found: {journal_code}")


class ProductNotFoundError(NotFoundError):
    code: str = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class WarehouseNotFoundError(NotFoundError):
    code: str = "WAREHOUSE_NOT_FOUND"

    def __init__(self, warehouse_id: str):
        self.warehouse_id = warehouse_id
        super().__init__(f"Warehouse not found: {warehouse_id}")


class EntryNotFoundError(NotFoundError):
    code: str = "ENTRY_NOT_FOUND"

    def __init__(self, entry_id: str):
        self.entry_id = entry_id
        super().__init__(f"Ledger entry not found: {entry_id}")


class DocumentNotFoundError(NotFoundError):
    """Open document balance is not registered."""

    code: str = "DOCUMENT_NOT_FOUND"

    def __init__(self, document_ref: str):
        self.document_ref = document_ref
        super().__init__(f"Open document not found: {document_ref}")


class PaymentNotFoundError(NotFoundError):
    code: str = "PAYMENT_NOT_FOUND"

    def __init__(self, payment_id: str):
        self.payment_id = payment_id
        super().__init__(f"Payment not found: {payment_id}")


# Immutability errors


class ImmutabilityError(LedgerKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    Posted ledger entries, their lines, and stock movements are append-only.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
