"""
Pytest fixtures for the ledger kernel test suite.

Provides:
- A fresh database per test (in-memory SQLite unless DATABASE_URL is set)
- A seeded chart of accounts, journals, warehouses and products
- Service fixtures wired the way an orchestrator wires them
- A file-backed database and session factory for threaded tests

Environment Variables:
- DATABASE_URL: database for the per-test session fixture.  Defaults to
  ``sqlite://`` (in-memory).  A PostgreSQL URL also works; the schema is
  created and dropped around every test.
"""

import json
import logging
import os
from collections.abc import Generator
from decimal import Decimal
from io import StringIO
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session

from ledger_config import get_settings
from ledger_config.bridges import build_posting_defaults
from ledger_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from ledger_kernel.domain.clock import DeterministicClock
from ledger_kernel.domain.values import DocumentKind, DocumentRef
from ledger_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from ledger_kernel.models.journal import JournalType
from ledger_kernel.services.account_registry import AccountRegistry
from ledger_kernel.services.document_posting import DocumentPostingService
from ledger_kernel.services.inventory_ledger import InventoryLedger
from ledger_kernel.services.journal_registry import JournalRegistry
from ledger_kernel.services.ledger_engine import LedgerEngine
from ledger_kernel.services.payment_service import PaymentService

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()

CHART = (
    ("411", "Customers", True),
    ("401", "Suppliers", True),
    ("701", "Sales of goods", False),
    ("601", "Purchases of goods", False),
    ("4431", "VAT collected", False),
    ("4452", "VAT deductible", False),
    ("521", "Bank", False),
    ("571", "Cash", False),
    ("658", "Sundry expenses", False),
)

JOURNALS = (
    ("VT", "Sales", JournalType.SALES),
    ("AC", "Purchases", JournalType.PURCHASES),
    ("BQ", "Bank", JournalType.TREASURY),
    ("OD", "Miscellaneous", JournalType.MISC),
)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture ledger_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, ledger_engine):
            ledger_engine.post_entry(...)
            logs = captured_logs()
            assert any(r["message"] == "entry_posted" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("ledger_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


def get_database_url() -> str:
    return os.environ.get("DATABASE_URL", "sqlite://")


@pytest.fixture
def session() -> Generator[Session, None, None]:
    """Fresh schema and session per test; torn down afterwards."""
    init_engine_from_url(get_database_url(), pool_size=5)
    create_tables()
    sess = get_session()
    try:
        yield sess
    finally:
        sess.close()
        drop_tables()
        reset_engine()


@pytest.fixture
def file_session_factory(tmp_path):
    """
    Session factory over a file-backed SQLite database.

    Threads each open their own session from it and commit for real.
    """
    init_engine_from_url(f"sqlite:///{tmp_path / 'ledger.db'}", pool_size=10, busy_timeout_ms=60000)
    create_tables()
    try:
        yield get_session_factory()
    finally:
        drop_tables()
        reset_engine()


@pytest.fixture
def test_actor_id() -> UUID:
    """Provide a consistent test actor ID."""
    return TEST_ACTOR_ID


@pytest.fixture
def deterministic_clock():
    """Provide a deterministic clock for testing."""
    return DeterministicClock()


@pytest.fixture
def ledger_settings():
    return get_settings()


@pytest.fixture
def posting_defaults(ledger_settings):
    return build_posting_defaults(ledger_settings)


# =============================================================================
# Service fixtures
# =============================================================================


@pytest.fixture
def account_registry(session, posting_defaults, deterministic_clock) -> AccountRegistry:
    return AccountRegistry(session, posting_defaults, deterministic_clock)


@pytest.fixture
def journal_registry(session, posting_defaults, deterministic_clock) -> JournalRegistry:
    return JournalRegistry(session, posting_defaults, deterministic_clock)


@pytest.fixture
def chart(session, account_registry, test_actor_id) -> dict:
    """The seeded chart of accounts, keyed by number."""
    accounts = {
        number: account_registry.open_account(
            number, label, test_actor_id, is_reconcilable=third_party, is_third_party=third_party
        )
        for number, label, third_party in CHART
    }
    session.flush()
    return accounts


@pytest.fixture
def journals(session, journal_registry, test_actor_id) -> dict:
    return {
        code: journal_registry.create_journal(code, label, journal_type, test_actor_id)
        for code, label, journal_type in JOURNALS
    }


@pytest.fixture
def ledger_engine(session, account_registry, journal_registry, deterministic_clock, chart, journals):
    return LedgerEngine(session, account_registry, journal_registry, deterministic_clock)


@pytest.fixture
def document_posting(session, ledger_engine) -> DocumentPostingService:
    return DocumentPostingService(session, ledger_engine)


@pytest.fixture
def inventory_ledger(session, deterministic_clock) -> InventoryLedger:
    return InventoryLedger(session, deterministic_clock)


@pytest.fixture
def payment_service(session, deterministic_clock) -> PaymentService:
    return PaymentService(session, deterministic_clock)


@pytest.fixture
def warehouses(inventory_ledger, test_actor_id) -> dict:
    return {
        "MAIN": inventory_ledger.create_warehouse("MAIN", "Main store", test_actor_id, is_primary=True),
        "ANNEX": inventory_ledger.create_warehouse("ANNEX", "Annex", test_actor_id),
    }


@pytest.fixture
def product(inventory_ledger, test_actor_id):
    """A stock-tracked product with no stock."""
    return inventory_ledger.register_product(
        "P-001", "Cement bag 50kg", test_actor_id, reorder_threshold=Decimal("5")
    )


@pytest.fixture
def untracked_product(inventory_ledger, test_actor_id):
    return inventory_ledger.register_product(
        "SRV-01", "Delivery service", test_actor_id, is_stock_tracked=False
    )


# =============================================================================
# Helpers
# =============================================================================


@pytest.fixture
def make_ref():
    """Build DocumentRefs with unique ids."""

    def _make(kind: DocumentKind = DocumentKind.SALES_INVOICE, number: str | None = None) -> DocumentRef:
        return DocumentRef(kind, str(uuid4()), number)

    return _make
