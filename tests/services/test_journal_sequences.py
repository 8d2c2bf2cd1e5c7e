"""
Tests for JournalRegistry: journal lookup, default journals, counters.
"""

import pytest
from sqlalchemy import event

from ledger_kernel.domain.defaults import PostingDefaults
from ledger_kernel.domain.values import JournalRole
from ledger_kernel.exceptions import JournalNotFoundError, MissingConfigurationError
from ledger_kernel.models.journal import Journal, JournalType
from ledger_kernel.services.journal_registry import JournalRegistry


class TestJournalLookup:
    def test_code_is_normalized(self, journal_registry, test_actor_id):
        journal_registry.create_journal(" ca ", "Cash", JournalType.TREASURY, test_actor_id)

        assert journal_registry.get("CA").label == "Cash"
        assert journal_registry.get("ca").code == "CA"

    def test_code_too_long_rejected(self, journal_registry, test_actor_id):
        with pytest.raises(ValueError):
            journal_registry.create_journal("SALES1", "Too long", JournalType.SALES, test_actor_id)

    def test_unknown_journal(self, journals, journal_registry):
        with pytest.raises(JournalNotFoundError):
            journal_registry.get("ZZ")

    def test_inactive_journal_not_returned(self, session, journals, journal_registry):
        journals["OD"].is_active = False
        session.flush()

        with pytest.raises(JournalNotFoundError):
            journal_registry.get("OD")


class TestDefaultJournals:
    def test_resolves_configured_role(self, journals, journal_registry):
        assert journal_registry.resolve_default_journal(JournalRole.PURCHASES).code == "AC"

    def test_unconfigured_role(self, session, journals):
        registry = JournalRegistry(session, PostingDefaults(journals={JournalRole.SALES: "VT"}))

        with pytest.raises(MissingConfigurationError) as exc_info:
            registry.resolve_default_journal(JournalRole.TREASURY)

        assert exc_info.value.setting == "default_journals.treasury"

    def test_configured_code_missing_from_database(self, session, journals):
        registry = JournalRegistry(session, PostingDefaults(journals={JournalRole.SALES: "XX"}))

        with pytest.raises(MissingConfigurationError):
            registry.resolve_default_journal(JournalRole.SALES)


class TestNextSequence:
    def test_starts_at_one_and_increments(self, journals, journal_registry):
        issued = [journal_registry.next_sequence("VT") for _ in range(3)]

        assert issued == [1, 2, 3]
        assert journals["VT"].next_sequence == 4

    def test_counters_are_per_journal(self, journals, journal_registry):
        journal_registry.next_sequence("VT")
        journal_registry.next_sequence("VT")

        assert journal_registry.next_sequence("AC") == 1

    def test_rollback_returns_the_value(self, session, journals, journal_registry):
        journal_registry.next_sequence("BQ")

        savepoint = session.begin_nested()
        assert journal_registry.next_sequence("BQ") == 2
        savepoint.rollback()

        assert journal_registry.next_sequence("BQ") == 2

    def test_unknown_or_inactive_journal(self, session, journals, journal_registry):
        with pytest.raises(JournalNotFoundError):
            journal_registry.next_sequence("ZZ")

        journals["OD"].is_active = False
        session.flush()
        with pytest.raises(JournalNotFoundError):
            journal_registry.next_sequence("OD")

    def test_issues_two_statements(self, session, journals, journal_registry):
        session.flush()
        statements = []

        def record(conn, cursor, statement, parameters, context, executemany):
            statements.append(statement.split()[0].upper())

        bind = session.get_bind()
        event.listen(bind, "before_cursor_execute", record)
        try:
            journal_registry.next_sequence("OD")
        finally:
            event.remove(bind, "before_cursor_execute", record)

        assert [s for s in statements if s in ("UPDATE", "SELECT")] == ["UPDATE", "SELECT"]

    def test_unloaded_journal_not_fetched(self, session, journals, journal_registry):
        session.expunge(journals["AC"])

        assert journal_registry.next_sequence("AC") == 1
        assert not [
            obj for obj in session.identity_map.values()
            if isinstance(obj, Journal) and obj.code == "AC"
        ]
