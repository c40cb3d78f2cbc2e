"""
Audit trail ordering and the append-only / terminal-record protections.

AuditEntry rows can never be updated or deleted.  Loans can never be
deleted, and a returned loan can never be changed again.
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from library_kernel.db.consistency_guard import SYSTEM_ACTOR_ID
from library_kernel.exceptions import ImmutabilityViolationError
from library_kernel.models.audit_entry import AuditAction, AuditEntry, AuditTarget
from library_kernel.models.loan import Loan


def _first_entry(session) -> AuditEntry:
    return session.execute(
        select(AuditEntry).order_by(AuditEntry.id).limit(1)
    ).scalar_one()


class TestAuditTrail:

    def test_entries_keep_insertion_order(self, orchestrator, reader, make_book):
        book_id = make_book()
        loan_id = orchestrator.lending.borrow(reader, book_id).loan_id
        orchestrator.lending.return_loan(loan_id)

        recent = orchestrator.audit_trail.recent()

        assert [e.action for e in recent[:3]] == [
            AuditAction.BOOK_RETURNED,
            AuditAction.BOOK_BORROWED,
            AuditAction.BOOK_ADDED,
        ]
        seqs = [e.seq for e in recent]
        assert seqs == sorted(seqs, reverse=True)

    def test_recent_filters_by_action(self, orchestrator, make_book):
        make_book()
        make_book()

        added = orchestrator.audit_trail.recent(action=AuditAction.BOOK_ADDED)
        assert len(added) == 2
        assert orchestrator.audit_trail.recent(limit=1, action=AuditAction.BOOK_ADDED)[0] \
            == added[0]

    def test_trace_of_unknown_target_is_empty(self, orchestrator):
        trace = orchestrator.audit_trail.get_trace(AuditTarget.LOAN, uuid4())
        assert trace.is_empty
        assert trace.first_action is None
        assert trace.last_action is None

    def test_record_without_actor_uses_system_actor(self, orchestrator, session):
        target = uuid4()
        orchestrator.audit_trail.record(
            AuditAction.INVENTORY_UPDATED, AuditTarget.BOOK, target, "manual",
            before={"total_copies": Decimal("2")},
        )
        session.commit()

        (entry,) = orchestrator.audit_trail.get_trace(AuditTarget.BOOK, target).entries
        assert entry.actor_id == SYSTEM_ACTOR_ID
        assert entry.before == {"total_copies": "2"}

    def test_failed_workflow_leaves_no_entry(self, orchestrator, reader, make_book):
        book_id = make_book(total_copies=1)
        orchestrator.lending.borrow(reader, book_id)
        before = len(orchestrator.audit_trail.recent(limit=1000))

        orchestrator.lending.borrow(reader, book_id)

        assert len(orchestrator.audit_trail.recent(limit=1000)) == before


class TestAuditEntryImmutability:

    def test_update_blocked(self, session, make_book):
        make_book()
        entry = _first_entry(session)

        entry.description = "rewritten"
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        session.rollback()

        assert exc_info.value.entity_type == "AuditEntry"
        assert _first_entry(session).description != "rewritten"

    def test_delete_blocked(self, session, make_book):
        make_book()
        entry = _first_entry(session)

        session.delete(entry)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_violation_is_logged(self, session, make_book, captured_logs):
        make_book()
        _first_entry(session).description = "rewritten"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

        blocked = [r for r in captured_logs() if r["message"] == "immutability_violation_blocked"]
        assert blocked[0]["entity_type"] == "AuditEntry"
        assert blocked[0]["operation"] == "UPDATE"


class TestLoanImmutability:

    def test_returned_loan_cannot_change(self, orchestrator, session, reader, make_book):
        loan_id = orchestrator.lending.borrow(reader, make_book()).loan_id
        orchestrator.lending.return_loan(loan_id)

        loan = session.get(Loan, loan_id)
        loan.late_fee = Decimal("99.00")
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        session.rollback()

        assert "late_fee" in exc_info.value.reason

    def test_returned_loan_cannot_be_reopened(self, orchestrator, session, reader, make_book):
        loan_id = orchestrator.lending.borrow(reader, make_book()).loan_id
        orchestrator.lending.return_loan(loan_id)

        loan = session.get(Loan, loan_id)
        loan.is_returned = False
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_active_loan_can_be_returned(self, orchestrator, reader, make_book):
        loan_id = orchestrator.lending.borrow(reader, make_book()).loan_id
        assert orchestrator.lending.return_loan(loan_id).is_success

    def test_loan_cannot_be_deleted(self, orchestrator, session, reader, make_book):
        loan_id = orchestrator.lending.borrow(reader, make_book()).loan_id

        session.delete(session.get(Loan, loan_id))
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

        assert orchestrator.loans.get_snapshot(loan_id) is not None
