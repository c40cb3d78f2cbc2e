"""StockService and InventoryLedger: catalogue, resize and retire."""

from uuid import uuid4

import pytest

from library_kernel.exceptions import InventoryConflictError
from library_kernel.models.audit_entry import AuditAction, AuditTarget
from library_kernel.services.inventory_ledger import LedgerStatus
from library_kernel.services.stock_service import StockStatus


class TestAddBook:

    def test_staff_adds_book(self, orchestrator, staff):
        result = orchestrator.stock.add_book(staff, "Dune", 4, isbn="9780441013593",
                                             genre="sf")

        assert result.status == StockStatus.OK
        book = orchestrator.books.get_snapshot(result.book_id)
        assert book.title == "Dune"
        assert book.total_copies == 4
        assert book.available_copies == 4
        assert book.total_borrowed == 0
        assert book.total_reviews == 0
        assert book.is_active

        trace = orchestrator.audit_trail.get_trace(AuditTarget.BOOK, result.book_id)
        assert trace.actions == (AuditAction.BOOK_ADDED,)
        assert trace.entries[0].actor_id == staff

    def test_reader_cannot_add(self, orchestrator, reader):
        result = orchestrator.stock.add_book(reader, "Dune", 4)
        assert result.status == StockStatus.UNAUTHORIZED
        assert orchestrator.books.list_active() == []

    def test_unknown_actor_cannot_add(self, orchestrator):
        assert orchestrator.stock.add_book(uuid4(), "Dune", 4).status == StockStatus.UNAUTHORIZED

    @pytest.mark.parametrize("title", ["", "   ", None])
    def test_title_required(self, orchestrator, staff, title):
        assert orchestrator.stock.add_book(staff, title, 1).status == StockStatus.MISSING_TITLE

    @pytest.mark.parametrize("total", [0, -1, 2.5, True])
    def test_total_must_be_positive_integer(self, orchestrator, staff, total):
        assert orchestrator.stock.add_book(staff, "Dune", total).status == StockStatus.INVALID_TOTAL

    def test_duplicate_isbn(self, orchestrator, staff):
        first = orchestrator.stock.add_book(staff, "Dune", 1, isbn="9780441013593")
        second = orchestrator.stock.add_book(staff, "Dune (reprint)", 1, isbn="9780441013593")

        assert second.status == StockStatus.DUPLICATE_ISBN
        assert second.book_id == first.book_id


class TestResize:

    def test_grow_keeps_loans(self, orchestrator, reader, staff, make_book):
        book_id = make_book(total_copies=3)
        orchestrator.lending.borrow(reader, book_id)

        result = orchestrator.stock.resize(book_id, 5, staff)

        assert result.status == StockStatus.OK
        assert (result.total_copies, result.available_copies) == (5, 4)

    def test_shrink_to_copies_on_loan(self, orchestrator, reader, other_reader, staff,
                                      make_book):
        book_id = make_book(total_copies=3)
        orchestrator.lending.borrow(reader, book_id)
        orchestrator.lending.borrow(other_reader, book_id)

        result = orchestrator.stock.resize(book_id, 2, staff)

        assert (result.total_copies, result.available_copies) == (2, 0)
        assert orchestrator.books.consistency_report().is_consistent

    def test_shrink_below_copies_on_loan(self, orchestrator, reader, other_reader, staff,
                                         make_book):
        book_id = make_book(total_copies=3)
        orchestrator.lending.borrow(reader, book_id)
        orchestrator.lending.borrow(other_reader, book_id)

        result = orchestrator.stock.resize(book_id, 1, staff)

        assert result.status == StockStatus.CONFLICT
        with pytest.raises(InventoryConflictError):
            result.raise_for_status()
        book = orchestrator.books.get_snapshot(book_id)
        assert (book.total_copies, book.available_copies) == (3, 1)

    def test_invalid_total(self, orchestrator, staff, make_book):
        assert orchestrator.stock.resize(make_book(), 0, staff).status == StockStatus.INVALID_TOTAL

    def test_unknown_book(self, orchestrator, staff):
        assert orchestrator.stock.resize(uuid4(), 3, staff).status == StockStatus.NOT_FOUND

    def test_reader_cannot_resize(self, orchestrator, reader, make_book):
        book_id = make_book()
        assert orchestrator.stock.resize(book_id, 9, reader).status == StockStatus.UNAUTHORIZED
        assert orchestrator.books.get_snapshot(book_id).total_copies == 3

    def test_resize_is_audited(self, orchestrator, staff, make_book):
        book_id = make_book(total_copies=3)
        orchestrator.stock.resize(book_id, 4, staff)

        trace = orchestrator.audit_trail.get_trace(AuditTarget.BOOK, book_id)
        updated = [e for e in trace.entries if e.action == AuditAction.INVENTORY_UPDATED]
        assert len(updated) == 1
        assert updated[0].before == {"total_copies": 3, "available_copies": 3}
        assert updated[0].after == {"total_copies": 4, "available_copies": 4}


class TestRetire:

    def test_retire_idle_book(self, orchestrator, staff, make_book):
        book_id = make_book(total_copies=2)

        result = orchestrator.stock.retire(book_id, staff)

        assert result.status == StockStatus.OK
        book = orchestrator.books.get_snapshot(book_id)
        assert not book.is_active
        assert book.available_copies == 0
        assert orchestrator.books.list_active() == []
        assert not orchestrator.books.is_available(book_id)
        assert orchestrator.books.consistency_report().is_consistent

    def test_retire_with_active_loans(self, orchestrator, reader, staff, make_book):
        book_id = make_book()
        orchestrator.lending.borrow(reader, book_id)

        result = orchestrator.stock.retire(book_id, staff)

        assert result.status == StockStatus.ACTIVE_LOANS
        assert orchestrator.books.get_snapshot(book_id).is_active

    def test_retire_after_returns(self, orchestrator, reader, staff, make_book):
        book_id = make_book()
        loan_id = orchestrator.lending.borrow(reader, book_id).loan_id
        orchestrator.lending.return_loan(loan_id)

        assert orchestrator.stock.retire(book_id, staff).is_success

    def test_retire_is_audited(self, orchestrator, staff, make_book):
        book_id = make_book()
        orchestrator.stock.retire(book_id, staff)

        actions = orchestrator.audit_trail.get_trace(AuditTarget.BOOK, book_id).actions
        assert AuditAction.BOOK_RETIRED in actions
        assert AuditAction.BOOK_DEACTIVATED in actions

    def test_reader_cannot_retire(self, orchestrator, reader, make_book):
        assert orchestrator.stock.retire(make_book(), reader).status == StockStatus.UNAUTHORIZED

    def test_resize_retired_book_keeps_shelf_empty(self, orchestrator, staff, make_book):
        book_id = make_book(total_copies=2)
        orchestrator.stock.retire(book_id, staff)

        result = orchestrator.stock.resize(book_id, 4, staff)

        assert (result.total_copies, result.available_copies) == (4, 0)


class TestInventoryLedger:
    """The flush-only ledger used directly, with the test owning the commit."""

    def test_reserve_and_release(self, orchestrator, session, make_book):
        book_id = make_book(total_copies=1)
        ledger = orchestrator.ledger

        assert ledger.reserve(book_id).status == LedgerStatus.OK
        assert ledger.reserve(book_id).status == LedgerStatus.EXHAUSTED
        assert ledger.release(book_id).available_copies == 1
        session.rollback()

    def test_release_at_capacity_is_a_no_op(self, orchestrator, session, make_book,
                                            captured_logs):
        book_id = make_book(total_copies=2)

        result = orchestrator.ledger.release(book_id)

        assert result.status == LedgerStatus.OK
        assert result.available_copies == 2
        assert any(r["message"] == "release_at_capacity" for r in captured_logs())
        session.rollback()

    def test_unknown_book(self, orchestrator, session):
        assert orchestrator.ledger.reserve(uuid4()).status == LedgerStatus.NOT_FOUND
        assert orchestrator.ledger.release(uuid4()).status == LedgerStatus.NOT_FOUND
        session.rollback()
