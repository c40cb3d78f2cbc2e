"""
Real multi-session races.

Each worker thread owns its own session from the session factory, and a
Barrier releases all workers at once.  On SQLite every transaction takes
the database write lock up front (BEGIN IMMEDIATE); on PostgreSQL the row
locks serialise the workers.  Either way the outcomes must match a serial
execution.
"""

from concurrent.futures import ThreadPoolExecutor
from threading import Barrier

import pytest

from library_kernel.services.lending_workflow import (
    BorrowStatus,
    LendingWorkflow,
    ReturnStatus,
)
from library_kernel.services.review_workflow import ReviewStatus, ReviewWorkflow

pytestmark = pytest.mark.slow_locks


def _race(fn, args_list):
    """Run ``fn(*args)`` for every entry of ``args_list`` at the same instant."""
    barrier = Barrier(len(args_list))

    def _worker(args):
        barrier.wait()
        return fn(*args)

    with ThreadPoolExecutor(max_workers=len(args_list)) as pool:
        return list(pool.map(_worker, args_list))


@pytest.fixture
def lending_in_thread(session_factory, deterministic_clock, policy):
    def _lending():
        return LendingWorkflow(session_factory(), deterministic_clock, policy)
    return _lending


def test_last_copy_goes_to_exactly_one_borrower(session, orchestrator, make_user,
                                                make_book, lending_in_thread):
    book_id = make_book(total_copies=1)
    users = [make_user(), make_user()]
    session.commit()

    results = _race(
        lambda user_id: lending_in_thread().borrow(user_id, book_id),
        [(u,) for u in users],
    )

    statuses = sorted(r.status.value for r in results)
    assert statuses == sorted([BorrowStatus.OK.value, BorrowStatus.EXHAUSTED.value])

    book = orchestrator.books.get_snapshot(book_id)
    assert book.available_copies == 0
    assert book.total_borrowed == 1
    assert orchestrator.books.consistency_report().is_consistent


def test_copies_never_oversold(session, orchestrator, make_user, make_book,
                               lending_in_thread):
    book_id = make_book(total_copies=3)
    users = [make_user() for _ in range(8)]
    session.commit()

    results = _race(
        lambda user_id: lending_in_thread().borrow(user_id, book_id),
        [(u,) for u in users],
    )

    assert sum(1 for r in results if r.status == BorrowStatus.OK) == 3
    assert all(
        r.status in (BorrowStatus.OK, BorrowStatus.EXHAUSTED) for r in results
    )
    book = orchestrator.books.get_snapshot(book_id)
    assert book.available_copies == 0
    assert book.total_borrowed == 3
    assert orchestrator.books.consistency_report().is_consistent


def test_double_return_releases_one_copy(session, orchestrator, reader, make_book,
                                         lending_in_thread):
    book_id = make_book(total_copies=2)
    loan_id = orchestrator.lending.borrow(reader, book_id).loan_id
    session.commit()

    results = _race(
        lambda: lending_in_thread().return_loan(loan_id),
        [(), ()],
    )

    statuses = sorted(r.status.value for r in results)
    assert statuses == sorted([ReturnStatus.OK.value, ReturnStatus.ALREADY_RETURNED.value])
    assert orchestrator.books.get_snapshot(book_id).available_copies == 2
    assert orchestrator.books.consistency_report().is_consistent


def test_loan_limit_holds_under_concurrency(session, orchestrator, reader, make_book,
                                            lending_in_thread, policy):
    for _ in range(policy.max_active_loans - 1):
        orchestrator.lending.borrow(reader, make_book()).raise_for_status()
    contested = [make_book(), make_book(), make_book()]
    session.commit()

    results = _race(
        lambda book_id: lending_in_thread().borrow(reader, book_id),
        [(b,) for b in contested],
    )

    assert [r.status for r in results].count(BorrowStatus.OK) == 1
    assert [r.status for r in results].count(BorrowStatus.LIMIT_REACHED) == 2
    assert orchestrator.loans.active_loan_count(reader) == policy.max_active_loans


def test_one_review_per_borrower_under_concurrency(session, orchestrator, reader,
                                                   make_book, session_factory,
                                                   deterministic_clock, policy):
    book_id = make_book()
    orchestrator.lending.borrow(reader, book_id).raise_for_status()
    session.commit()

    results = _race(
        lambda rating: ReviewWorkflow(
            session_factory(), deterministic_clock, policy,
        ).submit(reader, book_id, rating),
        [(5,), (1,)],
    )

    statuses = sorted(r.status.value for r in results)
    assert statuses == sorted([ReviewStatus.OK.value, ReviewStatus.ALREADY_REVIEWED.value])
    book = orchestrator.books.get_snapshot(book_id)
    assert book.total_reviews == 1
    assert orchestrator.books.consistency_report().is_consistent
