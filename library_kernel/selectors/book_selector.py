"""
Module: library_kernel.selectors.book_selector
Responsibility: Read-only book queries: snapshots, availability,
    popularity, and a consistency report that re-derives every book's
    counters from loans and reviews.
Architecture position: Kernel > Selectors.

The consistency report is the kernel's self-check: for every book it
compares the stored counters with what the loans and reviews say they
should be.  A healthy store reports no discrepancies.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from library_kernel.domain.invariants import BookState, check_book_state
from library_kernel.domain.rating import summarize_ratings
from library_kernel.invariants import KernelInvariant
from library_kernel.models.book import Book
from library_kernel.models.loan import Loan
from library_kernel.models.review import Review
from library_kernel.selectors.base import BaseSelector

POPULARITY_BORROW_WEIGHT = Decimal("0.7")
POPULARITY_RATING_WEIGHT = Decimal("0.3")
POPULARITY_RATING_SCALE = 20


@dataclass(frozen=True)
class BookSnapshot:
    """Point-in-time copy of a book row."""

    book_id: UUID
    title: str
    isbn: str | None
    genre: str | None
    total_copies: int
    available_copies: int
    total_borrowed: int
    average_rating: Decimal
    total_reviews: int
    is_active: bool
    created_at: datetime | None
    updated_at: datetime | None

    @property
    def copies_on_loan(self) -> int:
        return self.total_copies - self.available_copies


@dataclass(frozen=True)
class BookDiscrepancy:
    """One stored value that disagrees with what it should be."""

    book_id: UUID
    invariant: KernelInvariant
    field: str
    stored: object
    expected: object


@dataclass(frozen=True)
class ConsistencyReport:
    books_checked: int
    discrepancies: tuple[BookDiscrepancy, ...]

    @property
    def is_consistent(self) -> bool:
        return not self.discrepancies


def _to_snapshot(book: Book) -> BookSnapshot:
    return BookSnapshot(
        book_id=book.id,
        title=book.title,
        isbn=book.isbn,
        genre=book.genre,
        total_copies=book.total_copies,
        available_copies=book.available_copies,
        total_borrowed=book.total_borrowed,
        average_rating=Decimal(book.average_rating).quantize(Decimal("0.01")),
        total_reviews=book.total_reviews,
        is_active=book.is_active,
        created_at=book.created_at,
        updated_at=book.updated_at,
    )


class BookSelector(BaseSelector):
    """Read-only queries over books."""

    def get_snapshot(self, book_id: UUID) -> BookSnapshot | None:
        book = self.session.execute(
            select(Book)
            .where(Book.id == book_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        return _to_snapshot(book) if book is not None else None

    def list_active(self) -> list[BookSnapshot]:
        books = self.session.execute(
            select(Book)
            .where(Book.is_active.is_(True))
            .order_by(Book.title)
            .execution_options(populate_existing=True)
        ).scalars().all()
        return [_to_snapshot(b) for b in books]

    def is_available(self, book_id: UUID) -> bool:
        """True when the book exists, is active and has a copy on the shelf."""
        row = self.session.execute(
            select(Book.available_copies, Book.is_active).where(Book.id == book_id)
        ).one_or_none()
        if row is None:
            return False
        available, is_active = row
        return bool(is_active) and available > 0

    def popularity_score(self, book_id: UUID) -> Decimal | None:
        """
        total_borrowed * 0.7 + average_rating * 20 * 0.3, two places.

        None when the book does not exist.
        """
        row = self.session.execute(
            select(Book.total_borrowed, Book.average_rating).where(Book.id == book_id)
        ).one_or_none()
        if row is None:
            return None
        total_borrowed, average_rating = row
        score = (
            Decimal(total_borrowed) * POPULARITY_BORROW_WEIGHT
            + Decimal(str(average_rating))
            * POPULARITY_RATING_SCALE
            * POPULARITY_RATING_WEIGHT
        )
        return score.quantize(Decimal("0.01"))

    def consistency_report(self) -> ConsistencyReport:
        """
        Re-derive every book's counters and report disagreements.

        Checks copy bounds, copy conservation
        (available == total - unreturned loans), the borrow counter
        (total_borrowed == number of loans) and rating derivation.
        """
        open_loans = dict(self.session.execute(
            select(Loan.book_id, func.count(Loan.id))
            .where(Loan.is_returned.is_(False))
            .group_by(Loan.book_id)
        ).all())
        all_loans = dict(self.session.execute(
            select(Loan.book_id, func.count(Loan.id)).group_by(Loan.book_id)
        ).all())
        ratings: dict[UUID, list[int]] = {}
        for book_id, rating in self.session.execute(
            select(Review.book_id, Review.rating)
        ).all():
            ratings.setdefault(book_id, []).append(rating)

        books = self.session.execute(
            select(Book).execution_options(populate_existing=True)
        ).scalars().all()

        discrepancies: list[BookDiscrepancy] = []
        for book in books:
            stored_rating = Decimal(str(book.average_rating)).quantize(Decimal("0.01"))
            for violation in check_book_state(BookState(
                total_copies=book.total_copies,
                available_copies=book.available_copies,
                total_borrowed=book.total_borrowed,
                average_rating=stored_rating,
            )):
                discrepancies.append(BookDiscrepancy(
                    book.id, violation.invariant, violation.field,
                    violation.value, violation.corrected,
                ))

            on_loan = open_loans.get(book.id, 0)
            expected_available = 0 if not book.is_active else book.total_copies - on_loan
            if book.available_copies != expected_available:
                discrepancies.append(BookDiscrepancy(
                    book.id, KernelInvariant.COPY_CONSERVATION, "available_copies",
                    book.available_copies, expected_available,
                ))

            loan_count = all_loans.get(book.id, 0)
            if book.total_borrowed != loan_count:
                discrepancies.append(BookDiscrepancy(
                    book.id, KernelInvariant.BORROW_COUNTER, "total_borrowed",
                    book.total_borrowed, loan_count,
                ))

            summary = summarize_ratings(ratings.get(book.id, []))
            if stored_rating != summary.average_rating:
                discrepancies.append(BookDiscrepancy(
                    book.id, KernelInvariant.RATING_DERIVATION, "average_rating",
                    stored_rating, summary.average_rating,
                ))
            if book.total_reviews != summary.total_reviews:
                discrepancies.append(BookDiscrepancy(
                    book.id, KernelInvariant.RATING_DERIVATION, "total_reviews",
                    book.total_reviews, summary.total_reviews,
                ))

        return ConsistencyReport(
            books_checked=len(books),
            discrepancies=tuple(discrepancies),
        )
