"""
InventoryLedger -- the only writer of a book's copy counters.

Responsibility:
    Reserves and releases copies, resizes and retires books and registers
    new titles.  Every counter change happens under an exclusive lock on
    the book row and is checked against the shared book-state bounds
    before it is flushed.

Architecture position:
    Kernel > Services -- leaf service, flush-only.  Called by
    LendingWorkflow (reserve/release) and StockService (register, resize,
    retire) inside their transactions.

Invariants enforced:
    COPY_BOUNDS       -- 0 <= available_copies <= total_copies after every
                         operation; checked with domain.invariants before
                         flush.
    COPY_CONSERVATION -- reserve/release are always paired with loan
                         creation/return in the caller's transaction.
    BORROW_COUNTER    -- total_borrowed only ever increments (reserve).

Failure modes:
    Expected outcomes are returned as LedgerResult statuses:
    NOT_FOUND, INACTIVE, EXHAUSTED, CONFLICT, ACTIVE_LOANS, INVALID_TOTAL,
    MISSING_TITLE, DUPLICATE_ISBN.
    - InvariantViolationError if a computed state would break a bound
      (a kernel bug; nothing is flushed).
    - OperationalError on lock timeout propagates to the owning workflow.

Audit relevance:
    The ledger writes no audit entries itself; its callers do, in the same
    transaction.  The consistency guard audits significant resizes and
    deactivations as the ledger's changes are flushed.
"""

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from library_kernel.domain.inventory import plan_resize
from library_kernel.domain.invariants import BookState, check_book_state
from library_kernel.domain.rating import NO_RATING
from library_kernel.domain.results import OutcomeResult
from library_kernel.exceptions import (
    ActiveLoansError,
    BookInactiveError,
    BookNotFoundError,
    DuplicateIsbnError,
    InvalidTotalCopiesError,
    InvariantViolationError,
    InventoryConflictError,
    InventoryExhaustedError,
    MissingTitleError,
)
from library_kernel.logging_config import get_logger
from library_kernel.models.book import Book
from library_kernel.models.loan import Loan
from library_kernel.services.base import BaseService

logger = get_logger("services.inventory_ledger")


def lock_book(session: Session, book_id: UUID) -> Book | None:
    """
    SELECT ... FOR UPDATE on the book row, refreshing any cached copy.

    Every service that changes a Book takes its lock here.  On SQLite the
    transaction already holds the database write lock (BEGIN IMMEDIATE) and
    FOR UPDATE is not rendered.
    """
    return session.execute(
        select(Book)
        .where(Book.id == book_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()


class LedgerStatus(str, Enum):
    """Status of an inventory operation."""

    OK = "ok"
    NOT_FOUND = "not_found"
    INACTIVE = "inactive"
    EXHAUSTED = "exhausted"
    CONFLICT = "conflict"
    ACTIVE_LOANS = "active_loans"
    INVALID_TOTAL = "invalid_total"
    MISSING_TITLE = "missing_title"
    DUPLICATE_ISBN = "duplicate_isbn"


@dataclass(frozen=True)
class LedgerResult(OutcomeResult):
    """Result of an inventory operation, with the counters after it."""

    status: LedgerStatus
    book_id: UUID | None = None
    total_copies: int | None = None
    available_copies: int | None = None
    message: str | None = None

    success_statuses: ClassVar[frozenset] = frozenset({LedgerStatus.OK})
    errors: ClassVar[dict] = {
        LedgerStatus.NOT_FOUND: BookNotFoundError,
        LedgerStatus.INACTIVE: BookInactiveError,
        LedgerStatus.EXHAUSTED: InventoryExhaustedError,
        LedgerStatus.CONFLICT: InventoryConflictError,
        LedgerStatus.ACTIVE_LOANS: ActiveLoansError,
        LedgerStatus.INVALID_TOTAL: InvalidTotalCopiesError,
        LedgerStatus.MISSING_TITLE: MissingTitleError,
        LedgerStatus.DUPLICATE_ISBN: DuplicateIsbnError,
    }
    subject_field: ClassVar[str] = "book_id"

    @classmethod
    def for_book(cls, status: LedgerStatus, book: Book, message: str | None = None):
        return cls(
            status=status,
            book_id=book.id,
            total_copies=book.total_copies,
            available_copies=book.available_copies,
            message=message,
        )


class InventoryLedger(BaseService):
    """
    Copy-counter mutations under the book row lock.

    Contract:
        Every public method takes (or re-takes) an exclusive lock on the
        book row, re-reads its current values and only then decides.

    Guarantees:
        - Two concurrent reserves of the last copy: exactly one gets OK,
          the other EXHAUSTED.
        - The book state after every OK result satisfies
          ``check_book_state``.

    Non-goals:
        - Does NOT call ``session.commit()``.
        - Does NOT create or return loans (LendingWorkflow does).
        - Does NOT authorize callers (StockService does).
    """

    def lock_book(self, book_id: UUID) -> Book | None:
        return lock_book(self.session, book_id)

    def _apply(self, book: Book, operation: str, **changes) -> None:
        """Check the would-be state, then assign.  Never flushes a bad state."""
        state = BookState(
            total_copies=changes.get("total_copies", book.total_copies),
            available_copies=changes.get("available_copies", book.available_copies),
            total_borrowed=changes.get("total_borrowed", book.total_borrowed),
            average_rating=book.average_rating,
        )
        violations = check_book_state(state)
        if violations:
            first = violations[0]
            logger.error(
                "ledger_invariant_violation",
                extra={
                    "operation": operation,
                    "book_id": str(book.id),
                    "invariant": first.invariant.value,
                    "field": first.field,
                    "value": first.value,
                },
            )
            raise InvariantViolationError(
                invariant=first.invariant.value,
                entity_type="Book",
                entity_id=str(book.id),
                detail=f"{operation}: " + "; ".join(v.describe() for v in violations),
            )
        for key, value in changes.items():
            setattr(book, key, value)

    def unreturned_loan_count(self, book_id: UUID) -> int:
        return self.session.execute(
            select(func.count(Loan.id)).where(
                Loan.book_id == book_id,
                Loan.is_returned.is_(False),
            )
        ).scalar_one()

    def reserve(self, book_id: UUID) -> LedgerResult:
        """
        Take one copy off the shelf.

        Postconditions (OK):
            available_copies decremented by 1, total_borrowed incremented
            by 1, flushed.
        """
        book = self.lock_book(book_id)
        if book is None:
            return LedgerResult(status=LedgerStatus.NOT_FOUND, book_id=book_id)
        if not book.is_active:
            return LedgerResult.for_book(LedgerStatus.INACTIVE, book, "Book is retired")
        if book.available_copies <= 0:
            logger.info(
                "reserve_exhausted",
                extra={"book_id": str(book_id), "total_copies": book.total_copies},
            )
            return LedgerResult.for_book(
                LedgerStatus.EXHAUSTED, book, "No copies available"
            )

        self._apply(
            book,
            "reserve",
            available_copies=book.available_copies - 1,
            total_borrowed=book.total_borrowed + 1,
        )
        self.session.flush()

        logger.info(
            "copy_reserved",
            extra={"book_id": str(book_id), "available_copies": book.available_copies},
        )
        return LedgerResult.for_book(LedgerStatus.OK, book)

    def release(self, book_id: UUID) -> LedgerResult:
        """
        Put one copy back on the shelf, never above total_copies.
        """
        book = self.lock_book(book_id)
        if book is None:
            return LedgerResult(status=LedgerStatus.NOT_FOUND, book_id=book_id)

        if book.available_copies >= book.total_copies:
            logger.warning(
                "release_at_capacity",
                extra={
                    "book_id": str(book_id),
                    "available_copies": book.available_copies,
                    "total_copies": book.total_copies,
                },
            )
            return LedgerResult.for_book(LedgerStatus.OK, book)

        self._apply(book, "release", available_copies=book.available_copies + 1)
        self.session.flush()

        logger.info(
            "copy_released",
            extra={"book_id": str(book_id), "available_copies": book.available_copies},
        )
        return LedgerResult.for_book(LedgerStatus.OK, book)

    def resize(self, book_id: UUID, new_total: int) -> LedgerResult:
        """
        Change the number of physical copies, keeping the copies on loan.

        available = new_total - (old_total - old_available); CONFLICT when
        that would be negative.
        """
        if isinstance(new_total, bool) or not isinstance(new_total, int) or new_total < 1:
            return LedgerResult(
                status=LedgerStatus.INVALID_TOTAL,
                book_id=book_id,
                message=f"Total copies must be a positive integer, got {new_total!r}",
            )

        book = self.lock_book(book_id)
        if book is None:
            return LedgerResult(status=LedgerStatus.NOT_FOUND, book_id=book_id)

        if book.is_active:
            new_available = plan_resize(
                book.total_copies, book.available_copies, new_total
            )
        else:
            # Retired books keep no copies on the shelf and have none on loan.
            new_available = 0
        if new_available is None:
            return LedgerResult.for_book(
                LedgerStatus.CONFLICT,
                book,
                f"{book.copies_on_loan} copies on loan exceed new total {new_total}",
            )

        self._apply(
            book,
            "resize",
            total_copies=new_total,
            available_copies=new_available,
        )
        self.session.flush()

        logger.info(
            "inventory_resized",
            extra={
                "book_id": str(book_id),
                "total_copies": new_total,
                "available_copies": new_available,
            },
        )
        return LedgerResult.for_book(LedgerStatus.OK, book)

    def retire(self, book_id: UUID) -> LedgerResult:
        """
        Withdraw a book from circulation.

        Refused with ACTIVE_LOANS while any copy is out.
        """
        book = self.lock_book(book_id)
        if book is None:
            return LedgerResult(status=LedgerStatus.NOT_FOUND, book_id=book_id)

        on_loan = self.unreturned_loan_count(book_id)
        if on_loan > 0:
            return LedgerResult.for_book(
                LedgerStatus.ACTIVE_LOANS,
                book,
                f"{on_loan} copies are still on loan",
            )

        self._apply(book, "retire", available_copies=0)
        book.is_active = False
        self.session.flush()

        logger.info("book_retired", extra={"book_id": str(book_id)})
        return LedgerResult.for_book(LedgerStatus.OK, book)

    def register_book(
        self,
        title: str,
        total_copies: int,
        isbn: str | None = None,
        genre: str | None = None,
    ) -> tuple[LedgerResult, Book | None]:
        """
        Catalogue a new title with all copies on the shelf.

        Returns the result and, on OK, the flushed Book.
        """
        title = (title or "").strip()
        if not title:
            return LedgerResult(
                status=LedgerStatus.MISSING_TITLE, message="Title is required"
            ), None
        if (
            isinstance(total_copies, bool)
            or not isinstance(total_copies, int)
            or total_copies < 1
        ):
            return LedgerResult(
                status=LedgerStatus.INVALID_TOTAL,
                message=f"Total copies must be a positive integer, got {total_copies!r}",
            ), None

        isbn = isbn.strip() if isbn else None
        if isbn:
            existing = self.session.execute(
                select(Book.id).where(Book.isbn == isbn)
            ).scalar_one_or_none()
            if existing is not None:
                return LedgerResult(
                    status=LedgerStatus.DUPLICATE_ISBN,
                    book_id=existing,
                    message=f"ISBN {isbn} already catalogued",
                ), None

        book = Book(
            id=uuid4(),
            title=title,
            isbn=isbn,
            genre=genre,
            total_copies=total_copies,
            available_copies=total_copies,
            total_borrowed=0,
            average_rating=NO_RATING,
            total_reviews=0,
            is_active=True,
        )
        self.session.add(book)
        self.session.flush()

        logger.info(
            "book_registered",
            extra={"book_id": str(book.id), "total_copies": total_copies},
        )
        return LedgerResult.for_book(LedgerStatus.OK, book), book
