"""
Module: library_kernel.models.book
Responsibility: ORM persistence for catalogued titles and their copy and
    rating counters.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    COPY_BOUNDS    -- CHECK 0 <= available_copies <= total_copies.
    BORROW_COUNTER -- CHECK total_borrowed >= 0.
    RATING_BOUNDS  -- CHECK 0 <= average_rating <= 5.
    ISBN uniqueness -- UNIQUE isbn (NULLs allowed).

Ownership of fields:
    - total_copies, available_copies, total_borrowed, is_active:
      InventoryLedger only.
    - average_rating, total_reviews: RatingAggregator only.
"""

from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from library_kernel.db.base import TrackedBase


class Book(TrackedBase):
    """
    A catalogued title with a fixed number of physical copies.

    Guarantees:
        - available_copies == total_copies - unreturned loans of this book,
          maintained by InventoryLedger inside the same transaction as the
          loan change.
        - A retired book (is_active False) has available_copies == 0 and
          no unreturned loans.
    """

    __tablename__ = "books"

    __table_args__ = (
        CheckConstraint("total_copies >= 1", name="ck_books_total_copies_positive"),
        CheckConstraint(
            "available_copies >= 0 AND available_copies <= total_copies",
            name="ck_books_available_copies_bounds",
        ),
        CheckConstraint("total_borrowed >= 0", name="ck_books_total_borrowed_nonneg"),
        CheckConstraint(
            "average_rating >= 0 AND average_rating <= 5",
            name="ck_books_average_rating_bounds",
        ),
        CheckConstraint("total_reviews >= 0", name="ck_books_total_reviews_nonneg"),
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)

    isbn: Mapped[str | None] = mapped_column(String(20), unique=True, nullable=True)

    genre: Mapped[str | None] = mapped_column(String(100), nullable=True)

    total_copies: Mapped[int] = mapped_column(Integer, nullable=False)

    available_copies: Mapped[int] = mapped_column(Integer, nullable=False)

    total_borrowed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    average_rating: Mapped[Decimal] = mapped_column(
        Numeric(3, 2),
        nullable=False,
        default=Decimal("0.00"),
    )

    total_reviews: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return (
            f"<Book {self.title!r} {self.available_copies}/{self.total_copies}"
            f"{'' if self.is_active else ' retired'}>"
        )

    @property
    def copies_on_loan(self) -> int:
        return self.total_copies - self.available_copies
