"""
Module: library_kernel.models.review
Responsibility: ORM persistence for reader reviews.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    ONE_REVIEW_PER_BORROWER -- UNIQUE (user_id, book_id).  The "must have
        borrowed first" half is checked by ReviewWorkflow.
    Rating range -- CHECK rating BETWEEN 1 AND 5.
"""

from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from library_kernel.db.base import TrackedBase, UUIDString


class Review(TrackedBase):
    """A user's rating and optional comment on a book they have borrowed."""

    __tablename__ = "reviews"

    __table_args__ = (
        UniqueConstraint("user_id", "book_id", name="uq_reviews_user_book"),
        CheckConstraint("rating >= 1 AND rating <= 5", name="ck_reviews_rating_range"),
        CheckConstraint("helpful_votes >= 0", name="ck_reviews_helpful_votes_nonneg"),
        Index("idx_reviews_book", "book_id"),
    )

    user_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("users.id"),
        nullable=False,
    )

    book_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("books.id"),
        nullable=False,
    )

    rating: Mapped[int] = mapped_column(Integer, nullable=False)

    comment: Mapped[str | None] = mapped_column(Text, nullable=True)

    helpful_votes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<Review {self.rating}/5 by {self.user_id} on {self.book_id}>"
