"""
Module: library_kernel.selectors.review_selector
Responsibility: Read-only review queries.
Architecture position: Kernel > Selectors.
"""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import select

from library_kernel.models.review import Review
from library_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class ReviewSnapshot:
    review_id: UUID
    user_id: UUID
    book_id: UUID
    rating: int
    comment: str | None
    helpful_votes: int
    created_at: datetime | None
    updated_at: datetime | None


def _to_snapshot(review: Review) -> ReviewSnapshot:
    return ReviewSnapshot(
        review_id=review.id,
        user_id=review.user_id,
        book_id=review.book_id,
        rating=review.rating,
        comment=review.comment,
        helpful_votes=review.helpful_votes,
        created_at=review.created_at,
        updated_at=review.updated_at,
    )


class ReviewSelector(BaseSelector):
    """Read-only queries over reviews."""

    def get_snapshot(self, review_id: UUID) -> ReviewSnapshot | None:
        review = self.session.execute(
            select(Review)
            .where(Review.id == review_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        return _to_snapshot(review) if review is not None else None

    def for_book(self, book_id: UUID) -> list[ReviewSnapshot]:
        """Reviews of a book, most helpful first."""
        reviews = self.session.execute(
            select(Review)
            .where(Review.book_id == book_id)
            .order_by(Review.helpful_votes.desc(), Review.created_at)
            .execution_options(populate_existing=True)
        ).scalars().all()
        return [_to_snapshot(r) for r in reviews]

    def ratings_for_book(self, book_id: UUID) -> list[int]:
        return list(self.session.execute(
            select(Review.rating).where(Review.book_id == book_id)
        ).scalars().all())
