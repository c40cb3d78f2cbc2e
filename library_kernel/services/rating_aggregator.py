"""
RatingAggregator -- the only writer of a book's rating fields.

Responsibility:
    Recomputes average_rating and total_reviews from the full set of
    current reviews, under the book row lock.

Architecture position:
    Kernel > Services -- leaf service, flush-only.  Called by ReviewWorkflow
    after every review insert, update or delete, in the same transaction.

Invariants enforced:
    RATING_DERIVATION -- average_rating == round_half_up(mean(ratings), 2),
        total_reviews == count(ratings); 0.00 / 0 with no reviews.
    RATING_BOUNDS     -- checked with domain.invariants before flush.

Failure modes:
    - Returns None when the book does not exist.
    - InvariantViolationError if the derived rating is out of bounds
      (impossible with the rating CHECK constraint; a kernel bug).
"""

from uuid import UUID

from sqlalchemy import select

from library_kernel.domain.invariants import BookState, check_book_state
from library_kernel.domain.rating import RatingSummary, summarize_ratings
from library_kernel.exceptions import InvariantViolationError
from library_kernel.logging_config import get_logger
from library_kernel.models.review import Review
from library_kernel.services.base import BaseService
from library_kernel.services.inventory_ledger import lock_book

logger = get_logger("services.rating_aggregator")


class RatingAggregator(BaseService):
    """
    Full recomputation of a book's rating.

    Non-goals:
        - No incremental running average.
        - Does NOT call ``session.commit()``.
    """

    def recompute(self, book_id: UUID) -> RatingSummary | None:
        """
        Derive the rating fields of ``book_id`` from its reviews.

        Preconditions:
            - Pending review changes are flushed (or autoflush is on).
        Postconditions:
            - Book row locked, rating fields set and flushed.
        """
        self.session.flush()
        book = lock_book(self.session, book_id)
        if book is None:
            return None

        ratings = self.session.execute(
            select(Review.rating).where(Review.book_id == book_id)
        ).scalars().all()
        summary = summarize_ratings(ratings)

        violations = check_book_state(BookState(
            total_copies=book.total_copies,
            available_copies=book.available_copies,
            total_borrowed=book.total_borrowed,
            average_rating=summary.average_rating,
        ))
        rating_violations = [v for v in violations if v.field == "average_rating"]
        if rating_violations:
            first = rating_violations[0]
            raise InvariantViolationError(
                invariant=first.invariant.value,
                entity_type="Book",
                entity_id=str(book_id),
                detail=f"recompute: {first.describe()}",
            )

        book.average_rating = summary.average_rating
        book.total_reviews = summary.total_reviews
        self.session.flush()

        logger.info(
            "rating_recomputed",
            extra={
                "book_id": str(book_id),
                "average_rating": summary.average_rating,
                "total_reviews": summary.total_reviews,
            },
        )
        return summary
