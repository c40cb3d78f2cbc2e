"""
ReviewWorkflow -- submit, edit, delete and vote on reviews.

Responsibility:
    Gates review creation on a prior loan, keeps one review per
    (user, book), enforces author-only editing and author-or-staff
    deletion, and recomputes the book's rating in the same transaction as
    every rating-bearing change.

Architecture position:
    Kernel > Services -- owns the transaction boundary.

Invariants enforced:
    ONE_REVIEW_PER_BORROWER -- checked under the book row lock (two
        concurrent submissions for the same book are serialised) and backed
        by the UNIQUE (user_id, book_id) constraint.
    RATING_DERIVATION -- RatingAggregator.recompute after insert, update
        and delete, before commit.

Failure modes:
    submit: INVALID_RATING, COMMENT_TOO_LONG, BOOK_INVALID,
        MUST_BORROW_FIRST, ALREADY_REVIEWED.
    update: NO_CHANGES, INVALID_RATING, COMMENT_TOO_LONG, NOT_FOUND,
        UNAUTHORIZED.
    delete: NOT_FOUND, UNAUTHORIZED.
    mark_helpful: NOT_FOUND, OWN_REVIEW.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import exists, select

from library_kernel.domain.rating import is_valid_rating
from library_kernel.domain.results import OutcomeResult
from library_kernel.exceptions import (
    AlreadyReviewedError,
    BookInvalidError,
    CommentTooLongError,
    InvalidRatingError,
    MustBorrowFirstError,
    NoChangesError,
    OwnReviewError,
    ReviewNotFoundError,
    UnauthorizedActionError,
)
from library_kernel.logging_config import get_logger
from library_kernel.models.audit_entry import AuditAction
from library_kernel.models.book import Book
from library_kernel.models.loan import Loan
from library_kernel.models.review import Review
from library_kernel.services.audit_trail import AuditTrail
from library_kernel.services.base import TransactionalWorkflow
from library_kernel.services.inventory_ledger import lock_book
from library_kernel.services.rating_aggregator import RatingAggregator
from library_kernel.services.user_directory import SqlUserDirectory, UserDirectory

logger = get_logger("services.review_workflow")


class ReviewStatus(str, Enum):
    """Status of a review operation."""

    OK = "ok"
    INVALID_RATING = "invalid_rating"
    COMMENT_TOO_LONG = "comment_too_long"
    NO_CHANGES = "no_changes"
    BOOK_INVALID = "book_invalid"
    MUST_BORROW_FIRST = "must_borrow_first"
    ALREADY_REVIEWED = "already_reviewed"
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    OWN_REVIEW = "own_review"


@dataclass(frozen=True)
class ReviewResult(OutcomeResult):
    """Result of a review operation, with the book's rating after it."""

    status: ReviewStatus
    review_id: UUID | None = None
    book_id: UUID | None = None
    rating: int | None = None
    comment: str | None = None
    helpful_votes: int | None = None
    average_rating: Decimal | None = None
    total_reviews: int | None = None
    message: str | None = None

    success_statuses: ClassVar[frozenset] = frozenset({ReviewStatus.OK})
    errors: ClassVar[dict] = {
        ReviewStatus.INVALID_RATING: InvalidRatingError,
        ReviewStatus.COMMENT_TOO_LONG: CommentTooLongError,
        ReviewStatus.NO_CHANGES: NoChangesError,
        ReviewStatus.BOOK_INVALID: BookInvalidError,
        ReviewStatus.MUST_BORROW_FIRST: MustBorrowFirstError,
        ReviewStatus.ALREADY_REVIEWED: AlreadyReviewedError,
        ReviewStatus.NOT_FOUND: ReviewNotFoundError,
        ReviewStatus.UNAUTHORIZED: UnauthorizedActionError,
        ReviewStatus.OWN_REVIEW: OwnReviewError,
    }
    subject_field: ClassVar[str] = "review_id"


def _snapshot(review: Review) -> dict:
    return {"rating": review.rating, "comment": review.comment}


class ReviewWorkflow(TransactionalWorkflow):
    """
    Review lifecycle with rating recomputation.

    Guarantees:
        - Rating changes and the recomputed aggregate commit together.
        - Every successful mutation appends one audit entry.
    """

    _logger = logger

    def __init__(
        self,
        session,
        clock=None,
        policy=None,
        users: UserDirectory | None = None,
        aggregator: RatingAggregator | None = None,
        audit_trail: AuditTrail | None = None,
        auto_commit: bool = True,
    ):
        super().__init__(session, clock, policy, auto_commit)
        self._users = users or SqlUserDirectory(session)
        self._aggregator = aggregator or RatingAggregator(session)
        self._audit = audit_trail or AuditTrail(session, self._clock)

    def _comment_too_long(self, comment: str | None) -> bool:
        return comment is not None and len(comment) > self._policy.max_comment_length

    def _load_review(self, review_id: UUID, lock: bool = False) -> Review | None:
        stmt = select(Review).where(Review.id == review_id)
        if lock:
            stmt = stmt.with_for_update()
        return self._session.execute(
            stmt.execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _ok(self, review: Review, book: Book | None = None) -> ReviewResult:
        return ReviewResult(
            status=ReviewStatus.OK,
            review_id=review.id,
            book_id=review.book_id,
            rating=review.rating,
            comment=review.comment,
            helpful_votes=review.helpful_votes,
            average_rating=book.average_rating if book is not None else None,
            total_reviews=book.total_reviews if book is not None else None,
        )

    # ------------------------------------------------------------------
    # Submit
    # ------------------------------------------------------------------

    def submit(
        self,
        user_id: UUID,
        book_id: UUID,
        rating: int,
        comment: str | None = None,
    ) -> ReviewResult:
        """
        Create the review of ``book_id`` by ``user_id``.

        Preconditions:
            - ``user_id`` has borrowed ``book_id`` at least once.
        Postconditions (OK):
            - Review inserted, book rating recomputed, REVIEW_SUBMITTED
              audited; committed together.
        """
        return self._run(
            "review_submit",
            lambda: self._do_submit(user_id, book_id, rating, comment),
            actor_id=user_id,
            context={"user_id": user_id, "book_id": book_id},
            log_fields={"rating": rating},
        )

    def _do_submit(self, user_id, book_id, rating, comment) -> ReviewResult:
        if not is_valid_rating(rating):
            return ReviewResult(
                status=ReviewStatus.INVALID_RATING,
                book_id=book_id,
                message=f"Rating must be an integer between 1 and 5, got {rating!r}",
            )
        if self._comment_too_long(comment):
            return ReviewResult(
                status=ReviewStatus.COMMENT_TOO_LONG,
                book_id=book_id,
                message=f"Comment exceeds {self._policy.max_comment_length} characters",
            )

        book = lock_book(self._session, book_id)
        if book is None or not book.is_active:
            return ReviewResult(
                status=ReviewStatus.BOOK_INVALID,
                book_id=book_id,
                message="Book does not exist or is retired",
            )

        has_borrowed = self._session.execute(
            select(exists().where(Loan.user_id == user_id, Loan.book_id == book_id))
        ).scalar()
        if not has_borrowed:
            return ReviewResult(
                status=ReviewStatus.MUST_BORROW_FIRST,
                book_id=book_id,
                message="Only borrowers of this book may review it",
            )

        existing = self._session.execute(
            select(Review.id).where(Review.user_id == user_id, Review.book_id == book_id)
        ).scalar_one_or_none()
        if existing is not None:
            return ReviewResult(
                status=ReviewStatus.ALREADY_REVIEWED,
                review_id=existing,
                book_id=book_id,
                message="User has already reviewed this book",
            )

        review = Review(
            id=uuid4(),
            user_id=user_id,
            book_id=book_id,
            rating=rating,
            comment=comment,
            helpful_votes=0,
        )
        self._session.add(review)
        self._session.flush()

        self._aggregator.recompute(book_id)
        self._audit.record_review(
            AuditAction.REVIEW_SUBMITTED, review.id, book_id, user_id,
            after=_snapshot(review),
        )
        return self._ok(review, book)

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    def update(
        self,
        review_id: UUID,
        actor_id: UUID,
        rating: int | None = None,
        comment: str | None = None,
    ) -> ReviewResult:
        """Edit a review.  Only its author may do so."""
        return self._run(
            "review_update",
            lambda: self._do_update(review_id, actor_id, rating, comment),
            actor_id=actor_id,
            context={"review_id": review_id},
        )

    def _do_update(self, review_id, actor_id, rating, comment) -> ReviewResult:
        if rating is None and comment is None:
            return ReviewResult(
                status=ReviewStatus.NO_CHANGES,
                review_id=review_id,
                message="Nothing to update",
            )
        if rating is not None and not is_valid_rating(rating):
            return ReviewResult(
                status=ReviewStatus.INVALID_RATING,
                review_id=review_id,
                message=f"Rating must be an integer between 1 and 5, got {rating!r}",
            )
        if self._comment_too_long(comment):
            return ReviewResult(
                status=ReviewStatus.COMMENT_TOO_LONG,
                review_id=review_id,
                message=f"Comment exceeds {self._policy.max_comment_length} characters",
            )

        review = self._load_review(review_id)
        if review is None:
            return ReviewResult(status=ReviewStatus.NOT_FOUND, review_id=review_id)
        if review.user_id != actor_id:
            return ReviewResult(
                status=ReviewStatus.UNAUTHORIZED,
                review_id=review_id,
                book_id=review.book_id,
                message="Only the author may edit a review",
            )

        book = lock_book(self._session, review.book_id)
        # Re-read under the book lock; a concurrent delete may have won.
        review = self._load_review(review_id)
        if review is None:
            return ReviewResult(status=ReviewStatus.NOT_FOUND, review_id=review_id)

        before = _snapshot(review)
        if rating is not None:
            review.rating = rating
        if comment is not None:
            review.comment = comment
        self._session.flush()

        self._aggregator.recompute(review.book_id)
        self._audit.record_review(
            AuditAction.REVIEW_UPDATED, review.id, review.book_id, actor_id,
            before=before, after=_snapshot(review),
        )
        return self._ok(review, book)

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    def delete(self, review_id: UUID, actor_id: UUID) -> ReviewResult:
        """Remove a review.  Its author or a privileged actor may do so."""
        return self._run(
            "review_delete",
            lambda: self._do_delete(review_id, actor_id),
            actor_id=actor_id,
            context={"review_id": review_id},
        )

    def _do_delete(self, review_id, actor_id) -> ReviewResult:
        review = self._load_review(review_id)
        if review is None:
            return ReviewResult(status=ReviewStatus.NOT_FOUND, review_id=review_id)
        if review.user_id != actor_id and not self._users.is_privileged(actor_id):
            return ReviewResult(
                status=ReviewStatus.UNAUTHORIZED,
                review_id=review_id,
                book_id=review.book_id,
                message="Only the author or staff may delete a review",
            )

        book_id = review.book_id
        book = lock_book(self._session, book_id)
        review = self._load_review(review_id)
        if review is None:
            return ReviewResult(status=ReviewStatus.NOT_FOUND, review_id=review_id)

        before = _snapshot(review)
        self._session.delete(review)
        self._session.flush()

        self._aggregator.recompute(book_id)
        self._audit.record_review(
            AuditAction.REVIEW_DELETED, review_id, book_id, actor_id, before=before,
        )
        return ReviewResult(
            status=ReviewStatus.OK,
            review_id=review_id,
            book_id=book_id,
            average_rating=book.average_rating if book is not None else None,
            total_reviews=book.total_reviews if book is not None else None,
        )

    # ------------------------------------------------------------------
    # Helpful votes
    # ------------------------------------------------------------------

    def mark_helpful(self, review_id: UUID, voter_id: UUID) -> ReviewResult:
        """Count one helpful vote.  Authors cannot vote on their own review."""
        return self._run(
            "review_mark_helpful",
            lambda: self._do_mark_helpful(review_id, voter_id),
            actor_id=voter_id,
            context={"review_id": review_id},
        )

    def _do_mark_helpful(self, review_id, voter_id) -> ReviewResult:
        review = self._load_review(review_id, lock=True)
        if review is None:
            return ReviewResult(status=ReviewStatus.NOT_FOUND, review_id=review_id)
        if review.user_id == voter_id:
            return ReviewResult(
                status=ReviewStatus.OWN_REVIEW,
                review_id=review_id,
                book_id=review.book_id,
                message="Authors cannot vote on their own review",
            )

        before = {"helpful_votes": review.helpful_votes}
        review.helpful_votes = review.helpful_votes + 1
        self._session.flush()

        self._audit.record_review(
            AuditAction.REVIEW_MARKED_HELPFUL, review.id, review.book_id, voter_id,
            before=before, after={"helpful_votes": review.helpful_votes},
        )
        return self._ok(review)
