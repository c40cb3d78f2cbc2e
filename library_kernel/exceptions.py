"""
Typed Exception Hierarchy for the Library Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (the HTTP layer, batch jobs, tests) must be able to react to a
failure without parsing its message. Every class below carries a class-level
``code`` that is stable and safe to expose through an API, and every
instance carries the identifiers it is about as attributes.

Expected business outcomes ("book unavailable", "already returned") are NOT
raised by the workflows. They come back as a status on a result object; the
classes for them exist so that ``result.raise_for_status()`` can turn a
failed result into an exception for callers that prefer that style.

Infrastructure failures (lock timeouts, broken transactions) and guard
violations ARE raised, always after the transaction has been rolled back.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LibraryKernelError (base)
    |
    +-- ValidationError             bad input, detected before any lock
    |   +-- InvalidLoanPeriodError
    |   +-- InvalidRatingError
    |   +-- CommentTooLongError
    |   +-- NoChangesError
    |   +-- InvalidTotalCopiesError
    |   +-- MissingTitleError
    |
    +-- NotFoundError               referenced entity absent
    |   +-- UserInvalidError
    |   +-- BookNotFoundError
    |   +-- BookInvalidError
    |   +-- LoanNotFoundError
    |   +-- ReviewNotFoundError
    |
    +-- StateConflictError          rule violated by current (locked) state
    |   +-- BookInactiveError
    |   +-- InventoryExhaustedError
    |   +-- LoanLimitReachedError
    |   +-- AlreadyReturnedError
    |   +-- MustBorrowFirstError
    |   +-- AlreadyReviewedError
    |   +-- OwnReviewError
    |   +-- InventoryConflictError
    |   +-- ActiveLoansError
    |   +-- DuplicateIsbnError
    |
    +-- AuthorizationError
    |   +-- UnauthorizedActionError
    |
    +-- ContentionError             lock wait timed out (retryable)
    +-- StoreError                  any other transaction failure
    +-- InvariantViolationError     consistency guard in raise mode
    +-- ImmutabilityViolationError  audit entry / returned loan tampering

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                     | When
--------------|--------------------------|---------------------------------------
Validation    | INVALID_LOAN_PERIOD      | Period outside the configured bounds
              | INVALID_RATING           | Rating not an integer in 1..5
              | COMMENT_TOO_LONG         | Comment longer than the policy allows
              | NO_CHANGES               | Review update with nothing to change
              | INVALID_TOTAL_COPIES     | Book total below 1
              | MISSING_TITLE            | Book registration without a title
Not found     | USER_INVALID             | Borrower unknown or inactive
              | BOOK_NOT_FOUND           | Book id does not exist
              | BOOK_INVALID             | Book missing or inactive (reviews)
              | LOAN_NOT_FOUND           | Loan id does not exist
              | REVIEW_NOT_FOUND         | Review id does not exist
State         | BOOK_INACTIVE            | Book is retired
              | INVENTORY_EXHAUSTED      | No available copies
              | LOAN_LIMIT_REACHED       | Borrower already holds the maximum
              | ALREADY_RETURNED         | Loan returned before
              | MUST_BORROW_FIRST        | Review without a prior loan
              | ALREADY_REVIEWED         | Second review for (user, book)
              | OWN_REVIEW               | Helpful vote on one's own review
              | INVENTORY_CONFLICT       | Resize below copies on loan
              | ACTIVE_LOANS             | Retire with unreturned loans
              | DUPLICATE_ISBN           | ISBN already catalogued
Authorization | UNAUTHORIZED             | Actor may not perform the action
Contention    | LOCK_CONTENTION          | Lock wait timeout / deadlock victim
Store         | STORE_ERROR              | Any other database failure
Guard         | INVARIANT_VIOLATION      | Guard refused to persist a bad value
Immutability  | IMMUTABILITY_VIOLATION   | Append-only / terminal row modified

===============================================================================
"""


class LibraryKernelError(Exception):
    """
    Base exception for all library kernel errors.

    All subclasses define a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "LIBRARY_KERNEL_ERROR"


class _OutcomeError(LibraryKernelError):
    """Base for errors that mirror a failed workflow result."""

    def __init__(self, message: str | None = None, subject_id: str | None = None):
        self.subject_id = subject_id
        super().__init__(message or self.code)


# Validation


class ValidationError(_OutcomeError):
    """Malformed or out-of-range input."""

    code: str = "VALIDATION_ERROR"


class InvalidLoanPeriodError(ValidationError):
    code: str = "INVALID_LOAN_PERIOD"


class InvalidRatingError(ValidationError):
    code: str = "INVALID_RATING"


class CommentTooLongError(ValidationError):
    code: str = "COMMENT_TOO_LONG"


class NoChangesError(ValidationError):
    code: str = "NO_CHANGES"


class InvalidTotalCopiesError(ValidationError):
    code: str = "INVALID_TOTAL_COPIES"


class MissingTitleError(ValidationError):
    code: str = "MISSING_TITLE"


# Not found


class NotFoundError(_OutcomeError):
    """Referenced entity does not exist."""

    code: str = "NOT_FOUND"


class UserInvalidError(NotFoundError):
    """User does not exist or is not active."""

    code: str = "USER_INVALID"


class BookNotFoundError(NotFoundError):
    code: str = "BOOK_NOT_FOUND"


class BookInvalidError(NotFoundError):
    """Book does not exist or is not active."""

    code: str = "BOOK_INVALID"


class LoanNotFoundError(NotFoundError):
    code: str = "LOAN_NOT_FOUND"


class ReviewNotFoundError(NotFoundError):
    code: str = "REVIEW_NOT_FOUND"


# State conflicts


class StateConflictError(_OutcomeError):
    """Business rule violated given the current state of the data."""

    code: str = "STATE_CONFLICT"


class BookInactiveError(StateConflictError):
    code: str = "BOOK_INACTIVE"


class InventoryExhaustedError(StateConflictError):
    code: str = "INVENTORY_EXHAUSTED"


class LoanLimitReachedError(StateConflictError):
    code: str = "LOAN_LIMIT_REACHED"


class AlreadyReturnedError(StateConflictError):
    code: str = "ALREADY_RETURNED"


class MustBorrowFirstError(StateConflictError):
    code: str = "MUST_BORROW_FIRST"


class AlreadyReviewedError(StateConflictError):
    code: str = "ALREADY_REVIEWED"


class OwnReviewError(StateConflictError):
    code: str = "OWN_REVIEW"


class InventoryConflictError(StateConflictError):
    """Resize would leave fewer copies than are currently on loan."""

    code: str = "INVENTORY_CONFLICT"


class ActiveLoansError(StateConflictError):
    code: str = "ACTIVE_LOANS"


class DuplicateIsbnError(StateConflictError):
    code: str = "DUPLICATE_ISBN"


# Authorization


class AuthorizationError(_OutcomeError):
    """Actor is not allowed to perform the action."""

    code: str = "AUTHORIZATION_ERROR"


class UnauthorizedActionError(AuthorizationError):
    code: str = "UNAUTHORIZED"


# Infrastructure


class ContentionError(LibraryKernelError):
    """
    A lock could not be acquired before the store's lock-wait timeout.

    The transaction has been rolled back and nothing was written. The caller
    decides whether to retry; the kernel never does.
    """

    code: str = "LOCK_CONTENTION"
    retryable: bool = True

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(
            f"Lock contention during {operation}: {detail}"
        )


class StoreError(LibraryKernelError):
    """Transaction failed for a reason other than lock contention."""

    code: str = "STORE_ERROR"
    retryable: bool = False

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Store failure during {operation}: {detail}")


class InvariantViolationError(LibraryKernelError):
    """
    The consistency guard found a value outside its invariant bounds.

    Raised only when the guard runs in ``raise`` mode; in ``clamp`` mode the
    value is corrected and the anomaly audited instead.
    """

    code: str = "INVARIANT_VIOLATION"

    def __init__(self, invariant: str, entity_type: str, entity_id: str, detail: str):
        self.invariant = invariant
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.detail = detail
        super().__init__(
            f"Invariant {invariant} violated on {entity_type} {entity_id}: {detail}"
        )


class ImmutabilityViolationError(LibraryKernelError):
    """Attempted to modify or delete an append-only or terminal record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
