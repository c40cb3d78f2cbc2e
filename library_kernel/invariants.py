"""
Kernel Invariants Contract.

These invariants are structural law. No LendingPolicy value may switch them
off; configuration influences limits and fees, never whether these rules
apply.

This module exists solely to declare the invariants explicitly. The
enforcement is distributed across InventoryLedger, RatingAggregator,
LendingWorkflow, ReviewWorkflow, the consistency guard and the table
constraints.
"""

from enum import Enum, unique


@unique
class KernelInvariant(str, Enum):
    """Non-configurable invariants enforced by the kernel."""

    COPY_BOUNDS = "copy_bounds"
    """0 <= available_copies <= total_copies for every book. Enforced by
    InventoryLedger, the consistency guard and a CHECK constraint."""

    COPY_CONSERVATION = "copy_conservation"
    """available_copies == total_copies - unreturned loans of the book.
    Enforced by pairing reserve/release with loan creation/return inside one
    transaction under the book row lock."""

    BORROW_COUNTER = "borrow_counter"
    """total_borrowed never decreases and is never negative."""

    RATING_BOUNDS = "rating_bounds"
    """0 <= average_rating <= 5. Enforced by the consistency guard and a
    CHECK constraint."""

    RATING_DERIVATION = "rating_derivation"
    """average_rating == round(mean(current ratings), 2) and total_reviews ==
    count(current reviews). Enforced by full recomputation under the book
    row lock after every review mutation."""

    ONE_REVIEW_PER_BORROWER = "one_review_per_borrower"
    """At most one review per (user, book), and only after a loan. Enforced
    by ReviewWorkflow and a unique constraint."""

    LOAN_LIMIT = "loan_limit"
    """A user never holds more unreturned loans than the policy allows.
    Enforced by counting under the borrower row lock."""

    RETURN_ONCE = "return_once"
    """A loan is returned at most once; a returned loan is never modified.
    Enforced by the loan row lock and ORM listeners."""

    AUDIT_APPEND_ONLY = "audit_append_only"
    """Audit entries are never updated or deleted. Enforced by ORM
    listeners."""


ALL_KERNEL_INVARIANTS: frozenset[KernelInvariant] = frozenset(KernelInvariant)

# The kernel package may not import from these packages.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = ("library_config",)
