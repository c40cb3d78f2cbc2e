"""
Book state checker -- the one authoritative statement of a book's bounds.

Responsibility:
    Decides whether a set of book counters is legal and, if not, what the
    nearest legal value is.  InventoryLedger and RatingAggregator call
    ``check_book_state`` before flushing their own changes; the consistency
    guard calls ``clamp_book_state`` on every flush that touches a Book.
    Neither path carries its own copy of the bounds.

Architecture position:
    Kernel > Domain -- pure functions over a frozen value object.

Invariants enforced:
    COPY_BOUNDS    -- 0 <= available_copies <= total_copies
    BORROW_COUNTER -- total_borrowed >= 0
    RATING_BOUNDS  -- 0 <= average_rating <= 5
"""

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any

from library_kernel.invariants import KernelInvariant

RATING_FLOOR = Decimal("0.00")
RATING_CEILING = Decimal("5.00")


@dataclass(frozen=True)
class BookState:
    """Counters of one book, detached from the ORM."""

    total_copies: int
    available_copies: int
    total_borrowed: int
    average_rating: Decimal


@dataclass(frozen=True)
class BookStateViolation:
    """One out-of-bounds field and the value it would be clamped to."""

    invariant: KernelInvariant
    field: str
    value: Any
    corrected: Any

    def describe(self) -> str:
        return f"{self.field}={self.value} corrected to {self.corrected}"


def check_book_state(state: BookState) -> tuple[BookStateViolation, ...]:
    """Return every bound ``state`` breaks.  Empty tuple means legal."""
    violations: list[BookStateViolation] = []

    upper = max(state.total_copies, 0)
    if state.available_copies < 0:
        violations.append(BookStateViolation(
            KernelInvariant.COPY_BOUNDS, "available_copies", state.available_copies, 0,
        ))
    elif state.available_copies > upper:
        violations.append(BookStateViolation(
            KernelInvariant.COPY_BOUNDS, "available_copies", state.available_copies, upper,
        ))

    if state.total_borrowed < 0:
        violations.append(BookStateViolation(
            KernelInvariant.BORROW_COUNTER, "total_borrowed", state.total_borrowed, 0,
        ))

    rating = Decimal(state.average_rating)
    if rating < RATING_FLOOR:
        violations.append(BookStateViolation(
            KernelInvariant.RATING_BOUNDS, "average_rating", rating, RATING_FLOOR,
        ))
    elif rating > RATING_CEILING:
        violations.append(BookStateViolation(
            KernelInvariant.RATING_BOUNDS, "average_rating", rating, RATING_CEILING,
        ))

    return tuple(violations)


def clamp_book_state(
    state: BookState,
) -> tuple[BookState, tuple[BookStateViolation, ...]]:
    """Return the nearest legal state and the violations that were corrected."""
    violations = check_book_state(state)
    if not violations:
        return state, violations
    corrected = replace(state, **{v.field: v.corrected for v in violations})
    return corrected, violations
