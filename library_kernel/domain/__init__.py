"""
Pure domain layer.

Value objects and arithmetic with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Time/clock (callers pass dates in)
- I/O
"""

from library_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from library_kernel.domain.inventory import is_significant_change, plan_resize
from library_kernel.domain.invariants import (
    BookState,
    BookStateViolation,
    check_book_state,
    clamp_book_state,
)
from library_kernel.domain.lending import (
    LateFeeAssessment,
    assess_late_fee,
    is_overdue,
    resolve_due_date,
)
from library_kernel.domain.policy import LendingPolicy
from library_kernel.domain.rating import RatingSummary, summarize_ratings
from library_kernel.domain.results import ErrorKind, OutcomeResult

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "plan_resize",
    "is_significant_change",
    "BookState",
    "BookStateViolation",
    "check_book_state",
    "clamp_book_state",
    "LateFeeAssessment",
    "assess_late_fee",
    "is_overdue",
    "resolve_due_date",
    "LendingPolicy",
    "RatingSummary",
    "summarize_ratings",
    "ErrorKind",
    "OutcomeResult",
]
