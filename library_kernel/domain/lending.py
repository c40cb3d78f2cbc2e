"""
Lending arithmetic -- due dates, overdue status and late fees.

Architecture position:
    Kernel > Domain -- pure functions, no I/O, no clock access.  Callers
    pass ``today`` explicitly.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal

from library_kernel.domain.policy import LendingPolicy

FEE_QUANTUM = Decimal("0.01")


@dataclass(frozen=True)
class LateFeeAssessment:
    """Outcome of assessing a loan at return time."""

    days_late: int
    late_fee: Decimal

    @property
    def is_late(self) -> bool:
        return self.days_late > 0


def resolve_due_date(
    today: date,
    policy: LendingPolicy,
    loan_period_days: int | None = None,
    due_date: date | None = None,
) -> date | None:
    """
    Work out the due date of a new loan, or None if the request is invalid.

    Exactly one of ``loan_period_days`` and ``due_date`` may be given; with
    neither, the policy default period applies.  The resulting period must
    lie within ``[min_loan_days, max_loan_days]``.
    """
    if loan_period_days is not None and due_date is not None:
        return None

    if due_date is not None:
        days = (due_date - today).days
    elif loan_period_days is not None:
        if isinstance(loan_period_days, bool) or not isinstance(loan_period_days, int):
            return None
        days = loan_period_days
    else:
        days = policy.default_loan_days

    if not policy.accepts_period(days):
        return None
    return today + timedelta(days=days)


def days_overdue(due_date: date, as_of: date) -> int:
    """Whole days past the due date; 0 when on time."""
    return max(0, (as_of - due_date).days)


def assess_late_fee(
    due_date: date,
    returned_on: date,
    fee_per_day: Decimal,
) -> LateFeeAssessment:
    """
    days_late = max(0, returned_on - due_date); fee = days_late * fee_per_day.

    A loan returned on its due date is on time and owes nothing.
    """
    days_late = days_overdue(due_date, returned_on)
    fee = (Decimal(days_late) * fee_per_day).quantize(FEE_QUANTUM)
    return LateFeeAssessment(days_late=days_late, late_fee=fee)


def is_overdue(due_date: date, is_returned: bool, today: date) -> bool:
    """Overdue is derived, never stored: unreturned and past the due date."""
    return not is_returned and due_date < today
