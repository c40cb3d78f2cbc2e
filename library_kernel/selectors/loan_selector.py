"""
Module: library_kernel.selectors.loan_selector
Responsibility: Read-only loan queries: snapshots, active-loan counts,
    overdue lists, accrued late fees and checkout statistics.
Architecture position: Kernel > Selectors.

Dates are taken from the injected Clock; overdue status and accrued fees
are derived at query time and never stored.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from library_kernel.domain.clock import Clock, SystemClock
from library_kernel.domain.lending import assess_late_fee, days_overdue, is_overdue
from library_kernel.domain.policy import LendingPolicy
from library_kernel.models.loan import Loan
from library_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class LoanSnapshot:
    """Point-in-time copy of a loan row, with derived overdue status."""

    loan_id: UUID
    user_id: UUID
    book_id: UUID
    checkout_date: datetime
    due_date: date
    return_date: datetime | None
    is_returned: bool
    is_late: bool
    late_fee: Decimal
    is_overdue: bool
    days_overdue: int


@dataclass(frozen=True)
class CheckoutStatistics:
    total_loans: int
    active_loans: int
    returned_loans: int
    overdue_loans: int
    late_returns: int
    total_late_fees: Decimal


def _day_start(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


class LoanSelector(BaseSelector):
    """Read-only queries over loans."""

    def __init__(
        self,
        session,
        clock: Clock | None = None,
        policy: LendingPolicy | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._policy = policy or LendingPolicy()

    def _to_snapshot(self, loan: Loan, today: date) -> LoanSnapshot:
        overdue = is_overdue(loan.due_date, loan.is_returned, today)
        return LoanSnapshot(
            loan_id=loan.id,
            user_id=loan.user_id,
            book_id=loan.book_id,
            checkout_date=loan.checkout_date,
            due_date=loan.due_date,
            return_date=loan.return_date,
            is_returned=loan.is_returned,
            is_late=loan.is_late,
            late_fee=Decimal(loan.late_fee).quantize(Decimal("0.01")),
            is_overdue=overdue,
            days_overdue=days_overdue(loan.due_date, today) if overdue else 0,
        )

    def get_snapshot(self, loan_id: UUID) -> LoanSnapshot | None:
        loan = self.session.execute(
            select(Loan)
            .where(Loan.id == loan_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if loan is None:
            return None
        return self._to_snapshot(loan, self._clock.today())

    def loans_for_user(self, user_id: UUID, active_only: bool = False) -> list[LoanSnapshot]:
        stmt = select(Loan).where(Loan.user_id == user_id)
        if active_only:
            stmt = stmt.where(Loan.is_returned.is_(False))
        loans = self.session.execute(
            stmt.order_by(Loan.due_date).execution_options(populate_existing=True)
        ).scalars().all()
        today = self._clock.today()
        return [self._to_snapshot(loan, today) for loan in loans]

    def active_loan_count(self, user_id: UUID) -> int:
        return self.session.execute(
            select(func.count(Loan.id)).where(
                Loan.user_id == user_id,
                Loan.is_returned.is_(False),
            )
        ).scalar_one()

    def can_borrow_more(self, user_id: UUID) -> bool:
        """
        Advisory: True when the user is below the loan limit right now.

        Borrow re-checks under the borrower lock; this answer may be stale.
        """
        return self.active_loan_count(user_id) < self._policy.max_active_loans

    def overdue_loans(self) -> list[LoanSnapshot]:
        today = self._clock.today()
        loans = self.session.execute(
            select(Loan)
            .where(Loan.is_returned.is_(False), Loan.due_date < today)
            .order_by(Loan.due_date)
            .execution_options(populate_existing=True)
        ).scalars().all()
        return [self._to_snapshot(loan, today) for loan in loans]

    def overdue_count(self) -> int:
        return self.session.execute(
            select(func.count(Loan.id)).where(
                Loan.is_returned.is_(False),
                Loan.due_date < self._clock.today(),
            )
        ).scalar_one()

    def accrued_late_fee(self, loan_id: UUID) -> Decimal | None:
        """
        Fee owed on a loan: the assessed fee once returned, otherwise what
        would be charged if it came back today.
        """
        loan = self.session.execute(
            select(Loan)
            .where(Loan.id == loan_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if loan is None:
            return None
        if loan.is_returned:
            return Decimal(loan.late_fee).quantize(Decimal("0.01"))
        return assess_late_fee(
            loan.due_date, self._clock.today(), self._policy.fee_per_day
        ).late_fee

    def is_returned_on_time(self, loan_id: UUID) -> bool | None:
        """True/False for returned loans; None while still out or unknown."""
        loan = self.session.execute(
            select(Loan)
            .where(Loan.id == loan_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if loan is None or not loan.is_returned:
            return None
        return not loan.is_late

    def count_checkouts_between(self, start: date, end: date) -> int:
        """Loans checked out on any day from ``start`` to ``end`` inclusive."""
        return self.session.execute(
            select(func.count(Loan.id)).where(
                Loan.checkout_date >= _day_start(start),
                Loan.checkout_date < _day_start(end + timedelta(days=1)),
            )
        ).scalar_one()

    def statistics(self) -> CheckoutStatistics:
        today = self._clock.today()
        total = self.session.execute(select(func.count(Loan.id))).scalar_one()
        active = self.session.execute(
            select(func.count(Loan.id)).where(Loan.is_returned.is_(False))
        ).scalar_one()
        overdue = self.session.execute(
            select(func.count(Loan.id)).where(
                Loan.is_returned.is_(False), Loan.due_date < today
            )
        ).scalar_one()
        late_returns = self.session.execute(
            select(func.count(Loan.id)).where(Loan.is_late.is_(True))
        ).scalar_one()
        fees = self.session.execute(
            select(Loan.late_fee).where(Loan.is_late.is_(True))
        ).scalars().all()
        return CheckoutStatistics(
            total_loans=total,
            active_loans=active,
            returned_loans=total - active,
            overdue_loans=overdue,
            late_returns=late_returns,
            total_late_fees=sum(
                (Decimal(str(fee)) for fee in fees), Decimal("0.00")
            ).quantize(Decimal("0.01")),
        )
