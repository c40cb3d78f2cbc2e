"""
LendingWorkflow -- borrow and return, one transaction each.

Responsibility:
    Validates a borrow request, enforces the per-user loan limit, reserves
    a copy, creates the Loan and audits it; on return, assesses the late
    fee, closes the Loan, releases the copy and audits it.

Architecture position:
    Kernel > Services -- owns the transaction boundary (commit on success,
    rollback on any failure when auto_commit=True).

Lock order (every kernel operation uses the same order, so no two can
deadlock against each other):
    borrower row -> loan row -> book row

Invariants enforced:
    LOAN_LIMIT        -- unreturned loans counted under the borrower row
                         lock, in the transaction that reserves the copy.
    COPY_CONSERVATION -- reserve + Loan insert, and Loan close + release,
                         commit together or not at all.
    RETURN_ONCE       -- the loan row is locked and re-read before return;
                         a second return sees is_returned and gets
                         ALREADY_RETURNED without releasing a copy.

Failure modes:
    Borrow statuses, in the order they are checked: USER_INVALID,
        INVALID_PERIOD, LIMIT_REACHED, BOOK_NOT_FOUND, BOOK_INACTIVE,
        EXHAUSTED.
    Return statuses: NOT_FOUND, ALREADY_RETURNED.
    - ContentionError / StoreError after rollback.

Audit relevance:
    BOOK_BORROWED and BOOK_RETURNED entries are written in the same
    transaction as the loan change.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import func, select

from library_kernel.domain.lending import assess_late_fee, resolve_due_date
from library_kernel.domain.results import OutcomeResult
from library_kernel.exceptions import (
    AlreadyReturnedError,
    BookInactiveError,
    BookNotFoundError,
    InvalidLoanPeriodError,
    InventoryExhaustedError,
    LoanLimitReachedError,
    LoanNotFoundError,
    UserInvalidError,
)
from library_kernel.logging_config import get_logger
from library_kernel.models.loan import Loan
from library_kernel.models.user import LibraryUser
from library_kernel.services.audit_trail import AuditTrail
from library_kernel.services.base import TransactionalWorkflow
from library_kernel.services.inventory_ledger import InventoryLedger, LedgerStatus
from library_kernel.services.user_directory import SqlUserDirectory, UserDirectory

logger = get_logger("services.lending_workflow")


class BorrowStatus(str, Enum):
    """Status of a borrow request."""

    OK = "ok"
    INVALID_PERIOD = "invalid_period"
    USER_INVALID = "user_invalid"
    LIMIT_REACHED = "limit_reached"
    BOOK_NOT_FOUND = "book_not_found"
    BOOK_INACTIVE = "book_inactive"
    EXHAUSTED = "exhausted"


class ReturnStatus(str, Enum):
    """Status of a return request."""

    OK = "ok"
    NOT_FOUND = "not_found"
    ALREADY_RETURNED = "already_returned"


@dataclass(frozen=True)
class BorrowResult(OutcomeResult):
    status: BorrowStatus
    user_id: UUID
    book_id: UUID
    loan_id: UUID | None = None
    due_date: date | None = None
    message: str | None = None

    success_statuses: ClassVar[frozenset] = frozenset({BorrowStatus.OK})
    errors: ClassVar[dict] = {
        BorrowStatus.INVALID_PERIOD: InvalidLoanPeriodError,
        BorrowStatus.USER_INVALID: UserInvalidError,
        BorrowStatus.LIMIT_REACHED: LoanLimitReachedError,
        BorrowStatus.BOOK_NOT_FOUND: BookNotFoundError,
        BorrowStatus.BOOK_INACTIVE: BookInactiveError,
        BorrowStatus.EXHAUSTED: InventoryExhaustedError,
    }
    subject_field: ClassVar[str] = "book_id"


@dataclass(frozen=True)
class ReturnResult(OutcomeResult):
    status: ReturnStatus
    loan_id: UUID
    late_fee: Decimal | None = None
    is_late: bool | None = None
    days_late: int = 0
    return_date: datetime | None = None
    message: str | None = None

    success_statuses: ClassVar[frozenset] = frozenset({ReturnStatus.OK})
    errors: ClassVar[dict] = {
        ReturnStatus.NOT_FOUND: LoanNotFoundError,
        ReturnStatus.ALREADY_RETURNED: AlreadyReturnedError,
    }
    subject_field: ClassVar[str] = "loan_id"


_RESERVE_FAILURES = {
    LedgerStatus.NOT_FOUND: BorrowStatus.BOOK_NOT_FOUND,
    LedgerStatus.INACTIVE: BorrowStatus.BOOK_INACTIVE,
    LedgerStatus.EXHAUSTED: BorrowStatus.EXHAUSTED,
}


class LendingWorkflow(TransactionalWorkflow):
    """
    Borrow and return.

    Contract:
        ``borrow`` and ``return_loan`` each run in one transaction and
        return a tagged result.  Expected business outcomes are never
        raised.

    Guarantees:
        - Any failed result leaves the store exactly as it was.
        - The late fee is days_late * fee_per_day with
          days_late = max(0, today - due_date).

    Non-goals:
        - No retries on contention.
        - Borrow is not idempotent; only return guards against duplicate
          invocation.
    """

    _logger = logger

    def __init__(
        self,
        session,
        clock=None,
        policy=None,
        users: UserDirectory | None = None,
        ledger: InventoryLedger | None = None,
        audit_trail: AuditTrail | None = None,
        auto_commit: bool = True,
    ):
        super().__init__(session, clock, policy, auto_commit)
        self._users = users or SqlUserDirectory(session)
        self._ledger = ledger or InventoryLedger(session)
        self._audit = audit_trail or AuditTrail(session, self._clock)

    # ------------------------------------------------------------------
    # Borrow
    # ------------------------------------------------------------------

    def borrow(
        self,
        user_id: UUID,
        book_id: UUID,
        loan_period_days: int | None = None,
        due_date: date | None = None,
        actor_id: UUID | None = None,
    ) -> BorrowResult:
        """
        Lend one copy of ``book_id`` to ``user_id``.

        Either ``loan_period_days`` or an explicit ``due_date`` may be
        given; with neither the policy default period applies.

        Postconditions (OK):
            - One new ACTIVE Loan, available_copies - 1, total_borrowed + 1,
              one BOOK_BORROWED audit entry; all committed together.
        """
        return self._run(
            "borrow",
            lambda: self._do_borrow(user_id, book_id, loan_period_days, due_date, actor_id),
            actor_id=actor_id or user_id,
            context={"user_id": user_id, "book_id": book_id},
            log_fields={
                "loan_period_days": loan_period_days,
                "due_date": str(due_date) if due_date else None,
            },
        )

    def _lock_borrower(self, user_id: UUID) -> LibraryUser | None:
        return self._session.execute(
            select(LibraryUser)
            .where(LibraryUser.id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _active_loan_count(self, user_id: UUID) -> int:
        return self._session.execute(
            select(func.count(Loan.id)).where(
                Loan.user_id == user_id,
                Loan.is_returned.is_(False),
            )
        ).scalar_one()

    def _do_borrow(
        self,
        user_id: UUID,
        book_id: UUID,
        loan_period_days: int | None,
        due_date: date | None,
        actor_id: UUID | None,
    ) -> BorrowResult:
        if not self._users.is_active_user(user_id):
            return BorrowResult(
                status=BorrowStatus.USER_INVALID,
                user_id=user_id,
                book_id=book_id,
                message="User does not exist or is inactive",
            )

        today = self._clock.today()
        resolved_due = resolve_due_date(today, self._policy, loan_period_days, due_date)
        if resolved_due is None:
            return BorrowResult(
                status=BorrowStatus.INVALID_PERIOD,
                user_id=user_id,
                book_id=book_id,
                message=(
                    f"Loan period must be between {self._policy.min_loan_days} and "
                    f"{self._policy.max_loan_days} days"
                ),
            )

        # Lock order: borrower row first.
        borrower = self._lock_borrower(user_id)
        if borrower is None:
            return BorrowResult(
                status=BorrowStatus.USER_INVALID,
                user_id=user_id,
                book_id=book_id,
                message="User does not exist",
            )

        active = self._active_loan_count(user_id)
        if active >= self._policy.max_active_loans:
            return BorrowResult(
                status=BorrowStatus.LIMIT_REACHED,
                user_id=user_id,
                book_id=book_id,
                message=f"User already has {active} active loans",
            )

        reservation = self._ledger.reserve(book_id)
        if not reservation.is_success:
            return BorrowResult(
                status=_RESERVE_FAILURES[reservation.status],
                user_id=user_id,
                book_id=book_id,
                message=reservation.message,
            )

        loan = Loan(
            id=uuid4(),
            user_id=user_id,
            book_id=book_id,
            checkout_date=self._clock.now(),
            due_date=resolved_due,
            return_date=None,
            is_returned=False,
            is_late=False,
            late_fee=Decimal("0.00"),
            checkout_actor_id=actor_id,
        )
        self._session.add(loan)
        self._session.flush()

        self._audit.record_borrow(loan, actor_id)

        return BorrowResult(
            status=BorrowStatus.OK,
            user_id=user_id,
            book_id=book_id,
            loan_id=loan.id,
            due_date=resolved_due,
        )

    # ------------------------------------------------------------------
    # Return
    # ------------------------------------------------------------------

    def return_loan(self, loan_id: UUID, actor_id: UUID | None = None) -> ReturnResult:
        """
        Close ``loan_id`` and put the copy back on the shelf.

        Postconditions (OK):
            - Loan RETURNED with return_date, is_late and late_fee set,
              available_copies + 1, one BOOK_RETURNED audit entry.
        """
        return self._run(
            "return_loan",
            lambda: self._do_return(loan_id, actor_id),
            actor_id=actor_id,
            context={"loan_id": loan_id},
        )

    def _lock_loan(self, loan_id: UUID) -> Loan | None:
        return self._session.execute(
            select(Loan)
            .where(Loan.id == loan_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _do_return(self, loan_id: UUID, actor_id: UUID | None) -> ReturnResult:
        loan = self._lock_loan(loan_id)
        if loan is None:
            return ReturnResult(
                status=ReturnStatus.NOT_FOUND,
                loan_id=loan_id,
                message="Loan does not exist",
            )
        if loan.is_returned:
            logger.info("return_duplicate", extra={"loan_id": str(loan_id)})
            return ReturnResult(
                status=ReturnStatus.ALREADY_RETURNED,
                loan_id=loan_id,
                message=f"Loan was returned on {loan.return_date}",
            )

        now = self._clock.now()
        assessment = assess_late_fee(
            loan.due_date, self._clock.today(), self._policy.fee_per_day
        )

        loan.is_returned = True
        loan.return_date = now
        loan.is_late = assessment.is_late
        loan.late_fee = assessment.late_fee
        loan.return_actor_id = actor_id

        release = self._ledger.release(loan.book_id)
        if not release.is_success:
            return ReturnResult(
                status=ReturnStatus.NOT_FOUND,
                loan_id=loan_id,
                message=f"Book {loan.book_id} of the loan does not exist",
            )

        self._audit.record_return(loan, actor_id)

        return ReturnResult(
            status=ReturnStatus.OK,
            loan_id=loan_id,
            late_fee=assessment.late_fee,
            is_late=assessment.is_late,
            days_late=assessment.days_late,
            return_date=now,
        )
