"""
Module: library_kernel.models.loan
Responsibility: ORM persistence for loans (one borrowed copy of one book).
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    RETURN_ONCE -- a loan moves ACTIVE -> RETURNED exactly once.  The loan
        row lock serialises concurrent returns; ORM listeners
        (db/immutability.py) reject any change to a returned loan and any
        DELETE.
    late_fee >= 0 -- CHECK constraint.

Lifecycle:
    ACTIVE   (is_returned False)  -- created by LendingWorkflow.borrow
    RETURNED (is_returned True)   -- set by LendingWorkflow.return_loan; terminal
    Overdue is derived (not is_returned and due_date < today), never stored.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, Date, DateTime, ForeignKey, Index, Numeric
from sqlalchemy.orm import Mapped, mapped_column

from library_kernel.db.base import Base, UUIDString


class Loan(Base):
    """One copy of a book lent to one user."""

    __tablename__ = "loans"

    __table_args__ = (
        CheckConstraint("late_fee >= 0", name="ck_loans_late_fee_nonneg"),
        Index("idx_loans_user_open", "user_id", "is_returned"),
        Index("idx_loans_book_open", "book_id", "is_returned"),
        Index("idx_loans_due_date", "due_date"),
    )

    user_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("users.id"),
        nullable=False,
    )

    book_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("books.id"),
        nullable=False,
    )

    checkout_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    due_date: Mapped[date] = mapped_column(Date, nullable=False)

    return_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    is_returned: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Set only at return time.
    is_late: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    late_fee: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        default=Decimal("0.00"),
    )

    # Staff who processed checkout / return (None for self-service).
    checkout_actor_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("users.id"),
        nullable=True,
    )

    return_actor_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("users.id"),
        nullable=True,
    )

    def __repr__(self) -> str:
        state = "returned" if self.is_returned else "active"
        return f"<Loan {self.id} {state} due {self.due_date}>"
