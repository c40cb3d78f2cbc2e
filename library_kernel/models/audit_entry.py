"""
Module: library_kernel.models.audit_entry
Responsibility: ORM persistence for the append-only audit trail.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    AUDIT_APPEND_ONLY -- no UPDATE or DELETE (ORM listeners in
        db/immutability.py).

Ordering:
    ``id`` is an auto-incrementing integer rather than the usual UUID so that
    entries written in the same instant keep their insertion order.

Minimum coverage (each action type is produced by at least one writer):
    - BOOK_ADDED, INVENTORY_UPDATED, BOOK_RETIRED       (StockService)
    - BOOK_BORROWED, BOOK_RETURNED                      (LendingWorkflow)
    - REVIEW_SUBMITTED, REVIEW_UPDATED, REVIEW_DELETED,
      REVIEW_MARKED_HELPFUL                             (ReviewWorkflow)
    - SIGNIFICANT_INVENTORY_CHANGE, BOOK_DEACTIVATED,
      INVARIANT_CLAMPED, USER_ROLE_CHANGED,
      USER_DEACTIVATED                                  (consistency guard)
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from library_kernel.db.base import Base, UUIDString


class AuditAction(str, Enum):
    """Types of auditable actions."""

    # Catalogue
    BOOK_ADDED = "book_added"
    INVENTORY_UPDATED = "inventory_updated"
    BOOK_RETIRED = "book_retired"

    # Circulation
    BOOK_BORROWED = "book_borrowed"
    BOOK_RETURNED = "book_returned"

    # Reviews
    REVIEW_SUBMITTED = "review_submitted"
    REVIEW_UPDATED = "review_updated"
    REVIEW_DELETED = "review_deleted"
    REVIEW_MARKED_HELPFUL = "review_marked_helpful"

    # Consistency guard
    SIGNIFICANT_INVENTORY_CHANGE = "significant_inventory_change"
    BOOK_DEACTIVATED = "book_deactivated"
    INVARIANT_CLAMPED = "invariant_clamped"

    # Accounts
    USER_ROLE_CHANGED = "user_role_changed"
    USER_DEACTIVATED = "user_deactivated"


class AuditTarget(str, Enum):
    BOOK = "book"
    LOAN = "loan"
    REVIEW = "review"
    USER = "user"


class AuditEntry(Base):
    """
    One immutable record of something that happened.

    Contract:
        AuditEntry rows are append-only, never updated or deleted.

    Non-goals:
        - No hash chain.  Entries for different books are written by
          independent transactions and are not globally serialised.
    """

    __tablename__ = "audit_entries"

    __table_args__ = (
        Index("idx_audit_target", "target_type", "target_id"),
        Index("idx_audit_action", "action_type"),
        Index("idx_audit_occurred", "occurred_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Who performed the action (SYSTEM_ACTOR_ID for guard entries)
    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    action_type: Mapped[str] = mapped_column(String(50), nullable=False)

    target_type: Mapped[str] = mapped_column(String(20), nullable=False)

    target_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    description: Mapped[str] = mapped_column(Text, nullable=False)

    before_state: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    after_state: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<AuditEntry {self.action_type} on {self.target_type}:{self.target_id}>"
