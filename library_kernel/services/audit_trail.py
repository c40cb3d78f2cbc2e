"""
AuditTrail -- append-only record of every state change in the kernel.

Responsibility:
    Creates immutable AuditEntry rows for catalogue, circulation and review
    changes, and answers trace queries for forensic review.

Architecture position:
    Kernel > Services -- leaf service, flush-only.  Called by
    LendingWorkflow, ReviewWorkflow and StockService inside their own
    transactions.  The consistency guard writes its entries directly in
    the flush (db/consistency_guard.py).

Invariants enforced:
    AUDIT_APPEND_ONLY -- entries are never updated or deleted (ORM listeners
        on the AuditEntry model).

Failure modes:
    - IntegrityError / OperationalError propagate to the owning workflow.

Audit relevance:
    This IS the audit trail.  Entries commit or roll back together with the
    change they describe.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select

from library_kernel.db.consistency_guard import SYSTEM_ACTOR_ID
from library_kernel.domain.clock import Clock, SystemClock
from library_kernel.logging_config import get_logger
from library_kernel.models.audit_entry import AuditAction, AuditEntry, AuditTarget
from library_kernel.services.base import BaseService

logger = get_logger("services.audit_trail")


@dataclass(frozen=True)
class AuditTraceEntry:
    """A single entry in an audit trace."""

    seq: int
    action: AuditAction
    target_type: AuditTarget
    target_id: UUID
    actor_id: UUID
    description: str
    before: dict[str, Any] | None
    after: dict[str, Any] | None
    occurred_at: datetime


@dataclass(frozen=True)
class AuditTrace:
    """
    Complete audit trace for one entity.

    Contains all audit entries in the order they were written.
    """

    target_type: AuditTarget
    target_id: UUID
    entries: tuple[AuditTraceEntry, ...]

    @property
    def is_empty(self) -> bool:
        return len(self.entries) == 0

    @property
    def actions(self) -> tuple[AuditAction, ...]:
        return tuple(entry.action for entry in self.entries)

    @property
    def first_action(self) -> AuditAction | None:
        return self.entries[0].action if self.entries else None

    @property
    def last_action(self) -> AuditAction | None:
        return self.entries[-1].action if self.entries else None


def _jsonable(state: dict[str, Any] | None) -> dict[str, Any] | None:
    if state is None:
        return None
    out: dict[str, Any] = {}
    for key, value in state.items():
        if isinstance(value, (UUID, Decimal)):
            out[key] = str(value)
        elif hasattr(value, "isoformat"):
            out[key] = value.isoformat()
        else:
            out[key] = value
    return out


class AuditTrail(BaseService):
    """
    Service for appending and reading audit entries.

    Guarantees:
        - Every ``record*`` call adds exactly one AuditEntry and flushes.
        - ``before``/``after`` snapshots are stored as JSON; UUIDs, Decimals
          and dates are stringified.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    def __init__(self, session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def record(
        self,
        action: AuditAction,
        target_type: AuditTarget,
        target_id: UUID,
        description: str,
        actor_id: UUID | None = None,
        before: dict[str, Any] | None = None,
        after: dict[str, Any] | None = None,
    ) -> AuditEntry:
        """
        Append one audit entry.

        Postconditions:
            - The entry is flushed; its ``id`` is assigned.
        """
        entry = AuditEntry(
            actor_id=actor_id or SYSTEM_ACTOR_ID,
            action_type=action.value,
            target_type=target_type.value,
            target_id=target_id,
            description=description,
            before_state=_jsonable(before),
            after_state=_jsonable(after),
            occurred_at=self._clock.now(),
        )
        self.session.add(entry)
        self.session.flush()

        logger.info(
            "audit_entry_created",
            extra={
                "action": action.value,
                "target_type": target_type.value,
                "target_id": str(target_id),
                "seq": entry.id,
            },
        )
        return entry

    # Domain-specific recording methods

    def record_book_added(self, book, actor_id: UUID | None) -> AuditEntry:
        return self.record(
            AuditAction.BOOK_ADDED,
            AuditTarget.BOOK,
            book.id,
            f"Added book {book.title!r} with {book.total_copies} copies",
            actor_id=actor_id,
            after={
                "title": book.title,
                "isbn": book.isbn,
                "total_copies": book.total_copies,
            },
        )

    def record_inventory_updated(
        self,
        book,
        old_total: int,
        old_available: int,
        actor_id: UUID | None,
    ) -> AuditEntry:
        return self.record(
            AuditAction.INVENTORY_UPDATED,
            AuditTarget.BOOK,
            book.id,
            f"Inventory of {book.title!r} changed from {old_total} to "
            f"{book.total_copies} copies",
            actor_id=actor_id,
            before={"total_copies": old_total, "available_copies": old_available},
            after={
                "total_copies": book.total_copies,
                "available_copies": book.available_copies,
            },
        )

    def record_book_retired(self, book, actor_id: UUID | None) -> AuditEntry:
        return self.record(
            AuditAction.BOOK_RETIRED,
            AuditTarget.BOOK,
            book.id,
            f"Retired book {book.title!r}",
            actor_id=actor_id,
            after={"is_active": False, "available_copies": 0},
        )

    def record_borrow(self, loan, actor_id: UUID | None) -> AuditEntry:
        return self.record(
            AuditAction.BOOK_BORROWED,
            AuditTarget.LOAN,
            loan.id,
            f"User {loan.user_id} borrowed book {loan.book_id}, due {loan.due_date}",
            actor_id=actor_id or loan.user_id,
            after={
                "user_id": loan.user_id,
                "book_id": loan.book_id,
                "due_date": loan.due_date,
            },
        )

    def record_return(self, loan, actor_id: UUID | None) -> AuditEntry:
        return self.record(
            AuditAction.BOOK_RETURNED,
            AuditTarget.LOAN,
            loan.id,
            f"Loan of book {loan.book_id} returned"
            + (f", late fee {loan.late_fee}" if loan.is_late else ""),
            actor_id=actor_id or loan.user_id,
            before={"is_returned": False},
            after={
                "is_returned": True,
                "is_late": loan.is_late,
                "late_fee": loan.late_fee,
            },
        )

    def record_review(
        self,
        action: AuditAction,
        review_id: UUID,
        book_id: UUID,
        actor_id: UUID,
        before: dict[str, Any] | None = None,
        after: dict[str, Any] | None = None,
    ) -> AuditEntry:
        return self.record(
            action,
            AuditTarget.REVIEW,
            review_id,
            f"{action.value.replace('_', ' ').capitalize()} on book {book_id}",
            actor_id=actor_id,
            before=before,
            after=after,
        )

    # Queries

    @staticmethod
    def _to_trace_entry(entry: AuditEntry) -> AuditTraceEntry:
        return AuditTraceEntry(
            seq=entry.id,
            action=AuditAction(entry.action_type),
            target_type=AuditTarget(entry.target_type),
            target_id=entry.target_id,
            actor_id=entry.actor_id,
            description=entry.description,
            before=entry.before_state,
            after=entry.after_state,
            occurred_at=entry.occurred_at,
        )

    def get_trace(self, target_type: AuditTarget, target_id: UUID) -> AuditTrace:
        """All entries about one entity, oldest first."""
        entries = self.session.execute(
            select(AuditEntry)
            .where(
                AuditEntry.target_type == target_type.value,
                AuditEntry.target_id == target_id,
            )
            .order_by(AuditEntry.id)
        ).scalars().all()
        return AuditTrace(
            target_type=target_type,
            target_id=target_id,
            entries=tuple(self._to_trace_entry(e) for e in entries),
        )

    def recent(
        self,
        limit: int = 50,
        action: AuditAction | None = None,
    ) -> tuple[AuditTraceEntry, ...]:
        """Most recent entries, newest first."""
        stmt = select(AuditEntry)
        if action is not None:
            stmt = stmt.where(AuditEntry.action_type == action.value)
        stmt = stmt.order_by(AuditEntry.id.desc()).limit(limit)
        entries = self.session.execute(stmt).scalars().all()
        return tuple(self._to_trace_entry(e) for e in entries)
