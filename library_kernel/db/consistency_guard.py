"""
Module: library_kernel.db.consistency_guard
Responsibility: Last line of defence for book counters.  Runs inside every
    flush that touches a Book or a LibraryUser, independently of the
    workflow that caused the flush.
Architecture position: Kernel > DB.  Session-level ``before_flush``
    listener.  Uses domain/invariants.py for the bounds so the guard and the
    services never disagree about what is legal.

Behaviour per flushed Book:
    - Out-of-bounds available_copies / total_borrowed / average_rating:
        clamp mode -> value corrected, ERROR logged, INVARIANT_CLAMPED
                      audit entry written in the same flush.
        raise mode -> ERROR logged, InvariantViolationError raised, flush
                      aborted, nothing persisted.
      A correction is always an anomaly: the services check the same bounds
      before they flush.
    - total_copies changed by more than significant_resize_ratio of its old
      value -> SIGNIFICANT_INVENTORY_CHANGE audit entry.
    - is_active True -> False -> BOOK_DEACTIVATED audit entry.

Behaviour per flushed LibraryUser:
    - role changed -> USER_ROLE_CHANGED audit entry.
    - is_active True -> False -> USER_DEACTIVATED audit entry.

Objects added to the session inside before_flush are part of the same
flush, so guard audit entries commit or roll back with the change that
caused them.

Actor attribution:
    Workflows put the acting user in ``session.info["actor_id"]``; without
    one, entries are attributed to SYSTEM_ACTOR_ID.
"""

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import event
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import get_history

from library_kernel.domain.clock import Clock, SystemClock
from library_kernel.domain.inventory import is_significant_change
from library_kernel.domain.invariants import BookState, clamp_book_state
from library_kernel.domain.policy import GUARD_MODE_RAISE, LendingPolicy
from library_kernel.exceptions import InvariantViolationError
from library_kernel.logging_config import get_logger

logger = get_logger("db.consistency_guard")

SYSTEM_ACTOR_ID = UUID("00000000-0000-0000-0000-000000000000")

SESSION_ACTOR_KEY = "actor_id"


@dataclass(frozen=True)
class GuardSettings:
    significant_resize_ratio: Decimal
    guard_mode: str
    clock: Clock


_settings = GuardSettings(
    significant_resize_ratio=LendingPolicy().significant_resize_ratio,
    guard_mode=LendingPolicy().guard_mode,
    clock=SystemClock(),
)


def _old_value(obj, attr: str):
    """Value before this flush, or the current value when unchanged."""
    history = get_history(obj, attr)
    if history.deleted:
        return history.deleted[0]
    return getattr(obj, attr)


def _changed(obj, attr: str) -> bool:
    history = get_history(obj, attr)
    return bool(history.deleted) and bool(history.added)


def _actor(session: Session) -> UUID:
    return session.info.get(SESSION_ACTOR_KEY) or SYSTEM_ACTOR_ID


def _audit(session, action, target_type, target_id, description, before=None, after=None):
    from library_kernel.models.audit_entry import AuditEntry

    session.add(AuditEntry(
        actor_id=_actor(session),
        action_type=action.value,
        target_type=target_type.value,
        target_id=target_id,
        description=description,
        before_state=before,
        after_state=after,
        occurred_at=_settings.clock.now(),
    ))


def _book_state(book) -> BookState:
    total = book.total_copies
    return BookState(
        total_copies=total,
        available_copies=(
            book.available_copies if book.available_copies is not None else total
        ),
        total_borrowed=book.total_borrowed or 0,
        average_rating=Decimal(str(book.average_rating or 0)),
    )


def _guard_book(session: Session, book, is_new: bool) -> None:
    from library_kernel.models.audit_entry import AuditAction, AuditTarget

    if book.total_copies is None:
        # NOT NULL constraint reports this.
        return
    if book.id is None:
        book.id = uuid4()

    state = _book_state(book)
    corrected, violations = clamp_book_state(state)
    for violation in violations:
        logger.error(
            "invariant_clamped",
            extra={
                "invariant": violation.invariant.value,
                "entity_type": "Book",
                "entity_id": str(book.id),
                "field": violation.field,
                "value": violation.value,
                "corrected": violation.corrected,
                "guard_mode": _settings.guard_mode,
            },
        )
    if violations:
        if _settings.guard_mode == GUARD_MODE_RAISE:
            first = violations[0]
            raise InvariantViolationError(
                invariant=first.invariant.value,
                entity_type="Book",
                entity_id=str(book.id),
                detail="; ".join(v.describe() for v in violations),
            )
        for violation in violations:
            setattr(book, violation.field, getattr(corrected, violation.field))
        _audit(
            session,
            AuditAction.INVARIANT_CLAMPED,
            AuditTarget.BOOK,
            book.id,
            "Clamped " + "; ".join(v.describe() for v in violations),
            before={v.field: str(v.value) for v in violations},
            after={v.field: str(v.corrected) for v in violations},
        )

    if is_new:
        return

    if _changed(book, "total_copies"):
        old_total = _old_value(book, "total_copies")
        new_total = book.total_copies
        if is_significant_change(old_total, new_total, _settings.significant_resize_ratio):
            logger.warning(
                "significant_inventory_change",
                extra={
                    "book_id": str(book.id),
                    "old_total": old_total,
                    "new_total": new_total,
                },
            )
            _audit(
                session,
                AuditAction.SIGNIFICANT_INVENTORY_CHANGE,
                AuditTarget.BOOK,
                book.id,
                f"Total copies changed from {old_total} to {new_total}",
                before={"total_copies": old_total},
                after={"total_copies": new_total},
            )

    if _changed(book, "is_active") and _old_value(book, "is_active") and not book.is_active:
        _audit(
            session,
            AuditAction.BOOK_DEACTIVATED,
            AuditTarget.BOOK,
            book.id,
            f"Book {book.title!r} deactivated",
            before={"is_active": True},
            after={"is_active": False},
        )


def _watch_user(session: Session, user) -> None:
    from library_kernel.models.audit_entry import AuditAction, AuditTarget

    if _changed(user, "role"):
        old_role = _old_value(user, "role")
        _audit(
            session,
            AuditAction.USER_ROLE_CHANGED,
            AuditTarget.USER,
            user.id,
            f"Role of {user.username} changed from {old_role} to {user.role}",
            before={"role": str(old_role)},
            after={"role": str(user.role)},
        )

    if _changed(user, "is_active") and _old_value(user, "is_active") and not user.is_active:
        _audit(
            session,
            AuditAction.USER_DEACTIVATED,
            AuditTarget.USER,
            user.id,
            f"User {user.username} deactivated",
            before={"is_active": True},
            after={"is_active": False},
        )


def _guard_before_flush(session, flush_context, instances):
    from library_kernel.models.book import Book
    from library_kernel.models.user import LibraryUser

    for obj in list(session.new):
        if isinstance(obj, Book):
            _guard_book(session, obj, is_new=True)

    for obj in list(session.dirty):
        if not session.is_modified(obj, include_collections=False):
            continue
        if isinstance(obj, Book):
            _guard_book(session, obj, is_new=False)
        elif isinstance(obj, LibraryUser):
            _watch_user(session, obj)


def register_consistency_guard(
    policy: LendingPolicy | None = None,
    clock: Clock | None = None,
) -> None:
    """
    Install the guard on every Session, configured from ``policy``.

    Calling again replaces the settings; the listener is installed once.
    """
    global _settings
    policy = policy or LendingPolicy()
    _settings = GuardSettings(
        significant_resize_ratio=policy.significant_resize_ratio,
        guard_mode=policy.guard_mode,
        clock=clock or SystemClock(),
    )
    if not event.contains(Session, "before_flush", _guard_before_flush):
        event.listen(Session, "before_flush", _guard_before_flush)
    logger.info(
        "consistency_guard_registered",
        extra={
            "guard_mode": _settings.guard_mode,
            "significant_resize_ratio": _settings.significant_resize_ratio,
        },
    )


def unregister_consistency_guard() -> None:
    """Remove the guard.  Tests use this to exercise table constraints directly."""
    if event.contains(Session, "before_flush", _guard_before_flush):
        event.remove(Session, "before_flush", _guard_before_flush)
