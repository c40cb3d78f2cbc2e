"""
StockService -- staff operations on the catalogue.

Responsibility:
    Adds books, changes their number of copies and retires them.  Each
    operation checks that the actor is privileged, delegates the counter
    change to InventoryLedger and audits it, in one transaction.

Architecture position:
    Kernel > Services -- owns the transaction boundary.

Failure modes:
    add_book: UNAUTHORIZED, MISSING_TITLE, INVALID_TOTAL, DUPLICATE_ISBN.
    resize:   UNAUTHORIZED, INVALID_TOTAL, NOT_FOUND, CONFLICT.
    retire:   UNAUTHORIZED, NOT_FOUND, ACTIVE_LOANS.

Audit relevance:
    BOOK_ADDED, INVENTORY_UPDATED and BOOK_RETIRED from here; the
    consistency guard adds SIGNIFICANT_INVENTORY_CHANGE and
    BOOK_DEACTIVATED in the same flush.
"""

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar
from uuid import UUID

from library_kernel.domain.results import OutcomeResult
from library_kernel.exceptions import (
    ActiveLoansError,
    BookNotFoundError,
    DuplicateIsbnError,
    InvalidTotalCopiesError,
    InventoryConflictError,
    MissingTitleError,
    UnauthorizedActionError,
)
from library_kernel.logging_config import get_logger
from library_kernel.services.audit_trail import AuditTrail
from library_kernel.services.base import TransactionalWorkflow
from library_kernel.services.inventory_ledger import InventoryLedger, LedgerResult
from library_kernel.services.user_directory import SqlUserDirectory, UserDirectory

logger = get_logger("services.stock_service")


class StockStatus(str, Enum):
    """Status of a staff catalogue operation."""

    OK = "ok"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    ACTIVE_LOANS = "active_loans"
    INVALID_TOTAL = "invalid_total"
    MISSING_TITLE = "missing_title"
    DUPLICATE_ISBN = "duplicate_isbn"


@dataclass(frozen=True)
class StockResult(OutcomeResult):
    status: StockStatus
    book_id: UUID | None = None
    total_copies: int | None = None
    available_copies: int | None = None
    message: str | None = None

    success_statuses: ClassVar[frozenset] = frozenset({StockStatus.OK})
    errors: ClassVar[dict] = {
        StockStatus.UNAUTHORIZED: UnauthorizedActionError,
        StockStatus.NOT_FOUND: BookNotFoundError,
        StockStatus.CONFLICT: InventoryConflictError,
        StockStatus.ACTIVE_LOANS: ActiveLoansError,
        StockStatus.INVALID_TOTAL: InvalidTotalCopiesError,
        StockStatus.MISSING_TITLE: MissingTitleError,
        StockStatus.DUPLICATE_ISBN: DuplicateIsbnError,
    }
    subject_field: ClassVar[str] = "book_id"

    @classmethod
    def from_ledger(cls, result: LedgerResult) -> "StockResult":
        return cls(
            status=StockStatus(result.status.value),
            book_id=result.book_id,
            total_copies=result.total_copies,
            available_copies=result.available_copies,
            message=result.message,
        )


class StockService(TransactionalWorkflow):
    """
    add_book / resize / retire for privileged actors.

    Non-goals:
        - Does NOT authenticate; ``actor_id`` is trusted to be who the
          caller says it is.
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

    def _unauthorized(self, actor_id, book_id=None) -> StockResult | None:
        if self._users.is_privileged(actor_id):
            return None
        logger.warning("stock_operation_unauthorized", extra={"actor": str(actor_id)})
        return StockResult(
            status=StockStatus.UNAUTHORIZED,
            book_id=book_id,
            message="Staff privileges required",
        )

    def add_book(
        self,
        actor_id: UUID,
        title: str,
        total_copies: int,
        isbn: str | None = None,
        genre: str | None = None,
    ) -> StockResult:
        """Catalogue a new title with every copy available."""
        return self._run(
            "add_book",
            lambda: self._do_add_book(actor_id, title, total_copies, isbn, genre),
            actor_id=actor_id,
            log_fields={"title": title, "total_copies": total_copies, "isbn": isbn},
        )

    def _do_add_book(self, actor_id, title, total_copies, isbn, genre) -> StockResult:
        denied = self._unauthorized(actor_id)
        if denied is not None:
            return denied

        result, book = self._ledger.register_book(title, total_copies, isbn, genre)
        if book is not None:
            self._audit.record_book_added(book, actor_id)
        return StockResult.from_ledger(result)

    def resize(self, book_id: UUID, new_total: int, actor_id: UUID) -> StockResult:
        """Change the number of physical copies of ``book_id``."""
        return self._run(
            "resize_inventory",
            lambda: self._do_resize(book_id, new_total, actor_id),
            actor_id=actor_id,
            context={"book_id": book_id},
            log_fields={"new_total": new_total},
        )

    def _do_resize(self, book_id, new_total, actor_id) -> StockResult:
        denied = self._unauthorized(actor_id, book_id)
        if denied is not None:
            return denied

        book = self._ledger.lock_book(book_id)
        old_total = book.total_copies if book is not None else None
        old_available = book.available_copies if book is not None else None

        result = self._ledger.resize(book_id, new_total)
        if result.is_success:
            self._audit.record_inventory_updated(book, old_total, old_available, actor_id)
        return StockResult.from_ledger(result)

    def retire(self, book_id: UUID, actor_id: UUID) -> StockResult:
        """Withdraw ``book_id`` from circulation once every copy is back."""
        return self._run(
            "retire_book",
            lambda: self._do_retire(book_id, actor_id),
            actor_id=actor_id,
            context={"book_id": book_id},
        )

    def _do_retire(self, book_id, actor_id) -> StockResult:
        denied = self._unauthorized(actor_id, book_id)
        if denied is not None:
            return denied

        result = self._ledger.retire(book_id)
        if result.is_success:
            book = self._ledger.lock_book(book_id)
            self._audit.record_book_retired(book, actor_id)
        return StockResult.from_ledger(result)
