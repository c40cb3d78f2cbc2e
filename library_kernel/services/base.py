"""
BaseService / TransactionalWorkflow -- the two kinds of kernel service.

Responsibility:
    ``BaseService`` is the flush-only contract for leaf services
    (InventoryLedger, RatingAggregator, AuditTrail): they receive a Session,
    use ``session.flush()`` and never commit or roll back.

    ``TransactionalWorkflow`` is the base for services that own a
    transaction boundary (LendingWorkflow, ReviewWorkflow, StockService).
    ``_run()`` wraps one operation: binds the log context, times it, commits
    on a successful result, rolls back on a failed result or an exception,
    and translates driver errors into ContentionError / StoreError.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - A failed outcome never leaves partial writes behind: the whole
      transaction is rolled back (when auto_commit=True).
    - The engine never retries.  ContentionError is raised after rollback
      and the caller decides.

Failure modes:
    - ContentionError: lock wait timed out or deadlock victim.
    - StoreError: any other database failure.
    - InvariantViolationError / ImmutabilityViolationError: raised by the
      flush listeners; re-raised after rollback.
"""

import time
from abc import ABC
from typing import Any, Callable, TypeVar
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from library_kernel.db.consistency_guard import SESSION_ACTOR_KEY
from library_kernel.db.engine import classify_store_error
from library_kernel.domain.clock import Clock, SystemClock
from library_kernel.domain.policy import LendingPolicy
from library_kernel.logging_config import LogContext, get_logger

ResultType = TypeVar("ResultType")


class BaseService(ABC):
    """
    Abstract base class for flush-only kernel services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()`` -- the caller controls transaction
          boundaries, enabling atomic multi-step operations.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
    """

    def __init__(self, session: Session):
        self.session = session


class TransactionalWorkflow(ABC):
    """
    Abstract base class for services that own commit/rollback.

    Contract:
        Subclasses implement each public operation as a ``_do_*`` method
        returning a result with ``is_success`` and ``status``, and expose it
        through ``self._run(...)``.

    Guarantees:
        - auto_commit=True: committed on success, rolled back otherwise.
        - auto_commit=False: nothing is committed or rolled back; the caller
          must roll back after a failed result.
    """

    _logger = get_logger("services.workflow")

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: LendingPolicy | None = None,
        auto_commit: bool = True,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._policy = policy or LendingPolicy()
        self._auto_commit = auto_commit

    @property
    def session(self) -> Session:
        return self._session

    def _run(
        self,
        operation: str,
        body: Callable[[], ResultType],
        *,
        actor_id: UUID | None = None,
        context: dict[str, Any] | None = None,
        log_fields: dict[str, Any] | None = None,
    ) -> ResultType:
        with LogContext.bind(
            correlation_id=str(uuid4()),
            actor_id=actor_id,
            **(context or {}),
        ):
            self._logger.info(f"{operation}_started", extra=log_fields or {})
            t0 = time.monotonic()
            previous_actor = self._session.info.get(SESSION_ACTOR_KEY)
            if actor_id is not None:
                self._session.info[SESSION_ACTOR_KEY] = actor_id

            try:
                result = body()

                if self._auto_commit:
                    if result.is_success:
                        self._session.commit()
                    else:
                        self._session.rollback()
                        self._logger.warning(
                            f"{operation}_rolled_back",
                            extra={"status": result.status.value},
                        )

                duration_ms = round((time.monotonic() - t0) * 1000, 2)
                self._logger.info(
                    f"{operation}_completed",
                    extra={"status": result.status.value, "duration_ms": duration_ms},
                )
                return result

            except SQLAlchemyError as exc:
                duration_ms = round((time.monotonic() - t0) * 1000, 2)
                if self._auto_commit:
                    self._session.rollback()
                error = classify_store_error(exc, operation)
                self._logger.error(
                    f"{operation}_failed",
                    extra={"duration_ms": duration_ms, "error_code": error.code},
                    exc_info=True,
                )
                raise error from exc

            except Exception:
                duration_ms = round((time.monotonic() - t0) * 1000, 2)
                if self._auto_commit:
                    self._session.rollback()
                self._logger.error(
                    f"{operation}_failed",
                    extra={"duration_ms": duration_ms},
                    exc_info=True,
                )
                raise

            finally:
                if previous_actor is None:
                    self._session.info.pop(SESSION_ACTOR_KEY, None)
                else:
                    self._session.info[SESSION_ACTOR_KEY] = previous_actor
