"""
Tagged results -- how workflows report expected business outcomes.

Responsibility:
    Every kernel operation returns a frozen result dataclass carrying a
    ``str`` Enum status.  This module supplies the shared behaviour of those
    results: ``is_success``, the ``ErrorKind`` of a failed status, and
    ``raise_for_status()`` for callers that prefer exceptions.

Architecture position:
    Kernel > Domain -- pure.  Imports only the exception hierarchy.

Contract:
    A result class declares two class variables:
        success_statuses -- statuses that count as success
        errors           -- status -> exception class for every failure
    and optionally ``subject_field``, the attribute naming the entity the
    result is about.
"""

from enum import Enum
from typing import Any, ClassVar, Mapping

from library_kernel.exceptions import (
    AuthorizationError,
    LibraryKernelError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)


class ErrorKind(str, Enum):
    """Coarse category of a failed outcome."""

    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    STATE_CONFLICT = "state_conflict"
    AUTHORIZATION = "authorization"


_KIND_BY_BASE: tuple[tuple[type[LibraryKernelError], ErrorKind], ...] = (
    (ValidationError, ErrorKind.VALIDATION),
    (NotFoundError, ErrorKind.NOT_FOUND),
    (StateConflictError, ErrorKind.STATE_CONFLICT),
    (AuthorizationError, ErrorKind.AUTHORIZATION),
)


def kind_of(error_class: type[LibraryKernelError]) -> ErrorKind:
    """Map an outcome exception class to its ErrorKind."""
    for base, kind in _KIND_BY_BASE:
        if issubclass(error_class, base):
            return kind
    raise ValueError(f"{error_class.__name__} is not an outcome error")


class OutcomeResult:
    """Mixin for frozen result dataclasses with a ``status`` field."""

    success_statuses: ClassVar[frozenset] = frozenset()
    errors: ClassVar[Mapping[Any, type[LibraryKernelError]]] = {}
    subject_field: ClassVar[str | None] = None

    status: Enum
    message: str | None

    @property
    def is_success(self) -> bool:
        return self.status in self.success_statuses

    @property
    def error_code(self) -> str | None:
        """Stable machine-readable code of a failed result, else None."""
        error_class = self.errors.get(self.status)
        return error_class.code if error_class is not None else None

    @property
    def error_kind(self) -> ErrorKind | None:
        error_class = self.errors.get(self.status)
        return kind_of(error_class) if error_class is not None else None

    def to_error(self) -> LibraryKernelError | None:
        """The exception matching a failed status; None on success."""
        if self.is_success:
            return None
        error_class = self.errors[self.status]
        subject = getattr(self, self.subject_field) if self.subject_field else None
        return error_class(
            self.message,
            subject_id=str(subject) if subject is not None else None,
        )

    def raise_for_status(self) -> None:
        """Raise the matching exception if the result is a failure."""
        error = self.to_error()
        if error is not None:
            raise error
