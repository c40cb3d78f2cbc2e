"""ORM models for the library kernel."""

from library_kernel.models.audit_entry import AuditAction, AuditEntry, AuditTarget
from library_kernel.models.book import Book
from library_kernel.models.loan import Loan
from library_kernel.models.review import Review
from library_kernel.models.user import PRIVILEGED_ROLES, LibraryUser, UserRole

__all__ = [
    "AuditAction",
    "AuditEntry",
    "AuditTarget",
    "Book",
    "Loan",
    "Review",
    "LibraryUser",
    "UserRole",
    "PRIVILEGED_ROLES",
]
