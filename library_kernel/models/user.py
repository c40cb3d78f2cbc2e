"""
Module: library_kernel.models.user
Responsibility: ORM mapping of the users table.
Architecture position: Kernel > Models.  May import from db/base.py only.

The table belongs to the authentication subsystem.  The kernel reads it
through UserDirectory and locks a borrower's row to serialise loan-limit
checks; it never creates or edits users outside tests and seeding.
"""

from enum import Enum

from sqlalchemy import Boolean, CheckConstraint, String
from sqlalchemy.orm import Mapped, mapped_column

from library_kernel.db.base import TrackedBase


class UserRole(str, Enum):
    READER = "reader"
    STAFF = "staff"
    ADMIN = "admin"


PRIVILEGED_ROLES = frozenset({UserRole.STAFF.value, UserRole.ADMIN.value})


class LibraryUser(TrackedBase):
    """A library member or staff account."""

    __tablename__ = "users"

    __table_args__ = (
        CheckConstraint(
            "role IN ('reader', 'staff', 'admin')",
            name="ck_users_role",
        ),
    )

    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)

    role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=UserRole.READER.value,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    @property
    def is_privileged(self) -> bool:
        return self.role in PRIVILEGED_ROLES

    def __repr__(self) -> str:
        return f"<LibraryUser {self.username} ({self.role})>"
