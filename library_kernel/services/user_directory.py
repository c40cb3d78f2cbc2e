"""
UserDirectory -- the kernel's view of the authentication subsystem.

The kernel needs two answers about people: is this borrower an active
member, and may this actor perform staff operations.  ``UserDirectory`` is
the interface; ``SqlUserDirectory`` answers from the ``users`` table the
kernel shares with the authentication subsystem.
"""

from typing import Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from library_kernel.models.user import PRIVILEGED_ROLES, LibraryUser


@runtime_checkable
class UserDirectory(Protocol):
    """Collaborator interface consumed by the workflows."""

    def is_active_user(self, user_id: UUID) -> bool:
        ...

    def is_privileged(self, actor_id: UUID | None) -> bool:
        ...


class SqlUserDirectory:
    """UserDirectory over the users table, read through the caller's session."""

    def __init__(self, session: Session):
        self._session = session

    def is_active_user(self, user_id: UUID) -> bool:
        active = self._session.execute(
            select(LibraryUser.is_active).where(LibraryUser.id == user_id)
        ).scalar_one_or_none()
        return bool(active)

    def is_privileged(self, actor_id: UUID | None) -> bool:
        if actor_id is None:
            return False
        row = self._session.execute(
            select(LibraryUser.role, LibraryUser.is_active).where(
                LibraryUser.id == actor_id
            )
        ).one_or_none()
        if row is None:
            return False
        role, is_active = row
        return bool(is_active) and role in PRIVILEGED_ROLES
