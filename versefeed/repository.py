"""Generic repository pattern for type-safe database operations.

This module provides a Generic Repository[T] for SQLModel entities. It
covers the plain reads and inserts; the operations that need a single
atomic statement (counter increment, profile upsert) live on
``DatabaseManager``.

Example:
    >>> from versefeed.repository import Repository
    >>> from versefeed.models import PoemRow
    >>> from sqlmodel import Session
    >>>
    >>> poems = Repository[PoemRow](session, PoemRow)
    >>> poem = poems.get(1)  # PoemRow | None
    >>> public = poems.find_by(isPublic=True)
"""

from collections.abc import Sequence
from typing import Any, Generic, TypeVar

from sqlalchemy import func
from sqlmodel import Session, SQLModel, select

# =============================================================================
# Type Variables
# =============================================================================

T = TypeVar("T", bound=SQLModel)


# =============================================================================
# Generic Repository
# =============================================================================


class Repository(Generic[T]):
    """Generic repository implementation for SQLModel entities.

    The repository never commits on its own except in ``create``; callers
    that group several writes into one transaction use ``add`` and commit
    through the session.

    Type Parameter:
        T: SQLModel entity type (PoemRow, UserRow, UserProfileRow, ...)

    Args:
        session: SQLModel Session instance
        model: SQLModel class
    """

    def __init__(self, session: Session, model: type[T]):
        self.session = session
        self.model = model

    def get(self, entity_id: int | str) -> T | None:
        """Get entity by primary key, or None if not found."""
        return self.session.get(self.model, entity_id)

    def _filtered(self, filters: dict[str, Any]):
        stmt = select(self.model)
        for key, value in filters.items():
            if not hasattr(self.model, key):
                raise AttributeError(f"{self.model.__name__} has no column '{key}'")
            stmt = stmt.where(getattr(self.model, key) == value)
        return stmt

    def find_by(self, **filters: Any) -> Sequence[T]:
        """Find entities matching equality filters.

        Example:
            >>> poems.find_by(authorId=7)
        """
        return self.session.exec(self._filtered(filters)).all()

    def first_by(self, **filters: Any) -> T | None:
        """Return the first entity matching equality filters, or None."""
        return self.session.exec(self._filtered(filters)).first()

    def find_ordered(self, *order_by: Any, **filters: Any) -> Sequence[T]:
        """Find entities matching equality filters, in the given order.

        Example:
            >>> poems.find_ordered(PoemRow.creationTime.desc(), isPublic=True)
        """
        stmt = self._filtered(filters).order_by(*order_by)
        return self.session.exec(stmt).all()

    def add(self, entity: T) -> T:
        """Stage an entity in the current transaction without committing."""
        self.session.add(entity)
        return entity

    def create(self, entity: T) -> T:
        """Insert an entity, commit, and return it refreshed from the database."""
        self.session.add(entity)
        self.session.commit()
        self.session.refresh(entity)
        return entity

    def count(self, **filters: Any) -> int:
        """Count entities, optionally restricted by equality filters."""
        stmt = select(func.count()).select_from(self.model)
        for key, value in filters.items():
            stmt = stmt.where(getattr(self.model, key) == value)
        return self.session.exec(stmt).one()

    def exists(self, entity_id: int | str) -> bool:
        """Check if entity exists by primary key."""
        return self.get(entity_id) is not None


__all__ = ["Repository"]
