"""Generic repository base for SQLAlchemy 2.x.

Repositories stay persistence-only: no business rules and no
commit/rollback. The Unit of Work owns the transaction boundary.
"""

from __future__ import annotations

from typing import Any, Generic, TypeVar

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from token_rotation.models.base import Base

E = TypeVar("E", bound=Base)


class BaseRepository(Generic[E]):
    """Persistence-only repository for a single mapped class.

    Subclasses MUST define ``model``.
    """

    #: SQLAlchemy mapped model (must be set by subclasses)
    model: type[E]

    def __init__(self, session: Session) -> None:
        """
        :param session: Session shared across the Unit of Work scope.
        :type session: :class:`sqlalchemy.orm.Session`
        """
        self.session = session

    def add(self, instance: E) -> E:
        """Stage ``instance`` for insertion (no flush)."""
        self.session.add(instance)
        return instance

    def get(self, entity_id: Any) -> E | None:
        """Fetch an entity by primary key."""
        return self.session.get(self.model, entity_id)

    def count(self) -> int:
        """Return the number of stored rows."""
        stmt = select(func.count()).select_from(self.model)
        return int(self.session.execute(stmt).scalar_one())

    def flush(self) -> None:
        """Flush pending changes to the database."""
        self.session.flush()
