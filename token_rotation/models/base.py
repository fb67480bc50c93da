"""Declarative base and reusable SQLAlchemy mixins (typed 2.0)."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Integer, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from token_rotation.core.extensions import metadata


class Base(DeclarativeBase):
    """Declarative base bound to the shared naming-convention metadata."""

    metadata = metadata


class TimestampMixin:
    """Provide a ``created_at`` column filled by the database on insert.

    Audit rows are append-only, so there is no ``updated_at`` counterpart.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )


class PKMixin:
    """Expose an integer surrogate primary key column named ``id``."""

    id: Mapped[int] = mapped_column(Integer, primary_key=True)


class ReprMixin:
    """Provide a concise ``__repr__`` including the class name and id."""

    def __repr__(self) -> str:
        cls = self.__class__.__name__
        key = getattr(self, "id", None)
        return f"<{cls} id={key}>"
