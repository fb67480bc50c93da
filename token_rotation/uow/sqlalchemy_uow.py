"""
SQLAlchemy implementation of UnitOfWork over a plain ``sessionmaker``.
"""

from __future__ import annotations

from sqlalchemy.orm import Session, sessionmaker

from token_rotation.repositories import TokenAuditRepository
from token_rotation.uow.base import UnitOfWork


class SQLAlchemyUnitOfWork(UnitOfWork):
    """
    SQLAlchemy-backed UoW opening one session per scope.

    The same session is shared across all repositories for a consistent
    transaction and closed on exit.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory
        self.session: Session | None = None

    def __enter__(self) -> SQLAlchemyUnitOfWork:
        self.session = self._session_factory()
        self.audit_records = TokenAuditRepository(session=self.session)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            if exc_type is None:
                try:
                    self.commit()
                except Exception:
                    self.rollback()
                    raise
            else:
                self.rollback()
        finally:
            if self.session is not None:
                self.session.close()
            self.session = None

    def commit(self) -> None:
        if self.session is None:
            raise RuntimeError("UnitOfWork is not active.")
        self.session.commit()

    def rollback(self) -> None:
        if self.session is not None:
            self.session.rollback()
