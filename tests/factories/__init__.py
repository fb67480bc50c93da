"""Factories for audit rows and rotation DTOs."""

from __future__ import annotations

import factory


class SQLAlchemySession:
    """Holder for the session the ``session`` fixture opens per test."""

    _session = None

    @classmethod
    def set(cls, session):
        cls._session = session

    @classmethod
    def get(cls):
        """Return the active test session.

        :raises RuntimeError: When a model factory runs outside the ``session`` fixture.
        """
        if cls._session is None:
            raise RuntimeError("No audit session bound; request the 'session' fixture.")
        return cls._session


class BaseFactory(factory.alchemy.SQLAlchemyModelFactory):
    """Persist ORM rows (flush only) into the bound test session."""

    class Meta:
        abstract = True
        sqlalchemy_session_factory = SQLAlchemySession.get
        sqlalchemy_session_persistence = "flush"
