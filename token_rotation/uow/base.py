"""Transaction boundary used by the compliance audit store."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from token_rotation.repositories import TokenAuditRepository


class UnitOfWork(ABC):
    """
    One audit write (or read) inside a single transaction.

    Entering the scope binds :attr:`audit_records` to a fresh session; leaving
    it commits when the block succeeded and rolls back otherwise.
    """

    audit_records: TokenAuditRepository

    @abstractmethod
    def __enter__(self) -> UnitOfWork: ...
    @abstractmethod
    def __exit__(self, exc_type, exc, tb) -> None: ...
    @abstractmethod
    def commit(self) -> None: ...
    @abstractmethod
    def rollback(self) -> None: ...
