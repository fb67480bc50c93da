from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum, auto
from typing import Protocol

from token_rotation.services.rotation.dto import TokenFamily


class AdvanceResult(Enum):
    """Outcome of an atomic family-advance attempt."""

    OK = auto()
    NOT_FOUND = auto()
    INACTIVE = auto()
    TOKEN_ALREADY_CONSUMED = auto()


@dataclass(frozen=True, slots=True)
class FamilyAdvance:
    """
    Result of :meth:`TokenFamilyStore.advance`.

    :ivar result: Outcome of the attempt.
    :ivar family: The advanced family on ``OK``; the observed family otherwise
        (``None`` when not found).
    """

    result: AdvanceResult
    family: TokenFamily | None


class TokenFamilyStore(Protocol):
    """
    Stateful store for token families.

    All writes MUST be atomic conditional operations against the backing store;
    a plain read-modify-write is a data race under concurrent rotation.
    """

    def get(self, family_id: str) -> TokenFamily | None:
        """Fetch a family by id (cache first, then the keyed store)."""

    def get_by_token(self, token_id: str) -> TokenFamily | None:
        """Fetch the family a refresh token id is linked to."""

    def create(self, family: TokenFamily) -> TokenFamily:
        """Persist a brand-new family. Never overwrites an existing id."""

    def create_for_token(self, token_id: str, family: TokenFamily) -> TokenFamily:
        """
        Atomically link ``token_id`` to ``family`` unless it is already linked.

        :returns: The family that ends up owning ``token_id`` (ours or the winner's).
        """

    def link_token(self, token_id: str, family_id: str) -> None:
        """Map a newly issued refresh token id to its family."""

    def advance(self, family_id: str, *, token_id: str, now: datetime) -> FamilyAdvance:
        """
        Atomically consume ``token_id`` and bump the family's rotation count.

        At most one caller can consume a given token id.
        """

    def invalidate(self, family_id: str, *, now: datetime) -> TokenFamily | None:
        """
        Atomically flip an active family to inactive.

        :returns: The invalidated family if *this* call performed the transition,
            ``None`` when the family is unknown or already inactive.
        """

    def ping(self) -> bool:
        """Return True when the backing store is reachable."""

    def cache_size(self) -> int:
        """Number of families held in the in-process cache."""

    def clear_cache(self) -> int:
        """Drop the in-process cache. :returns: Entries removed."""
