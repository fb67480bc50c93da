from __future__ import annotations

from typing import Any, Protocol


class IdentityResolver(Protocol):
    """
    Port to the user/session registry.

    Returns the subject claims to embed in a freshly rotated pair, or ``None``
    when the user no longer exists or is inactive.
    """

    def get_subject_for_rotation(self, user_id: str) -> dict[str, Any] | None: ...


class InMemoryIdentityResolver(IdentityResolver):
    """Dictionary-backed registry for unit tests and local wiring."""

    def __init__(self, subjects: dict[str, dict[str, Any]] | None = None) -> None:
        self._subjects: dict[str, dict[str, Any]] = dict(subjects or {})
        self.healthy = True

    def add(self, user_id: str, **claims: Any) -> None:
        claims.setdefault("role", "user")
        claims.setdefault("permissions", [])
        self._subjects[user_id] = {"sub": user_id, **claims}

    def remove(self, user_id: str) -> None:
        self._subjects.pop(user_id, None)

    def get_subject_for_rotation(self, user_id: str) -> dict[str, Any] | None:
        subject = self._subjects.get(user_id)
        return dict(subject) if subject is not None else None

    def is_healthy(self) -> bool:
        return self.healthy
