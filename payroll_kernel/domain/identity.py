"""
Actor identity tokens (``payroll_kernel.domain.identity``).

The kernel never authenticates anyone.  Callers resolve an actor once at
the API boundary through an ``IdentityDirectory`` and pass the resulting
``ActorRef`` inward.  Deleting an APPROVED record additionally requires a
``PrivilegedActor``, which only the directory issues; the kernel checks
that the token is present, not which role stands behind it.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable
from uuid import UUID

from payroll_kernel.exceptions import ActorNotFoundError

_ISSUER = object()


@dataclass(frozen=True)
class ActorRef:
    """A resolved, opaque reference to a known actor."""

    actor_id: UUID
    display_name: str | None = None

    def __str__(self) -> str:
        return str(self.actor_id)


@dataclass(frozen=True)
class PrivilegedActor:
    """
    Proof that ``actor`` holds an elevated permission.

    Construct through ``IdentityDirectory.grant_privilege``; direct
    construction without the issuer sentinel raises ``TypeError``.
    """

    actor: ActorRef
    permission: str
    _issuer: object = field(default=None, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self._issuer is not _ISSUER:
            raise TypeError("PrivilegedActor must be issued by an IdentityDirectory")
        if not self.permission or not self.permission.strip():
            raise ValueError("PrivilegedActor requires a non-empty permission")

    @property
    def actor_id(self) -> UUID:
        return self.actor.actor_id


def issue_privilege(actor: ActorRef, permission: str) -> PrivilegedActor:
    """Mint a privilege token. For IdentityDirectory implementations only."""
    return PrivilegedActor(actor=actor, permission=permission, _issuer=_ISSUER)


@runtime_checkable
class IdentityDirectory(Protocol):
    """External collaborator that knows which actors exist."""

    def resolve(self, actor_id: UUID) -> ActorRef: ...

    def exists(self, actor_id: UUID) -> bool: ...

    def grant_privilege(self, actor: ActorRef, permission: str) -> PrivilegedActor: ...


class InMemoryIdentityDirectory:
    """Thread-safe directory backed by a dict of registered actors."""

    def __init__(self, actors: dict[UUID, str | None] | None = None):
        self._actors: dict[UUID, str | None] = dict(actors or {})
        self._lock = threading.Lock()

    def register(self, actor_id: UUID, display_name: str | None = None) -> ActorRef:
        with self._lock:
            self._actors[actor_id] = display_name
        return ActorRef(actor_id=actor_id, display_name=display_name)

    def resolve(self, actor_id: UUID) -> ActorRef:
        with self._lock:
            if actor_id not in self._actors:
                raise ActorNotFoundError(str(actor_id))
            return ActorRef(actor_id=actor_id, display_name=self._actors[actor_id])

    def exists(self, actor_id: UUID) -> bool:
        with self._lock:
            return actor_id in self._actors

    def grant_privilege(self, actor: ActorRef, permission: str) -> PrivilegedActor:
        resolved = self.resolve(actor.actor_id)
        return issue_privilege(resolved, permission)
