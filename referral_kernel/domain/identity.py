"""
Identity / role resolution (``referral_kernel.domain.identity``).

The engine never trusts a caller-supplied role on its own: the Approval
Gate asks a ``RoleProvider`` for the actor's current role and compares.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Protocol
from uuid import UUID


class RoleProvider(Protocol):
    """Pluggable interface for resolving an actor's current role."""

    def get_actor_role(self, actor_id: UUID) -> str | None:
        """Return the actor's role, or None if the actor is unknown."""
        ...


class StaticRoleProvider:
    """In-memory ``RoleProvider`` backed by an actor -> role mapping.

    Suitable for tests and for deployments that sync roles from an
    identity service into memory at startup.
    """

    def __init__(self, roles: Mapping[UUID, str] | None = None):
        self._roles: dict[UUID, str] = dict(roles or {})

    def assign(self, actor_id: UUID, role: str) -> None:
        self._roles[actor_id] = role

    def revoke(self, actor_id: UUID) -> None:
        self._roles.pop(actor_id, None)

    def get_actor_role(self, actor_id: UUID) -> str | None:
        return self._roles.get(actor_id)
