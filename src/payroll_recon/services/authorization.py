"""Caller identity and role checks."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from payroll_recon.exceptions import PermissionDeniedError


class Role(str, Enum):
    """Caller roles."""

    OWNER = "owner"
    ADMIN = "admin"
    EMPLOYEE = "employee"
    UNPRIVILEGED = "unprivileged"


ELEVATED_ROLES = frozenset({Role.OWNER, Role.ADMIN})


@dataclass(frozen=True)
class Actor:
    """Identity of the caller performing an operation."""

    actor_id: str
    role: Role

    @property
    def is_elevated(self) -> bool:
        return self.role in ELEVATED_ROLES

    @property
    def employee_id(self) -> UUID | None:
        """Employee id for callers acting as themselves, if the id parses."""
        try:
            return UUID(self.actor_id)
        except ValueError:
            return None

    @classmethod
    def system(cls) -> Actor:
        """Actor used by scheduled reconciliation."""
        return cls(actor_id="system:scheduler", role=Role.ADMIN)


def require_elevated(actor: Actor, operation: str) -> None:
    """Raise PermissionDeniedError unless the actor is an owner or admin."""
    if not actor.is_elevated:
        raise PermissionDeniedError(operation, actor.role.value)


def require_employee(actor: Actor, operation: str) -> UUID:
    """Return the caller's employee id, or raise if they cannot act as one."""
    employee_id = actor.employee_id
    if actor.role == Role.UNPRIVILEGED or employee_id is None:
        raise PermissionDeniedError(operation, actor.role.value)
    return employee_id
