"""Role-to-permission resolution for UI capability gating.

Pattern: Declarative Permission Map
------------------------------------
``policies/permissions.yaml`` is the single declarative source for *what each
role may do* in the dashboard and the mobile app (``attendance:manage``,
``reports:view``, ...).  The file is loaded once and queried whenever a screen
decides whether to render an action.

Role checks (``is_admin``) answer "who is this?"; permission checks answer
"may they do this?".  Keeping the latter in a file makes the matrix auditable
and testable without a running backend.  The backend still enforces
authorization on every request; this map only decides what the client shows.

The engine is stateless between reloads: it receives a role and returns a
``ResolvedPolicy``.  No mutation, no caching of decisions.
"""

from __future__ import annotations

import dataclasses
import pathlib
from typing import Any

import yaml

from workforce_session.auth.session import Role


@dataclasses.dataclass(frozen=True)
class ResolvedPolicy:
    """The permissions granted to a single role.

    Attributes:
        role:        Role name.
        permissions: Frozenset of ``<area>:<action>`` permission strings.
    """

    role: str
    permissions: frozenset[str]


class PolicyError(Exception):
    """Raised when the policy file is malformed or lookup fails."""


class PolicyEngine:
    """Loads ``permissions.yaml`` and resolves role permissions."""

    def __init__(self, policy_path: str | pathlib.Path | None = None) -> None:
        if policy_path is None:
            policy_path = pathlib.Path(__file__).resolve().parents[3] / "policies" / "permissions.yaml"
        self._policy_path = pathlib.Path(policy_path)
        self._data: dict[str, Any] = self._load()

    def reload(self) -> None:
        """Re-read the policy file from disk."""
        self._data = self._load()

    def resolve(self, role: Role | str) -> ResolvedPolicy:
        """Return the resolved policy for *role*.

        Raises ``PolicyError`` if the role is not defined.
        """
        role_name = role.value if isinstance(role, Role) else role
        roles: dict[str, Any] = self._data.get("roles", {})
        role_block = roles.get(role_name)
        if role_block is None:
            raise PolicyError(f"Unknown role: {role_name}")

        return ResolvedPolicy(
            role=role_name,
            permissions=frozenset(role_block.get("permissions") or []),
        )

    def allows(self, role: Role | str, permission: str) -> bool:
        try:
            return permission in self.resolve(role).permissions
        except PolicyError:
            return False

    def list_roles(self) -> list[str]:
        """Return all role names defined in the policy file."""
        return list(self._data.get("roles", {}).keys())

    # -- private helpers -----------------------------------------------------

    def _load(self) -> dict[str, Any]:
        if not self._policy_path.exists():
            raise PolicyError(f"Policy file not found: {self._policy_path}")
        with open(self._policy_path) as fh:
            data = yaml.safe_load(fh)
        if not isinstance(data, dict) or "roles" not in data:
            raise PolicyError("Policy file must contain a top-level 'roles' key")
        if not isinstance(data["roles"], dict):
            raise PolicyError("'roles' must map role names to permission blocks")
        for name, block in data["roles"].items():
            if not isinstance(block, dict):
                raise PolicyError(f"Role '{name}' must be a mapping")
        return data
