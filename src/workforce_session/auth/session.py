"""Session data types shared by the store, the API client and the manager.

Pattern: Immutable Session Snapshot
------------------------------------
The ``SessionManager`` owns the live session and is its only mutator.  Every
other component (listeners, the CLI, tests) only ever sees a
``SessionSnapshot``: a frozen copy of the session taken right after a
transition.  A listener that holds on to a snapshot can never observe it
changing underneath it, and nothing outside the manager can write session
state back.

``User`` is likewise frozen.  Profile refreshes replace the record rather
than mutate it.
"""

from __future__ import annotations

import dataclasses
import datetime
import enum
from typing import Any


class Role(str, enum.Enum):
    """Authorization tier attached to a user."""

    ADMIN = "admin"
    EMPLOYEE = "employee"
    MANAGER = "manager"
    LEADER = "leader"


class SessionState(str, enum.Enum):
    INITIALIZING = "Initializing"
    UNAUTHENTICATED = "Unauthenticated"
    AUTHENTICATING = "Authenticating"
    AUTHENTICATED = "Authenticated"
    WARNING = "Warning"
    EXPIRING = "Expiring"


@dataclasses.dataclass(frozen=True)
class User:
    """A user record as returned by ``/auth/login`` and ``/auth/profile``.

    Attributes:
        id:         Backend user identifier.
        role:       Authorization tier.
        email:      Login e-mail address.
        name:       Display name.
        department: Department name, if the backend reports one.
        status:     Account status (``active``, ``suspended``, ...).
    """

    id: str
    role: Role
    email: str | None = None
    name: str | None = None
    department: str | None = None
    status: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role.value,
            "department": self.department,
            "status": self.status,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> User:
        """Build a ``User`` from a JSON record.

        Raises ``ValueError`` when ``id`` or ``role`` is missing or the role is
        not one of the known tiers.  Unknown extra keys are ignored.
        """
        if not isinstance(data, dict):
            raise ValueError(f"User record must be an object, got {type(data).__name__}")
        if data.get("id") in (None, ""):
            raise ValueError("User record has no 'id'")
        if not data.get("role"):
            raise ValueError("User record has no 'role'")
        return cls(
            id=str(data["id"]),
            role=Role(data["role"]),
            email=data.get("email"),
            name=data.get("name"),
            department=data.get("department"),
            status=data.get("status"),
        )

    def __str__(self) -> str:
        return f"User(id={self.id}, email={self.email}, role={self.role.value})"


@dataclasses.dataclass(frozen=True)
class SessionSnapshot:
    """Point-in-time view of the session handed to listeners.

    Attributes:
        state:            State-machine state at the time of the snapshot.
        user:             Current user, or ``None``.
        token:            Current bearer token, or ``None``.
        is_loading:       True while a login or the initial restore runs.
        is_authenticated: True iff user and token are set and the token had
                          not expired when the snapshot was taken.
        session_timeout:  When the expiry warning was raised, if active.
        expires_at:       The token's embedded expiry, if readable.
        error:            Error kind of the last failed operation.
        error_message:    Human-readable message for ``error``.
    """

    state: SessionState
    user: User | None = None
    token: str | None = None
    is_loading: bool = False
    is_authenticated: bool = False
    session_timeout: datetime.datetime | None = None
    expires_at: datetime.datetime | None = None
    error: str | None = None
    error_message: str | None = None

    def __str__(self) -> str:
        who = self.user.id if self.user else None
        return (
            f"SessionSnapshot(state={self.state.value}, user={who}, "
            f"authenticated={self.is_authenticated}, error={self.error})"
        )
