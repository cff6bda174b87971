"""Persistent mirror of the ``{token, user}`` pair.

Pattern: Storage Adapter
-------------------------
The web dashboard historically persisted ``authToken`` / ``userData`` while
the mobile app used ``auth_token`` / ``user_data``.  The manager should not
care: it talks to a ``SessionStore`` and the key naming is a constructor
argument of the concrete adapter (``StoreKeys``).

Contract shared by every adapter:

  - ``save`` writes both values or raises ``StoreError``; it never leaves one
    without the other.
  - ``load`` returns ``None`` for anything incomplete or unparseable and logs
    why.  Bad stored data is "no session", not an exception.
  - ``clear`` is idempotent.
"""

from __future__ import annotations

import abc
import dataclasses
import json
import logging
from typing import Any

from workforce_session.auth.session import User

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class StoreKeys:
    """Names under which the token and the serialized user are persisted."""

    token: str = "authToken"
    user: str = "userData"


WEB_KEYS = StoreKeys()
MOBILE_KEYS = StoreKeys(token="auth_token", user="user_data")

KEY_SCHEMES: dict[str, StoreKeys] = {
    "web": WEB_KEYS,
    "mobile": MOBILE_KEYS,
}


@dataclasses.dataclass(frozen=True)
class StoredSession:
    user: User
    token: str


class StoreError(Exception):
    """Raised when the backing store cannot be written or cleared."""


class SessionStore(abc.ABC):
    """Base class for session persistence backends.

    Subclasses implement the raw record I/O (``_write_record``,
    ``_read_record``, ``_delete_record``); encoding and validation of the
    record live here so every backend agrees on the layout.
    """

    def __init__(self, keys: StoreKeys = WEB_KEYS) -> None:
        self._keys = keys

    @property
    def keys(self) -> StoreKeys:
        return self._keys

    def save(self, user: User, token: str) -> None:
        if not token:
            raise StoreError("Refusing to persist an empty token")
        record = {
            self._keys.token: token,
            self._keys.user: json.dumps(user.to_dict()),
        }
        self._write_record(record)
        logger.debug("Persisted session for user=%s", user.id)

    def load(self) -> StoredSession | None:
        try:
            record = self._read_record()
        except StoreError as exc:
            logger.warning("Could not read stored session: %s", exc)
            return None
        if not record:
            return None

        token = record.get(self._keys.token)
        raw_user = record.get(self._keys.user)
        if not token or not raw_user:
            logger.info("Stored session is incomplete; ignoring it")
            return None

        try:
            user = User.from_dict(json.loads(raw_user))
        except (TypeError, ValueError) as exc:
            logger.warning("Stored user data is unreadable: %s", exc)
            return None
        return StoredSession(user=user, token=token)

    def clear(self) -> None:
        self._delete_record()

    # -- backend hooks --------------------------------------------------------

    @abc.abstractmethod
    def _write_record(self, record: dict[str, str]) -> None:
        """Persist both keys in one operation."""

    @abc.abstractmethod
    def _read_record(self) -> dict[str, Any] | None:
        """Return the raw record, or ``None`` when nothing is stored."""

    @abc.abstractmethod
    def _delete_record(self) -> None:
        """Remove the record; must succeed when nothing is stored."""
