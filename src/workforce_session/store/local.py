"""In-process and on-disk session stores."""

from __future__ import annotations

import json
import logging
import os
import pathlib
import tempfile
from typing import Any

from workforce_session.store.base import WEB_KEYS, SessionStore, StoreError, StoreKeys

logger = logging.getLogger(__name__)


class MemorySessionStore(SessionStore):
    """Keeps the record in a dict.  Nothing survives the process."""

    def __init__(self, keys: StoreKeys = WEB_KEYS) -> None:
        super().__init__(keys)
        self.data: dict[str, Any] = {}

    def _write_record(self, record: dict[str, str]) -> None:
        # Build the new mapping first so a failure cannot leave half a record.
        updated = dict(self.data)
        updated.update(record)
        self.data = updated

    def _read_record(self) -> dict[str, Any] | None:
        return dict(self.data) if self.data else None

    def _delete_record(self) -> None:
        self.data.pop(self._keys.token, None)
        self.data.pop(self._keys.user, None)


class FileSessionStore(SessionStore):
    """Persists the record as a small JSON document.

    Writes go to a temporary file in the same directory and are moved into
    place with ``os.replace``, so readers see either the old record or the new
    one, never a torn file.
    """

    def __init__(self, path: str | pathlib.Path, keys: StoreKeys = WEB_KEYS) -> None:
        super().__init__(keys)
        self._path = pathlib.Path(path).expanduser()

    @property
    def path(self) -> pathlib.Path:
        return self._path

    def _write_record(self, record: dict[str, str]) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self._path.parent, prefix=f".{self._path.name}.", suffix=".tmp"
            )
        except OSError as exc:
            raise StoreError(f"Cannot write session file {self._path}: {exc}") from exc

        try:
            with os.fdopen(fd, "w") as fh:
                json.dump(record, fh)
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, self._path)
        except OSError as exc:
            pathlib.Path(tmp_name).unlink(missing_ok=True)
            raise StoreError(f"Cannot write session file {self._path}: {exc}") from exc

    def _read_record(self) -> dict[str, Any] | None:
        if not self._path.exists():
            return None
        try:
            with open(self._path) as fh:
                data = json.load(fh)
        except OSError as exc:
            raise StoreError(f"Cannot read session file {self._path}: {exc}") from exc
        except ValueError as exc:
            logger.warning("Session file %s is not valid JSON: %s", self._path, exc)
            return None
        if not isinstance(data, dict):
            logger.warning("Session file %s does not hold an object", self._path)
            return None
        return data

    def _delete_record(self) -> None:
        try:
            self._path.unlink(missing_ok=True)
        except OSError as exc:
            raise StoreError(f"Cannot remove session file {self._path}: {exc}") from exc
