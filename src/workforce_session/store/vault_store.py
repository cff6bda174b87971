"""Session persistence in HashiCorp Vault's KV v2 secrets engine.

Pattern: Secret Store as Session Mirror
----------------------------------------
On shared workstations and kiosks a bearer token sitting in a dotfile is a
liability.  ``VaultSessionStore`` keeps the ``{token, user}`` record in a KV
v2 secret instead, so it inherits Vault's ACLs, audit log and encryption at
rest.

Both keys live in the *same* secret, so a save is one KV write: Vault either
records the new version or rejects it.  There is no window in which the token
and the user record disagree.
"""

from __future__ import annotations

import logging
from typing import Any

import hvac

from workforce_session.store.base import WEB_KEYS, SessionStore, StoreError, StoreKeys

logger = logging.getLogger(__name__)


class VaultSessionStore(SessionStore):
    """Stores the session record at ``<kv_mount>/<secret_path>``."""

    def __init__(
        self,
        vault_addr: str,
        vault_token: str,
        secret_path: str = "workforce/session",
        kv_mount: str = "secret",
        keys: StoreKeys = WEB_KEYS,
    ) -> None:
        super().__init__(keys)
        self._vault_addr = vault_addr
        self._secret_path = secret_path
        self._kv_mount = kv_mount
        self._client = hvac.Client(url=vault_addr, token=vault_token)

    def _write_record(self, record: dict[str, str]) -> None:
        try:
            self._client.secrets.kv.v2.create_or_update_secret(
                path=self._secret_path,
                secret=record,
                mount_point=self._kv_mount,
            )
        except hvac.exceptions.VaultError as exc:
            raise StoreError(
                f"Vault write failed for {self._kv_mount}/{self._secret_path}: {exc}"
            ) from exc

    def _read_record(self) -> dict[str, Any] | None:
        try:
            response = self._client.secrets.kv.v2.read_secret_version(
                path=self._secret_path,
                mount_point=self._kv_mount,
                raise_on_deleted_version=True,
            )
        except hvac.exceptions.InvalidPath:
            return None
        except hvac.exceptions.VaultError as exc:
            raise StoreError(
                f"Vault read failed for {self._kv_mount}/{self._secret_path}: {exc}"
            ) from exc
        return response.get("data", {}).get("data")

    def _delete_record(self) -> None:
        try:
            self._client.secrets.kv.v2.delete_metadata_and_all_versions(
                path=self._secret_path,
                mount_point=self._kv_mount,
            )
        except hvac.exceptions.InvalidPath:
            logger.debug("No stored session at %s/%s", self._kv_mount, self._secret_path)
        except hvac.exceptions.VaultError as exc:
            raise StoreError(
                f"Vault delete failed for {self._kv_mount}/{self._secret_path}: {exc}"
            ) from exc
