"""
Credential vault backed by the OS secret store (via ``keyring``).

Records are stored under the ``QuickRDP`` service. The global record uses a
fixed entry name; per-host records use ``host/<hostname>``. Because the OS
stores cannot be enumerated portably, the hostnames that have a per-host
record are tracked in an index entry kept in the same service.
"""

import base64
import binascii
import json
import logging
import threading

import keyring
from keyring import errors as keyring_errors

from quickrdp.core.errors import VaultError
from quickrdp.core.models import CredentialRecord, CredentialScope

logger = logging.getLogger(__name__)

SERVICE_NAME = "QuickRDP"
GLOBAL_ENTRY = "global"
INDEX_ENTRY = "per-host-index"
HOST_ENTRY_PREFIX = "host/"


def entry_name(scope: CredentialScope) -> str:
    if scope.is_global:
        return GLOBAL_ENTRY
    return f"{HOST_ENTRY_PREFIX}{scope.hostname}"


def _encode(username: str, secret: bytes) -> str:
    return json.dumps({
        "v": 1,
        "username": username,
        "secret": base64.b64encode(secret).decode("ascii"),
    })


def _decode(scope: CredentialScope, payload: str) -> CredentialRecord:
    try:
        data = json.loads(payload)
        username = data["username"]
        secret = base64.b64decode(data["secret"], validate=True)
    except (ValueError, KeyError, TypeError, binascii.Error) as exc:
        raise VaultError(f"Stored credential for {scope} cannot be decoded", VaultError.CORRUPT) from exc
    if not isinstance(username, str):
        raise VaultError(f"Stored credential for {scope} cannot be decoded", VaultError.CORRUPT)
    return CredentialRecord(scope=scope, username=username, secret=secret)


def _translate(exc: Exception, action: str) -> VaultError:
    if isinstance(exc, keyring_errors.KeyringLocked) or isinstance(exc, PermissionError):
        return VaultError(f"Access to the credential store was denied while {action}", VaultError.ACCESS_DENIED)
    if isinstance(exc, keyring_errors.PasswordSetError):
        return VaultError(f"The credential store refused the write while {action}: {exc}", VaultError.ACCESS_DENIED)
    return VaultError(f"The credential store is unavailable while {action}: {exc}", VaultError.UNAVAILABLE)


class CredentialVault:
    def __init__(self, backend=None, service: str = SERVICE_NAME):
        self._backend = backend
        self.service = service
        self._lock = threading.RLock()
        self.corrupt: set[CredentialScope] = set()

    @property
    def backend(self):
        if self._backend is None:
            try:
                self._backend = keyring.get_keyring()
            except keyring_errors.KeyringError as exc:
                raise _translate(exc, "opening the credential store") from exc
        return self._backend

    def _read(self, name: str, action: str) -> str | None:
        try:
            return self.backend.get_password(self.service, name)
        except (keyring_errors.KeyringError, OSError) as exc:
            raise _translate(exc, action) from exc

    def _write(self, name: str, value: str, action: str):
        try:
            self.backend.set_password(self.service, name, value)
        except (keyring_errors.KeyringError, OSError) as exc:
            raise _translate(exc, action) from exc

    def _remove(self, name: str, action: str) -> bool:
        if self._read(name, action) is None:
            return False
        try:
            self.backend.delete_password(self.service, name)
        except keyring_errors.PasswordDeleteError:
            # Vanished between the read and the delete.
            if self._read(name, action) is None:
                return False
            raise VaultError(f"The credential store refused to delete while {action}", VaultError.ACCESS_DENIED)
        except (keyring_errors.KeyringError, OSError) as exc:
            raise _translate(exc, action) from exc
        return True

    # --- Index of per-host records ---

    def per_host_hostnames(self) -> list[str]:
        raw = self._read(INDEX_ENTRY, "reading the host index")
        if not raw:
            return []
        try:
            names = json.loads(raw)
        except ValueError:
            logger.warning("Per-host credential index is corrupt, treating as empty")
            return []
        if not isinstance(names, list):
            logger.warning("Per-host credential index has an unexpected shape, treating as empty")
            return []
        return [n for n in names if isinstance(n, str)]

    def _set_index(self, names: list[str]):
        if names:
            self._write(INDEX_ENTRY, json.dumps(sorted(set(names))), "updating the host index")
        else:
            self._remove(INDEX_ENTRY, "clearing the host index")

    # --- CRUD ---

    def save(self, scope: CredentialScope, username: str, secret: bytes | str):
        if isinstance(secret, str):
            secret = secret.encode("utf-8")
        if not username.strip():
            raise ValueError("Username cannot be empty")
        with self._lock:
            logger.info("Saving credentials for %s (user %s)", scope, username)
            # The index must list every stored record, so it is written first.
            previous = None
            if not scope.is_global:
                names = self.per_host_hostnames()
                if scope.hostname not in names:
                    self._set_index(names + [scope.hostname])
                    previous = names
            try:
                self._write(entry_name(scope), _encode(username, secret), f"saving credentials for {scope}")
            except VaultError:
                if previous is not None:
                    try:
                        self._set_index(previous)
                    except VaultError:
                        logger.warning("Could not roll back the host index after a failed save of %s", scope)
                raise
            self.corrupt.discard(scope)

    def get(self, scope: CredentialScope) -> CredentialRecord | None:
        with self._lock:
            payload = self._read(entry_name(scope), f"reading credentials for {scope}")
            if payload is None:
                logger.debug("No stored credentials for %s", scope)
                return None
            try:
                record = _decode(scope, payload)
            except VaultError as exc:
                logger.warning("%s; treating it as absent", exc)
                self.corrupt.add(scope)
                return None
            self.corrupt.discard(scope)
            return record

    def delete(self, scope: CredentialScope) -> bool:
        """Delete the record for ``scope``. Returns False when there was none."""
        with self._lock:
            removed = self._remove(entry_name(scope), f"deleting credentials for {scope}")
            self.corrupt.discard(scope)
            if not scope.is_global:
                names = self.per_host_hostnames()
                if scope.hostname in names:
                    names.remove(scope.hostname)
                    self._set_index(names)
            if removed:
                logger.info("Deleted credentials for %s", scope)
            return removed

    def list_per_host(self) -> list[CredentialRecord]:
        with self._lock:
            records = []
            for hostname in self.per_host_hostnames():
                record = self.get(CredentialScope.per_host(hostname))
                if record is not None:
                    records.append(record)
            return records
