"""
Shared pytest fixtures for the QuickRDP test suite.
"""

import re
import subprocess
from unittest.mock import MagicMock

import pytest
from keyring import errors as keyring_errors
from keyring.backend import KeyringBackend

from quickrdp.core.backend import Backend
from quickrdp.core.config import AppPaths
from quickrdp.core.rdp import PlatformCredentials
from quickrdp.core.vault import CredentialVault


# ---------------------------------------------------------------------------
# OS secret store
# ---------------------------------------------------------------------------

class MemoryKeyring(KeyringBackend):
    """Dict-backed keyring so tests never touch the real OS store."""

    priority = 1

    def __init__(self):
        super().__init__()
        self.entries = {}

    def get_password(self, service, username):
        return self.entries.get((service, username))

    def set_password(self, service, username, password):
        self.entries[(service, username)] = password

    def delete_password(self, service, username):
        try:
            del self.entries[(service, username)]
        except KeyError:
            raise keyring_errors.PasswordDeleteError("not found")


@pytest.fixture
def memory_keyring():
    return MemoryKeyring()


@pytest.fixture
def vault(memory_keyring):
    return CredentialVault(backend=memory_keyring)


# ---------------------------------------------------------------------------
# cmdkey
# ---------------------------------------------------------------------------

class FakeCmdkey:
    """Stands in for ``subprocess.run(["cmdkey", ...])`` and keeps the entries in memory."""

    def __init__(self):
        self.entries = {}
        self.calls = []
        self.fail_store = False
        self.fail_list = False

    def __call__(self, args, **kwargs):
        self.calls.append((list(args), kwargs))
        action = args[1]
        if action.startswith("/generic:"):
            if self.fail_store:
                return subprocess.CompletedProcess(args, 1, "", "The parameter is incorrect.")
            target = action[len("/generic:"):]
            user = next(a[len("/user:"):] for a in args if a.startswith("/user:"))
            self.entries[target] = user
            return subprocess.CompletedProcess(args, 0, "CMDKEY: Credential added successfully.", "")
        if action.startswith("/delete:"):
            target = action[len("/delete:"):]
            if self.entries.pop(target, None) is None:
                return subprocess.CompletedProcess(args, 1, "", "CMDKEY: Element not found.")
            return subprocess.CompletedProcess(args, 0, "CMDKEY: Credential deleted successfully.", "")
        if action.startswith("/list:"):
            if self.fail_list:
                raise FileNotFoundError("cmdkey")
            pattern = re.escape(action[len("/list:"):]).replace(r"\*", ".*")
            lines = ["", "Currently stored credentials for TERMSRV/*:", ""]
            for target, user in self.entries.items():
                if re.fullmatch(pattern, target, re.I):
                    lines += [
                        f"    Target: LegacyGeneric:target={target}",
                        "    Type: Generic",
                        f"    User: {user}",
                        "",
                    ]
            return subprocess.CompletedProcess(args, 0, "\n".join(lines), "")
        return subprocess.CompletedProcess(args, 1, "", "unknown option")

    def commands(self, prefix):
        return [args for args, _ in self.calls if args[1].startswith(prefix)]


@pytest.fixture
def cmdkey():
    return FakeCmdkey()


@pytest.fixture
def platform(cmdkey):
    return PlatformCredentials(run=cmdkey)


# ---------------------------------------------------------------------------
# Application wiring
# ---------------------------------------------------------------------------

@pytest.fixture
def paths(tmp_path):
    app_paths = AppPaths(tmp_path / "QuickRDP")
    app_paths.ensure()
    return app_paths


@pytest.fixture
def spawn():
    return MagicMock(name="spawn")


@pytest.fixture
def backend(paths, vault, platform, spawn):
    return Backend(paths=paths, vault=vault, platform=platform, spawn=spawn)
