"""
One typed entry point per operation the windows can invoke.

Windows never reach into the vault, registry or launcher directly; they call
these methods, which raise the component error types on failure.
"""

import logging
from pathlib import Path

from quickrdp.core.config import AppPaths, load_config
from quickrdp.core.errors import ScanError, VaultError
from quickrdp.core.models import CredentialRecord, CredentialScope, DirectoryCandidate, Host, ResetSummary
from quickrdp.core.rdp import Launcher, PlatformCredentials
from quickrdp.core.recent import RecentConnections
from quickrdp.core.registry import HostRegistry
from quickrdp.core.reset import ResetController
from quickrdp.core.scanner import DirectoryScan
from quickrdp.core.vault import CredentialVault

logger = logging.getLogger(__name__)


class Backend:
    def __init__(self, paths: AppPaths | None = None, config: dict | None = None,
                 vault: CredentialVault | None = None, platform: PlatformCredentials | None = None,
                 spawn=None):
        self.paths = paths or AppPaths.default()
        self.paths.ensure()
        self.config = config if config is not None else load_config(self.paths.config_file)
        self.vault = vault or CredentialVault()
        self.platform = platform or PlatformCredentials()
        self.registry = HostRegistry(self.paths.hosts_file)
        self.recent = RecentConnections(self.paths.recent_file, limit=self.config["recent_limit"])
        self.launcher = Launcher(
            self.vault,
            self.paths.connections_dir,
            recent=self.recent,
            platform=self.platform,
            client=self.config["rdp_client"],
            display=self.config["display"],
            spawn=spawn,
        )
        self.resetter = ResetController(
            self.vault, self.registry, self.platform, self.paths.connections_dir, self.recent,
        )
        self.registry.load()

    # --- Credentials ---

    def save_global_credentials(self, username: str, password: str):
        self.vault.save(CredentialScope.global_(), username.strip(), password)

    def get_global_credentials(self) -> CredentialRecord | None:
        return self.vault.get(CredentialScope.global_())

    def delete_global_credentials(self) -> bool:
        return self.vault.delete(CredentialScope.global_())

    def global_credentials_corrupt(self) -> bool:
        return CredentialScope.global_() in self.vault.corrupt

    def save_host_credentials(self, hostname: str, username: str, password: str):
        self.vault.save(CredentialScope.per_host(hostname), username.strip(), password)

    def get_host_credentials(self, hostname: str) -> CredentialRecord | None:
        return self.vault.get(CredentialScope.per_host(hostname))

    def host_credentials_corrupt(self, hostname: str) -> bool:
        return CredentialScope.per_host(hostname) in self.vault.corrupt

    def delete_host_credentials(self, hostname: str) -> bool:
        removed = self.vault.delete(CredentialScope.per_host(hostname))
        try:
            self.platform.delete(hostname)
        except OSError as exc:
            raise VaultError(
                f"Removed stored credentials but could not clear the RDP sign-in for {hostname}: {exc}",
                VaultError.UNAVAILABLE,
            ) from exc
        return removed

    # --- Hosts ---

    def list_hosts(self) -> list[Host]:
        return self.registry.all()

    def get_host(self, hostname: str) -> Host | None:
        return self.registry.get(hostname)

    def search_hosts(self, query: str):
        return self.registry.search(query)

    def add_host(self, hostname: str, description: str = ""):
        self.registry.add(Host(hostname=hostname, description=description))

    def update_host(self, hostname: str, description: str):
        self.registry.update(Host(hostname=hostname, description=description))

    def remove_host(self, hostname: str) -> bool:
        return self.registry.remove(hostname)

    # --- Directory scan ---

    def scan_domain(self, domain: str, controller: str, ou: str | None = None,
                    credentials: CredentialRecord | None = None) -> DirectoryScan:
        if credentials is None:
            credentials = self.get_global_credentials()
        if credentials is None:
            raise ScanError(
                "No stored credentials found. Please save your domain credentials in the login window first.",
                ScanError.BIND_FAILED,
            )
        return DirectoryScan(
            domain,
            controller,
            credentials,
            page_size=self.config["scan_page_size"],
            ou=ou,
            os_filter=self.config["scan_os_filter"],
            timeout=self.config["scan_timeout"],
        )

    def promote_candidates(self, candidates: list[DirectoryCandidate]) -> tuple[int, int]:
        return self.registry.promote(candidates)

    # --- Launch ---

    def launch(self, hostname: str) -> Path:
        host = self.registry.get(hostname) or Host(hostname=hostname.strip())
        return self.launcher.launch(host)

    def recent_connections(self):
        return self.recent.load()

    # --- Reset ---

    def reset(self) -> ResetSummary:
        return self.resetter.reset()
