"""
Application reset: removes every credential, generated file and host record.

Each step runs regardless of failures in the previous ones; failures are
collected in the returned ``ResetSummary``. Running it again on a clean
system deletes nothing and reports no errors.
"""

import logging
import threading

from quickrdp.core.errors import QuickRDPError, ResetError
from quickrdp.core.models import CredentialScope, ResetSummary
from quickrdp.core.rdp import list_descriptor_files, platform_target

logger = logging.getLogger(__name__)


class ResetController:
    def __init__(self, vault, registry, platform, connections_dir, recent):
        self.vault = vault
        self.registry = registry
        self.platform = platform
        self.connections_dir = connections_dir
        self.recent = recent
        self._lock = threading.Lock()

    def reset(self) -> ResetSummary:
        if not self._lock.acquire(blocking=False):
            raise ResetError("A reset is already in progress")
        try:
            logger.warning("Application reset initiated - deleting all credentials and data")
            summary = ResetSummary()
            self._delete_global(summary)
            self._delete_per_host(summary)
            self._delete_descriptors(summary)
            self._clear_registry(summary)
            self._clear_recent(summary)
            logger.warning(
                "Reset finished: %d item(s) removed, %d failure(s)",
                summary.total_deletions, len(summary.errors),
            )
            return summary
        finally:
            self._lock.release()

    def _delete_global(self, summary: ResetSummary):
        try:
            if self.vault.delete(CredentialScope.global_()):
                summary.global_credentials_deleted += 1
                summary.removed.append("Global credentials")
        except QuickRDPError as exc:
            summary.errors.append(f"Failed to delete global credentials: {exc}")

    def _delete_per_host(self, summary: ResetSummary):
        try:
            hostnames = self.vault.per_host_hostnames()
        except QuickRDPError as exc:
            summary.errors.append(f"Failed to enumerate host credentials: {exc}")
            hostnames = []

        for hostname in hostnames:
            try:
                if self.vault.delete(CredentialScope.per_host(hostname)):
                    summary.host_credentials_deleted += 1
                    summary.removed.append(f"Credentials for {hostname}")
            except QuickRDPError as exc:
                summary.errors.append(f"Failed to delete credentials for {hostname}: {exc}")

        targets = {platform_target(h) for h in hostnames}
        try:
            targets.update(self.platform.list_targets())
        except OSError as exc:
            if hostnames:
                summary.errors.append(f"Failed to enumerate RDP sign-in entries: {exc}")
            else:
                logger.info("RDP sign-in entries could not be listed: %s", exc)

        for target in sorted(targets):
            try:
                if self.platform.delete_target(target):
                    summary.platform_credentials_deleted += 1
                    summary.removed.append(target)
            except OSError as exc:
                summary.errors.append(f"Failed to delete {target}: {exc}")

    def _delete_descriptors(self, summary: ResetSummary):
        try:
            files = list_descriptor_files(self.connections_dir)
        except OSError as exc:
            summary.errors.append(f"Failed to read connections directory: {exc}")
            return
        for path in files:
            try:
                path.unlink()
                summary.descriptor_files_deleted += 1
                summary.removed.append(f"Deleted: {path.name}")
            except FileNotFoundError:
                pass
            except OSError as exc:
                summary.errors.append(f"Failed to delete {path.name}: {exc}")

    def _clear_registry(self, summary: ResetSummary):
        try:
            if not self.registry.load():
                logger.debug("hosts.csv is already empty")
                return
        except QuickRDPError as exc:
            logger.warning("hosts.csv unreadable before reset, clearing anyway: %s", exc)
        try:
            summary.hosts_cleared += self.registry.clear()
        except QuickRDPError as exc:
            summary.errors.append(f"Failed to clear hosts.csv: {exc}")

    def _clear_recent(self, summary: ResetSummary):
        try:
            summary.recent_cleared += self.recent.clear()
        except OSError as exc:
            summary.errors.append(f"Failed to delete recent connections: {exc}")
