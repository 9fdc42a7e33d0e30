import csv
import logging
import os
import tempfile
import threading
from pathlib import Path

from quickrdp.core.errors import DuplicateHost, RegistryError
from quickrdp.core.models import NO_QUERY, DirectoryCandidate, Host

logger = logging.getLogger(__name__)

HEADER = ["hostname", "description"]


def read_hosts_csv(path: Path) -> list[Host]:
    if not path.exists():
        logger.info("%s does not exist, starting with an empty registry", path)
        return []
    try:
        with open(path, "r", encoding="utf-8-sig", newline="") as f:
            rows = list(csv.reader(f))
    except (OSError, UnicodeDecodeError, csv.Error) as exc:
        raise RegistryError(f"Failed to read {path.name}: {exc}") from exc

    hosts = []
    seen = set()
    for i, row in enumerate(rows):
        if not row or not row[0].strip():
            continue
        if i == 0 and [c.strip().lower() for c in row[:2]] == HEADER:
            continue
        host = Host(hostname=row[0].strip(), description=row[1].strip() if len(row) > 1 else "")
        if host.key in seen:
            logger.warning("Ignoring duplicate host %s in %s", host.hostname, path.name)
            continue
        seen.add(host.key)
        hosts.append(host)
    logger.debug("Loaded %d hosts from %s", len(hosts), path)
    return hosts


def write_hosts_csv(path: Path, hosts: list[Host]):
    """Write to a temp file in the same directory, then rename over ``path``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=".hosts-", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            writer = csv.writer(f)
            writer.writerow(HEADER)
            for host in hosts:
                writer.writerow([host.hostname, host.description])
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except OSError as exc:
        try:
            os.remove(tmp_name)
        except OSError:
            pass
        raise RegistryError(f"Failed to write {path.name}: {exc}") from exc


class HostRegistry:
    def __init__(self, path: Path):
        self.path = Path(path)
        self._hosts: list[Host] = []
        self._lock = threading.RLock()

    def load(self) -> list[Host]:
        with self._lock:
            self._hosts = read_hosts_csv(self.path)
            return list(self._hosts)

    def all(self) -> list[Host]:
        with self._lock:
            return list(self._hosts)

    def get(self, hostname: str) -> Host | None:
        key = hostname.strip().lower()
        with self._lock:
            return next((h for h in self._hosts if h.key == key), None)

    def __contains__(self, hostname: str) -> bool:
        return self.get(hostname) is not None

    def __len__(self):
        with self._lock:
            return len(self._hosts)

    def _commit(self, hosts: list[Host]):
        write_hosts_csv(self.path, hosts)
        self._hosts = hosts

    def persist(self):
        with self._lock:
            write_hosts_csv(self.path, self._hosts)

    def add(self, host: Host):
        hostname = host.hostname.strip()
        if not hostname:
            raise RegistryError("Hostname cannot be empty", RegistryError.INVALID_HOST)
        host = Host(hostname=hostname, description=host.description.strip())
        with self._lock:
            if host.key in (h.key for h in self._hosts):
                raise DuplicateHost(hostname)
            self._commit(self._hosts + [host])
        logger.info("Added host %s", hostname)

    def update(self, host: Host):
        with self._lock:
            hosts = list(self._hosts)
            for i, existing in enumerate(hosts):
                if existing.key == host.key:
                    hosts[i] = Host(hostname=existing.hostname, description=host.description.strip())
                    self._commit(hosts)
                    logger.info("Updated host %s", existing.hostname)
                    return
        raise RegistryError(f"Host {host.hostname} not found", RegistryError.INVALID_HOST)

    def remove(self, hostname: str) -> bool:
        key = hostname.strip().lower()
        with self._lock:
            hosts = [h for h in self._hosts if h.key != key]
            if len(hosts) == len(self._hosts):
                return False
            self._commit(hosts)
        logger.info("Removed host %s", hostname)
        return True

    def clear(self) -> int:
        with self._lock:
            count = len(self._hosts)
            self._commit([])
        logger.info("Cleared %d hosts", count)
        return count

    def promote(self, candidates: list[DirectoryCandidate]) -> tuple[int, int]:
        """Add scan candidates that are not yet registered. Returns (added, skipped)."""
        with self._lock:
            hosts = list(self._hosts)
            keys = {h.key for h in hosts}
            added = skipped = 0
            for candidate in candidates:
                host = candidate.to_host()
                if not host.hostname.strip() or host.key in keys:
                    skipped += 1
                    continue
                hosts.append(host)
                keys.add(host.key)
                added += 1
            if added:
                self._commit(hosts)
        logger.info("Promoted %d scan candidates (%d skipped)", added, skipped)
        return added, skipped

    def search(self, query: str):
        query = query.strip().lower()
        if not query:
            return NO_QUERY
        with self._lock:
            return [
                h for h in self._hosts
                if query in h.hostname.lower() or query in h.description.lower()
            ]
