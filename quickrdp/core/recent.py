import json
import logging
import os
import threading
import time
from pathlib import Path

from quickrdp.core.models import RecentConnection

logger = logging.getLogger(__name__)


class RecentConnections:
    """Most-recent-first list of launched hosts, bounded to ``limit`` entries."""

    def __init__(self, path: Path, limit: int = 5):
        self.path = Path(path)
        self.limit = limit
        self._lock = threading.Lock()

    def load(self) -> list[RecentConnection]:
        if not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            return [
                RecentConnection(
                    hostname=c["hostname"],
                    timestamp=float(c["timestamp"]),
                    description=c.get("description", ""),
                )
                for c in data.get("connections", [])
            ][: self.limit]
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as exc:
            logger.warning("Ignoring unreadable recent connections file: %s", exc)
            return []

    def _save(self, entries: list[RecentConnection]):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "connections": [
                {"hostname": e.hostname, "description": e.description, "timestamp": e.timestamp}
                for e in entries
            ]
        }
        tmp = self.path.with_suffix(".tmp")
        tmp.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        os.replace(tmp, self.path)

    def add(self, hostname: str, description: str = "", timestamp: float | None = None) -> list[RecentConnection]:
        with self._lock:
            key = hostname.lower()
            entries = [e for e in self.load() if e.hostname.lower() != key]
            entry = RecentConnection(
                hostname=hostname,
                timestamp=time.time() if timestamp is None else timestamp,
                description=description,
            )
            entries.insert(0, entry)
            entries = entries[: self.limit]
            self._save(entries)
            return entries

    def clear(self) -> int:
        with self._lock:
            if not self.path.exists():
                return 0
            count = len(self.load())
            self.path.unlink()
            logger.info("Cleared %d recent connections", count)
            return count
