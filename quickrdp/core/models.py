from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class CredentialScope:
    """Key space of a credential record: Global, or PerHost(hostname)."""

    hostname: str | None = None

    @classmethod
    def global_(cls) -> "CredentialScope":
        return cls(None)

    @classmethod
    def per_host(cls, hostname: str) -> "CredentialScope":
        hostname = hostname.strip().lower()
        if not hostname:
            raise ValueError("Hostname cannot be empty")
        return cls(hostname)

    @property
    def is_global(self) -> bool:
        return self.hostname is None

    def __str__(self):
        return "Global" if self.is_global else f"PerHost({self.hostname})"


@dataclass(frozen=True)
class CredentialRecord:
    scope: CredentialScope
    username: str
    secret: bytes = field(repr=False)

    @property
    def password(self) -> str:
        return self.secret.decode("utf-8")


@dataclass
class Host:
    hostname: str
    description: str = ""

    @property
    def key(self) -> str:
        return self.hostname.strip().lower()


@dataclass(frozen=True)
class DirectoryCandidate:
    hostname: str
    description: str = ""
    operating_system: str | None = None

    def to_host(self) -> Host:
        return Host(hostname=self.hostname, description=self.description)


@dataclass(frozen=True)
class ConnectionDescriptor:
    target_host: str
    username: str
    domain: str = ""
    server_port: int = 3389
    display: dict = field(default_factory=dict)


@dataclass(frozen=True)
class RecentConnection:
    hostname: str
    timestamp: float
    description: str = ""

    @property
    def when(self) -> str:
        return datetime.fromtimestamp(self.timestamp).strftime("%d/%m/%Y %H:%M")


class _NoQuery:
    """Returned by search for an empty query so the UI can show a prompt."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self):
        return False

    def __iter__(self):
        return iter(())

    def __repr__(self):
        return "NO_QUERY"


NO_QUERY = _NoQuery()


@dataclass
class ResetSummary:
    global_credentials_deleted: int = 0
    host_credentials_deleted: int = 0
    platform_credentials_deleted: int = 0
    descriptor_files_deleted: int = 0
    hosts_cleared: int = 0
    recent_cleared: int = 0
    removed: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def total_deletions(self) -> int:
        return (
            self.global_credentials_deleted
            + self.host_credentials_deleted
            + self.platform_credentials_deleted
            + self.descriptor_files_deleted
            + self.hosts_cleared
            + self.recent_cleared
        )

    @property
    def ok(self) -> bool:
        return not self.errors

    def report(self) -> str:
        lines = ["=== QuickRDP Application Reset ===", ""]
        lines.append(f"Global credentials deleted: {self.global_credentials_deleted}")
        lines.append(f"Host credentials deleted: {self.host_credentials_deleted}")
        lines.append(f"RDP login entries deleted: {self.platform_credentials_deleted}")
        lines.append(f"Connection files deleted: {self.descriptor_files_deleted}")
        lines.append(f"Hosts cleared: {self.hosts_cleared}")
        lines.append(f"Recent connections cleared: {self.recent_cleared}")
        if self.removed:
            lines.append("")
            lines.extend(f"  - {item}" for item in self.removed)
        if self.errors:
            lines.append("")
            lines.append("Failures:")
            lines.extend(f"  ✗ {err}" for err in self.errors)
        lines.append("")
        lines.append("=== Reset Complete ===")
        return "\n".join(lines)
