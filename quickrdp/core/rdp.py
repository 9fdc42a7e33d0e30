import logging
import re
import subprocess
import sys
import threading
from pathlib import Path

from quickrdp.core.errors import LaunchError
from quickrdp.core.models import ConnectionDescriptor, CredentialRecord, CredentialScope, Host

logger = logging.getLogger(__name__)

NO_WINDOW = getattr(subprocess, "CREATE_NO_WINDOW", 0)
PLATFORM_TARGET_PREFIX = "TERMSRV/"
DEFAULT_PORT = 3389
_TARGET_RE = re.compile(r"(?:target=|Target:\s*)(TERMSRV/\S+)", re.I)
_UNSAFE_FILENAME_RE = re.compile(r"[^A-Za-z0-9._-]")


def split_username(username: str) -> tuple[str, str]:
    """Return (domain, user) for ``DOMAIN\\user``, ``user@domain`` or ``user``."""
    if "\\" in username:
        domain, user = username.split("\\", 1)
        return domain, user
    if "@" in username:
        user, domain = username.split("@", 1)
        return domain, user
    return "", username


def platform_target(hostname: str) -> str:
    return f"{PLATFORM_TARGET_PREFIX}{hostname.strip().lower()}"


def descriptor_filename(hostname: str) -> str:
    return _UNSAFE_FILENAME_RE.sub("_", hostname.strip().lower()) + ".rdp"


def render_rdp(descriptor: ConnectionDescriptor) -> str:
    d = descriptor.display
    lines = [
        f"screen mode id:i:{d.get('screen_mode', 2)}",
        "use multimon:i:0",
        f"desktopwidth:i:{d.get('desktop_width', 1920)}",
        f"desktopheight:i:{d.get('desktop_height', 1080)}",
        f"session bpp:i:{d.get('color_depth', 32)}",
        f"full address:s:{descriptor.target_host}:{descriptor.server_port}",
        "compression:i:1",
        "keyboardhook:i:2",
        "audiocapturemode:i:1",
        "videoplaybackmode:i:1",
        "connection type:i:2",
        "networkautodetect:i:1",
        "bandwidthautodetect:i:1",
        "enableworkspacereconnect:i:1",
        "disable wallpaper:i:0",
        "allow desktop composition:i:0",
        "allow font smoothing:i:0",
        "disable full window drag:i:1",
        "disable menu anims:i:1",
        "disable themes:i:0",
        "disable cursor setting:i:0",
        "bitmapcachepersistenable:i:1",
        "audiomode:i:0",
        f"redirectprinters:i:{1 if d.get('redirect_printers', True) else 0}",
        "redirectcomports:i:0",
        f"redirectsmartcards:i:{1 if d.get('redirect_smartcards', True) else 0}",
        f"redirectclipboard:i:{1 if d.get('redirect_clipboard', True) else 0}",
        f"redirectdrives:i:{1 if d.get('redirect_drives', False) else 0}",
        "redirectposdevices:i:0",
        "autoreconnection enabled:i:1",
        "authentication level:i:2",
        "prompt for credentials:i:0",
        "negotiate security layer:i:1",
        "remoteapplicationmode:i:0",
        "alternate shell:s:",
        "shell working directory:s:",
        "gatewayhostname:s:",
        "gatewayusagemethod:i:4",
        "gatewaycredentialssource:i:4",
        "gatewayprofileusagemethod:i:0",
        "promptcredentialonce:i:1",
        "use redirection server name:i:0",
        "rdgiskdcproxy:i:0",
        "kdcproxyname:s:",
        f"username:s:{descriptor.username}",
        f"domain:s:{descriptor.domain}",
        "enablecredsspsupport:i:1",
        "public mode:i:0",
        "cert ignore:i:1",
    ]
    return "\r\n".join(lines) + "\r\n"


def list_descriptor_files(connections_dir: Path) -> list[Path]:
    if not connections_dir.exists():
        return []
    return sorted(p for p in connections_dir.iterdir() if p.is_file() and p.suffix.lower() == ".rdp")


class PlatformCredentials:
    """
    The ``TERMSRV/<host>`` entries the RDP client reads for silent sign-in,
    managed through ``cmdkey``.
    """

    def __init__(self, run=None):
        self._run = run or subprocess.run

    def _cmdkey(self, *args) -> subprocess.CompletedProcess:
        return self._run(
            ["cmdkey", *args],
            capture_output=True,
            text=True,
            creationflags=NO_WINDOW,
        )

    def store(self, hostname: str, username: str, password: str):
        target = platform_target(hostname)
        result = self._cmdkey(f"/generic:{target}", f"/user:{username}", f"/pass:{password}")
        if result.returncode != 0:
            raise OSError(f"cmdkey could not store {target} (exit code {result.returncode})")
        logger.info("Stored RDP sign-in for %s as %s", target, username)

    def delete(self, hostname: str) -> bool:
        return self.delete_target(platform_target(hostname))

    def delete_target(self, target: str) -> bool:
        result = self._cmdkey(f"/delete:{target}")
        if result.returncode == 0:
            logger.info("Deleted RDP sign-in %s", target)
            return True
        return False

    def list_targets(self) -> list[str]:
        result = self._cmdkey(f"/list:{PLATFORM_TARGET_PREFIX}*")
        targets = []
        for line in (result.stdout or "").splitlines():
            m = _TARGET_RE.search(line)
            if m and m.group(1) not in targets:
                targets.append(m.group(1))
        return targets


class Launcher:
    def __init__(self, vault, connections_dir: Path, recent=None, platform=None,
                 client: str = "mstsc.exe", display: dict | None = None, spawn=None):
        self.vault = vault
        self.connections_dir = Path(connections_dir)
        self.recent = recent
        self.platform = platform or PlatformCredentials()
        self.client = client
        self.display = display or {}
        self._spawn = spawn or self._popen
        self._lock = threading.Lock()

    @staticmethod
    def _popen(args):
        kwargs = {"creationflags": NO_WINDOW}
        if sys.platform != "win32":
            kwargs = {"start_new_session": True}
        return subprocess.Popen(args, close_fds=True, **kwargs)

    def resolve_credentials(self, hostname: str) -> CredentialRecord:
        scope = CredentialScope.per_host(hostname)
        record = self.vault.get(scope)
        if record is not None:
            logger.info("Using per-host credentials for %s", hostname)
            return record
        if scope in self.vault.corrupt:
            raise LaunchError(
                f"The stored credentials for {hostname} are unreadable. "
                "Save them again or delete them under Credentials... before connecting.",
                LaunchError.CORRUPT_CREDENTIALS,
            )
        record = self.vault.get(CredentialScope.global_())
        if record is not None:
            logger.info("No per-host credentials for %s, using global credentials", hostname)
            return record
        if CredentialScope.global_() in self.vault.corrupt:
            raise LaunchError(
                "The stored domain credentials are unreadable. Save them again in the login window.",
                LaunchError.CORRUPT_CREDENTIALS,
            )
        raise LaunchError(
            "No credentials found. Please save credentials in the login window first.",
            LaunchError.NO_CREDENTIALS,
        )

    def build_descriptor(self, host: Host, record: CredentialRecord) -> ConnectionDescriptor:
        domain, user = split_username(record.username)
        return ConnectionDescriptor(
            target_host=host.hostname.strip(),
            username=user,
            domain=domain,
            server_port=DEFAULT_PORT,
            display=dict(self.display),
        )

    def descriptor_path(self, hostname: str) -> Path:
        return self.connections_dir / descriptor_filename(hostname)

    def write_descriptor(self, descriptor: ConnectionDescriptor) -> Path:
        path = self.descriptor_path(descriptor.target_host)
        try:
            self.connections_dir.mkdir(parents=True, exist_ok=True)
            path.write_bytes(render_rdp(descriptor).encode("utf-8"))
        except OSError as exc:
            raise LaunchError(f"Failed to write RDP file: {exc}", LaunchError.DESCRIPTOR_WRITE_FAILED) from exc
        logger.debug("RDP file written to %s", path)
        return path

    def launch(self, host: Host) -> Path:
        record = self.resolve_credentials(host.hostname)
        descriptor = self.build_descriptor(host, record)
        with self._lock:
            path = self.write_descriptor(descriptor)

        login = f"{descriptor.domain}\\{descriptor.username}" if descriptor.domain else descriptor.username
        try:
            self.platform.store(host.hostname, login, record.password)
        except OSError as exc:
            raise LaunchError(
                f"Failed to save RDP credentials for {host.hostname}: {exc}",
                LaunchError.PLATFORM_CREDENTIAL_FAILED,
            ) from exc

        try:
            self._spawn([self.client, str(path)])
        except OSError as exc:
            raise LaunchError(
                f"Failed to start {self.client}: {exc}", LaunchError.CLIENT_SPAWN_FAILED
            ) from exc
        logger.info("Launched RDP connection to %s using %s", host.hostname, path)

        if self.recent is not None:
            try:
                self.recent.add(host.hostname, host.description)
            except OSError as exc:
                logger.warning("Failed to record recent connection for %s: %s", host.hostname, exc)
        return path


def ping_host(hostname: str) -> bool:
    count_flag = "-n" if sys.platform == "win32" else "-c"
    wait_flag = ["-w", "1000"] if sys.platform == "win32" else ["-W", "1"]
    try:
        result = subprocess.run(
            ["ping", count_flag, "1", *wait_flag, hostname],
            capture_output=True,
            creationflags=NO_WINDOW,
            timeout=5,
        )
        return result.returncode == 0
    except (subprocess.TimeoutExpired, FileNotFoundError):
        return False
