import copy
import json
import os
from dataclasses import dataclass
from pathlib import Path

APP_NAME = "QuickRDP"

DEFAULTS = {
    "default_domain": "",
    "default_server": "",
    "scan_page_size": 500,
    "scan_os_filter": "Windows Server*",
    "scan_timeout": 10,
    "rdp_client": "mstsc.exe",
    "recent_limit": 5,
    "countdown_seconds": 5,
    "theme": "dark",
    "display": {
        "screen_mode": 2,
        "desktop_width": 1920,
        "desktop_height": 1080,
        "color_depth": 32,
        "redirect_clipboard": True,
        "redirect_printers": True,
        "redirect_smartcards": True,
        "redirect_drives": False,
    },
}


def get_data_dir() -> Path:
    override = os.environ.get("QUICKRDP_HOME")
    if override:
        return Path(override)
    appdata = os.environ.get("APPDATA")
    if appdata:
        return Path(appdata) / APP_NAME
    return Path.home() / ".quickrdp"


@dataclass(frozen=True)
class AppPaths:
    data_dir: Path

    @classmethod
    def default(cls) -> "AppPaths":
        return cls(get_data_dir())

    @property
    def hosts_file(self) -> Path:
        return self.data_dir / "hosts.csv"

    @property
    def recent_file(self) -> Path:
        return self.data_dir / "recent_connections.json"

    @property
    def connections_dir(self) -> Path:
        return self.data_dir / "Connections"

    @property
    def log_file(self) -> Path:
        return self.data_dir / "QuickRDP_Debug.log"

    @property
    def config_file(self) -> Path:
        return self.data_dir / "config.json"

    def ensure(self):
        self.data_dir.mkdir(parents=True, exist_ok=True)


def load_config(path: Path | None = None) -> dict:
    config = copy.deepcopy(DEFAULTS)
    if path is None:
        path = AppPaths.default().config_file
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (FileNotFoundError, json.JSONDecodeError):
        return config
    if not isinstance(data, dict):
        return config
    display = data.pop("display", None)
    config.update(data)
    if isinstance(display, dict):
        config["display"].update(display)
    return config
