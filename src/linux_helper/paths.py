"""XDG path helpers for settings, logs and the conversation store."""

from __future__ import annotations

from pathlib import Path

from platformdirs import PlatformDirs

APP_NAME = "linux-helper"
APP_AUTHOR = "linux-helper"


def dirs() -> PlatformDirs:
    return PlatformDirs(appname=APP_NAME, appauthor=APP_AUTHOR, roaming=False)


def ensure_dir(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


def config_root() -> Path:
    return ensure_dir(Path(dirs().user_config_path))


def state_root() -> Path:
    return ensure_dir(Path(dirs().user_state_path))


def data_root() -> Path:
    return ensure_dir(Path(dirs().user_data_path))


def settings_path() -> Path:
    return config_root() / "settings.json"


def messages_db_path() -> Path:
    return data_root() / "messages.sqlite3"
