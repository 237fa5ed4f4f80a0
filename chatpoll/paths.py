"""Where chatpoll keeps its files.

Everything lives in one directory, ``~/.chatpoll`` unless ``CHATPOLL_HOME``
points elsewhere. The config file may hold a password, so the directory is
owner-only.
"""

from __future__ import annotations

import os
from pathlib import Path

HOME_ENV = "CHATPOLL_HOME"
CONFIG_NAME = "chatpoll.toml"


def chatpoll_home() -> Path:
    override = os.environ.get(HOME_ENV)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".chatpoll"


def default_config_path() -> Path:
    return chatpoll_home() / CONFIG_NAME


def make_private_dir(path: Path) -> Path:
    path.mkdir(mode=0o700, parents=True, exist_ok=True)
    # mkdir's mode is masked by the umask and skipped for existing directories.
    try:
        path.chmod(0o700)
    except OSError:
        pass
    return path
