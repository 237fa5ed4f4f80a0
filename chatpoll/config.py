from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from typing import Any

from . import __version__
from .constants import (
    DEFAULT_DOMAIN,
    EDIT_WINDOW_S,
    FETCH_ATTEMPTS,
    INITIAL_FETCH_COUNT,
    MAX_MESSAGE_LENGTH,
    REQUEST_ATTEMPTS,
)


@dataclass(frozen=True)
class ChatRuntimeConfig:
    config_path: str | None = None
    domain: str = DEFAULT_DOMAIN
    email: str | None = None
    password: str | None = None
    rooms: tuple[int, ...] = ()
    retry_pause_s: float = 5.0
    heartbeat_s: float = 3.0
    edit_window_s: float = EDIT_WINDOW_S
    initial_fetch_count: int = INITIAL_FETCH_COUNT
    fetch_attempts: int = FETCH_ATTEMPTS
    request_attempts: int = REQUEST_ATTEMPTS
    http_timeout_s: float = 30.0
    user_agent: str = f"chatpoll/{__version__}"
    max_message_length: int = MAX_MESSAGE_LENGTH
    log_level: str = "INFO"
    log_messages_level: str = "INFO"
    log_http_level: str = "WARNING"
    log_console: bool = True
    log_file: str | None = None
    log_format: str = "%(asctime)s %(levelname)s %(name)s[%(threadName)s]: %(message)s"
    log_datefmt: str | None = None


_LOGGING_KEYS = {
    "level": "log_level",
    "messages_level": "log_messages_level",
    "http_level": "log_http_level",
    "console": "log_console",
    "file": "log_file",
    "format": "log_format",
    "datefmt": "log_datefmt",
}

_OPTIONAL_STR_KEYS = ("email", "password", "log_file", "log_datefmt")


def load_toml(path: str) -> dict:
    import tomllib

    with open(path, "rb") as f:
        return tomllib.load(f)


def apply_config_data(cfg: ChatRuntimeConfig, data: dict[str, Any]) -> ChatRuntimeConfig:
    """Overlay values from a parsed TOML document onto ``cfg``.

    Keys may live at top level or in a ``[chat]`` table; ``[logging]`` keys
    map onto the ``log_*`` fields. Unknown keys are ignored.
    """
    if not isinstance(data, dict):
        return cfg

    chat = data.get("chat")
    if isinstance(chat, dict):
        data = {**data, **chat}

    log_table = data.get("logging")
    if isinstance(log_table, dict):
        mapped = {_LOGGING_KEYS[k]: v for k, v in log_table.items() if k in _LOGGING_KEYS}
        data = {**data, **mapped}

    allowed = set(asdict(cfg).keys())
    # This identifies where the config came from; do not let the file override it.
    allowed.discard("config_path")
    updates = {k: v for k, v in data.items() if k in allowed}

    if "rooms" in updates:
        rooms = updates["rooms"]
        if isinstance(rooms, (list, tuple)):
            updates["rooms"] = tuple(int(r) for r in rooms)
        else:
            updates["rooms"] = (int(rooms),)

    for key in _OPTIONAL_STR_KEYS:
        if key in updates and updates[key] == "":
            updates[key] = None

    return replace(cfg, **updates) if updates else cfg
