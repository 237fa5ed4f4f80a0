"""Logging setup for the chatpoll command.

Three groups of loggers matter:

- ``chatpoll.messages`` carries the chat traffic written by the CLI handler
- the rest of ``chatpoll.*`` is the engine (poller, session, transport, service)
- ``httpx``/``httpcore`` log every request at INFO

Each group gets its own level so the chat traffic can stay visible while the
engine is turned down to warnings, or the other way round.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from .config import ChatRuntimeConfig

_LEVELS = logging.getLevelNamesMapping()


def level_for(name: str | None, default: int) -> int:
    if not name:
        return default
    return _LEVELS.get(str(name).strip().upper(), default)


def _file_handler(path: str) -> logging.Handler:
    p = Path(os.path.expanduser(path))
    p.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(p, encoding="utf-8")
    try:
        os.chmod(p, 0o600)
    except OSError:
        pass
    return handler


def configure_logging(cfg: ChatRuntimeConfig) -> None:
    """Install chatpoll's handlers on the root logger, replacing any already there."""
    handlers: list[logging.Handler] = []
    if cfg.log_console:
        handlers.append(logging.StreamHandler())
    if cfg.log_file:
        handlers.append(_file_handler(cfg.log_file))

    formatter = logging.Formatter(fmt=cfg.log_format or None, datefmt=cfg.log_datefmt)

    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
    for h in handlers:
        h.setFormatter(formatter)
        root.addHandler(h)

    root.setLevel(level_for(cfg.log_level, logging.INFO))
    logging.getLogger("chatpoll.messages").setLevel(
        level_for(cfg.log_messages_level, logging.INFO)
    )

    http_level = level_for(cfg.log_http_level, logging.WARNING)
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(http_level)

    logging.captureWarnings(True)
