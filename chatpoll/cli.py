from __future__ import annotations

import argparse
import logging
import os
import signal
import sys
from dataclasses import replace
from pathlib import Path

from .config import ChatRuntimeConfig, apply_config_data, load_toml
from .errors import ChatError
from .logging_config import configure_logging
from .models import ChatEventHandler, Message
from .paths import default_config_path, make_private_dir
from .service import ChatService
from .util import expand_path


class LoggingHandler(ChatEventHandler):
    """Writes every observed message to the ``chatpoll.messages`` logger."""

    def __init__(self) -> None:
        self.log = logging.getLogger("chatpoll.messages")

    def on_message(self, message: Message) -> None:
        self.log.info(
            "[room %s] #%s %s: %s",
            message.room_id,
            message.message_id,
            message.username,
            message.content,
        )

    def on_message_edited(self, message: Message) -> None:
        self.log.info(
            "[room %s] #%s %s (edited): %s",
            message.room_id,
            message.message_id,
            message.username,
            message.content,
        )


def _write_default_config(config_path: str) -> None:
    cfg_dir = os.path.dirname(config_path)
    if cfg_dir:
        make_private_dir(Path(cfg_dir))

    content = """# chatpoll configuration (TOML)
#
# This file was created on first run.
# Fill in your credentials and rooms, then start chatpoll again.

[chat]

# Site to log in to. The chat server is chat.<domain>.
domain = "stackoverflow.com"

# Login credentials. The password may instead be supplied via the
# CHATPOLL_PASSWORD environment variable.
email = ""
password = ""

# Room ids to join on startup.
rooms = []

# Polling cadence.
#
# heartbeat_s: minimum time between the start of two polls of all rooms.
# retry_pause_s: base pause between attempts when a request fails; the
# pause grows with each attempt.
heartbeat_s = 3.0
retry_pause_s = 5.0

# How long after posting a message can still be edited. Every poll reaches
# back at least this far so edits are not missed.
edit_window_s = 120.0

# Attempts for fetching messages vs. other requests.
fetch_attempts = 5
request_attempts = 3

http_timeout_s = 30.0

# Longer messages without line breaks are split (or rejected by the site).
max_message_length = 500

[logging]

# Log level for chatpoll itself.
level = "INFO"

# Log level for the chat messages written by the command (chatpoll.messages).
messages_level = "INFO"

# Log level for the HTTP client libraries.
http_level = "WARNING"

# Log to stderr (systemd/journald friendly).
console = true

# Optional file path for logs (leave empty to disable).
file = ""

# Log format and optional date format.
format = "%(asctime)s %(levelname)s %(name)s[%(threadName)s]: %(message)s"
datefmt = ""
"""

    with open(config_path, "w", encoding="utf-8") as f:
        f.write(content)
    try:
        os.chmod(config_path, 0o600)
    except Exception:
        pass


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="chatpoll", description="Watch chat rooms and log new and edited messages"
    )

    p.add_argument(
        "--config",
        default=str(default_config_path()),
        help="Path to a TOML config file (created on first run)",
    )
    p.add_argument("--domain", default=None, help="Site domain (default: stackoverflow.com)")
    p.add_argument("--email", default=None, help="Login email")
    p.add_argument(
        "--room",
        type=int,
        action="append",
        default=None,
        help="Room id to join (repeatable; replaces the rooms from config)",
    )
    p.add_argument(
        "--heartbeat",
        type=float,
        default=None,
        help="Seconds between the start of consecutive polls",
    )
    p.add_argument(
        "--retry-pause",
        type=float,
        default=None,
        help="Base pause in seconds between request attempts",
    )

    p.add_argument(
        "--log-level",
        default=None,
        help="Logging level override (DEBUG, INFO, WARNING, ERROR). Default comes from config.",
    )

    p.add_argument(
        "--log-file",
        default=None,
        help="Log file path override (empty disables file logging). Default comes from config.",
    )

    return p


def build_config(args: argparse.Namespace) -> ChatRuntimeConfig:
    config_path = expand_path(str(args.config))

    cfg = ChatRuntimeConfig(config_path=config_path)
    cfg = apply_config_data(cfg, load_toml(config_path))

    if args.domain is not None:
        cfg = replace(cfg, domain=str(args.domain))
    if args.email is not None:
        cfg = replace(cfg, email=str(args.email))
    if args.room:
        cfg = replace(cfg, rooms=tuple(int(r) for r in args.room))
    if args.heartbeat is not None:
        cfg = replace(cfg, heartbeat_s=float(args.heartbeat))
    if args.retry_pause is not None:
        cfg = replace(cfg, retry_pause_s=float(args.retry_pause))

    if args.log_level is not None:
        cfg = replace(cfg, log_level=str(args.log_level))
    if args.log_file is not None:
        cfg = replace(cfg, log_file=str(args.log_file) if str(args.log_file) else None)

    password = os.environ.get("CHATPOLL_PASSWORD")
    if password:
        cfg = replace(cfg, password=password)

    return cfg


def main(argv: list[str] | None = None) -> None:
    args = _build_arg_parser().parse_args(sys.argv[1:] if argv is None else argv)

    config_path = expand_path(str(args.config))
    if not os.path.exists(config_path):
        _write_default_config(config_path)
        print(
            "Created default chatpoll config. Edit it before starting:\n"
            f"- Config: {config_path}\n"
            "\nThen re-run chatpoll.",
            file=sys.stderr,
        )
        raise SystemExit(0)

    cfg = build_config(args)
    configure_logging(cfg)
    log = logging.getLogger("chatpoll")

    if not cfg.email or not cfg.password:
        log.error("email and password must be set (config file or CHATPOLL_PASSWORD)")
        raise SystemExit(2)
    if not cfg.rooms:
        log.error("No rooms configured")
        raise SystemExit(2)

    svc = ChatService(cfg)
    signal.signal(signal.SIGINT, lambda *_: svc.stop())
    signal.signal(signal.SIGTERM, lambda *_: svc.stop())

    try:
        try:
            svc.login(cfg.email, cfg.password)
        except ChatError as e:
            log.error("Login failed: %s", e)
            raise SystemExit(1) from e

        for room_id in cfg.rooms:
            try:
                svc.join_room(room_id)
            except ChatError as e:
                log.error("Could not join room %s: %s", room_id, e)

        if not svc.joined_rooms():
            log.error("No rooms could be joined")
            raise SystemExit(1)

        svc.listen(LoggingHandler())
        log.info("%s", svc.format_stats())
    finally:
        svc.close()


if __name__ == "__main__":
    main()
