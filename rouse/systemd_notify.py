"""sd_notify messages for running rouse-alarmd under systemd.

Everything here is a silent no-op unless ``$NOTIFY_SOCKET`` is set.
"""

from __future__ import annotations

import logging
import os
import socket

_logger = logging.getLogger("rouse.systemd")


def _send(*fields: str) -> bool:
    addr = os.environ.get("NOTIFY_SOCKET")
    if not addr:
        return False
    if addr.startswith("@"):
        addr = "\0" + addr[1:]
    message = "\n".join(fields)
    try:
        with socket.socket(socket.AF_UNIX, socket.SOCK_DGRAM) as sock:
            sock.sendto(message.encode(), addr)
    except OSError as exc:
        _logger.debug("[systemd] Failed to send '%s': %s", message, exc)
        return False
    return True


def ready(status: str | None = None) -> bool:
    fields = ["READY=1"]
    if status:
        fields.append(f"STATUS={status}")
    return _send(*fields)


def watchdog() -> bool:
    return _send("WATCHDOG=1")


def status(text: str) -> bool:
    """Update the one-line status shown by ``systemctl status``."""
    return _send(f"STATUS={text}")


def stopping() -> bool:
    return _send("STOPPING=1")
