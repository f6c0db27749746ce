"""
Console output helpers for Browser Fetch Proxy.

All modules log through `debug_print` so a single flag controls verbosity, and
through `safe_print` so a console that cannot encode emoji never breaks a
request handler or a streaming generator.
"""

import builtins as _builtins
import sys

from . import constants

# Toggled at startup from config (see main.startup_event)
DEBUG = constants.DEBUG


def safe_print(*args, **kwargs) -> None:
    """`print` that falls back to backslash escapes when the console cannot encode a character."""
    try:
        _builtins.print(*args, **kwargs)
    except UnicodeEncodeError:
        stream = kwargs.get("file") or sys.stdout
        encoding = getattr(stream, "encoding", None) or "utf-8"
        text = kwargs.get("sep", " ").join(str(a) for a in args) + kwargs.get("end", "\n")
        try:
            stream.write(text.encode(encoding, errors="backslashreplace").decode(encoding, errors="ignore"))
        except Exception:
            pass


def set_debug(enabled: bool) -> None:
    global DEBUG
    DEBUG = bool(enabled)


def debug_print(*args, **kwargs) -> None:
    """Print debug messages only if DEBUG is True"""
    if DEBUG:
        safe_print(*args, **kwargs)


def get_status_emoji(status_code: int) -> str:
    if status_code < 300:
        return "✅"
    if status_code < 400:
        return "↪️"
    if status_code < 500:
        return "⚠️"
    return "❌"


def log_http_status(status_code: int, context: str = "") -> None:
    emoji = get_status_emoji(status_code)
    message = constants.STATUS_MESSAGES.get(status_code, f"Unknown Status {status_code}")
    if context:
        debug_print(f"{emoji} HTTP {status_code}: {message} ({context})")
    else:
        debug_print(f"{emoji} HTTP {status_code}: {message}")
