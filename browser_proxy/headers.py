"""
Header filtering for requests going into the browser and responses coming back out.
"""

import re
from typing import Callable, Optional

from . import constants
from .models import merge_headers

DropHook = Optional[Callable[[str], None]]

_INVALID_VALUE_RE = re.compile(r"[\r\n]")


def is_forbidden_request_header(name: str) -> bool:
    lowered = str(name or "").strip().lower()
    if lowered in constants.FORBIDDEN_REQUEST_HEADERS:
        return True
    return lowered.startswith(constants.FORBIDDEN_REQUEST_HEADER_PREFIXES)


def _report(on_drop: DropHook, name: str) -> None:
    if on_drop is None:
        return
    try:
        on_drop(name)
    except Exception:
        pass


def sanitize_request_headers(headers: Optional[dict], on_drop: DropHook = None) -> dict[str, str]:
    """
    Strip headers the browser refuses to set or that would reveal the proxy.

    Unknown headers pass through with their original casing and value. Each dropped header
    name is reported to `on_drop` (informational only).
    """
    safe: dict[str, str] = {}
    for key, value in (headers or {}).items():
        if is_forbidden_request_header(key):
            _report(on_drop, str(key))
            continue
        safe[key] = value
    return safe


def apply_outbound_user_agent(headers: dict[str, str], user_agent: str) -> dict[str, str]:
    """Replace any user-agent header (any casing) with the fixed outbound value."""
    result = {k: v for k, v in headers.items() if str(k).lower() != "user-agent"}
    if user_agent:
        result["user-agent"] = user_agent
    return result


def is_valid_header_value(value: object) -> bool:
    if not isinstance(value, str) or not value:
        return False
    return not _INVALID_VALUE_RE.search(value)


def clean_response_headers(headers: Optional[dict], on_drop: DropHook = None) -> dict[str, str]:
    """
    Drop framing headers the origin set for its own wire encoding, plus values the outbound
    server would reject.
    """
    cleaned: dict[str, str] = {}
    for key, value in merge_headers(headers or {}).items():
        lowered = key.lower()
        if lowered in constants.STRIPPED_RESPONSE_HEADERS:
            continue
        if not is_valid_header_value(value):
            _report(on_drop, key)
            continue
        cleaned[key] = value
    return cleaned


def parse_raw_response_headers(raw: Optional[str]) -> dict[str, str]:
    """
    Parse an `XMLHttpRequest.getAllResponseHeaders()` block.

    Names are lowercased; repeated names are joined with ", ".
    """
    parsed: dict[str, str] = {}
    if not isinstance(raw, str) or not raw:
        return parsed
    for line in re.split(r"\r?\n", raw):
        if not line.strip():
            continue
        name, sep, value = line.partition(":")
        if not sep:
            continue
        name = name.strip().lower()
        value = value.strip()
        if not name:
            continue
        if name in parsed:
            parsed[name] = f"{parsed[name]}, {value}"
        else:
            parsed[name] = value
    return parsed
