"""
Streaming vs. buffered classification of inbound requests.

Purely syntactic: looks at the request's headers and URL, performs no I/O and never raises.
A streaming origin misclassified as buffered still gets a correct (slower) full response.
"""

from enum import Enum
from typing import Optional

from . import constants
from .models import get_header


class RequestMode(str, Enum):
    STREAMING = "streaming"
    BUFFERED = "buffered"


def is_stream_request(headers: Optional[dict], url: object) -> bool:
    accept = get_header(headers, "accept").lower()
    content_type = get_header(headers, "content-type").lower()
    target = url if isinstance(url, str) else ""

    if any(marker in accept for marker in constants.STREAM_ACCEPT_MARKERS):
        return True
    if any(marker in target for marker in constants.STREAM_URL_MARKERS):
        return True
    return constants.JSON_CONTENT_TYPE_MARKER in content_type and constants.JSON_STREAM_URL_MARKER in target


def classify_request(headers: Optional[dict], url: object) -> RequestMode:
    if is_stream_request(headers, url):
        return RequestMode.STREAMING
    return RequestMode.BUFFERED
