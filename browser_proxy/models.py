"""
Request/response descriptors passed between the relay, the executors and the HTTP surface.
"""

import base64
from dataclasses import dataclass, field
from typing import AsyncIterator, Iterable, Optional, Union


def merge_headers(items: Iterable) -> dict[str, str]:
    """
    Build a header map from `(name, value)` pairs or a mapping.

    Names are matched case-insensitively and the last write wins; the casing of the
    last write is the one kept for transmission.
    """
    if hasattr(items, "items"):
        items = items.items()  # type: ignore[union-attr]
    merged: dict[str, str] = {}
    index: dict[str, str] = {}
    for name, value in items:
        name = str(name)
        lowered = name.lower()
        previous = index.get(lowered)
        if previous is not None:
            merged.pop(previous, None)
        merged[name] = str(value)
        index[lowered] = name
    return merged


def get_header(headers: Optional[dict], name: str, default: str = "") -> str:
    """Case-insensitive header lookup that never raises."""
    if not isinstance(headers, dict):
        return default
    wanted = name.lower()
    found = default
    for key, value in headers.items():
        if isinstance(key, str) and key.lower() == wanted:
            found = value if isinstance(value, str) else default
    return found


@dataclass(frozen=True)
class RequestDescriptor:
    url: str
    method: str
    headers: dict[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None

    def to_script_args(self) -> dict:
        """
        Serializable form handed to the in-page scripts.

        The body travels as base64 so arbitrary bytes survive the trip into the page.
        """
        return {
            "url": self.url,
            "method": self.method,
            "headers": dict(self.headers),
            "bodyBase64": base64.b64encode(self.body).decode("ascii") if self.body is not None else None,
        }


@dataclass
class BufferedResponse:
    status: int
    status_text: str
    headers: dict[str, str]
    body: bytes = b""

    streamed = False


class StreamedResponse:
    """
    Response whose body is an ordered sequence of byte chunks.

    The chunks are handed out once, lazily, through `aiter_bytes()`; the sequence cannot be
    restarted or replayed.
    """

    streamed = True

    def __init__(self, status: int, status_text: str, headers: dict[str, str], chunks: list[bytes]):
        self.status = int(status)
        self.status_text = status_text
        self.headers = headers
        self._chunks: Optional[list[bytes]] = list(chunks)
        self._consumed = False

    async def aiter_bytes(self) -> AsyncIterator[bytes]:
        if self._consumed:
            raise RuntimeError("Stream has already been consumed")
        self._consumed = True
        chunks, self._chunks = self._chunks or [], None
        for chunk in chunks:
            yield chunk


ResponseDescriptor = Union[BufferedResponse, StreamedResponse]
