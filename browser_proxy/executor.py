"""
In-context executors.

`execute_buffered` runs one request inside the page and returns the complete body.
`execute_streaming` drives the page's polling transport to completion and rebuilds the
response as an ordered list of byte chunks via `StreamReconstructor`.

Both take a sandbox object (see `sandbox.PageSandbox`) so tests can substitute a fake.
"""

import asyncio
import base64
import binascii
from typing import Optional

from .console import debug_print
from .errors import RelayError, RelayTimeoutError, StreamIntegrityError, TransportError
from .headers import parse_raw_response_headers
from .models import BufferedResponse, RequestDescriptor, StreamedResponse, merge_headers


def js_string_length(text: str) -> int:
    """Length of `text` in UTF-16 code units, the unit browser string lengths are reported in."""
    return len(text.encode("utf-16-le")) // 2


def user_defined_to_bytes(text: str) -> bytes:
    """Undo the `x-user-defined` charset: every code unit carries one raw byte in its low 8 bits."""
    return bytes(ord(c) & 0xFF for c in text)


class StreamReconstructor:
    """
    Turns successive views of a growing response buffer into an ordered chunk sequence.

    Each poll consumes the half-open range [observed_length, length) exactly once, so the
    concatenated chunks equal the full body with nothing duplicated or dropped.
    """

    def __init__(self) -> None:
        self.observed_length = 0
        self._chunks: list[bytes] = []
        self._finished = False

    @property
    def chunks(self) -> list[bytes]:
        return list(self._chunks)

    @property
    def finished(self) -> bool:
        return self._finished

    def observe(self, length: int, delta: str) -> Optional[bytes]:
        if self._finished:
            raise StreamIntegrityError("Stream already finished")
        length = int(length)
        delta = delta or ""
        if length < self.observed_length:
            raise StreamIntegrityError(
                f"Response buffer shrank from {self.observed_length} to {length}"
            )
        if js_string_length(delta) != length - self.observed_length:
            raise StreamIntegrityError(
                f"Delta of {js_string_length(delta)} units does not match growth "
                f"{self.observed_length}->{length}"
            )
        self.observed_length = length
        if not delta:
            return None
        chunk = user_defined_to_bytes(delta)
        self._chunks.append(chunk)
        return chunk

    def finish(self, length: int, delta: str) -> Optional[bytes]:
        """Final delta at completion; trailing data after the last state change lands here."""
        chunk = self.observe(length, delta)
        self._finished = True
        return chunk


def _decode_body(encoded: object) -> bytes:
    if not encoded:
        return b""
    try:
        return base64.b64decode(str(encoded), validate=True)
    except (binascii.Error, ValueError) as e:
        raise TransportError(f"Malformed response body from page: {e}") from e


async def execute_buffered(sandbox, request: RequestDescriptor, timeout_seconds: float) -> BufferedResponse:
    debug_print(f"  🌐 In-page fetch: {request.method} {request.url}")
    try:
        result = await asyncio.wait_for(sandbox.run_buffered(request.to_script_args()), timeout=timeout_seconds)
    except asyncio.TimeoutError as e:
        raise RelayTimeoutError(f"Request timed out after {timeout_seconds:g}s") from e
    except RelayError:
        raise
    except Exception as e:
        raise TransportError(str(e) or type(e).__name__) from e

    error = result.get("error")
    if error:
        raise TransportError(str(error))
    status = int(result.get("status") or 0)
    if status <= 0:
        raise TransportError("In-page request finished without a response status")

    return BufferedResponse(
        status=status,
        status_text=str(result.get("statusText") or ""),
        headers=merge_headers(result.get("headers") or {}),
        body=_decode_body(result.get("bodyBase64")),
    )


async def _drain_stream(sandbox, reconstructor: StreamReconstructor) -> dict:
    """Poll the sandbox on every notification until the transport reports completion."""
    meta: dict = {"headers": None, "status": 0, "statusText": ""}
    while True:
        await sandbox.next_event()
        snap = await sandbox.snapshot(reconstructor.observed_length)
        if snap.get("missing"):
            raise TransportError("In-page request state disappeared")

        if meta["headers"] is None and snap.get("headers") is not None and int(snap.get("readyState") or 0) >= 2:
            meta["headers"] = merge_headers(parse_raw_response_headers(snap.get("headers")))

        if snap.get("error"):
            raise TransportError(str(snap.get("error")))

        if snap.get("done"):
            reconstructor.finish(int(snap.get("length") or 0), str(snap.get("delta") or ""))
            meta["status"] = int(snap.get("status") or 0)
            meta["statusText"] = str(snap.get("statusText") or "")
            return meta

        reconstructor.observe(int(snap.get("length") or 0), str(snap.get("delta") or ""))


async def execute_streaming(sandbox, request: RequestDescriptor, timeout_seconds: float) -> StreamedResponse:
    debug_print(f"  🌊 In-page streaming request: {request.method} {request.url}")
    reconstructor = StreamReconstructor()
    completed = False
    try:
        started = await sandbox.start_stream(request.to_script_args(), timeout_ms=int(timeout_seconds * 1000))
        if not started:
            snap = await sandbox.snapshot(0)
            raise TransportError(str(snap.get("error") or "Failed to start in-page request"))
        try:
            meta = await asyncio.wait_for(_drain_stream(sandbox, reconstructor), timeout=timeout_seconds)
        except asyncio.TimeoutError as e:
            raise RelayTimeoutError(
                f"Stream timed out after {timeout_seconds:g}s "
                f"({reconstructor.observed_length} units received, response incomplete)"
            ) from e
        completed = True
    except RelayError:
        raise
    except Exception as e:
        raise TransportError(str(e) or type(e).__name__) from e
    finally:
        await sandbox.release(abort=not completed)

    if meta["status"] == 0:
        raise TransportError("In-page request finished without a response status")

    chunks = reconstructor.chunks
    debug_print(f"  🏁 Stream complete: {len(chunks)} chunk(s), {sum(len(c) for c in chunks)} bytes")
    return StreamedResponse(
        status=meta["status"],
        status_text=meta["statusText"],
        headers=meta["headers"] or {},
        chunks=chunks,
    )
