"""
Execution sandbox backed by a Playwright page.

Requests are issued from inside the page's script context so they inherit the browser's
TLS stack, fingerprint and cookie jar. The host never talks to the origin directly; it only
sends serializable request descriptions in and reads serializable results back out.

Two transports are used inside the page:
- `fetch()` for buffered requests (the whole body comes back base64-encoded in one go);
- `XMLHttpRequest` for streaming requests, whose growing `responseText` is polled by the host
  every time the page reports a state change through an exposed binding.
"""

import asyncio
import uuid
from typing import Optional
from urllib.parse import urlsplit

from . import constants
from .browser_utils import safe_page_evaluate
from .console import debug_print


BUFFERED_FETCH_SCRIPT = """async ({url, method, headers, bodyBase64}) => {
  const options = { method, headers: headers || {} };
  if (typeof bodyBase64 === 'string' && method !== 'GET' && method !== 'HEAD') {
    const raw = atob(bodyBase64);
    const bytes = new Uint8Array(raw.length);
    for (let i = 0; i < raw.length; i++) bytes[i] = raw.charCodeAt(i);
    options.body = bytes;
  }
  let res;
  try {
    res = await fetch(url, options);
  } catch (e) {
    return { error: String((e && e.message) || e) };
  }
  const responseHeaders = {};
  try {
    res.headers.forEach((value, key) => { responseHeaders[key] = value; });
  } catch (e) {}
  let bytes;
  try {
    bytes = new Uint8Array(await res.arrayBuffer());
  } catch (e) {
    return { error: 'Failed to read response body: ' + String((e && e.message) || e) };
  }
  let binary = '';
  const step = 0x8000;
  for (let i = 0; i < bytes.length; i += step) {
    binary += String.fromCharCode.apply(null, bytes.subarray(i, i + step));
  }
  return {
    status: res.status,
    statusText: res.statusText,
    headers: responseHeaders,
    bodyBase64: btoa(binary),
  };
}"""


STREAM_START_SCRIPT = """({jobId, binding, url, method, headers, bodyBase64, timeoutMs}) => {
  const jobs = window.__relayJobs || (window.__relayJobs = {});
  const xhr = new XMLHttpRequest();
  const job = { xhr, headers: null, error: null, done: false };
  jobs[jobId] = job;
  const notify = (kind) => {
    try { window[binding]({ jobId, kind, readyState: xhr.readyState }); } catch (e) {}
  };
  xhr.addEventListener('readystatechange', () => {
    if (xhr.readyState >= 2 && job.headers === null) {
      try { job.headers = xhr.getAllResponseHeaders(); } catch (e) { job.headers = ''; }
    }
    notify('readystatechange');
  });
  xhr.addEventListener('progress', () => notify('progress'));
  xhr.addEventListener('error', () => { job.error = job.error || 'XHR request failed'; notify('error'); });
  xhr.addEventListener('abort', () => { job.error = job.error || 'XHR request aborted'; notify('abort'); });
  xhr.addEventListener('timeout', () => { job.error = job.error || 'XHR request timed out'; notify('timeout'); });
  xhr.addEventListener('loadend', () => { job.done = true; notify('loadend'); });
  try {
    xhr.open(method, url, true);
    // One code unit per byte (0x00-0x7F as is, 0x80-0xFF at U+F780-U+F7FF).
    xhr.overrideMimeType('text/plain; charset=x-user-defined');
    if (timeoutMs > 0) xhr.timeout = timeoutMs;
  } catch (e) {
    job.error = String((e && e.message) || e);
    job.done = true;
    notify('error');
    return false;
  }
  for (const [key, value] of Object.entries(headers || {})) {
    try { xhr.setRequestHeader(key, value); } catch (e) {}
  }
  try {
    let sendBody = null;
    if (typeof bodyBase64 === 'string' && method !== 'GET' && method !== 'HEAD') {
      const raw = atob(bodyBase64);
      sendBody = new Uint8Array(raw.length);
      for (let i = 0; i < raw.length; i++) sendBody[i] = raw.charCodeAt(i);
    }
    xhr.send(sendBody);
  } catch (e) {
    job.error = String((e && e.message) || e);
    job.done = true;
    notify('error');
    return false;
  }
  return true;
}"""


STREAM_SNAPSHOT_SCRIPT = """({jobId, offset}) => {
  const job = (window.__relayJobs || {})[jobId];
  if (!job) return { missing: true };
  const xhr = job.xhr;
  let text = '';
  try { text = xhr.responseText || ''; } catch (e) { text = ''; }
  return {
    length: text.length,
    delta: text.slice(offset),
    readyState: xhr.readyState,
    status: xhr.status,
    statusText: xhr.statusText,
    headers: job.headers,
    error: job.error,
    done: job.done,
  };
}"""


STREAM_RELEASE_SCRIPT = """({jobId, abort}) => {
  const jobs = window.__relayJobs || {};
  const job = jobs[jobId];
  if (!job) return false;
  if (abort) {
    try { job.xhr.abort(); } catch (e) {}
  }
  delete jobs[jobId];
  return true;
}"""


def origin_of(url: str) -> Optional[str]:
    try:
        parts = urlsplit(url)
    except ValueError:
        return None
    if parts.scheme not in ("http", "https") or not parts.netloc:
        return None
    return f"{parts.scheme}://{parts.netloc}/"


class PageSandbox:
    """One page's script context, used for exactly one request."""

    binding_name = "__relayNotify"

    def __init__(self, page) -> None:
        self.page = page
        self._events: asyncio.Queue = asyncio.Queue()
        self._binding_installed = False
        self._job_id: Optional[str] = None

    async def prepare(self, target_url: str, *, bootstrap: str, timeout_seconds: float) -> None:
        """Park the page somewhere neutral (or on the target's origin) before running scripts."""
        timeout_ms = int(timeout_seconds * 1000)
        if bootstrap == constants.PAGE_BOOTSTRAP_ORIGIN:
            origin = origin_of(target_url)
            if origin:
                try:
                    await self.page.goto(origin, wait_until="domcontentloaded", timeout=timeout_ms)
                    return
                except Exception as e:
                    debug_print(f"  ⚠️ Could not open origin {origin} ({type(e).__name__}); using blank page")
        await self.page.goto(constants.BLANK_PAGE_URL, timeout=timeout_ms)

    async def run_buffered(self, request: dict) -> dict:
        result = await self.page.evaluate(BUFFERED_FETCH_SCRIPT, request)
        return result if isinstance(result, dict) else {"error": "Empty result from page"}

    def _on_notify(self, source, payload) -> None:  # noqa: ARG002
        if isinstance(payload, dict) and payload.get("jobId") != self._job_id:
            return
        self._events.put_nowait(payload if isinstance(payload, dict) else {})

    async def start_stream(self, request: dict, *, timeout_ms: int = 0) -> bool:
        if not self._binding_installed:
            await self.page.expose_binding(self.binding_name, self._on_notify)
            self._binding_installed = True
        self._job_id = uuid.uuid4().hex
        args = dict(request)
        args.update({"jobId": self._job_id, "binding": self.binding_name, "timeoutMs": int(timeout_ms)})
        started = await self.page.evaluate(STREAM_START_SCRIPT, args)
        return bool(started)

    async def next_event(self) -> dict:
        """Wait for the next state-change notification, coalescing any backlog into one."""
        event = await self._events.get()
        while not self._events.empty():
            event = self._events.get_nowait()
        return event

    async def snapshot(self, offset: int) -> dict:
        result = await safe_page_evaluate(
            self.page,
            STREAM_SNAPSHOT_SCRIPT,
            {"jobId": self._job_id, "offset": int(offset)},
        )
        return result if isinstance(result, dict) else {"missing": True}

    async def release(self, *, abort: bool = False) -> None:
        if self._job_id is None:
            return
        job_id, self._job_id = self._job_id, None
        try:
            await self.page.evaluate(STREAM_RELEASE_SCRIPT, {"jobId": job_id, "abort": bool(abort)})
        except Exception as e:
            debug_print(f"  ⚠️ Stream release failed (ignored): {e}")
