"""
Unified request relay.

For each inbound request: acquire a page, classify, sanitize, run the request inside the
page (buffered or streaming), and hand back a response descriptor. Every failure becomes
the same plain-text 500 response; the page is released on every exit path.
"""

import asyncio
from typing import Callable, Optional, Union

from . import constants
from . import state
from .classifier import RequestMode, classify_request
from .config import get_config
from .console import debug_print, log_http_status
from .executor import execute_buffered, execute_streaming
from .headers import apply_outbound_user_agent, sanitize_request_headers
from .lifecycle import BrowserEngineManager
from .models import BufferedResponse, RequestDescriptor, ResponseDescriptor, merge_headers
from .sandbox import PageSandbox

HTTPStatus = constants.HTTPStatus


def failure_response(message: str) -> BufferedResponse:
    body = f"{constants.RELAY_FAILURE_PREFIX}: {message}"
    return BufferedResponse(
        status=HTTPStatus.INTERNAL_SERVER_ERROR,
        status_text="Internal Server Error",
        headers={"content-type": constants.CONTENT_TYPE_TEXT_PLAIN_UTF8},
        body=body.encode("utf-8"),
    )


def _log_dropped_header(name: str) -> None:
    debug_print(f"  🧽 Dropped request header: {name}")


class Relay:
    def __init__(
        self,
        engine: BrowserEngineManager,
        *,
        config_provider: Callable[[], dict] = get_config,
        sandbox_factory: Callable = PageSandbox,
    ) -> None:
        self.engine = engine
        self._get_config = config_provider
        self._sandbox_factory = sandbox_factory

    def build_request(
        self,
        method: str,
        url: str,
        headers: Optional[dict],
        body: Optional[Union[bytes, str]],
        user_agent: str,
    ) -> RequestDescriptor:
        safe = sanitize_request_headers(merge_headers(headers or {}), on_drop=_log_dropped_header)
        safe = apply_outbound_user_agent(safe, user_agent)
        method = str(method or "GET").upper()
        if method in constants.BODYLESS_METHODS:
            body = None
        elif isinstance(body, str):
            body = body.encode("utf-8")
        return RequestDescriptor(url=url, method=method, headers=safe, body=body)

    async def relay(
        self,
        method: str,
        url: str,
        headers: Optional[dict] = None,
        body: Optional[Union[bytes, str]] = None,
    ) -> ResponseDescriptor:
        state.increment("requests_total")
        debug_print(f"\n🔵 Relaying {method} {url}")
        try:
            config = self._get_config()
            async with self.engine.page() as handle:
                sandbox = self._sandbox_factory(handle.page)
                await sandbox.prepare(
                    url,
                    bootstrap=config.get("page_bootstrap", constants.PAGE_BOOTSTRAP_BLANK),
                    timeout_seconds=float(config.get("navigation_timeout_seconds", constants.DEFAULT_NAVIGATION_TIMEOUT_SECONDS)),
                )

                mode = classify_request(merge_headers(headers or {}), url)
                request = self.build_request(method, url, headers, body, config.get("user_agent", constants.DEFAULT_USER_AGENT))
                debug_print(f"  🧭 Path: {mode.value}")

                if mode is RequestMode.STREAMING:
                    state.increment("requests_streamed")
                    response = await execute_streaming(
                        sandbox,
                        request,
                        float(config.get("stream_timeout_seconds", constants.DEFAULT_STREAM_TIMEOUT_SECONDS)),
                    )
                else:
                    state.increment("requests_buffered")
                    response = await execute_buffered(
                        sandbox,
                        request,
                        float(config.get("request_timeout_seconds", constants.DEFAULT_REQUEST_TIMEOUT_SECONDS)),
                    )
        except asyncio.CancelledError:
            state.increment("requests_cancelled")
            debug_print(f"  ⛔ Relay cancelled: {method} {url}")
            raise
        except Exception as e:
            state.increment("requests_failed")
            debug_print(f"  ❌ Relay failed ({type(e).__name__}): {e}")
            return failure_response(str(e) or type(e).__name__)

        log_http_status(response.status, f"{method} {url}")
        return response
