import os
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.responses import PlainTextResponse, StreamingResponse

from . import constants
from . import state
from .config import get_config
from .console import debug_print, safe_print, set_debug
from .credentials import CredentialSession
from .headers import clean_response_headers
from .lifecycle import BrowserEngineManager
from .models import ResponseDescriptor, StreamedResponse, merge_headers
from .relay import Relay

HTTPStatus = constants.HTTPStatus

print = safe_print  # type: ignore[assignment]

# --- Process-scoped resources ---
# One engine per process; the relay and the credential flow share it.
engine_manager = BrowserEngineManager()
relay = Relay(engine_manager)
credential_session = CredentialSession(engine_manager)


async def startup_event():
    config = get_config()
    set_debug(config.get("debug", constants.DEBUG))
    # The engine is launched lazily by the first request; nothing else to warm up.
    debug_print(
        f"⚙️  Engine: {config['browser_engine']} (headless={config['headless']}), "
        f"page bootstrap: {config['page_bootstrap']}"
    )


async def shutdown_event():
    debug_print("🛑 Shutting down: closing credential context and browser engine...")
    try:
        await credential_session.close()
    except Exception as e:
        debug_print(f"⚠️ Credential context shutdown error (ignored): {e}")
    await engine_manager.close_engine()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Unit tests drive the app through ASGITransport; keep startup/shutdown side effects out of them.
    testing = bool(os.environ.get("PYTEST_CURRENT_TEST"))
    if not testing:
        try:
            await startup_event()
        except Exception as e:
            debug_print(f"❌ Error during startup: {e}")
    yield
    if not testing:
        await shutdown_event()


app = FastAPI(lifespan=lifespan)


def build_outbound_response(result: ResponseDescriptor) -> Response:
    headers = clean_response_headers(
        result.headers,
        on_drop=lambda name: debug_print(f"  🧽 Dropped invalid response header: {name}"),
    )
    if isinstance(result, StreamedResponse):
        return StreamingResponse(result.aiter_bytes(), status_code=result.status, headers=headers)
    return Response(content=result.body, status_code=result.status, headers=headers)


@app.get(constants.HEALTH_PATH)
async def health_check():
    """Health check endpoint for monitoring"""
    try:
        engine = engine_manager.describe()
        status = "healthy" if engine["state"] in ("uninitialized", "ready") else "degraded"
        return {
            "status": status,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "engine": engine,
            "credential_context": credential_session.has_context,
            "stats": state.snapshot(),
        }
    except Exception as e:
        return {
            "status": "unhealthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "error": str(e),
        }


@app.api_route(constants.GENSPARK_PATH, methods=["GET", "POST"])
async def genspark_token(request: Request):
    cookie_header: Optional[str] = request.headers.get("cookie")
    result = await credential_session.fetch_token(cookie_header)
    return result


async def proxy_request(request: Request) -> Response:
    target_url = (request.query_params.get(constants.TARGET_URL_QUERY_PARAM) or "").strip()
    if not target_url:
        return PlainTextResponse(constants.MISSING_URL_MESSAGE, status_code=HTTPStatus.BAD_REQUEST)

    method = request.method.upper()
    headers = merge_headers(request.headers.items())
    body: Optional[bytes] = None
    if method not in constants.BODYLESS_METHODS:
        body = await request.body()

    result = await relay.relay(method, target_url, headers, body)
    return build_outbound_response(result)


class ProxyEndpoint:
    """
    Catch-all ASGI endpoint.

    Registered as a plain ASGI app rather than a decorated handler so the router does no
    method filtering: WebDAV verbs, PURGE and anything else reach the relay unchanged.
    """

    async def __call__(self, scope, receive, send) -> None:
        response = await proxy_request(Request(scope, receive))
        await response(scope, receive, send)


# Must stay after every other route: it matches any path.
app.add_route("/{path:path}", ProxyEndpoint(), include_in_schema=False)


def run() -> None:
    # Avoid crashes on Windows consoles with non-UTF8 code pages (e.g., GBK) when printing emojis.
    try:
        sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        sys.stderr.reconfigure(encoding="utf-8", errors="replace")
    except Exception:
        pass

    config = get_config()
    port = config["port"]
    print("=" * 60)
    print("🚀 Browser Fetch Proxy Starting...")
    print("=" * 60)
    print(f"📍 Proxy: http://localhost:{port}/?url=<target>")
    print(f"🩺 Health: http://localhost:{port}{constants.HEALTH_PATH}")
    print(f"🍪 Credentials: http://localhost:{port}{constants.GENSPARK_PATH}")
    print("=" * 60)
    uvicorn.run(app, host="0.0.0.0", port=port)


if __name__ == "__main__":
    run()
