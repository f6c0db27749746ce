"""
Credential flow for Genspark.

Keeps one long-lived browser context (separate from the per-request pages), loads the
caller's cookies into it, opens the Genspark agents page and mints a reCAPTCHA Enterprise
token in-page. Any failure tears the context down; the next call builds a fresh one.
"""

import asyncio
import re
from typing import Callable, Optional

from . import constants
from .browser_utils import close_quietly
from .config import get_config
from .console import debug_print
from .errors import CredentialError
from .lifecycle import BrowserEngineManager

HTTPStatus = constants.HTTPStatus


GRECAPTCHA_READY_SCRIPT = (
    "() => { const w = window.wrappedJSObject || window; "
    "return !!(w.grecaptcha && w.grecaptcha.enterprise && typeof w.grecaptcha.enterprise.execute === 'function'); }"
)

MINT_TOKEN_SCRIPT = """({sitekey, action, timeoutMs}) => new Promise((resolve, reject) => {
  const w = window.wrappedJSObject || window;
  const timer = w.setTimeout(() => reject(new Error('TOKEN_TIMEOUT')), timeoutMs);
  const g = w.grecaptcha && w.grecaptcha.enterprise;
  if (!g || typeof g.execute !== 'function') {
    w.clearTimeout(timer);
    return reject(new Error('NO_GRECAPTCHA'));
  }
  const run = () => {
    try {
      Promise.resolve(g.execute(sitekey, { action })).then(
        (token) => { w.clearTimeout(timer); resolve(token); },
        (err) => { w.clearTimeout(timer); reject(new Error(String(err))); },
      );
    } catch (e) {
      w.clearTimeout(timer);
      reject(new Error('SYNC_ERROR: ' + String(e)));
    }
  };
  if (typeof g.ready === 'function') g.ready(run); else run();
})"""

STEALTH_INIT_SCRIPT = "Object.defineProperty(navigator, 'webdriver', {get: () => undefined});"


def parse_cookie_header(cookie_header: Optional[str], domain: str = constants.GENSPARK_COOKIE_DOMAIN) -> list[dict]:
    """Split a `Cookie:` header into Playwright cookie records scoped to `domain`."""
    cookies: list[dict] = []
    if not isinstance(cookie_header, str):
        return cookies
    for part in cookie_header.split(";"):
        part = part.strip()
        if not part:
            continue
        name, sep, value = part.partition("=")
        name = name.strip()
        if not sep or not name:
            continue
        cookies.append(
            {
                "name": name,
                "value": value.strip(),
                "domain": domain,
                "path": "/",
                "secure": True,
            }
        )
    return cookies


def extract_recaptcha_sitekey(text: str) -> Optional[str]:
    """Find the site key in an `enterprise.js?render=SITEKEY` script URL."""
    if not isinstance(text, str) or not text:
        return None
    for pattern in constants.GENSPARK_RECAPTCHA_RENDER_PATTERNS:
        match = re.search(pattern, text)
        if not match:
            continue
        sitekey = str(match.group("sitekey") or "").strip()
        if sitekey and sitekey != "explicit":
            return sitekey
    return None


class CredentialSession:
    """Owner of the long-lived secondary browser context."""

    def __init__(self, engine: BrowserEngineManager, *, config_provider: Callable[[], dict] = get_config) -> None:
        self.engine = engine
        self._get_config = config_provider
        self._context = None
        self._lock = asyncio.Lock()
        self.contexts_created = 0

    @property
    def has_context(self) -> bool:
        return self._context is not None

    async def _ensure_context(self, config: dict):
        if self._context is None:
            engine = await self.engine.ensure_engine()
            context = await engine.browser.new_context(user_agent=config.get("user_agent") or None)
            try:
                await context.add_init_script(STEALTH_INIT_SCRIPT)
            except Exception:
                pass
            self._context = context
            self.contexts_created += 1
            debug_print("🍪 Credential context created")
        return self._context

    async def invalidate(self) -> None:
        context, self._context = self._context, None
        if context is not None:
            debug_print("🍪 Credential context discarded")
            await close_quietly(context.close(), "credential context")

    async def _mint_token(self, page, sitekey: str, timeout_seconds: float) -> str:
        timeout_ms = int(timeout_seconds * 1000)
        await page.wait_for_function(GRECAPTCHA_READY_SCRIPT, timeout=timeout_ms)
        token = await page.evaluate(
            MINT_TOKEN_SCRIPT,
            {"sitekey": sitekey, "action": constants.GENSPARK_RECAPTCHA_ACTION, "timeoutMs": timeout_ms},
        )
        if not isinstance(token, str) or not token:
            raise CredentialError("Empty token returned by reCAPTCHA")
        return token

    async def fetch_token(self, cookie_header: Optional[str]) -> dict:
        cookies = parse_cookie_header(cookie_header)
        if not cookies:
            return {"code": HTTPStatus.BAD_REQUEST, "message": "Missing cookie header"}

        config = self._get_config()
        timeout = float(config.get("credential_timeout_seconds", constants.DEFAULT_CREDENTIAL_TIMEOUT_SECONDS))
        nav_timeout_ms = int(float(config.get("navigation_timeout_seconds", constants.DEFAULT_NAVIGATION_TIMEOUT_SECONDS)) * 1000)

        async with self._lock:
            page = None
            try:
                context = await self._ensure_context(config)
                await context.clear_cookies()
                await context.add_cookies(cookies)
                page = await context.new_page()
                debug_print(f"🍪 Opening {constants.GENSPARK_URL} with {len(cookies)} cookie(s)")
                await page.goto(constants.GENSPARK_URL, wait_until="domcontentloaded", timeout=nav_timeout_ms)

                sitekey = config.get("genspark_recaptcha_sitekey") or extract_recaptcha_sitekey(await page.content())
                if not sitekey:
                    raise CredentialError("reCAPTCHA site key not found on page")

                try:
                    token = await asyncio.wait_for(self._mint_token(page, sitekey, timeout), timeout=timeout + 5)
                except asyncio.TimeoutError as e:
                    raise CredentialError(f"Token acquisition timed out after {timeout:g}s") from e
                debug_print("✅ Credential token acquired")
                return {"code": HTTPStatus.OK, "message": "success", "token": token}
            except Exception as e:
                debug_print(f"❌ Credential flow failed ({type(e).__name__}): {e}")
                await self.invalidate()
                return {"code": HTTPStatus.INTERNAL_SERVER_ERROR, "message": str(e) or type(e).__name__}
            finally:
                if page is not None:
                    await close_quietly(page.close(), "credential page")

    async def close(self) -> None:
        async with self._lock:
            await self.invalidate()
