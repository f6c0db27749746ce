"""
Browser engine and page lifecycle.

One engine (browser process) per server process, created lazily on the first request and
shared by everything after it. Each request gets its own browser context + page, which is
always closed when the request finishes.

Engine states: UNINITIALIZED -> LAUNCHING -> READY -> SHUTTING_DOWN -> CLOSED.
Concurrent first requests share a single in-flight launch instead of racing to start
several browsers.
"""

import asyncio
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from camoufox.async_api import AsyncCamoufox
from playwright.async_api import async_playwright

from . import constants
from .browser_utils import close_quietly
from .config import get_config
from .console import debug_print
from .errors import EngineLaunchError, PageCreationError


class EngineState(str, Enum):
    UNINITIALIZED = "uninitialized"
    LAUNCHING = "launching"
    READY = "ready"
    SHUTTING_DOWN = "shutting_down"
    CLOSED = "closed"


class EngineHandle:
    """A launched browser plus whatever owns its process."""

    def __init__(self, browser, *, engine: str, stopper: Optional[Callable[[], Awaitable]] = None):
        self.browser = browser
        self.engine = engine
        self._stopper = stopper
        self._closed = False

    def is_connected(self) -> bool:
        try:
            return bool(self.browser.is_connected())
        except Exception:
            return False

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await close_quietly(self.browser.close(), f"{self.engine} browser")
        if self._stopper is not None:
            await close_quietly(self._stopper(), f"{self.engine} driver")


class PageHandle:
    """One isolated page (in its own browser context) owned by a single request."""

    def __init__(self, context, page, *, on_release: Optional[Callable[["PageHandle"], None]] = None):
        self.context = context
        self.page = page
        self._on_release = on_release
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await close_quietly(self.page.close(), "page")
            await close_quietly(self.context.close(), "browser context")
        finally:
            if self._on_release is not None:
                callback, self._on_release = self._on_release, None
                callback(self)


async def launch_chromium(config: dict) -> EngineHandle:
    driver = await async_playwright().start()
    try:
        browser = await driver.chromium.launch(
            headless=bool(config.get("headless", True)),
            args=list(constants.CHROMIUM_LAUNCH_ARGS),
            executable_path=config.get("executable_path") or None,
        )
    except BaseException:
        await close_quietly(driver.stop(), "playwright driver")
        raise
    return EngineHandle(browser, engine=constants.BROWSER_ENGINE_CHROMIUM, stopper=driver.stop)


async def launch_camoufox(config: dict) -> EngineHandle:
    browser_cm = AsyncCamoufox(headless=bool(config.get("headless", True)), main_world_eval=True)
    browser = await browser_cm.__aenter__()
    return EngineHandle(
        browser,
        engine=constants.BROWSER_ENGINE_CAMOUFOX,
        stopper=lambda: browser_cm.__aexit__(None, None, None),
    )


async def launch_engine(config: dict) -> EngineHandle:
    if config.get("browser_engine") == constants.BROWSER_ENGINE_CAMOUFOX:
        return await launch_camoufox(config)
    return await launch_chromium(config)


class BrowserEngineManager:
    """Owns the process-wide engine and hands out per-request pages."""

    def __init__(
        self,
        *,
        config_provider: Callable[[], dict] = get_config,
        launcher: Optional[Callable[[dict], Awaitable[EngineHandle]]] = None,
    ) -> None:
        self._get_config = config_provider
        self._launcher = launcher or launch_engine
        self.state = EngineState.UNINITIALIZED
        self.launch_count = 0
        self._engine: Optional[EngineHandle] = None
        self._launching: Optional[asyncio.Future] = None
        self._page_slots: Optional[asyncio.Semaphore] = None
        self._page_slots_ready = False
        self._open_pages: set[PageHandle] = set()

    @property
    def engine(self) -> Optional[EngineHandle]:
        return self._engine

    @property
    def open_page_count(self) -> int:
        return len(self._open_pages)

    def _set_state(self, state: EngineState) -> None:
        if self.state is not state:
            debug_print(f"🧭 Browser engine: {self.state.value} -> {state.value}")
            self.state = state

    async def ensure_engine(self) -> EngineHandle:
        if self.state in (EngineState.SHUTTING_DOWN, EngineState.CLOSED):
            raise EngineLaunchError("Browser engine is shut down")

        stale: Optional[EngineHandle] = None
        if self.state is EngineState.READY and self._engine is not None:
            if self._engine.is_connected():
                return self._engine
            debug_print("⚠️ Browser engine disconnected. Relaunching...")
            stale, self._engine = self._engine, None
            self._set_state(EngineState.UNINITIALIZED)

        # No await between the check and the assignment: only one launch can be in flight.
        if self._launching is None:
            self._launching = asyncio.ensure_future(self._launch(stale))
        return await asyncio.shield(self._launching)

    async def _launch(self, stale: Optional[EngineHandle]) -> EngineHandle:
        self._set_state(EngineState.LAUNCHING)
        try:
            if stale is not None:
                await stale.close()
            config = self._get_config()
            timeout = float(config.get("engine_launch_timeout_seconds") or constants.DEFAULT_ENGINE_LAUNCH_TIMEOUT_SECONDS)
            debug_print(
                f"🚀 Launching {config.get('browser_engine')} engine "
                f"(headless={config.get('headless')}, timeout={timeout:g}s)..."
            )
            self.launch_count += 1
            try:
                engine = await asyncio.wait_for(self._launcher(config), timeout=timeout)
            except Exception as e:
                if self.state is EngineState.LAUNCHING:
                    self._set_state(EngineState.UNINITIALIZED)
                debug_print(f"❌ Browser engine launch failed ({type(e).__name__}): {e}")
                raise EngineLaunchError(f"Browser engine launch failed: {type(e).__name__}: {e}") from e

            if self.state is not EngineState.LAUNCHING:
                # Shutdown started while we were launching.
                await engine.close()
                raise EngineLaunchError("Browser engine is shut down")

            self._engine = engine
            self._set_state(EngineState.READY)
            return engine
        finally:
            self._launching = None

    def _slots(self) -> Optional[asyncio.Semaphore]:
        if not self._page_slots_ready:
            limit = int(self._get_config().get("max_concurrent_pages") or 0)
            self._page_slots = asyncio.Semaphore(limit) if limit > 0 else None
            self._page_slots_ready = True
        return self._page_slots

    def _release_callback(self, slots: Optional[asyncio.Semaphore]) -> Callable[[PageHandle], None]:
        def _release(handle: PageHandle) -> None:
            self._open_pages.discard(handle)
            if slots is not None:
                slots.release()
            debug_print(f"  🧹 Page released ({len(self._open_pages)} open)")

        return _release

    async def new_page(self) -> PageHandle:
        engine = await self.ensure_engine()
        slots = self._slots()
        if slots is not None:
            await slots.acquire()

        config = self._get_config()
        try:
            context = await engine.browser.new_context(user_agent=config.get("user_agent") or None)
            try:
                page = await context.new_page()
                page.set_default_navigation_timeout(float(config.get("navigation_timeout_seconds", 60)) * 1000)
            except BaseException:
                await close_quietly(context.close(), "browser context")
                raise
        except BaseException as e:
            if slots is not None:
                slots.release()
            if isinstance(e, Exception):
                raise PageCreationError(f"Could not open browser page: {type(e).__name__}: {e}") from e
            raise

        handle = PageHandle(context, page, on_release=self._release_callback(slots))
        self._open_pages.add(handle)
        debug_print(f"  📄 Page opened ({len(self._open_pages)} open)")
        return handle

    async def close_page(self, handle: Optional[PageHandle]) -> None:
        if handle is None:
            return
        try:
            await handle.close()
        except Exception as e:
            debug_print(f"  ⚠️ Page teardown failed (ignored): {e}")

    @asynccontextmanager
    async def page(self):
        """Scoped page acquisition: the page is released exactly once on every exit path."""
        handle = await self.new_page()
        try:
            yield handle
        finally:
            await self.close_page(handle)

    async def close_engine(self) -> None:
        """Best-effort shutdown. Never raises."""
        if self.state in (EngineState.SHUTTING_DOWN, EngineState.CLOSED):
            return
        self._set_state(EngineState.SHUTTING_DOWN)
        try:
            launching = self._launching
            if launching is not None:
                try:
                    await asyncio.shield(launching)
                except Exception:
                    pass
            for handle in list(self._open_pages):
                await self.close_page(handle)
            engine, self._engine = self._engine, None
            if engine is not None:
                await engine.close()
        except Exception as e:
            debug_print(f"⚠️ Browser engine shutdown error (ignored): {e}")
        finally:
            self._set_state(EngineState.CLOSED)

    def describe(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "browser": self._engine.engine if self._engine is not None else None,
            "connected": self._engine.is_connected() if self._engine is not None else False,
            "open_pages": len(self._open_pages),
            "launches": self.launch_count,
        }
