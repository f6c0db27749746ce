"""
Browser utility functions for Browser Fetch Proxy.

Handles:
- Safe page evaluation with retry logic
- Best-effort teardown of pages, contexts and engines
"""

import asyncio
from typing import Any, Awaitable, Optional

from . import constants
from .console import debug_print


def is_execution_context_destroyed_error(exc: BaseException) -> bool:
    message = str(exc)
    return "Execution context was destroyed" in message


async def safe_page_evaluate(page, script: str, arg: Any = None, retries: int = 3):
    retries = max(1, min(int(retries), 5))
    last_exc: Exception | None = None
    for attempt in range(retries):
        try:
            if arg is None:
                return await page.evaluate(script)
            return await page.evaluate(script, arg)
        except Exception as e:
            last_exc = e
            if is_execution_context_destroyed_error(e) and attempt < retries - 1:
                try:
                    await page.wait_for_load_state("domcontentloaded")
                except Exception:
                    pass
                await asyncio.sleep(0.25)
                continue
            raise
    if last_exc is not None:
        raise last_exc
    raise RuntimeError("Page.evaluate failed")


async def close_quietly(
    closer: Optional[Awaitable],
    what: str,
    *,
    timeout_seconds: float = constants.TEARDOWN_TIMEOUT_SECONDS,
) -> bool:
    """
    Await a teardown coroutine, logging and discarding any failure.

    Teardown must never mask the primary result of a request, nor escape a shutdown hook.
    """
    if closer is None:
        return True
    try:
        await asyncio.wait_for(closer, timeout=float(timeout_seconds))
        return True
    except asyncio.CancelledError:
        raise
    except Exception as e:
        debug_print(f"  ⚠️ Closing {what} failed (ignored): {type(e).__name__}: {e}")
        return False
