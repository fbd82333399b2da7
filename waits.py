"""
waits.py

Bounded waits. Every helper returns a bool instead of raising when its
timeout is reached, so a stuck page never stalls the run.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable

from playwright.async_api import Page

logger = logging.getLogger(__name__)

READY_STATE_SCRIPT = "() => document.readyState === 'complete'"

FORM_FIELDS_SCRIPT = """() => {
    const fields = document.querySelectorAll('input:not([type="hidden"]), select, textarea');
    return Array.from(fields).some(el => {
        const rect = el.getBoundingClientRect();
        return rect.width > 0 && rect.height > 0;
    });
}"""


async def wait_for_condition(page: Page, condition: Callable[[], Awaitable[bool]],
                             timeout_ms: int, interval_ms: int = 100) -> bool:
    """Poll condition until it returns True or timeout_ms elapses."""
    start = time.monotonic()
    while (time.monotonic() - start) * 1000 < timeout_ms:
        try:
            if await condition():
                elapsed = int((time.monotonic() - start) * 1000)
                if elapsed < timeout_ms * 0.5:
                    logger.debug(f"   ⚡ Condition met in {elapsed}ms (saved {timeout_ms - elapsed}ms)")
                return True
        except Exception as e:
            # condition probes hit a page that is still changing
            logger.debug(f"Condition probe failed: {e}")
        await page.wait_for_timeout(interval_ms)
    return False


async def wait_for_network_idle(page: Page, timeout_ms: int = 10000) -> bool:
    """Wait for network idle without raising on timeout."""
    try:
        await asyncio.wait_for(
            page.wait_for_load_state('networkidle'),
            timeout=timeout_ms / 1000
        )
        return True
    except asyncio.TimeoutError:
        logger.warning("Network idle wait timed out")
    except Exception as e:
        logger.debug(f"Network idle wait error: {e}")
    return False


async def wait_for_page_stability(page: Page, timeout_ms: int = 10000, interval_ms: int = 200,
                                  stable_checks: int = 3) -> bool:
    """Wait until the document is complete and the URL has not changed for stable_checks polls."""
    start = time.monotonic()
    last_url = page.url
    stable_count = 0

    while (time.monotonic() - start) * 1000 < timeout_ms:
        try:
            if await page.evaluate(READY_STATE_SCRIPT):
                current_url = page.url
                if current_url == last_url:
                    stable_count += 1
                else:
                    stable_count = 0
                    last_url = current_url

                if stable_count >= stable_checks:
                    elapsed = int((time.monotonic() - start) * 1000)
                    if elapsed > 500:
                        logger.debug(f"   ⏳ Page stable after {elapsed}ms")
                    return True
        except Exception as e:
            logger.debug(f"Stability probe failed: {e}")
        await page.wait_for_timeout(interval_ms)

    return False


async def wait_for_form_ready(page: Page, timeout_ms: int = 7000) -> bool:
    """Wait until at least one sized form control is rendered."""
    async def has_fields() -> bool:
        return bool(await page.evaluate(FORM_FIELDS_SCRIPT))

    ready = await wait_for_condition(page, has_fields, timeout_ms, interval_ms=200)
    if not ready:
        logger.warning(f"No form fields rendered after {timeout_ms}ms, continuing")
    return ready


async def wait_after_click(page: Page, timeout_ms: int = 5000, expect_navigation: bool = False) -> bool:
    """Let the page react to a click: network idle when a navigation is expected, then stability."""
    if expect_navigation:
        await wait_for_network_idle(page, timeout_ms)
    return await wait_for_page_stability(page, timeout_ms, interval_ms=100, stable_checks=2)
