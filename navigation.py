"""
navigation.py

Moves the wizard forward. Locates the next/continue control (never the final
submit), clicks it and hands the resulting dialog to the ModalInterpreter.
Also covers the entry path into the form: the landing page, the draft list
and the first real step.
"""

import logging
from typing import Optional

from playwright.async_api import ElementHandle, Page

from config_manager import GrantAgentConfig
from modals import ModalInterpreter
from models import (
    FORCE, MODAL_ALL_SATISFIED, PROBE, ModalResult, NavigationOutcome
)
from waits import wait_after_click, wait_for_page_stability

logger = logging.getLogger(__name__)

NEXT_SELECTORS = [
    'button:has-text("SIGUIENTE")',
    'button:has-text("Siguiente")',
    'input[value*="iguiente"]',
    'input[value*="IGUIENTE"]',
    'button:has-text("CONTINUAR")',
    'button:has-text("Continuar")',
    'button[type="submit"]:not([value*="Enviar"]):not([value*="ENVIAR"])',
    'a:has-text("Siguiente")',
    'a:has-text("SIGUIENTE")',
    '.btn-next',
    '[class*="next"]',
]

FINAL_SUBMIT_WORDS = ('enviar', 'finalizar')

START_APPLICATION_SELECTOR = 'a:has-text("Inicia tu postulación"), button:has-text("Inicia tu postulación")'

NEW_APPLICATION_SELECTORS = [
    'button:has-text("Nueva Postulación")',
    'button:has-text("NUEVA POSTULACIÓN")',
    'button:has-text("Nueva Postulacion")',
    'a:has-text("Nueva Postulación")',
    'a:has-text("NUEVA POSTULACIÓN")',
    'a:has-text("Nueva Postulacion")',
    'input[value*="Nueva"]',
    'input[value*="nueva"]',
    '.btn:has-text("Nueva")',
    '[onclick*="nueva"]',
    '[onclick*="Nueva"]',
]

FIRST_STEP_SELECTORS = [
    'button:has-text("Siguiente")',
    'button:has-text("SIGUIENTE")',
    'button:has-text("Comenzar")',
    'button:has-text("COMENZAR")',
    'button:has-text("Continuar")',
    'button:has-text("CONTINUAR")',
    'input[value*="iguiente"]',
    'input[value*="omenzar"]',
    'input[value*="ontinuar"]',
    'button[type="submit"]',
    '[onclick*="siguiente"]',
    '[onclick*="continuar"]',
]

REAL_FIELDS_SELECTOR = (
    'input[type="radio"]:not([style*="display: none"]), '
    'input[type="text"]:not([style*="display: none"]), '
    'input[type="email"]:not([style*="display: none"]), '
    'select:not([style*="display: none"]), '
    'textarea:not([style*="display: none"])'
)

SUBMIT_SELECTOR = '#BotonEnviar'

SUBMIT_ENABLED_SCRIPT = """el => {
    const style = window.getComputedStyle(el);
    return !el.disabled && !el.hasAttribute('disabled') && style.display !== 'none' && style.visibility !== 'hidden';
}"""

STEP_TITLE_SCRIPT = """() => {
    const heading = document.querySelector('h1, h2, h3');
    return heading ? (heading.textContent || '').trim() : '';
}"""

SCROLL_BOTTOM_SCRIPT = "() => window.scrollTo(0, document.body.scrollHeight)"


def is_form_url(url: str) -> bool:
    return 'Postulador.aspx' in url and 'Borradores' not in url


class Navigator:
    """Advances the wizard and gets the browser onto the form."""

    def __init__(self, page: Page, modals: Optional[ModalInterpreter] = None,
                 config: Optional[GrantAgentConfig] = None,
                 logger: Optional[logging.Logger] = None):
        self.page = page
        self.config = config or GrantAgentConfig()
        self.modals = modals or ModalInterpreter(page, self.config)
        self.logger = logger or logging.getLogger(f"{__name__}.Navigator")

    async def _find_next_control(self) -> Optional[ElementHandle]:
        for selector in NEXT_SELECTORS:
            try:
                control = await self.page.query_selector(selector)
                if not control or not await control.is_visible():
                    continue
                text = (await control.inner_text() or '').lower()
                value = (await control.get_attribute('value') or '').lower()
                if any(word in text or word in value for word in FINAL_SUBMIT_WORDS):
                    continue
                return control
            except Exception as e:
                self.logger.debug(f"Selector {selector} failed: {e}")
        return None

    async def advance(self, mode: str = PROBE) -> NavigationOutcome:
        """
        Click the next control. In probe mode the raw dialog classification is
        returned; in force mode any dialog is accepted.
        """
        control = await self._find_next_control()
        if control is None:
            self.logger.warning("   ❌ No next-step control found")
            return NavigationOutcome()

        self.logger.info(f"   ➡️ Advancing ({mode})")
        try:
            await control.scroll_into_view_if_needed()
        except Exception as e:
            self.logger.debug(f"Could not scroll to next control: {e}")
        await control.click()
        await wait_after_click(self.page, self.config.agent.after_click_timeout_ms, expect_navigation=True)

        if mode == FORCE:
            accepted = await self.modals.accept_to_advance()
            modal = ModalResult(appeared=accepted, choice=MODAL_ALL_SATISFIED) if accepted else ModalResult()
        else:
            modal = await self.modals.interpret_step_modal()

        if modal.appeared:
            await wait_after_click(self.page, 3000)
        return NavigationOutcome(advanced=True, modal=modal)

    async def navigate_to(self, url: str) -> None:
        current = self.page.url
        if current == url or is_form_url(current):
            self.logger.info("✅ Already on the form")
            return

        self.logger.info(f"🌐 Navigating to {url}")
        await self.page.goto(url, wait_until='domcontentloaded',
                             timeout=self.config.browser.navigation_timeout)
        await wait_for_page_stability(self.page, self.config.agent.network_idle_timeout_ms)

        start = await self.page.query_selector(START_APPLICATION_SELECTOR)
        if start is None:
            return

        self.logger.info("🚀 Starting application")
        await start.click()
        await wait_after_click(self.page, self.config.agent.after_click_timeout_ms, expect_navigation=True)
        if 'Borradores' in self.page.url:
            await self.open_form_from_drafts()

    async def open_form_from_drafts(self) -> bool:
        self.logger.info("🔄 Draft list found, opening a new application")
        button = None
        for selector in NEW_APPLICATION_SELECTORS:
            try:
                button = await self.page.query_selector(selector)
            except Exception as e:
                self.logger.debug(f"Selector {selector} failed: {e}")
                continue
            if button:
                break

        if button is None:
            self.logger.error("❌ No 'Nueva Postulación' control on the draft list")
            return False

        await button.click()
        await wait_after_click(self.page, self.config.agent.after_click_timeout_ms, expect_navigation=True)

        if not is_form_url(self.page.url):
            self.logger.warning(f"⚠️ Still not on the form: {self.page.url}")
            return False

        await self.enter_first_real_step()
        return True

    async def _count_real_fields(self) -> int:
        return len(await self.page.query_selector_all(REAL_FIELDS_SELECTOR))

    async def enter_first_real_step(self) -> bool:
        await wait_for_page_stability(self.page, self.config.agent.network_idle_timeout_ms)

        for selector in FIRST_STEP_SELECTORS:
            try:
                button = await self.page.query_selector(selector)
                if not button or not await button.is_visible():
                    continue

                url_before = self.page.url
                await button.scroll_into_view_if_needed()
                await button.click()
                await wait_after_click(self.page, self.config.agent.after_click_timeout_ms, expect_navigation=True)

                if await self._count_real_fields() > 0 or self.page.url != url_before:
                    self.logger.info(f"✅ Entered first step: {self.page.url}")
                    return True
            except Exception as e:
                self.logger.debug(f"Selector {selector} failed: {e}")

        if await self._count_real_fields() > 0:
            return True

        self.logger.info("📜 No fields yet, scrolling to activate content")
        await self.page.evaluate(SCROLL_BOTTOM_SCRIPT)
        await self.page.wait_for_timeout(3000)
        return await self._count_real_fields() > 0

    async def get_step_title(self, fallback: str = "") -> str:
        try:
            title = await self.page.evaluate(STEP_TITLE_SCRIPT)
        except Exception as e:
            self.logger.debug(f"Could not read step title: {e}")
            title = ""
        return title or fallback

    async def click_submit(self) -> bool:
        """Click the final submit control only when it is enabled and shown."""
        button = await self.page.query_selector(SUBMIT_SELECTOR)
        if button is None:
            self.logger.warning("⚠️ Submit control not found")
            return False
        if not await button.evaluate(SUBMIT_ENABLED_SCRIPT) or not await button.is_visible():
            self.logger.warning("⚠️ Submit control is disabled")
            return False

        self.logger.info("📤 Submitting application")
        await button.click()
        return True

    async def go_back(self) -> str:
        await self.page.go_back()
        await self.page.wait_for_timeout(2000)
        return self.page.url
