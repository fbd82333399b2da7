"""
modals.py

Reads the dialogs the portal raises after a step advance or the final submit.
A "No" button after an advance means required fields are still missing; the
submit dialog is classified as success or validation error from its text.
"""

import logging
import re
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

from playwright.async_api import ElementHandle, Page

from config_manager import GrantAgentConfig
from models import (
    MODAL_ALL_SATISFIED, MODAL_MISSING_FIELDS, SUBMIT_NONE, SUBMIT_SUCCESS,
    SUBMIT_VALIDATION_ERROR, ModalResult, SubmitResult, ValidationErrors
)

logger = logging.getLogger(__name__)

MISSING_FIELDS_SELECTORS = [
    'button:has-text("No")',
    'button:has-text("NO")',
    '.btn-secondary:has-text("No")',
    '.swal2-cancel',
    'button[class*="cancel"]',
    'button[class*="secondary"]',
]

ALL_SATISFIED_SELECTORS = [
    'button:has-text("Sí, estoy seguro")',
    'button:has-text("Sí")',
    '.btn-primary:has-text("Sí")',
    '.swal2-confirm',
]

ACCEPT_SELECTORS = [
    'button:has-text("Sí, estoy seguro")',
    'button:has-text("Sí")',
    'button:has-text("SI")',
    '.btn-primary:has-text("Sí")',
    '.btn-success:has-text("Sí")',
    '.swal2-confirm',
    'button[class*="confirm"]',
    'button[class*="primary"]',
]

DIALOG_SELECTOR = '.modal.show, .modal.in, .swal2-popup, [role="dialog"]'
SURVEY_CLOSE_SELECTOR = 'button.close[data-dismiss="modal"]'

SUCCESS_PHRASES = [
    'enviado exitosamente',
    'enviada exitosamente',
    'enviado con éxito',
    'enviada con éxito',
    'proceso exitoso',
    'postulación enviada',
    'se ha enviado',
]

NEGATED_TAIL = re.compile(r"\bno\s+(?:[^\s.!?;:]+\s+){0,3}$")

VALIDATION_PHRASES = [
    'errores de validación',
    'errores de validacion',
    'error de validación',
    'campos obligatorios sin completar',
    'faltan campos',
]

MISSING_ITEM_PREFIX = re.compile(r'^\s*(?:\d+\s*[.)-]\s*)?(?:campo\s*:\s*)?', re.IGNORECASE)
NUMBERED_ITEM = re.compile(r'^\s*\d+\s*[.)-]\s*\S')
FIELD_ITEM = re.compile(r'^\s*campo\s*:', re.IGNORECASE)

DIALOG_CONTENT_SCRIPT = """selector => {
    const isShown = el => {
        const rect = el.getBoundingClientRect();
        const style = window.getComputedStyle(el);
        return rect.width > 0 && rect.height > 0 && style.display !== 'none' && style.visibility !== 'hidden';
    };
    const dialog = Array.from(document.querySelectorAll(selector)).find(isShown);
    if (!dialog) return null;
    const items = Array.from(dialog.querySelectorAll('li, p, div'))
        .filter(el => el.children.length === 0)
        .map(el => (el.textContent || '').trim())
        .filter(Boolean);
    return { text: dialog.innerText || dialog.textContent || '', items: items };
}"""


def classify_dialog_text(text: str) -> str:
    """Success wins; validation needs its own phrase and no success phrase."""
    lowered = (text or '').lower()
    if any(has_affirmed_phrase(lowered, phrase) for phrase in SUCCESS_PHRASES):
        return SUBMIT_SUCCESS
    if any(phrase in lowered for phrase in VALIDATION_PHRASES):
        return SUBMIT_VALIDATION_ERROR
    return SUBMIT_NONE


def has_affirmed_phrase(lowered: str, phrase: str) -> bool:
    """True when the phrase occurs once without a 'no' shortly before it in the same sentence."""
    start = lowered.find(phrase)
    while start != -1:
        if not NEGATED_TAIL.search(lowered[:start]):
            return True
        start = lowered.find(phrase, start + 1)
    return False


def parse_missing_fields(items: List[str]) -> List[str]:
    """Numbered or 'Campo:'-prefixed entries, prefixes stripped, order-preserving dedupe."""
    missing: List[str] = []
    for item in items:
        if not (NUMBERED_ITEM.match(item) or FIELD_ITEM.match(item)):
            continue
        description = MISSING_ITEM_PREFIX.sub('', item).strip()
        if description and description not in missing:
            missing.append(description)
    return missing


class ModalInterpreter:
    """Finds, reads and answers portal dialogs."""

    def __init__(self, page: Page, config: Optional[GrantAgentConfig] = None,
                 logger: Optional[logging.Logger] = None):
        self.page = page
        self.config = config or GrantAgentConfig()
        self.logger = logger or logging.getLogger(f"{__name__}.ModalInterpreter")

    async def _first_visible(self, selectors: List[str]) -> Optional[ElementHandle]:
        for selector in selectors:
            try:
                element = await self.page.query_selector(selector)
                if element and await element.is_visible():
                    return element
            except Exception as e:
                self.logger.debug(f"Selector {selector} failed: {e}")
        return None

    async def find_button(self, texts: List[str]) -> Optional[ElementHandle]:
        """First visible button, link or input matching any of the texts."""
        selectors = []
        for text in texts:
            selectors.extend([
                f'button:has-text("{text}")',
                f'a:has-text("{text}")',
                f'input[value*="{text}"]',
                f'[id*="{text.replace(" ", "")}"]',
            ])
        return await self._first_visible(selectors)

    async def close_confirmation(self, texts: List[str]) -> bool:
        await self.page.wait_for_timeout(1000)
        button = await self.find_button(texts)
        if button is None:
            return False
        await button.click()
        await self.page.wait_for_timeout(800)
        self.logger.info("   ✅ Confirmation dialog closed")
        return True

    async def interpret_step_modal(self) -> ModalResult:
        """
        Dialog raised after an advance. A "No" button means required fields
        are missing; it is clicked so the portal keeps us on the step.
        """
        await self.page.wait_for_timeout(self.config.agent.modal_settle_ms)

        button = await self._first_visible(MISSING_FIELDS_SELECTORS)
        if button is not None:
            self.logger.info("   ⚠️ Dialog reports missing required fields, answering 'No'")
            await button.click()
            await self.page.wait_for_timeout(2000)
            return ModalResult(appeared=True, choice=MODAL_MISSING_FIELDS)

        button = await self._first_visible(ALL_SATISFIED_SELECTORS)
        if button is not None:
            self.logger.info("   ✅ Dialog confirms all required fields, continuing")
            await button.click()
            await self.page.wait_for_timeout(2000)
            return ModalResult(appeared=True, choice=MODAL_ALL_SATISFIED)

        return ModalResult()

    async def accept_to_advance(self) -> bool:
        await self.page.wait_for_timeout(self.config.agent.modal_settle_ms)
        button = await self._first_visible(ACCEPT_SELECTORS)
        if button is None:
            return False
        self.logger.info("   ✅ Accepting dialog to move forward")
        await button.click()
        await self.page.wait_for_timeout(1500)
        return True

    async def read_dialog(self) -> Optional[Dict[str, Any]]:
        try:
            return await self.page.evaluate(DIALOG_CONTENT_SCRIPT, DIALOG_SELECTOR)
        except Exception as e:
            self.logger.debug(f"Could not read dialog: {e}")
            return None

    async def interpret_submit_result(self) -> SubmitResult:
        dialog = await self.read_dialog()
        if not dialog:
            return SubmitResult()

        kind = classify_dialog_text(dialog.get('text', ''))
        if kind != SUBMIT_VALIDATION_ERROR:
            return SubmitResult(kind=kind)

        missing = parse_missing_fields(dialog.get('items') or [])
        self.logger.warning(f"   ❌ Submit rejected with {len(missing)} validation errors")
        errors = ValidationErrors(
            detected=True,
            missing_fields=missing,
            screenshot_path=await self.capture_dialog(),
        )
        return SubmitResult(kind=kind, validation_errors=errors)

    async def capture_dialog(self) -> Optional[str]:
        """Screenshot of the dialog element, or of the whole page as a fallback."""
        folder = Path(self.config.portal.screenshot_dir)
        path = folder / f"validation_errors_{int(time.time())}.png"
        try:
            folder.mkdir(parents=True, exist_ok=True)
            dialog = await self._first_visible([DIALOG_SELECTOR])
            if dialog is not None:
                await dialog.screenshot(path=str(path))
            else:
                await self.page.screenshot(path=str(path), full_page=True)
            self.logger.info(f"   📸 Validation dialog captured: {path}")
            return str(path)
        except Exception as e:
            self.logger.warning(f"⚠️ Could not capture validation dialog: {e}")
            return None

    async def dismiss_survey(self, timeout_ms: int = 3000) -> bool:
        try:
            button = await self.page.wait_for_selector(SURVEY_CLOSE_SELECTOR, timeout=timeout_ms, state='visible')
        except Exception:
            self.logger.info("   ℹ️ No survey dialog")
            return False
        if button is None:
            return False
        await button.click()
        await self.page.wait_for_timeout(1000)
        self.logger.info("   ✅ Survey dialog closed")
        return True
