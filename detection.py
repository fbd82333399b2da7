"""
detection.py

Classifies the current page of the application wizard: regular step,
confirmation page or draft list. Reads the step carousel to work out the
total number of steps and the current one, and flags the budget (tabs) and
add-entry (AGREGAR+) step variants.
"""

import logging
import re
from typing import Any, Dict, List, Optional

from playwright.async_api import Page

from models import (
    BudgetTab, PageStructure, PAGE_CONFIRMATION, PAGE_DRAFT_LIST, PAGE_STEP
)

logger = logging.getLogger(__name__)

CONFIRMATION_PHRASES = [
    'confirmación de postulación',
    'confirmacion de postulacion',
    'resumen de su postulación',
    'revise su postulación antes de enviar',
    'verificación final',
]

DRAFT_LIST_PHRASES = [
    'borradores de postulación',
    'mis borradores',
    'postulaciones guardadas',
]

# Below this many live inputs a page that shows required-field counters is
# treated as the final review page.
MAX_CONFIRMATION_INPUTS = 20
MAX_CONFIRMATION_COLLAPSIBLES = 5

REQUIRED_OK_PATTERN = re.compile(r'obligatorios\s+correctos\s*:?\s*(\d+)')
REQUIRED_FAILED_PATTERN = re.compile(r'obligatorios\s+incorrectos\s*:?\s*(\d+)')

PAGE_SNAPSHOT_SCRIPT = """() => {
    const isSized = el => {
        const rect = el.getBoundingClientRect();
        return rect.width > 0 && rect.height > 0;
    };
    const markers = [];
    const sliders = document.querySelectorAll('.slick-slider, .carousel.slick-initialized');
    for (const slider of Array.from(sliders)) {
        const items = slider.querySelectorAll('li[data-slick-index]');
        if (items.length > 0) {
            items.forEach(item => markers.push({
                hidden: item.getAttribute('aria-hidden') === 'true',
                classes: item.className || '',
                text: (item.textContent || '').trim(),
                id: item.id || ''
            }));
            break;
        }
    }
    const buttons = Array.from(document.querySelectorAll('button, a, input[type="button"], input[type="submit"]'));
    const addButton = buttons.some(b => {
        const text = (b.textContent || '').trim().toLowerCase();
        const id = (b.id || '').toLowerCase();
        return isSized(b) && (text.includes('agregar') || id.includes('agregar'));
    });
    const newApplication = buttons.some(b => {
        const text = ((b.textContent || '') + ' ' + (b.value || '')).toLowerCase();
        return text.includes('nueva postulación') || text.includes('nueva postulacion');
    });
    const submitControl = document.querySelector('#BotonEnviar, a[id*="BotonEnviar"], button[id*="BotonEnviar"]');
    const durationLabel = Array.from(document.querySelectorAll('label')).some(l => {
        const text = (l.textContent || '').toLowerCase();
        return text.includes('duración') || text.includes('duracion');
    });
    const tabs = [];
    const tabsContainer = document.querySelector('ul[id*="ul_tb_cuentas_"]');
    if (tabsContainer) {
        tabsContainer.querySelectorAll('li a[data-toggle="tab"][data-cuenta]').forEach(tab => {
            const h4 = tab.querySelector('h4');
            tabs.push({
                title: tab.getAttribute('alt') || (h4 ? (h4.textContent || '').trim() : ''),
                account: tab.getAttribute('data-cuenta') || ''
            });
        });
    }
    const liveInputs = Array.from(document.querySelectorAll('input:not([type="hidden"]), select, textarea'))
        .filter(el => !el.disabled && isSized(el)).length;
    return {
        url: window.location.href,
        text: (document.body ? document.body.innerText || '' : '').toLowerCase(),
        markers: markers,
        live_inputs: liveInputs,
        collapsibles: document.querySelectorAll('[data-toggle="collapse"], .panel-collapse, .accordion-item').length,
        submit_visible: !!submitControl && isSized(submitControl),
        add_button: addButton,
        duration_label: durationLabel,
        new_application_control: newApplication,
        has_table: !!document.querySelector('table'),
        budget_tabs: tabs
    };
}"""


class StructureDetector:
    """Works out which kind of page the wizard is showing."""

    def __init__(self, page: Page, logger: Optional[logging.Logger] = None):
        self.page = page
        self.logger = logger or logging.getLogger(f"{__name__}.StructureDetector")

    async def detect(self) -> PageStructure:
        """Never raises; an unreadable page is reported as a single fallback step."""
        try:
            snapshot = await self.page.evaluate(PAGE_SNAPSHOT_SCRIPT)
        except Exception as e:
            self.logger.warning(f"⚠️ Could not read page structure: {e}")
            return PageStructure(url=self._safe_url())

        structure = self.classify(snapshot or {})
        kind_label = {
            PAGE_CONFIRMATION: 'CONFIRMATION',
            PAGE_DRAFT_LIST: 'DRAFT LIST',
        }.get(structure.kind, 'BUDGET' if structure.is_budget_step
              else 'AGREGAR+' if structure.is_add_entry_step else 'NORMAL')
        self.logger.info(f"   📋 Page {structure.current_step}/{structure.total_steps} "
                         f"detected as {kind_label} (confidence {structure.confidence})")
        return structure

    def classify(self, snapshot: Dict[str, Any]) -> PageStructure:
        url = snapshot.get('url') or self._safe_url()
        text = (snapshot.get('text') or '').lower()
        structure = PageStructure(url=url)

        markers = snapshot.get('markers') or []
        if markers:
            structure.total_steps = len(markers)
            structure.current_step = self._current_marker(markers)
            structure.step_titles = [
                m.get('text') or f"Paso {i + 1}" for i, m in enumerate(markers)
            ]
            structure.detection = 'progress_bar'
            structure.confidence = 95

        structure.budget_tabs = [
            BudgetTab(title=t.get('title', ''), account=t.get('account', ''))
            for t in snapshot.get('budget_tabs') or []
            if t.get('title') and t.get('account')
        ]
        structure.is_budget_step = bool(structure.budget_tabs)
        structure.is_add_entry_step = bool(snapshot.get('duration_label')) and bool(snapshot.get('add_button'))

        ok = REQUIRED_OK_PATTERN.search(text)
        failed = REQUIRED_FAILED_PATTERN.search(text)
        structure.required_ok = int(ok.group(1)) if ok else None
        structure.required_failed = int(failed.group(1)) if failed else None

        if self._is_draft_list(url, text, snapshot):
            structure.kind = PAGE_DRAFT_LIST
        elif self._is_confirmation(text, snapshot, structure):
            structure.kind = PAGE_CONFIRMATION
        else:
            structure.kind = PAGE_STEP

        return structure

    @staticmethod
    def _current_marker(markers: List[Dict[str, Any]]) -> int:
        for index, marker in enumerate(markers):
            classes = (marker.get('classes') or '').split()
            if (not marker.get('hidden')
                    or 'active' in classes or 'current' in classes or 'slick-current' in classes):
                return index + 1
        return 1

    def _is_confirmation(self, text: str, snapshot: Dict[str, Any], structure: PageStructure) -> bool:
        if structure.is_budget_step or snapshot.get('add_button'):
            return False

        if any(phrase in text for phrase in CONFIRMATION_PHRASES):
            return True

        few_inputs = (snapshot.get('live_inputs') or 0) < MAX_CONFIRMATION_INPUTS
        few_sections = (snapshot.get('collapsibles') or 0) < MAX_CONFIRMATION_COLLAPSIBLES
        has_counters = structure.required_ok is not None or structure.required_failed is not None
        has_submit = bool(snapshot.get('submit_visible')) or 'enviar' in text

        if has_counters and few_inputs and few_sections and has_submit:
            return True

        return bool(snapshot.get('submit_visible')) and few_inputs

    @staticmethod
    def _is_draft_list(url: str, text: str, snapshot: Dict[str, Any]) -> bool:
        if 'borradores' in url.lower():
            return True
        if 'Postulador.aspx' in url:
            return False

        if any(phrase in text for phrase in DRAFT_LIST_PHRASES):
            return True

        drafts_context = 'borradores' in text or 'guardadas' in text
        if snapshot.get('new_application_control') and drafts_context:
            return True

        status_table = (snapshot.get('has_table')
                        and any(word in text for word in ('identificador', 'fecha inicio', 'estado'))
                        and (drafts_context or 'postulaciones' in text))
        return bool(status_table and snapshot.get('new_application_control'))

    def _safe_url(self) -> str:
        try:
            return self.page.url
        except Exception:
            return ""
