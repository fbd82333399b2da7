"""
extraction.py

This module discovers the interactive controls of the current wizard step and
turns each one into a FieldDescriptor. The DOM is read through small JS
snippets that return plain dicts; type, label and required resolution is done
in Python over those dicts.
"""

import logging
import re
from typing import Any, Dict, List, Optional

from playwright.async_api import ElementHandle, Page

from config_manager import AgentConfig
from models import (
    DATE, EMAIL, FILE, NUMBER, SELECT, TEXT, TEXTAREA,
    FieldConstraints, FieldDescriptor, FieldOption
)

logger = logging.getLogger(__name__)

BUTTON_INPUT_TYPES = ('button', 'submit', 'image', 'reset')
FIELD_SELECTOR = (
    'input:not([type="hidden"]):not([type="button"]):not([type="submit"])'
    ':not([type="image"]):not([type="reset"]), select, textarea'
)

UPLOAD_TRIGGER_TEXT = 'subir archivo'
REQUIRED_CLASS_WORDS = ('required', 'mandatory', 'obligatorio')
REQUIRED_LABEL_MARKERS = ('*', 'obligatorio', '(requerido)')
UPLOAD_CONTAINER_WORDS = ('subir archivo', 'adjuntar', 'upload')
MASKED_PLACEHOLDER = '999999999'

SCROLL_STEP_PX = 300
SCROLL_DELAY_MS = 80
MAX_SCROLLS = 200

CONTROL_STATE_SCRIPT = """el => {
    const container = el.closest('.form-group, .field, fieldset, div[class*="file"], div[class*="upload"], .input-group') || el.parentElement;
    let containerVisible = false;
    if (container) {
        const rect = container.getBoundingClientRect();
        const style = window.getComputedStyle(container);
        containerVisible = rect.width > 0 && rect.height > 0 && style.display !== 'none' && style.visibility !== 'hidden';
    }
    return {
        type: (el.type || el.tagName || '').toLowerCase(),
        text: (el.value || el.textContent || '').toLowerCase(),
        placeholder: (el.placeholder || '').toLowerCase(),
        container_visible: containerVisible
    };
}"""

DESCRIBE_SCRIPT = """el => {
    const attr = name => el.getAttribute(name) || '';
    const textOf = node => (node && node.textContent ? node.textContent.replace(/\\s+/g, ' ').trim() : '');
    const labelFor = el.id ? document.querySelector(`label[for="${el.id}"]`) : null;
    const ancestorLabel = el.closest('label');
    const siblings = [];
    let prev = el.previousElementSibling;
    while (prev && siblings.length < 3) {
        siblings.push(textOf(prev));
        prev = prev.previousElementSibling;
    }
    const container = el.closest('.form-group, .field, fieldset, .input-group') || el.parentElement;
    const group = el.closest('.form-group, .field, fieldset');
    const options = el.tagName.toLowerCase() === 'select'
        ? Array.from(el.options).map(o => ({
            value: o.value, text: (o.text || '').trim(), selected: o.selected, disabled: o.disabled
        }))
        : [];
    return {
        tag: el.tagName.toLowerCase(),
        type: (el.type || '').toLowerCase(),
        name: el.name || '',
        id: el.id || '',
        class_name: typeof el.className === 'string' ? el.className : '',
        placeholder: el.placeholder || '',
        value: el.value || '',
        data_codigo: attr('data-codigo'),
        data_original_title: attr('data-original-title'),
        title: attr('title'),
        data_control_id: attr('data-control-id'),
        data_tipo_control: attr('data-tipo-control'),
        data_adjunto_id: attr('data-adjunto-id'),
        data_inputmask: attr('data-inputmask'),
        data_extensiones: attr('data-extensiones') || attr('accept'),
        data_tamano_maximo: attr('data-tamano-maximo'),
        conditional: el.hasAttribute('data-condicional') || el.hasAttribute('data-condicionalconfig'),
        multiple: !!el.multiple,
        required_attr: el.hasAttribute('required'),
        aria_required: attr('aria-required') === 'true',
        label_for: textOf(labelFor),
        ancestor_label: ancestorLabel ? textOf(ancestorLabel).replace(el.value || '', '').trim() : '',
        sibling_texts: siblings,
        container_text: container ? (container.innerText || container.textContent || '') : '',
        group_class: group && typeof group.className === 'string' ? group.className : '',
        group_text: group ? (group.textContent || '') : '',
        options: options
    };
}"""

SCROLL_HEIGHT_SCRIPT = "() => document.body ? document.body.scrollHeight : 0"
SCROLL_BY_SCRIPT = "distance => window.scrollBy({ top: distance, behavior: 'smooth' })"
SCROLL_TOP_SCRIPT = "() => window.scrollTo({ top: 0, behavior: 'smooth' })"
SCROLL_BOTTOM_SCRIPT = "() => window.scrollTo({ top: document.body.scrollHeight, behavior: 'smooth' })"

DYNAMIC_CONTENT_SCRIPT = """() => ({
    inputs: document.querySelectorAll('input:not([type="hidden"]), select, textarea').length,
    toggles: document.querySelectorAll('[data-toggle="collapse"], .accordion-button').length
})"""

ENABLED_FIELDS_SCRIPT = """() => Array.from(document.querySelectorAll('input, select, textarea'))
    .filter(el => !el.disabled && el.offsetParent !== null).length"""


class FieldExtractor:
    """Lists the live controls of a step and describes them."""

    def __init__(self, page: Page, config: Optional[AgentConfig] = None,
                 logger: Optional[logging.Logger] = None):
        self.page = page
        self.config = config or AgentConfig()
        self.logger = logger or logging.getLogger(f"{__name__}.FieldExtractor")

    async def list_fields(self) -> List[ElementHandle]:
        """Visible, enabled controls of the step. File inputs count when their container is visible."""
        controls = await self.page.query_selector_all(FIELD_SELECTOR)
        live = []

        for control in controls:
            try:
                state = await control.evaluate(CONTROL_STATE_SCRIPT) or {}
                if state.get('type') in BUTTON_INPUT_TYPES:
                    continue
                if (UPLOAD_TRIGGER_TEXT in state.get('text', '')
                        or UPLOAD_TRIGGER_TEXT in state.get('placeholder', '')):
                    continue

                if state.get('type') == FILE:
                    if state.get('container_visible'):
                        live.append(control)
                    continue

                if await control.is_visible() and await control.is_enabled():
                    live.append(control)
            except Exception as e:
                # Keep controls whose visibility cannot be probed
                self.logger.debug(f"Visibility probe failed, keeping control: {e}")
                live.append(control)

        self.logger.info(f"   🕵️ Found {len(live)} live controls out of {len(controls)}")
        return live

    async def describe(self, control: ElementHandle) -> Optional[FieldDescriptor]:
        """Build a FieldDescriptor, or None when the control is detached."""
        try:
            raw = await control.evaluate(DESCRIBE_SCRIPT)
        except Exception as e:
            self.logger.debug(f"Could not describe control: {e}")
            return None
        if not raw:
            return None
        return self.build_descriptor(raw)

    def build_descriptor(self, raw: Dict[str, Any]) -> FieldDescriptor:
        tag = raw.get('tag') or 'input'
        field_type = self.resolve_type(raw)
        label = self.resolve_label(raw, field_type)

        descriptor = FieldDescriptor(
            type=field_type,
            label=label,
            name=raw.get('name', ''),
            id=raw.get('id', ''),
            tag=tag,
            placeholder=raw.get('placeholder', ''),
            code=raw.get('data_codigo', ''),
            options=[
                FieldOption(
                    value=str(o.get('value', '')),
                    text=str(o.get('text', '')),
                    selected=bool(o.get('selected')),
                    disabled=bool(o.get('disabled')),
                )
                for o in raw.get('options') or []
            ],
            constraints=FieldConstraints(
                input_mask=raw.get('data_inputmask', ''),
                datepicker='datepicker' in raw.get('class_name', '').lower(),
                file_accept=raw.get('data_extensiones', ''),
                max_size=raw.get('data_tamano_maximo', ''),
                multiple=bool(raw.get('multiple')),
            ),
            control_id=raw.get('data_control_id', ''),
            control_type=raw.get('data_tipo_control', ''),
            attachment_id=raw.get('data_adjunto_id', ''),
            conditional=bool(raw.get('conditional')),
        )
        descriptor.required = self.is_required(raw, label)
        return descriptor

    def resolve_type(self, raw: Dict[str, Any]) -> str:
        tag = (raw.get('tag') or '').lower()
        if tag == 'select':
            return SELECT
        if tag == 'textarea':
            return TEXTAREA

        field_type = (raw.get('type') or TEXT).lower()
        if field_type in ('select-one', 'select-multiple'):
            return SELECT
        if field_type != TEXT:
            return field_type

        mask = (raw.get('data_inputmask') or '').lower()
        context = ' '.join([
            raw.get('data_codigo', ''), raw.get('name', ''), raw.get('id', ''), raw.get('placeholder', '')
        ]).lower()

        if 'mail' in context:
            return EMAIL
        if 'integer' in mask or 'decimal' in mask:
            return NUMBER
        if 'datepicker' in (raw.get('class_name') or '').lower() or 'dd/mm/yyyy' in mask or 'dd/mm/aaaa' in mask:
            return DATE
        return TEXT

    def resolve_label(self, raw: Dict[str, Any], field_type: str) -> str:
        """Ordered fallback chain; the first non-empty candidate wins."""
        code = raw.get('data_codigo', '')
        if code:
            return code.replace('_', ' ').title()

        for key in ('data_original_title', 'title'):
            if raw.get(key, '').strip():
                return clean_label(raw[key])

        container_text = (raw.get('container_text') or '').lower()
        if field_type == FILE and any(word in container_text for word in UPLOAD_CONTAINER_WORDS):
            return 'Campo de Archivo'

        for key in ('label_for', 'ancestor_label'):
            if raw.get(key, '').strip():
                return clean_label(raw[key])

        placeholder = raw.get('placeholder', '').strip()
        if placeholder and not placeholder.isdigit() and MASKED_PLACEHOLDER not in placeholder:
            return placeholder

        for text in raw.get('sibling_texts') or []:
            if is_label_like(text):
                return clean_label(text)

        for line in (raw.get('container_text') or '').split('\n'):
            if is_label_like(line.strip()):
                return clean_label(line)

        for key in ('name', 'id'):
            cleaned = re.sub(r'[^\w\s]', ' ', raw.get(key, '')).strip()
            if len(cleaned) > 2:
                return cleaned

        return f"Campo {raw.get('tag') or 'input'}"

    def is_required(self, raw: Dict[str, Any], label: str) -> bool:
        if raw.get('required_attr') or raw.get('aria_required'):
            return True
        for key in ('class_name', 'group_class'):
            class_name = (raw.get(key) or '').lower()
            if any(word in class_name for word in REQUIRED_CLASS_WORDS):
                return True
        for text in (raw.get('label_for', ''), raw.get('ancestor_label', ''), label, raw.get('group_text', '')):
            if any(marker in (text or '').lower() for marker in REQUIRED_LABEL_MARKERS):
                return True
        return False

    async def scroll_progressively(self) -> int:
        """Scroll down in small steps so lazy sections render, then return to the top."""
        height = await self.page.evaluate(SCROLL_HEIGHT_SCRIPT) or 0
        position = 0
        scrolls = 0

        while position < height and scrolls < MAX_SCROLLS:
            await self.page.evaluate(SCROLL_BY_SCRIPT, SCROLL_STEP_PX)
            position += SCROLL_STEP_PX
            scrolls += 1
            await self.page.wait_for_timeout(SCROLL_DELAY_MS)

            new_height = await self.page.evaluate(SCROLL_HEIGHT_SCRIPT) or 0
            if new_height > height:
                self.logger.debug(f"   📏 Page grew {height}px -> {new_height}px")
                height = new_height

        await self.page.evaluate(SCROLL_TOP_SCRIPT)
        await self.page.wait_for_timeout(500)
        self.logger.info(f"   📜 Scrolled page in {scrolls} steps")
        return scrolls

    async def activate_dynamic_content(self) -> None:
        try:
            await self.page.evaluate(SCROLL_BOTTOM_SCRIPT)
            await self.page.wait_for_timeout(500)
            await self.page.evaluate(SCROLL_TOP_SCRIPT)

            counts = await self.page.evaluate(DYNAMIC_CONTENT_SCRIPT) or {}
            if not counts.get('inputs') and not counts.get('toggles'):
                self.logger.info("   ⏳ No controls yet, waiting for dynamic content...")
                await self.page.wait_for_timeout(3000)
        except Exception as e:
            self.logger.warning(f"⚠️ Could not activate dynamic content: {e}")

    async def wait_for_dynamic_fields(self) -> int:
        """Bounded pause after a select change; returns the number of enabled controls."""
        await self.page.wait_for_timeout(self.config.dynamic_field_wait_ms)
        try:
            enabled = await self.page.evaluate(ENABLED_FIELDS_SCRIPT) or 0
        except Exception as e:
            self.logger.debug(f"Could not count enabled controls: {e}")
            return 0
        self.logger.debug(f"   📊 Enabled controls after change: {enabled}")
        return enabled


def clean_label(text: str) -> str:
    """Collapse whitespace and strip required markers and trailing colons."""
    cleaned = ' '.join(text.split())
    cleaned = cleaned.strip('*: ').strip()
    return cleaned[:100]


def is_label_like(text: str) -> bool:
    if not text or not 2 < len(text) < 100:
        return False
    if MASKED_PLACEHOLDER in text:
        return False
    if re.fullmatch(r'[\d\W_]+', text):
        return False
    if text.isupper():
        return False
    return True
