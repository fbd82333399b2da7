"""
filling.py

This module completes a single described control with a synthetic value.
Each field type has its own strategy; radios are verified against the real
checked state and file inputs are attached from the local test-files folder.
"""

import logging
import re
from pathlib import Path
from typing import Callable, List, Optional, Set, Tuple

from playwright.async_api import ElementHandle, Page

from config_manager import GrantAgentConfig
from models import (
    CHECKBOX, DATE, EMAIL, FILE, NUMBER, PASSWORD, RADIO, SELECT, TEL, TEXT, TEXTAREA, URL,
    CompletionOutcome, FieldDescriptor, FieldOption
)
from value_generator import SYNTHETIC_VALUES, ValueGenerator

logger = logging.getLogger(__name__)

NOT_SELECTED = 'NO_SELECCIONADO'
RADIO_SELECTED = 'seleccionado'
FILE_ALREADY_IN_SESSION = 'archivo_ya_subido_en_sesion'
FILE_ALREADY_UPLOADED = 'archivo_ya_subido'
FILE_NOT_FOUND = 'archivo_no_encontrado'
FILE_UPLOAD_ERROR = 'error_subida_archivo'
FILE_NO_AFFORDANCE = 'sin_boton_subir_archivo'

FAILURE_REASONS = {
    NOT_SELECTED: 'Radio button no pudo ser seleccionado',
    FILE_NOT_FOUND: 'Archivo no encontrado en carpeta archivos_prueba',
    FILE_UPLOAD_ERROR: 'Error al subir el archivo',
    FILE_NO_AFFORDANCE: 'Campo file sin botón de subir archivo visible',
    SYNTHETIC_VALUES['SIN_OPCIONES_DISPONIBLES']: 'No se pudo completar el campo correctamente',
}
GENERIC_FAILURE = 'No se pudo completar el campo correctamente'

TEST_FILE_NAMES = ['documento_prueba.pdf', 'archivo_prueba.pdf', 'test.pdf', 'prueba.pdf']

PLACEHOLDER_OPTION_WORDS = [
    'seleccionar', '--', 'ninguno', 'seleccione', 'elija', 'choose', 'select', 'por favor'
]

# (context words that must all appear, preferred option words)
SELECT_PREFERENCES: List[Tuple[Tuple[str, ...], Tuple[str, ...]]] = [
    (('region',), ('metropolitana', 'santiago', 'valparaíso', 'biobío', 'araucanía')),
    (('región',), ('metropolitana', 'santiago', 'valparaíso', 'biobío', 'araucanía')),
    (('sector', 'aplicación'), ('tecnología', 'innovación', 'medio ambiente', 'sustentabilidad', 'digital')),
    (('sector', 'impacto'), ('económico', 'social', 'ambiental', 'territorial')),
    (('tamaño',), ('mediana', 'pequeña', 'grande')),
    (('tamano',), ('mediana', 'pequeña', 'grande')),
    (('tipo', 'documento'), ('cédula', 'identidad')),
]

TEXT_TYPES = (TEXT, EMAIL, TEL, URL, PASSWORD, TEXTAREA)

EDITABLE_STATE_SCRIPT = """el => ({
    readonly: el.hasAttribute('readonly') || el.readOnly === true,
    disabled: el.hasAttribute('disabled') || el.disabled === true
})"""

HIDE_TOOLTIPS_SCRIPT = """() => {
    document.querySelectorAll('[role="tooltip"], .tooltip, [id^="tooltip"]').forEach(t => t.remove());
}"""

CLICK_LABEL_SCRIPT = """el => {
    const label = (el.id ? document.querySelector(`label[for="${el.id}"]`) : null) || el.closest('label');
    if (!label) return false;
    label.click();
    return true;
}"""

JS_CLICK_SCRIPT = "el => el.click()"

UPLOAD_STATE_SCRIPT = """el => {
    const container = el.closest('.form-group, .field, .input-group, fieldset, div[class*="file"], div[class*="upload"]') || el.closest('div');
    const text = container ? (container.textContent || '').toLowerCase() : '';
    const html = container ? (container.innerHTML || '').toLowerCase() : '';
    const clean = text.replace(/\\s+/g, ' ').trim();
    const onlyButton = ['subir archivo', 'seleccionar archivo', 'formato'].includes(clean);
    const marker = text.includes('archivo adjunto:') || text.includes('fecha subida:') ||
        text.includes('fecha de subida') || html.includes('.pdf') || html.includes('.docx') || html.includes('.xlsx');
    const nameNode = container ? container.querySelector('span[id*="nombre"], a[href*=".pdf"], a[href*=".docx"], button[class*="delete"], a[class*="delete"]') : null;
    const indicators = ['subir', 'adjuntar', 'archivo', 'upload', 'formato'].some(w => text.includes(w));
    const interactive = container ? container.querySelectorAll('button, span, a, label, div[class*="btn"]').length : 0;
    const rect = el.getBoundingClientRect();
    return {
        file_count: el.files ? el.files.length : 0,
        uploaded_marker: (marker || !!nameNode) && !onlyButton,
        has_trigger: (indicators && interactive > 0) || rect.width > 0 || rect.height > 0
    };
}"""


def is_placeholder_option(option: FieldOption) -> bool:
    text = option.text.lower()
    return any(word in text for word in PLACEHOLDER_OPTION_WORDS)


def valid_options(options: List[FieldOption]) -> List[FieldOption]:
    return [
        o for o in options
        if o.value and o.text and not o.disabled and not is_placeholder_option(o)
    ]


def preferred_option(context: str, options: List[FieldOption]) -> Optional[FieldOption]:
    for context_words, option_words in SELECT_PREFERENCES:
        if all(word in context for word in context_words):
            for option in options:
                if any(word in option.text.lower() for word in option_words):
                    return option
            return None
    return None


def build_outcome(descriptor: FieldDescriptor, value: str) -> CompletionOutcome:
    """Turn the value a strategy returned into a reportable outcome."""
    reason = FAILURE_REASONS.get(value)
    if value is None or value == '':
        reason = GENERIC_FAILURE
    return CompletionOutcome(
        label=descriptor.label,
        type=descriptor.type,
        assigned_value=value or '',
        completed=reason is None,
        required=descriptor.required,
        failure_reason=reason,
    )


class FieldCompleter:
    """
    Completes one control at a time. Keeps the set of file identities
    uploaded during the current step so a file is attached at most once.
    """

    def __init__(self, page: Page, config: Optional[GrantAgentConfig] = None,
                 value_generator: Optional[ValueGenerator] = None,
                 logger: Optional[logging.Logger] = None):
        self.page = page
        self.config = config or GrantAgentConfig()
        self.values = value_generator or ValueGenerator()
        self.logger = logger or logging.getLogger(f"{__name__}.FieldCompleter")
        self.uploaded: Set[str] = set()

        self.fill_method_map: dict = {
            SELECT: self._complete_select,
            FILE: self._complete_file,
            CHECKBOX: self._complete_checkbox,
            RADIO: self._complete_radio,
            NUMBER: self._complete_number,
            DATE: self._complete_date,
        }

    def reset_step(self) -> None:
        self.uploaded.clear()

    async def complete(self, control: ElementHandle, descriptor: FieldDescriptor) -> Optional[CompletionOutcome]:
        """
        Complete the control. Returns None when the control does not apply
        (readonly, disabled, or a file input without an upload affordance).
        """
        field_type = descriptor.type.lower()
        try:
            state = await control.evaluate(EDITABLE_STATE_SCRIPT) or {}
            if state.get('readonly') or (state.get('disabled') and field_type != RADIO):
                self.logger.info(f"     ⏭️ Skipping readonly/disabled field: '{descriptor.label}'")
                return None

            fill_method: Callable = self.fill_method_map.get(field_type, self._complete_text)
            value = await fill_method(control, descriptor)

            if value == FILE_NO_AFFORDANCE:
                return None
            return build_outcome(descriptor, value)

        except Exception as e:
            self.logger.warning(f"     ⚠️ Error completing '{descriptor.label}': {e}")
            if field_type == RADIO:
                return build_outcome(descriptor, NOT_SELECTED)
            return build_outcome(descriptor, await self._assign_default(control, field_type))

    async def _assign_default(self, control: ElementHandle, field_type: str) -> str:
        """Best-effort type default after a failed completion."""
        default = self.values.default_for_type(field_type)
        try:
            if field_type in TEXT_TYPES:
                await control.fill(default)
            elif field_type == NUMBER:
                default = re.sub(r'\D', '', default) or '0'
                await control.fill(default)
        except Exception as e:
            self.logger.debug(f"Default value could not be written: {e}")
        return default

    async def _complete_text(self, control: ElementHandle, descriptor: FieldDescriptor) -> str:
        value = self.values.generate(descriptor)
        if not value or not value.strip():
            self.logger.info("     ℹ️ No generated value, using type default")
            value = self.values.default_for_type(descriptor.type)

        await control.fill('')
        await control.fill(value)
        self.logger.info(f"     ✅ '{descriptor.label}' = '{value[:40]}'")
        return value

    async def _type_masked(self, control: ElementHandle, value: str) -> None:
        """Masked inputs reject fill(); focus, clear and type key by key."""
        await control.click()
        await self.page.wait_for_timeout(100)
        await control.press('Control+A')
        await control.press('Backspace')
        await self.page.wait_for_timeout(100)
        await control.type(value, delay=50)
        await self.page.wait_for_timeout(200)

    async def _complete_number(self, control: ElementHandle, descriptor: FieldDescriptor) -> str:
        digits = re.sub(r'\D', '', self.values.generate(descriptor) or '') or '0'
        mask = descriptor.constraints.input_mask.lower()

        if 'integer' in mask or 'decimal' in mask:
            value = f"{digits},00" if 'decimal' in mask else digits
            await self._type_masked(control, value)
            self.logger.info(f"     🔢 Masked number '{descriptor.label}' = {value}")
            return value

        await control.fill('')
        await control.fill(digits)
        return digits

    async def _complete_date(self, control: ElementHandle, descriptor: FieldDescriptor) -> str:
        mask = descriptor.constraints.input_mask.lower()
        if descriptor.constraints.datepicker or 'dd/mm/yyyy' in mask or 'dd/mm/aaaa' in mask:
            value = SYNTHETIC_VALUES['FECHA_FORMATO_DDMMYYYY']
            await self._type_masked(control, value)
            self.logger.info(f"     📅 Datepicker '{descriptor.label}' = {value}")
            return value

        value = SYNTHETIC_VALUES['FECHA']
        await control.fill('')
        await control.fill(value)
        return value

    async def _complete_checkbox(self, control: ElementHandle, descriptor: FieldDescriptor) -> str:
        if not await control.is_checked():
            await control.check()
        return 'true'

    async def _complete_select(self, control: ElementHandle, descriptor: FieldDescriptor) -> str:
        options = descriptor.options
        self.logger.info(f"     🔍 Select '{descriptor.label}' ({len(options)} options)")

        if not options:
            self.logger.warning("     ⚠️ Select without options")
            return SYNTHETIC_VALUES['SIN_OPCIONES_DISPONIBLES']

        candidates = valid_options(options)
        if not candidates:
            try:
                await control.select_option(value=options[0].value)
                return options[0].text or SYNTHETIC_VALUES['PRIMERA_OPCION']
            except Exception as e:
                self.logger.warning(f"     ⚠️ Could not select first option: {e}")
                return SYNTHETIC_VALUES['PRIMERA_OPCION']

        context = f"{descriptor.label} {descriptor.code}".lower()
        chosen = preferred_option(context, candidates) or candidates[0]

        await control.select_option(value=chosen.value)
        self.logger.info(f"     ✅ Selected '{chosen.text}'")
        return chosen.text

    async def _complete_radio(self, control: ElementHandle, descriptor: FieldDescriptor) -> str:
        if await control.is_checked():
            return RADIO_SELECTED

        await self.page.evaluate(HIDE_TOOLTIPS_SCRIPT)
        await self.page.wait_for_timeout(300)
        await self._click_radio(control)

        await self.page.wait_for_timeout(500)
        checked = await control.is_checked()

        if not checked:
            self.logger.info("     ⚠️ Radio not checked, trying the first enabled option of its group...")
            checked = await self._select_first_in_group(control, descriptor)

        if not checked:
            self.logger.warning(f"     ❌ Radio '{descriptor.label}' could not be selected")
            return NOT_SELECTED

        if descriptor.conditional:
            self.logger.info("     ⏳ Radio reveals conditional fields, waiting...")
            await self.page.wait_for_timeout(1500)
        return RADIO_SELECTED

    async def _click_radio(self, control: ElementHandle) -> None:
        """Label click, then direct click, forced click and a raw JS click."""
        try:
            if await control.evaluate(CLICK_LABEL_SCRIPT):
                return
            await control.click(timeout=5000)
            return
        except Exception as e:
            self.logger.debug(f"Radio click failed, forcing: {e}")

        try:
            await control.click(force=True, timeout=3000)
            return
        except Exception as e:
            self.logger.debug(f"Forced radio click failed, using JS click: {e}")

        try:
            await control.evaluate(JS_CLICK_SCRIPT)
        except Exception as e:
            self.logger.debug(f"JS radio click failed: {e}")

    async def _select_first_in_group(self, control: ElementHandle, descriptor: FieldDescriptor) -> bool:
        name = descriptor.name or await control.get_attribute('name')
        if not name:
            return False

        group = await self.page.query_selector_all(f'input[type="radio"][name="{name}"]')
        for radio in group:
            try:
                if not await radio.is_enabled() or not await radio.is_visible():
                    continue
                await radio.click(timeout=3000)
                await self.page.wait_for_timeout(500)
                if await radio.is_checked():
                    self.logger.info("     ✅ First option of the group selected")
                    return True
            except Exception as e:
                self.logger.debug(f"Group radio click failed: {e}")
            break
        return False

    async def _complete_file(self, control: ElementHandle, descriptor: FieldDescriptor) -> str:
        identity = descriptor.identity_key
        if identity in self.uploaded:
            self.logger.info(f"     ℹ️ File already handled this step: '{descriptor.label}'")
            return FILE_ALREADY_IN_SESSION

        try:
            state = await control.evaluate(UPLOAD_STATE_SCRIPT) or {}
            if state.get('file_count', 0) > 0 or state.get('uploaded_marker'):
                self.logger.info(f"     ✅ File already attached: '{descriptor.label}'")
                self.uploaded.add(identity)
                return FILE_ALREADY_UPLOADED

            if not state.get('has_trigger'):
                self.logger.info(f"     ℹ️ File field without upload control, skipping: '{descriptor.label}'")
                return FILE_NO_AFFORDANCE

            path = self.find_test_file()
            if path is None:
                return FILE_NOT_FOUND

            await control.set_input_files(str(path))
            await self.page.wait_for_timeout(1000)
            self.uploaded.add(identity)
            self.logger.info(f"     📎 Uploaded {path.name}")
            return f"archivo_subido: {path.name}"

        except Exception as e:
            self.logger.warning(f"     ⚠️ Upload failed for '{descriptor.label}': {e}")
            return FILE_UPLOAD_ERROR

    def find_test_file(self) -> Optional[Path]:
        folder = Path(self.config.portal.test_files_dir)
        for name in TEST_FILE_NAMES:
            candidate = folder / name
            if candidate.is_file():
                return candidate
        self.logger.warning(f"     ⚠️ No test PDF found in {folder}")
        return None
