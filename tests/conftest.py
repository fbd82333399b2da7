"""Pytest fixtures and Playwright stand-ins for the form agent tests."""

import tempfile
from pathlib import Path
from typing import Any, Dict, Generator, List, Optional

import pytest

from config_manager import AgentConfig, BrowserConfig, GrantAgentConfig, PortalConfig
from extraction import CONTROL_STATE_SCRIPT, DESCRIBE_SCRIPT
from filling import CLICK_LABEL_SCRIPT, EDITABLE_STATE_SCRIPT, JS_CLICK_SCRIPT, UPLOAD_STATE_SCRIPT
from navigation import SUBMIT_ENABLED_SCRIPT
from waits import FORM_FIELDS_SCRIPT, READY_STATE_SCRIPT

FORM_URL = 'https://postulador.corfo.cl/Postulador.aspx?id=4521'


class FakeControl:
    """
    ElementHandle stand-in. evaluate() answers the module script constants;
    interactions are recorded for assertions.
    """

    def __init__(self, raw: Optional[Dict[str, Any]] = None, state: Optional[Dict[str, Any]] = None,
                 editable: Optional[Dict[str, Any]] = None, upload: Optional[Dict[str, Any]] = None,
                 visible: bool = True, enabled: bool = True, checked: bool = False,
                 clickable: bool = True, checks_on_click: bool = True,
                 text: str = '', attrs: Optional[Dict[str, str]] = None):
        self.raw = raw or {}
        self.state = state
        self.editable = editable or {'readonly': False, 'disabled': False}
        self.upload = upload or {}
        self.visible = visible
        self.enabled = enabled
        self.checked = checked
        self.clickable = clickable
        self.checks_on_click = checks_on_click
        self.text = text
        self.attrs = attrs or {}

        self.filled: List[str] = []
        self.typed: List[str] = []
        self.pressed: List[str] = []
        self.selected: List[str] = []
        self.files: List[str] = []
        self.clicks = 0

    async def evaluate(self, script: str, *args):
        if script == DESCRIBE_SCRIPT:
            if isinstance(self.raw, Exception):
                raise self.raw
            return self.raw
        if script == CONTROL_STATE_SCRIPT:
            if self.state is not None:
                return self.state
            return {'type': self.raw.get('type', 'text'), 'text': '', 'placeholder': '', 'container_visible': True}
        if script == EDITABLE_STATE_SCRIPT:
            return self.editable
        if script == UPLOAD_STATE_SCRIPT:
            return self.upload
        if script == CLICK_LABEL_SCRIPT:
            return False
        if script == JS_CLICK_SCRIPT:
            if self.enabled and self.checks_on_click:
                self.checked = True
            return None
        if script == SUBMIT_ENABLED_SCRIPT:
            return self.enabled
        return None

    async def is_visible(self):
        return self.visible

    async def is_enabled(self):
        return self.enabled

    async def is_checked(self):
        return self.checked

    async def get_attribute(self, name: str):
        return self.attrs.get(name)

    async def inner_text(self):
        return self.text

    async def fill(self, value: str, **kwargs):
        self.filled.append(value)

    async def type(self, value: str, **kwargs):
        self.typed.append(value)

    async def press(self, key: str, **kwargs):
        self.pressed.append(key)

    async def click(self, **kwargs):
        self.clicks += 1
        if not self.clickable:
            raise Exception("Element is not enabled")
        if self.checks_on_click:
            self.checked = True

    async def check(self, **kwargs):
        self.checked = True

    async def select_option(self, value=None, **kwargs):
        self.selected.append(value)
        return [value]

    async def set_input_files(self, path, **kwargs):
        self.files.append(path)

    async def scroll_into_view_if_needed(self, **kwargs):
        return None

    async def screenshot(self, path: str = None, **kwargs):
        return b''


class FakePage:
    """
    Page stand-in. `selectors` maps a selector to an element (or a list of
    them); `scripts` maps a script constant to its result, a callable or an
    exception to raise.
    """

    def __init__(self, url: str = FORM_URL, selectors: Optional[Dict[str, Any]] = None,
                 scripts: Optional[Dict[str, Any]] = None, title: str = 'Postulación Semilla Inicia',
                 back_url: str = 'https://postulador.corfo.cl/Borradores.aspx'):
        self.url = url
        self.selectors = selectors or {}
        self.scripts = scripts or {}
        self._title = title
        self.back_url = back_url
        self.frames: List[Any] = []

        self.evaluations: List[str] = []
        self.waits: List[int] = []
        self.screenshots: List[str] = []
        self.visited: List[str] = []

    async def evaluate(self, script: str, *args):
        self.evaluations.append(script)
        if script in self.scripts:
            value = self.scripts[script]
            if isinstance(value, Exception):
                raise value
            return value(*args) if callable(value) else value
        if script in (READY_STATE_SCRIPT, FORM_FIELDS_SCRIPT):
            return True
        return None

    async def query_selector(self, selector: str):
        found = self.selectors.get(selector)
        if isinstance(found, list):
            return found[0] if found else None
        return found

    async def query_selector_all(self, selector: str):
        found = self.selectors.get(selector)
        if found is None:
            return []
        return found if isinstance(found, list) else [found]

    async def wait_for_selector(self, selector: str, **kwargs):
        found = await self.query_selector(selector)
        if found is None:
            raise Exception(f"Timeout waiting for {selector}")
        return found

    async def wait_for_timeout(self, timeout: int):
        self.waits.append(timeout)

    async def wait_for_load_state(self, state: str = 'load', **kwargs):
        return None

    async def goto(self, url: str, **kwargs):
        self.visited.append(url)
        self.url = url

    async def go_back(self, **kwargs):
        self.url = self.back_url

    async def title(self):
        return self._title

    async def screenshot(self, path: str = None, **kwargs):
        self.screenshots.append(path)
        return b''

    async def fill(self, selector: str, value: str, **kwargs):
        return None

    async def click(self, selector: str, **kwargs):
        return None


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Temporary directory for reports, screenshots and test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def agent_config(temp_dir: Path) -> GrantAgentConfig:
    """Configuration with short waits and artifacts under temp_dir."""
    return GrantAgentConfig(
        browser=BrowserConfig(screenshot_on_failure=False),
        agent=AgentConfig(
            field_delay_ms=0,
            step_settle_ms=0,
            after_click_timeout_ms=200,
            modal_settle_ms=0,
            submit_response_wait_ms=0,
            form_ready_timeout_ms=200,
            network_idle_timeout_ms=200,
            dynamic_field_wait_ms=0,
            login_attempts=1,
            enable_performance_monitoring=False,
            save_report=False,
        ),
        portal=PortalConfig(
            form_url=FORM_URL,
            username='11111111-1',
            password='secreto',
            test_files_dir=str(temp_dir / 'archivos_prueba'),
            report_dir=str(temp_dir / 'reports'),
            screenshot_dir=str(temp_dir / 'screenshots'),
        ),
    )


@pytest.fixture
def page() -> FakePage:
    return FakePage()
