"""
login.py

Signs in to the CORFO portal. The portal shows either an inline login block
(revealed by a link) or an older login page embedded in an iframe; when
neither is on screen a login link is followed first.
"""

import logging
import re
from typing import Optional

from playwright.async_api import Frame, Page

from base_exceptions import LoginError
from waits import wait_for_network_idle

logger = logging.getLogger(__name__)

SHOW_LOGIN_LINK = '#mostrarCorfoLoginLink'
LOGIN_BLOCK = '#bloqueCorfoLogin'
USER_INPUT = '#rut'
PASSWORD_INPUT = '#pass'
LOGIN_BUTTON = '#ingresa_'
LOGIN_FRAME_HOST = 'login.corfo.cl'
LOGIN_LINK_SELECTOR = (
    'a:has-text("¿Tienes clave Corfo?"), a:has-text("Inicia sesión"), a:has-text("Ingreso usuario")'
)
LOGIN_URL_PATTERN = re.compile(r'login\.corfo\.cl|Login\.aspx|/login', re.IGNORECASE)


class LoginService:
    """Credential entry for the portal's two login variants."""

    def __init__(self, page: Page, username: str, password: str,
                 logger: Optional[logging.Logger] = None):
        self.page = page
        self.username = username
        self.password = password
        self.logger = logger or logging.getLogger(f"{__name__}.LoginService")

    async def login(self) -> None:
        """Raises LoginError when no login interface can be found."""
        if not self.username or not self.password:
            raise LoginError("CORFO_USER y CORFO_PASS son obligatorios")

        self.logger.info("🔐 Logging in to the portal...")
        if await self._login_inline() or await self._login_in_frame():
            self.logger.info("✅ Login submitted")
            return

        link = await self.page.query_selector(LOGIN_LINK_SELECTOR)
        if link is not None:
            self.logger.info("🔗 Following login link")
            await link.click()
            await wait_for_network_idle(self.page)
            if await self._login_inline() or await self._login_in_frame():
                self.logger.info("✅ Login submitted after following link")
                return

        raise LoginError()

    async def _login_inline(self) -> bool:
        show_link = await self.page.query_selector(SHOW_LOGIN_LINK)
        if show_link is not None and await show_link.is_visible():
            await show_link.click()
            try:
                await self.page.wait_for_selector(LOGIN_BLOCK, state='visible', timeout=10000)
            except Exception as e:
                self.logger.debug(f"Login block did not show: {e}")

        if await self.page.query_selector(LOGIN_BLOCK) is None:
            return False

        await self.page.wait_for_selector(USER_INPUT, state='visible')
        await self.page.wait_for_selector(PASSWORD_INPUT, state='visible')
        await self.page.fill(USER_INPUT, self.username)
        await self.page.fill(PASSWORD_INPUT, self.password)
        await self.page.wait_for_selector(LOGIN_BUTTON, state='visible', timeout=10000)
        await self.page.click(LOGIN_BUTTON)
        await wait_for_network_idle(self.page)
        return True

    def _find_login_frame(self) -> Optional[Frame]:
        for frame in self.page.frames:
            if LOGIN_FRAME_HOST in frame.url:
                return frame
        return None

    async def _login_in_frame(self) -> bool:
        frame = self._find_login_frame()
        if frame is None:
            return False

        self.logger.info("🪟 Using iframe login")
        await frame.wait_for_load_state('networkidle')
        await self.page.wait_for_timeout(2000)
        await frame.fill(USER_INPUT, self.username)
        await frame.fill(PASSWORD_INPUT, self.password)
        await frame.click(LOGIN_BUTTON)
        try:
            await frame.wait_for_selector(USER_INPUT, state='detached', timeout=15000)
        except Exception as e:
            self.logger.debug(f"Login form still attached: {e}")
        await wait_for_network_idle(self.page)
        return True

    async def is_login_page(self) -> bool:
        if LOGIN_URL_PATTERN.search(self.page.url or ''):
            return True
        if self._find_login_frame() is not None:
            return True
        for selector in (SHOW_LOGIN_LINK, LOGIN_BLOCK, LOGIN_BUTTON):
            element = await self.page.query_selector(selector)
            if element is not None and await element.is_visible():
                return True
        return False
