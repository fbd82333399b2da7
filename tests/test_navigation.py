"""Tests for Navigator: next-control lookup, advance modes and submit."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import FakeControl, FakePage
from models import FORCE, MODAL_MISSING_FIELDS, PROBE, ModalResult
from navigation import SUBMIT_SELECTOR, Navigator, is_form_url


@pytest.fixture
def modals():
    interpreter = MagicMock()
    interpreter.interpret_step_modal = AsyncMock(return_value=ModalResult())
    interpreter.accept_to_advance = AsyncMock(return_value=False)
    return interpreter


def test_is_form_url():
    assert is_form_url('https://postulador.corfo.cl/Postulador.aspx?id=9')
    assert not is_form_url('https://postulador.corfo.cl/Postulador.aspx?Borradores=1')
    assert not is_form_url('https://www.corfo.cl/sites/cpp/convocatorias')


class TestAdvance:

    @pytest.mark.asyncio
    async def test_skips_final_submit_controls(self, agent_config, modals):
        submit = FakeControl(text='ENVIAR POSTULACIÓN')
        next_button = FakeControl(text='Siguiente')
        page = FakePage(selectors={
            'button:has-text("SIGUIENTE")': submit,
            'button:has-text("Siguiente")': next_button,
        })
        outcome = await Navigator(page, modals, agent_config).advance(PROBE)

        assert outcome.advanced
        assert submit.clicks == 0
        assert next_button.clicks == 1
        modals.interpret_step_modal.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_input_value_is_checked_too(self, agent_config, modals):
        finish = FakeControl(attrs={'value': 'Finalizar'})
        page = FakePage(selectors={'button[type="submit"]:not([value*="Enviar"]):not([value*="ENVIAR"])': finish})
        outcome = await Navigator(page, modals, agent_config).advance(PROBE)

        assert not outcome.advanced
        assert finish.clicks == 0

    @pytest.mark.asyncio
    async def test_probe_reports_missing_fields(self, agent_config, modals):
        modals.interpret_step_modal.return_value = ModalResult(appeared=True, choice=MODAL_MISSING_FIELDS)
        page = FakePage(selectors={'.btn-next': FakeControl(text='Continuar')})
        outcome = await Navigator(page, modals, agent_config).advance(PROBE)

        assert outcome.advanced
        assert outcome.missing_fields

    @pytest.mark.asyncio
    async def test_force_accepts_the_dialog(self, agent_config, modals):
        modals.accept_to_advance.return_value = True
        page = FakePage(selectors={'.btn-next': FakeControl(text='Continuar')})
        outcome = await Navigator(page, modals, agent_config).advance(FORCE)

        assert outcome.advanced
        assert not outcome.missing_fields
        modals.interpret_step_modal.assert_not_awaited()


class TestSubmit:

    @pytest.mark.asyncio
    async def test_disabled_submit_is_not_clicked(self, agent_config, modals):
        button = FakeControl(enabled=False)
        page = FakePage(selectors={SUBMIT_SELECTOR: button})

        assert not await Navigator(page, modals, agent_config).click_submit()
        assert button.clicks == 0

    @pytest.mark.asyncio
    async def test_enabled_submit(self, agent_config, modals):
        button = FakeControl()
        page = FakePage(selectors={SUBMIT_SELECTOR: button})

        assert await Navigator(page, modals, agent_config).click_submit()
        assert button.clicks == 1


@pytest.mark.asyncio
async def test_navigate_to_skips_when_already_on_form(agent_config, modals):
    page = FakePage()
    await Navigator(page, modals, agent_config).navigate_to(agent_config.portal.form_url)
    assert page.visited == []


@pytest.mark.asyncio
async def test_go_back_returns_new_url(agent_config, modals):
    page = FakePage(back_url='https://postulador.corfo.cl/Borradores.aspx')
    assert await Navigator(page, modals, agent_config).go_back() == 'https://postulador.corfo.cl/Borradores.aspx'
