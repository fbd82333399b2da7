"""Tests for page classification from DOM snapshots."""

import pytest

from conftest import FORM_URL, FakePage
from detection import PAGE_SNAPSHOT_SCRIPT, StructureDetector
from models import PAGE_CONFIRMATION, PAGE_DRAFT_LIST, PAGE_STEP


def snapshot(**overrides):
    data = {
        'url': FORM_URL,
        'text': '',
        'markers': [],
        'live_inputs': 25,
        'collapsibles': 0,
        'submit_visible': False,
        'add_button': False,
        'duration_label': False,
        'new_application_control': False,
        'has_table': False,
        'budget_tabs': [],
    }
    data.update(overrides)
    return data


def marker(hidden: bool, classes: str = '', text: str = ''):
    return {'hidden': hidden, 'classes': classes, 'text': text, 'id': ''}


@pytest.fixture
def detector():
    return StructureDetector(FakePage())


class TestStepCarousel:

    def test_total_and_current_from_markers(self, detector):
        markers = [marker(True, text='Antecedentes'), marker(False, text='Proyecto'),
                   marker(False, text='Equipo'), marker(False, text='Presupuesto')]
        structure = detector.classify(snapshot(markers=markers))

        assert structure.total_steps == 4
        assert structure.current_step == 2
        assert structure.step_titles[0] == 'Antecedentes'
        assert structure.detection == 'progress_bar'
        assert structure.kind == PAGE_STEP

    def test_active_class_marks_current_step(self, detector):
        markers = [marker(True), marker(True, classes='slick-slide slick-current'), marker(True)]
        assert detector.classify(snapshot(markers=markers)).current_step == 2

    def test_no_markers_is_a_single_fallback_step(self, detector):
        structure = detector.classify(snapshot())
        assert structure.total_steps == 1
        assert structure.detection == 'fallback'


class TestConfirmation:

    def test_required_counters_with_few_inputs(self, detector):
        text = 'campos obligatorios correctos: 12 campos obligatorios incorrectos: 0 enviar postulación'
        structure = detector.classify(snapshot(text=text, live_inputs=3, collapsibles=2))

        assert structure.kind == PAGE_CONFIRMATION
        assert structure.required_ok == 12
        assert structure.required_failed == 0

    def test_confirmation_phrase(self, detector):
        structure = detector.classify(snapshot(text='Resumen de su postulación'))
        assert structure.is_confirmation

    def test_many_inputs_is_not_a_confirmation(self, detector):
        text = 'obligatorios correctos: 3 enviar'
        structure = detector.classify(snapshot(text=text, live_inputs=40))
        assert structure.kind == PAGE_STEP

    def test_budget_tabs_are_never_a_confirmation(self, detector):
        tabs = [{'title': 'Recursos Humanos', 'account': '1'}, {'title': 'Operación', 'account': '2'}]
        structure = detector.classify(snapshot(budget_tabs=tabs, submit_visible=True, live_inputs=2))

        assert structure.kind == PAGE_STEP
        assert structure.is_budget_step
        assert [t.account for t in structure.budget_tabs] == ['1', '2']

    def test_add_entry_step(self, detector):
        structure = detector.classify(snapshot(duration_label=True, add_button=True,
                                               submit_visible=True, live_inputs=2))
        assert structure.is_add_entry_step
        assert not structure.is_confirmation


class TestDraftList:

    def test_drafts_url(self, detector):
        structure = detector.classify(snapshot(url='https://postulador.corfo.cl/Borradores.aspx'))
        assert structure.kind == PAGE_DRAFT_LIST

    def test_form_url_is_never_a_draft_list(self, detector):
        structure = detector.classify(snapshot(text='mis borradores', new_application_control=True))
        assert not structure.is_draft_list

    def test_status_table_with_new_application(self, detector):
        structure = detector.classify(snapshot(
            url='https://postulador.corfo.cl/Inicio.aspx',
            text='postulaciones identificador estado fecha inicio',
            has_table=True,
            new_application_control=True,
        ))
        assert structure.is_draft_list


@pytest.mark.asyncio
async def test_detect_reads_the_snapshot():
    page = FakePage(scripts={PAGE_SNAPSHOT_SCRIPT: snapshot(markers=[marker(False), marker(True)])})
    structure = await StructureDetector(page).detect()
    assert structure.total_steps == 2


@pytest.mark.asyncio
async def test_detect_never_raises():
    page = FakePage(scripts={PAGE_SNAPSHOT_SCRIPT: RuntimeError("Execution context was destroyed")})
    structure = await StructureDetector(page).detect()

    assert structure.total_steps == 1
    assert structure.url == FORM_URL
