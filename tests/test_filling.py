"""Tests for FieldCompleter strategies against fake controls."""

import pytest

from conftest import FakeControl, FakePage
from filling import (
    FILE_ALREADY_IN_SESSION, GENERIC_FAILURE, NOT_SELECTED, FieldCompleter,
    preferred_option, valid_options
)
from models import FieldConstraints, FieldDescriptor, FieldOption
from value_generator import SYNTHETIC_VALUES


def field(label: str, field_type: str = 'text', **kwargs) -> FieldDescriptor:
    return FieldDescriptor(type=field_type, label=label, **kwargs)


def radio_group(name: str, *radios: FakeControl) -> dict:
    return {f'input[type="radio"][name="{name}"]': list(radios)}


class TestTextAndNumbers:

    @pytest.mark.asyncio
    async def test_text_gets_keyword_value(self, agent_config):
        control = FakeControl()
        outcome = await FieldCompleter(FakePage(), agent_config).complete(control, field('Correo electrónico'))

        assert outcome.completed
        assert outcome.assigned_value == SYNTHETIC_VALUES['EMAIL']
        assert control.filled[-1] == SYNTHETIC_VALUES['EMAIL']

    @pytest.mark.asyncio
    async def test_decimal_mask_is_typed_with_cents(self, agent_config):
        control = FakeControl()
        descriptor = field('Monto solicitado', 'number',
                           constraints=FieldConstraints(input_mask="'alias': 'decimal'"))
        outcome = await FieldCompleter(FakePage(), agent_config).complete(control, descriptor)

        assert outcome.assigned_value == '5000000,00'
        assert control.typed == ['5000000,00']
        assert control.pressed == ['Control+A', 'Backspace']

    @pytest.mark.asyncio
    async def test_datepicker_uses_day_first_format(self, agent_config):
        control = FakeControl()
        descriptor = field('Fecha de inicio', 'date', constraints=FieldConstraints(datepicker=True))
        outcome = await FieldCompleter(FakePage(), agent_config).complete(control, descriptor)

        assert outcome.assigned_value == '31/12/2024'

    @pytest.mark.asyncio
    async def test_readonly_control_is_skipped(self, agent_config):
        control = FakeControl(editable={'readonly': True, 'disabled': False})
        assert await FieldCompleter(FakePage(), agent_config).complete(control, field('RUT')) is None
        assert control.filled == []


class TestSelect:

    def test_placeholder_options_are_not_valid(self):
        options = [FieldOption('', 'Seleccione...'), FieldOption('0', '-- Elija --'),
                   FieldOption('3', 'Pequeña'), FieldOption('4', 'Mediana', disabled=True)]
        assert [o.value for o in valid_options(options)] == ['3']

    def test_preferred_option_by_context(self):
        options = [FieldOption('5', 'Valparaíso'), FieldOption('13', 'Región Metropolitana')]
        assert preferred_option('región', options).value == '13'
        assert preferred_option('giro', options) is None

    @pytest.mark.asyncio
    async def test_selects_preferred_option(self, agent_config):
        control = FakeControl()
        descriptor = field('Región', 'select', options=[
            FieldOption('', '-- Seleccione --'), FieldOption('5', 'Valparaíso'),
            FieldOption('13', 'Región Metropolitana'),
        ])
        outcome = await FieldCompleter(FakePage(), agent_config).complete(control, descriptor)

        assert control.selected == ['13']
        assert outcome.assigned_value == 'Región Metropolitana'
        assert outcome.completed

    @pytest.mark.asyncio
    async def test_select_without_options_fails(self, agent_config):
        outcome = await FieldCompleter(FakePage(), agent_config).complete(
            FakeControl(), field('Sector', 'select', required=True))

        assert not outcome.completed
        assert outcome.failure_reason == GENERIC_FAILURE
        assert outcome.required


class TestRadio:

    @pytest.mark.asyncio
    async def test_already_checked(self, agent_config):
        control = FakeControl(checked=True)
        outcome = await FieldCompleter(FakePage(), agent_config).complete(control, field('¿Es PYME?', 'radio'))

        assert outcome.assigned_value == 'seleccionado'
        assert control.clicks == 0

    @pytest.mark.asyncio
    async def test_all_disabled_group_is_not_selected(self, agent_config):
        control = FakeControl(editable={'readonly': False, 'disabled': True},
                              enabled=False, clickable=False)
        page = FakePage(selectors=radio_group('rbPyme', control))
        outcome = await FieldCompleter(page, agent_config).complete(control, field('¿Es PYME?', 'radio', name='rbPyme'))

        assert outcome.assigned_value == NOT_SELECTED
        assert outcome.completed is False
        assert outcome.failure_reason == 'Radio button no pudo ser seleccionado'

    @pytest.mark.asyncio
    async def test_falls_back_to_first_option_of_group(self, agent_config):
        stubborn = FakeControl(checks_on_click=False)
        sibling = FakeControl()
        page = FakePage(selectors=radio_group('rbSexo', sibling, stubborn))
        outcome = await FieldCompleter(page, agent_config).complete(stubborn, field('Sexo', 'radio', name='rbSexo'))

        assert sibling.checked
        assert outcome.completed

    @pytest.mark.asyncio
    async def test_error_reports_not_selected(self, agent_config):
        control = FakeControl()

        async def broken():
            raise RuntimeError("Target closed")

        control.is_checked = broken
        outcome = await FieldCompleter(FakePage(), agent_config).complete(control, field('Sexo', 'radio'))

        assert outcome.assigned_value == NOT_SELECTED
        assert not outcome.completed


class TestFile:

    @pytest.mark.asyncio
    async def test_no_upload_affordance_is_excluded(self, agent_config):
        control = FakeControl(upload={'file_count': 0, 'uploaded_marker': False, 'has_trigger': False})
        assert await FieldCompleter(FakePage(), agent_config).complete(control, field('Adjunto', 'file')) is None

    @pytest.mark.asyncio
    async def test_uploads_once_per_step(self, agent_config, temp_dir):
        files_dir = temp_dir / 'archivos_prueba'
        files_dir.mkdir()
        (files_dir / 'documento_prueba.pdf').write_bytes(b'%PDF-1.4')
        control = FakeControl(upload={'file_count': 0, 'uploaded_marker': False, 'has_trigger': True})
        completer = FieldCompleter(FakePage(), agent_config)
        descriptor = field('Carta de apoyo', 'file', id='fuCarta')

        first = await completer.complete(control, descriptor)
        second = await completer.complete(control, descriptor)

        assert first.assigned_value == 'archivo_subido: documento_prueba.pdf'
        assert second.assigned_value == FILE_ALREADY_IN_SESSION
        assert len(control.files) == 1

        completer.reset_step()
        third = await completer.complete(control, descriptor)
        assert third.assigned_value.startswith('archivo_subido')

    @pytest.mark.asyncio
    async def test_missing_test_file(self, agent_config):
        control = FakeControl(upload={'file_count': 0, 'uploaded_marker': False, 'has_trigger': True})
        outcome = await FieldCompleter(FakePage(), agent_config).complete(control, field('Adjunto', 'file'))

        assert not outcome.completed
        assert outcome.failure_reason == 'Archivo no encontrado en carpeta archivos_prueba'

    @pytest.mark.asyncio
    async def test_already_uploaded(self, agent_config):
        control = FakeControl(upload={'file_count': 1, 'uploaded_marker': False, 'has_trigger': True})
        outcome = await FieldCompleter(FakePage(), agent_config).complete(control, field('Adjunto', 'file'))

        assert outcome.completed
        assert control.files == []
