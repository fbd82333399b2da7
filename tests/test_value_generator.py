"""Tests for the keyword rule table and type fallbacks."""

import pytest

from models import FieldConstraints, FieldDescriptor
from value_generator import KEYWORD_RULES, SYNTHETIC_VALUES, ValueGenerator


def descriptor(label: str, field_type: str = 'text', code: str = '', mask: str = '') -> FieldDescriptor:
    return FieldDescriptor(type=field_type, label=label, code=code,
                           constraints=FieldConstraints(input_mask=mask))


@pytest.fixture
def generator():
    return ValueGenerator()


class TestKeywordRules:

    @pytest.mark.parametrize("label, rule", [
        ("RUT de la empresa", "rut"),
        ("Correo electrónico", "email"),
        ("Teléfono de contacto", "phone"),
        ("Nombre", "person_name"),
        ("Título del proyecto", "project_title"),
        ("Costos de operación", "operating_costs"),
        ("Monto solicitado", "amount"),
        ("Número dirección", "address_number"),
        ("Dirección", "address"),
        ("Región", "region"),
        ("Pueblo originario", "indigenous_people"),
    ])
    def test_first_matching_rule_wins(self, generator, label, rule):
        assert generator.match_rule(descriptor(label)) == rule

    def test_project_name_is_not_a_person_name(self, generator):
        assert generator.match_rule(descriptor("Nombre del proyecto")) != "person_name"

    def test_vendor_code_is_part_of_the_context(self, generator):
        field = descriptor("Campo 12", code="correo_contacto")
        assert generator.generate(field) == SYNTHETIC_VALUES['EMAIL']

    def test_rule_values_exist(self):
        for name, _, key in KEYWORD_RULES:
            assert key in SYNTHETIC_VALUES, name


class TestFallbacks:

    def test_type_value_when_no_rule_matches(self, generator):
        assert generator.generate(descriptor("Contacto", field_type='email')) == SYNTHETIC_VALUES['EMAIL']
        assert generator.generate(descriptor("Comentario", field_type='textarea')) == SYNTHETIC_VALUES['TEXTO_LARGO']

    def test_integer_mask_gets_an_amount(self, generator):
        field = descriptor("Aporte", mask="'alias': 'integer'")
        assert generator.generate(field) == SYNTHETIC_VALUES['MONTO_GENERICO']

    def test_unknown_type_falls_back_to_short_text(self, generator):
        assert generator.generate(descriptor("Xyz", field_type='color')) == SYNTHETIC_VALUES['TEXTO_CORTO']

    def test_type_defaults(self, generator):
        assert generator.default_for_type('radio') == 'seleccionado'
        assert generator.default_for_type('number') == '0'
        assert generator.default_for_type('date') == '31/12/2024'

    def test_value_overrides(self):
        generator = ValueGenerator(values={'RUT': '111111111'})
        assert generator.generate(descriptor("RUT")) == '111111111'
