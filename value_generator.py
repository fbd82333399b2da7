"""
value_generator.py

Maps a field descriptor to a synthetic value. Keyword rules are kept in an
ordered table; the first rule whose predicate matches the field context wins,
otherwise the value falls back to the field type.
"""

from typing import Callable, List, Optional, Tuple

from models import FieldDescriptor

# Synthetic values used to fill the application form.
SYNTHETIC_VALUES = {
    # Identity and contact
    'RUT': '254462950',
    'RAZON_SOCIAL': 'Empresa de Prueba SpA',
    'TELEFONO': '+56912345678',
    'EMAIL': 'contacto@empresaprueba.cl',
    'NOMBRE': 'Juan Carlos',
    'APELLIDO_PATERNO': 'González',
    'NACIONALIDAD': 'Chilena',
    'GENERO': 'Masculino',
    'PROFESION': 'Ingeniero de Software',
    'ETNIA': 'No aplica',
    'PUEBLO_ORIGINARIO': 'No',
    'PASSWORD': 'password123',

    # Address
    'DIRECCION_CALLE': 'Av. Providencia',
    'DIRECCION_NUMERO_CORTO': '100',
    'DIRECCION_DEPTO_CORTO': '100',
    'CODIGO_POSTAL_CHILE': '8320000',
    'BLOCK_VILLA': 'Block A',
    'COMUNA': 'Providencia',
    'REGION': 'Región Metropolitana',

    # Project
    'TITULO_PROYECTO': 'Desarrollo de Sistema de Monitoreo Ambiental Inteligente',
    'OBJETIVO_GENERAL': 'Desarrollar una solución tecnológica innovadora para el monitoreo ambiental en tiempo real',
    'RESUMEN_PROYECTO': (
        'Este proyecto busca crear una plataforma integral de monitoreo ambiental que utilice '
        'sensores IoT y algoritmos de machine learning para proporcionar datos precisos sobre '
        'la calidad del aire, agua y suelo.'
    ),
    'DURACION_PROYECTO': '5',
    'JUSTIFICACION_GENERICA': (
        'Este proyecto se basa en ciclos biológicos naturales para optimizar los procesos y '
        'minimizar el impacto ambiental, aprovechando los patrones naturales de crecimiento y '
        'desarrollo para crear soluciones más eficientes y sostenibles.'
    ),
    'CICLOS_BIOLOGICOS': (
        'El proyecto implementa principios de ciclos biológicos para mejorar la eficiencia y '
        'sostenibilidad de los procesos, utilizando patrones naturales de crecimiento y desarrollo.'
    ),

    # Amounts
    'INVERSION': '5000000',
    'COSTOS_OPERACION': '5000000',
    'MONTO_GENERICO': '5000000',

    # Generic values
    'FECHA': '2024-12-31',
    'FECHA_FORMATO_DDMMYYYY': '31/12/2024',
    'AÑO': '2024',
    'NUMERO': '100',
    'PORCENTAJE': '25',
    'TEXTO_LARGO': 'Este es un texto de prueba para campos que requieren descripción detallada.',
    'TEXTO_CORTO': 'Texto de prueba',
    'URL_EJEMPLO': 'https://www.ejemplo.cl',
    'URL_REDES_SOCIALES': 'https://www.ejemplo.com',
    'OPCION_POR_DEFECTO': 'Opción por defecto',
    'SIN_OPCIONES_DISPONIBLES': 'Sin opciones disponibles',
    'PRIMERA_OPCION': 'Primera opción',
    'ARCHIVO_PRUEBA': 'archivo_prueba.pdf',
}

Predicate = Callable[[str], bool]


def any_of(*words: str) -> Predicate:
    return lambda context: any(word in context for word in words)


def all_of(*words: str) -> Predicate:
    return lambda context: all(word in context for word in words)


def but_not(predicate: Predicate, *words: str) -> Predicate:
    return lambda context: predicate(context) and not any(word in context for word in words)


# (rule name, predicate over the context, SYNTHETIC_VALUES key). Order matters:
# the address sub-parts must come before the generic address rule, and
# "costos" before the generic amount rule.
KEYWORD_RULES: List[Tuple[str, Predicate, str]] = [
    ('rut', any_of('rut', 'run', 'identificador', 'recurso'), 'RUT'),
    ('email', any_of('email', 'correo', 'mail', 'e-mail', 'electrónico', 'electronico'), 'EMAIL'),
    ('phone', any_of('teléfono', 'telefono', 'fono', 'celular'), 'TELEFONO'),
    ('person_name', but_not(any_of('nombre'), 'proyecto'), 'NOMBRE'),
    ('surname', any_of('apellido'), 'APELLIDO_PATERNO'),
    ('company', any_of('razón social', 'empresa', 'organización'), 'RAZON_SOCIAL'),
    ('project_title', all_of('título', 'proyecto'), 'TITULO_PROYECTO'),
    ('general_objective', all_of('objetivo', 'general'), 'OBJETIVO_GENERAL'),
    ('project_description', all_of('descripción', 'proyecto'), 'RESUMEN_PROYECTO'),
    ('investment', any_of('inversión', 'inversion'), 'INVERSION'),
    ('operating_costs', any_of('costos', 'operacion', 'operación'), 'COSTOS_OPERACION'),
    ('amount', any_of('monto', 'costo', 'presupuesto', 'valor', 'total'), 'MONTO_GENERICO'),
    ('duration', any_of('duración', 'duracion', 'meses'), 'DURACION_PROYECTO'),
    ('address_number', lambda c: any_of('numero', 'número')(c) and 'direcc' in c, 'DIRECCION_NUMERO_CORTO'),
    ('address_apartment', all_of('departamento', 'direcc'), 'DIRECCION_DEPTO_CORTO'),
    ('postal_code', all_of('codigo', 'postal'), 'CODIGO_POSTAL_CHILE'),
    ('block_villa', any_of('block', 'villa', 'población', 'poblacion'), 'BLOCK_VILLA'),
    ('address', any_of('dirección', 'direccion', 'domicilio'), 'DIRECCION_CALLE'),
    ('comuna', any_of('comuna', 'ciudad'), 'COMUNA'),
    ('region', any_of('región', 'region'), 'REGION'),
    ('jobs', any_of('empleos', 'empleo', 'trabajos'), 'NUMERO'),
    ('year', any_of('año', 'year'), 'AÑO'),
    ('date', any_of('fecha', 'date'), 'FECHA'),
    ('percentage', any_of('porcentaje', '%'), 'PORCENTAJE'),
    ('quantity', any_of('cantidad', 'número', 'numero'), 'NUMERO'),
    ('observations', any_of('observaciones', 'comentarios'), 'TEXTO_LARGO'),
    ('justification', any_of('justifique', 'justificar', 'justificación'), 'JUSTIFICACION_GENERICA'),
    ('biological_cycles', any_of('ciclos biológicos', 'biologicos', 'biológicos'), 'CICLOS_BIOLOGICOS'),
    ('website', any_of('página web', 'sitio web', 'url'), 'URL_EJEMPLO'),
    ('social_network', any_of('linkedin', 'facebook', 'instagram'), 'URL_REDES_SOCIALES'),
    ('profession', any_of('profesión', 'cargo', 'ocupación'), 'PROFESION'),
    ('nationality', any_of('nacionalidad'), 'NACIONALIDAD'),
    ('gender', any_of('género', 'sexo'), 'GENERO'),
    ('ethnicity', any_of('etnia'), 'ETNIA'),
    ('indigenous_people', any_of('pueblo originario'), 'PUEBLO_ORIGINARIO'),
]

# Used when no keyword rule matches.
TYPE_VALUES = {
    'email': 'EMAIL',
    'tel': 'TELEFONO',
    'number': 'NUMERO',
    'date': 'FECHA',
    'textarea': 'TEXTO_LARGO',
    'text': 'TEXTO_CORTO',
    'url': 'URL_EJEMPLO',
    'password': 'PASSWORD',
}

# Used when a generated value is empty or a completion failed.
TYPE_DEFAULTS = {
    'number': '0',
    'textarea': SYNTHETIC_VALUES['TEXTO_LARGO'],
    'text': SYNTHETIC_VALUES['TEXTO_CORTO'],
    'email': SYNTHETIC_VALUES['TEXTO_CORTO'],
    'tel': SYNTHETIC_VALUES['TEXTO_CORTO'],
    'url': SYNTHETIC_VALUES['TEXTO_CORTO'],
    'password': SYNTHETIC_VALUES['TEXTO_CORTO'],
    'select': SYNTHETIC_VALUES['OPCION_POR_DEFECTO'],
    'checkbox': 'true',
    'radio': 'seleccionado',
    'date': SYNTHETIC_VALUES['FECHA_FORMATO_DDMMYYYY'],
    'file': SYNTHETIC_VALUES['ARCHIVO_PRUEBA'],
}


class ValueGenerator:
    """Pure mapping from descriptor to synthetic value."""

    def __init__(self, values: Optional[dict] = None, rules: Optional[List[Tuple[str, Predicate, str]]] = None):
        self.values = dict(SYNTHETIC_VALUES)
        if values:
            self.values.update(values)
        self.rules = rules if rules is not None else KEYWORD_RULES

    def match_rule(self, descriptor: FieldDescriptor) -> Optional[str]:
        """Name of the first keyword rule matching the descriptor, if any."""
        context = descriptor.context
        for name, predicate, _ in self.rules:
            if predicate(context):
                return name
        return None

    def generate(self, descriptor: FieldDescriptor) -> str:
        context = descriptor.context
        for _, predicate, key in self.rules:
            if predicate(context):
                return self.values[key]

        if 'integer' in descriptor.constraints.input_mask.lower():
            return self.values['MONTO_GENERICO']

        key = TYPE_VALUES.get(descriptor.type.lower(), 'TEXTO_CORTO')
        return self.values[key]

    def default_for_type(self, field_type: str) -> str:
        return TYPE_DEFAULTS.get(field_type.lower(), self.values['TEXTO_CORTO'])
