"""
Field Type Registry.

Static catalog of the field kinds a form may contain and which configuration
attributes each kind understands. Defined once at import; never mutated.
"""
from enum import Enum
from typing import Dict, List, NamedTuple


class FieldType(str, Enum):
    TEXT = "text"
    EMAIL = "email"
    TEXTAREA = "textarea"
    SELECT = "select"
    RADIO = "radio"
    CHECKBOX = "checkbox"
    FILE = "file"


class FieldCapabilities(NamedTuple):
    supports_options: bool
    supports_validation_rules: bool
    supports_file_constraints: bool


FIELD_TYPES: Dict[FieldType, FieldCapabilities] = {
    FieldType.TEXT: FieldCapabilities(False, True, False),
    FieldType.EMAIL: FieldCapabilities(False, True, False),
    FieldType.TEXTAREA: FieldCapabilities(False, True, False),
    FieldType.SELECT: FieldCapabilities(True, False, False),
    FieldType.RADIO: FieldCapabilities(True, False, False),
    FieldType.CHECKBOX: FieldCapabilities(True, False, False),
    FieldType.FILE: FieldCapabilities(False, False, True),
}

# wire attribute name -> capability that must be set for it to be accepted
_ATTRIBUTE_CAPABILITY = {
    "options": "supports_options",
    "validation": "supports_validation_rules",
    "fileTypes": "supports_file_constraints",
    "maxFileSize": "supports_file_constraints",
}


def capabilities(field_type) -> FieldCapabilities:
    """Look up a type by enum member or wire string. Raises ValueError if unknown."""
    return FIELD_TYPES[FieldType(field_type)]


def unsupported_attributes(field_type, attributes) -> List[str]:
    """Names in `attributes` that the given type cannot carry."""
    caps = capabilities(field_type)
    return [name for name in attributes if name in _ATTRIBUTE_CAPABILITY and not getattr(caps, _ATTRIBUTE_CAPABILITY[name])]


def configured_attributes(data) -> List[str]:
    """Names in a wire mapping that carry a value. None, [] and {} count as not configured."""
    return [name for name, value in data.items() if value not in (None, [], {})]
