"""
Field-list editing used by the builder.

Each operation takes the current field list and returns a new one. `order`
is re-derived for the whole list every time, never patched per field.
"""
import uuid
from typing import Any, Dict, List, Sequence

from pydantic import TypeAdapter, ValidationError

from errors import InvalidRequest, NotFound
from field_types import FieldType, capabilities, configured_attributes, unsupported_attributes
from schemas import FormField

_field_adapter = TypeAdapter(FormField)

DEFAULT_OPTIONS = ["Option 1"]
DEFAULT_FILE_TYPES = ["image/jpeg", "image/png"]
DEFAULT_MAX_FILE_SIZE = 5 * 1024 * 1024


def new_field_id() -> str:
    return f"field_{uuid.uuid4().hex[:12]}"


def reindex(fields: Sequence[Any]) -> List[Any]:
    return [f if f.order == i else f.model_copy(update={"order": i}) for i, f in enumerate(fields)]


def _build(data: Dict[str, Any]):
    try:
        return _field_adapter.validate_python(data)
    except ValidationError as e:
        details = [{"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]} for err in e.errors()]
        raise InvalidRequest("Invalid field configuration", details) from e


def _index_of(fields: Sequence[Any], field_id: str) -> int:
    for i, f in enumerate(fields):
        if f.id == field_id:
            return i
    raise NotFound(f"Field not found: {field_id}")


def add_field(fields: Sequence[Any], field_type: str) -> List[Any]:
    """Append a new field of `field_type` with builder defaults."""
    try:
        kind = FieldType(field_type)
    except ValueError:
        raise InvalidRequest(f"Invalid field type: {field_type}")
    caps = capabilities(kind)
    data: Dict[str, Any] = {
        "id": new_field_id(),
        "type": kind.value,
        "label": f"New {kind.value.capitalize()} Field",
        "placeholder": "",
        "required": False,
    }
    if caps.supports_options:
        data["options"] = list(DEFAULT_OPTIONS)
    if caps.supports_file_constraints:
        data["fileTypes"] = list(DEFAULT_FILE_TYPES)
        data["maxFileSize"] = DEFAULT_MAX_FILE_SIZE
    return reindex(list(fields) + [_build(data)])


def update_field(fields: Sequence[Any], field_id: str, changes: Dict[str, Any]) -> List[Any]:
    """
    Merge wire-named `changes` into one field.

    Attributes the field's (possibly new) type cannot carry are refused. On a
    type change, configuration the new type does not understand is dropped.
    """
    idx = _index_of(fields, field_id)
    current = fields[idx].model_dump(by_alias=True)
    new_type = changes.get("type", current["type"])
    try:
        bad = unsupported_attributes(new_type, configured_attributes(changes))
    except ValueError:
        raise InvalidRequest(f"Invalid field type: {new_type}")
    if bad:
        raise InvalidRequest(f"{', '.join(bad)} not supported for {new_type} fields")

    merged = {**current, **changes, "id": current["id"]}
    if new_type != current["type"]:
        for name in unsupported_attributes(new_type, list(merged)):
            merged.pop(name)
    updated = list(fields)
    updated[idx] = _build(merged)
    return reindex(updated)


def remove_field(fields: Sequence[Any], field_id: str) -> List[Any]:
    idx = _index_of(fields, field_id)
    return reindex([f for i, f in enumerate(fields) if i != idx])


def duplicate_field(fields: Sequence[Any], field_id: str) -> List[Any]:
    original = fields[_index_of(fields, field_id)]
    copy = original.model_copy(update={"id": new_field_id(), "label": f"{original.label} (Copy)"})
    return reindex(list(fields) + [copy])


def move_field(fields: Sequence[Any], source: int, destination: int) -> List[Any]:
    """Drag-reorder: take the field at `source` and insert it at `destination`."""
    if not 0 <= source < len(fields) or not 0 <= destination < len(fields):
        raise InvalidRequest("Field position out of range")
    items = list(fields)
    moved = items.pop(source)
    items.insert(destination, moved)
    return reindex(items)
