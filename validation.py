"""
Validation Engine.

`validate(field, value)` is the single rule set for a field value. The
authoring preview and the public ingestion path both go through
`validate_values`, so a value accepted in preview is accepted on submit.

Rules run in a fixed order and the first failure wins:

1. presence   - required and absent ("", None, []) -> "<label> is required"
2. absent and optional -> valid, nothing else runs
3. the type rule from `_TYPE_RULES`
"""
import logging
import re
from typing import Any, Callable, Dict, Iterable, List, Mapping, NamedTuple, Optional, Sequence, Tuple

from field_types import FieldType
from steps import fields_for_step

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")


class ValidationResult(NamedTuple):
    valid: bool
    message: Optional[str] = None

    def __bool__(self) -> bool:
        return self.valid


VALID = ValidationResult(True)


def invalid(message: str) -> ValidationResult:
    return ValidationResult(False, message)


def is_absent(value: Any) -> bool:
    """Only None, "" and empty lists count as absent. 0 and False are values."""
    if value is None:
        return True
    if isinstance(value, str) and value == "":
        return True
    if isinstance(value, (list, tuple)) and len(value) == 0:
        return True
    return False


# ---------- Type rules ----------

def _check_email(field, value) -> ValidationResult:
    if not isinstance(value, str) or not EMAIL_RE.fullmatch(value):
        return invalid(f"{field.label} must be a valid email")
    return VALID


def _check_text(field, value) -> ValidationResult:
    if not isinstance(value, str):
        return invalid(f"{field.label} must be text")
    rules = field.validation
    if rules is None:
        return VALID
    if rules.min_length is not None and len(value) < rules.min_length:
        return invalid(f"{field.label} must be at least {rules.min_length} characters")
    if rules.max_length is not None and len(value) > rules.max_length:
        return invalid(f"{field.label} must be less than {rules.max_length} characters")
    return VALID


def _option_message(field) -> ValidationResult:
    return invalid(f"{field.label} has an invalid option selected")


def _is_option(field, value) -> bool:
    return isinstance(value, str) and value in field.options


def _check_single_choice(field, value) -> ValidationResult:
    if not _is_option(field, value):
        return _option_message(field)
    return VALID


def _check_multi_choice(field, value) -> ValidationResult:
    if not isinstance(value, (list, tuple)):
        return _option_message(field)
    for item in value:
        if not _is_option(field, item):
            return _option_message(field)
    return VALID


def validate_file(field, content_type: Optional[str], size: Optional[int]) -> ValidationResult:
    """File constraint rule. The upload collaborator supplies the MIME type and byte size."""
    if field.file_types and content_type is not None and content_type not in field.file_types:
        return invalid(f"{field.label} file type is not allowed")
    if field.max_file_size is not None and size is not None and size > field.max_file_size:
        return invalid(f"{field.label} file is too large")
    return VALID


def _check_file(field, value) -> ValidationResult:
    # Bytes are inspected at upload time; a stored reference may echo the facts back
    if isinstance(value, Mapping):
        size = value.get("size")
        return validate_file(field, value.get("mimetype"), size if isinstance(size, int) else None)
    return VALID


_TYPE_RULES: Dict[FieldType, Callable[[Any, Any], ValidationResult]] = {
    FieldType.EMAIL: _check_email,
    FieldType.TEXT: _check_text,
    FieldType.TEXTAREA: _check_text,
    FieldType.SELECT: _check_single_choice,
    FieldType.RADIO: _check_single_choice,
    FieldType.CHECKBOX: _check_multi_choice,
    FieldType.FILE: _check_file,
}


def validate(field, value: Any) -> ValidationResult:
    if is_absent(value):
        if field.required:
            return invalid(f"{field.label} is required")
        return VALID
    rule = _TYPE_RULES.get(FieldType(field.type))
    if rule is None:
        return VALID
    return rule(field, value)


# ---------- Whole submissions ----------

def validate_values(
    fields: Sequence[Any],
    values: Iterable[Tuple[str, Any]],
    check_unknown: bool = True,
) -> List[Dict[str, str]]:
    """
    Validate submitted (fieldId, value) pairs against `fields`.

    Returns every failure as {"field": id, "message": ...}, in form field
    order, with problems about unknown or repeated ids after them. Fields
    the submission leaves out are validated as absent.
    """
    by_id = {f.id: f for f in fields}
    submitted: Dict[str, Any] = {}
    extra: List[Dict[str, str]] = []
    for field_id, value in values:
        if field_id in submitted:
            extra.append({"field": field_id, "message": "Field submitted more than once"})
            continue
        if field_id not in by_id:
            if check_unknown:
                extra.append({"field": field_id, "message": "Unknown field"})
            continue
        submitted[field_id] = value

    errors: List[Dict[str, str]] = []
    for field in fields:
        result = validate(field, submitted.get(field.id))
        if not result:
            errors.append({"field": field.id, "message": result.message})
    errors.extend(extra)
    if errors:
        logger.debug("validation failed for %d field(s)", len(errors))
    return errors


def validate_form_values(form, values: Iterable[Tuple[str, Any]], step: Optional[int] = None) -> List[Dict[str, str]]:
    """
    Validate against a whole form, or only the fields of one step.

    When checking a single step, ids belonging to other steps are expected
    and not reported as unknown.
    """
    if step is None:
        return validate_values(form.fields, values)
    return validate_values(fields_for_step(form, step), values, check_unknown=False)
