"""
Multi-step partitioning.

Fields are dealt out in order, ceil(n / steps) per step. The last steps may
come up short or empty; that is expected, not an error.
"""
import math
from typing import Any, Dict, List, Sequence, TypeVar

T = TypeVar("T")


def partition(fields: Sequence[T], step_names: Sequence[str]) -> List[List[T]]:
    """Split `fields` into len(step_names) ordered slices. Pure: same input, same output."""
    if not step_names:
        raise ValueError("partition needs at least one step")
    per_step = math.ceil(len(fields) / len(step_names))
    return [list(fields[i * per_step:(i + 1) * per_step]) for i in range(len(step_names))]


def is_multi_step(form) -> bool:
    return bool(form.settings.is_multi_step and form.settings.steps)


def form_steps(form) -> List[Dict[str, Any]]:
    """Steps for a form as [{index, name, fields}]. A single-page form is one unnamed step."""
    if not is_multi_step(form):
        return [{"index": 0, "name": None, "fields": list(form.fields)}]
    names = form.settings.steps
    return [{"index": i, "name": names[i], "fields": chunk} for i, chunk in enumerate(partition(form.fields, names))]


def fields_for_step(form, index: int) -> List[Any]:
    steps = form_steps(form)
    if index < 0 or index >= len(steps):
        raise IndexError(f"step {index} out of range (form has {len(steps)})")
    return steps[index]["fields"]
