"""
Field-level diffing between an existing candidate snapshot and incoming data.

Values are compared by their canonical JSON form. Canonicalisation treats a
missing key, None and a blank string as the same "no value", so re-sending a
record that simply omits a field never produces a spurious change.
"""
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping

TRACKED_FIELDS = (
    "full_name",
    "phone",
    "experience_years",
    "resume_text",
    "resume_url",
    "job_id",
    "skills",
    "status",
)


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"


MISSING = _Missing()


@dataclass
class FieldDiff:
    changed_fields: List[str] = field(default_factory=list)
    old_values: Dict[str, Any] = field(default_factory=dict)
    new_values: Dict[str, Any] = field(default_factory=dict)

    @property
    def has_changes(self) -> bool:
        return bool(self.changed_fields)


def normalize_value(value: Any) -> Any:
    if value is MISSING or value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
        return value or None
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def canonical(value: Any) -> str:
    return json.dumps(normalize_value(value), sort_keys=True, default=str)


def _get(record: Any, name: str) -> Any:
    if record is None:
        return MISSING
    if isinstance(record, Mapping):
        return record.get(name, MISSING)
    return getattr(record, name, MISSING)


def diff(
    old: Any,
    new: Any,
    tracked_fields: Iterable[str] = TRACKED_FIELDS,
    sparse: bool = True,
) -> FieldDiff:
    """
    Compare `old` against `new` over `tracked_fields`.

    With sparse=True (the ingestion default) a field that carries no value in
    `new` is skipped: the existing value will be kept, so it is not a change.
    Changed fields are reported in `tracked_fields` order; old/new maps hold
    the normalized values of changed fields only.
    """
    result = FieldDiff()
    for name in tracked_fields:
        new_value = _get(new, name)
        if sparse and normalize_value(new_value) is None:
            continue
        old_value = _get(old, name)
        if canonical(old_value) != canonical(new_value):
            result.changed_fields.append(name)
            result.old_values[name] = normalize_value(old_value)
            result.new_values[name] = normalize_value(new_value)
    return result
