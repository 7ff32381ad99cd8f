"""
rowmap/mapping/serialize.py
---------------------------
Renders hydrated entities as plain dicts (e.g. for a JSON response).
"""

import dataclasses
from typing import Any

from rowmap.mapping.descriptor import describe


def _render(value: Any) -> Any:
    if isinstance(value, list):
        return [_render(v) for v in value]
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return to_dict(value)
    return value


def to_dict(entity: Any) -> dict:
    """
    Convert an entity to a dict keyed by external field names.

    Fields declared with ``json=None`` are left out, as are relation fields
    that were not hydrated (``None`` or an empty list). Nested entities are
    rendered recursively.
    """
    descriptor = describe(type(entity))
    relations = {spec.field for spec in descriptor.relations}
    out: dict = {}
    for f in dataclasses.fields(entity):
        if f.name not in descriptor.serial_names:
            continue
        key = descriptor.serial_names[f.name]
        if key is None:
            continue
        value = getattr(entity, f.name)
        if f.name in relations and (value is None or value == []):
            continue
        out[key] = _render(value)
    return out
