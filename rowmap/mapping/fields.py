"""
rowmap/mapping/fields.py
------------------------
Declarative mapping annotations for dataclass entities.

An entity is an ordinary ``@dataclass``. Fields declared with :func:`column`
are persisted, fields declared with :func:`relation` are hydrated from a
dependent query, and every other field is ignored by the engine::

    @dataclass
    class User:
        id: Optional[int] = column("id", primary_key=True)
        first_name: str = column("first_name", default="")
        group_id: Optional[int] = column("group_id", ref_value="group.id", json=None)
        group: Optional["Group"] = relation("id = ?", params="group_id")
        roles: list["Role"] = relation(
            "id IN (SELECT role_id FROM user_roles WHERE user_id = ?)",
            default_factory=list,
        )
"""

import dataclasses
from typing import Any, Optional, Sequence, Union

COLUMN = "rowmap.column"
PRIMARY_KEY = "rowmap.primary_key"
TABLE = "rowmap.table"
REF_VALUE = "rowmap.ref_value"
RELATION = "rowmap.relation"
RELATION_PARAMS = "rowmap.relation_params"
SERIAL_NAME = "rowmap.serial_name"

# Marks "use the attribute name" for json=, since None means "hidden".
_ATTRIBUTE_NAME = object()


def _field(metadata: dict, default: Any, default_factory: Any) -> Any:
    kwargs: dict = {"metadata": metadata}
    if default is not dataclasses.MISSING:
        kwargs["default"] = default
    if default_factory is not dataclasses.MISSING:
        kwargs["default_factory"] = default_factory
    return dataclasses.field(**kwargs)


def _serial_metadata(metadata: dict, json: Any) -> dict:
    if json is not _ATTRIBUTE_NAME:
        metadata[SERIAL_NAME] = json
    return metadata


def column(
    name: str,
    *,
    primary_key: bool = False,
    table: Optional[str] = None,
    ref_value: Optional[str] = None,
    json: Any = _ATTRIBUTE_NAME,
    default: Any = None,
    default_factory: Any = dataclasses.MISSING,
) -> Any:
    """
    Bind a dataclass field to a table column.

    Args:
        name: Column name in the table.
        primary_key: Marks the identity column (default: the field named ``id``).
        table: Overrides the table name of the enclosing entity.
        ref_value: ``"<relatedField>.<relatedKey>"``; on insert/update the
            related entity's key is written instead of this field's value.
        json: External name used by ``to_dict``; ``None`` hides the field.
        default: Field default (``None`` unless given).
        default_factory: Field default factory, exclusive with ``default``.
    """
    if not name:
        raise ValueError("column name must not be empty")
    if default_factory is not dataclasses.MISSING:
        default = dataclasses.MISSING
    metadata = {COLUMN: name, PRIMARY_KEY: primary_key}
    if table:
        metadata[TABLE] = table
    if ref_value:
        metadata[REF_VALUE] = ref_value
    return _field(_serial_metadata(metadata, json), default, default_factory)


def relation(
    fragment: str,
    *,
    params: Union[str, Sequence[str], None] = None,
    json: Any = _ATTRIBUTE_NAME,
    default: Any = None,
    default_factory: Any = dataclasses.MISSING,
) -> Any:
    """
    Declare a field hydrated from related rows.

    Args:
        fragment: A complete ``SELECT`` statement, or a predicate fragment
            (optionally starting with ``FROM`` / ``WHERE``) expanded against
            the related entity's table, or a bare column name compared to
            the first parameter.
        params: Attribute names of the owning entity supplying the query
            parameters, as a sequence or comma-separated string. Defaults to
            the owning entity's primary key.
        json: External name used by ``to_dict``; ``None`` hides the field.
        default: Value the field keeps when the relation is not hydrated.
        default_factory: Factory alternative to ``default`` (e.g. ``list``).
    """
    if not fragment or not fragment.strip():
        raise ValueError("relation fragment must not be empty")
    if isinstance(params, str):
        params = [p.strip() for p in params.split(",") if p.strip()]
    if default_factory is not dataclasses.MISSING:
        default = dataclasses.MISSING
    metadata = {RELATION: fragment.strip(), RELATION_PARAMS: tuple(params or ())}
    return _field(_serial_metadata(metadata, json), default, default_factory)
