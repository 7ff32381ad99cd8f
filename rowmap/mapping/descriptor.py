"""
rowmap/mapping/descriptor.py
----------------------------
Builds the immutable per-type metadata the rest of the engine works from.

A descriptor is derived once from a dataclass's field annotations and then
shared (read-only) by every repository and every thread that maps the type.
"""

import dataclasses
import types
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from types import MappingProxyType
from typing import Any, List, Mapping, Optional, Tuple, Union, get_args, get_origin, get_type_hints

from rowmap import config
from rowmap.errors import DescriptorError
from rowmap.mapping import fields as tags
from rowmap.utils.logger import get_logger
from rowmap.utils.text import to_snake_case

logger = get_logger(__name__)

_SCALARS = (bool, int, float, str)
_UNION_TYPES = (Union, getattr(types, "UnionType", Union))


class RelationKind(Enum):
    """Shape of a relation field, decided by its type hint."""

    ONE = "one"                       # Group
    OPTIONAL_ONE = "optional_one"     # Optional[Group]
    MANY = "many"                     # list[Role]
    OPTIONAL_MANY = "optional_many"   # Optional[list[Role]]

    @property
    def is_collection(self) -> bool:
        return self in (RelationKind.MANY, RelationKind.OPTIONAL_MANY)


@dataclass(frozen=True)
class RelationSpec:
    """Static description of one relation field."""

    field: str
    kind: RelationKind
    target: type
    fragment: str
    params: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ReferenceValue:
    """``<related_field>.<related_key>`` source for a foreign-key column."""

    related_field: str
    related_key: str


@dataclass(frozen=True)
class EntityDescriptor:
    """Immutable mapping metadata for one entity type."""

    entity: type
    table: str
    columns: Tuple[str, ...]
    column_to_field: Mapping[str, str]
    primary_key: Optional[str]
    primary_key_column: Optional[str]
    default_depth: int
    relations: Tuple[RelationSpec, ...] = ()
    references: Mapping[str, ReferenceValue] = dataclasses.field(default_factory=lambda: MappingProxyType({}))
    serial_names: Mapping[str, Optional[str]] = dataclasses.field(default_factory=lambda: MappingProxyType({}))
    scalar_types: Mapping[str, type] = dataclasses.field(default_factory=lambda: MappingProxyType({}))

    @property
    def name(self) -> str:
        return self.entity.__name__

    def require_primary_key(self) -> str:
        """Return the key column, or raise if the entity has none."""
        if self.primary_key_column is None:
            raise DescriptorError(f"{self.name} has no primary key column")
        return self.primary_key_column

    def key_of(self, entity: Any) -> Any:
        """Primary key value of an entity instance."""
        self.require_primary_key()
        return getattr(entity, self.primary_key)


def _unwrap_optional(hint: Any) -> Tuple[Any, bool]:
    if get_origin(hint) in _UNION_TYPES:
        args = [a for a in get_args(hint) if a is not type(None)]
        if len(args) == 1 and len(get_args(hint)) == 2:
            return args[0], True
    return hint, False


def _relation_shape(owner: type, name: str, hint: Any) -> Tuple[RelationKind, type]:
    hint, optional = _unwrap_optional(hint)
    if get_origin(hint) in (list, List):
        args = get_args(hint)
        if len(args) != 1:
            raise DescriptorError(f"{owner.__name__}.{name}: list relation needs an element type")
        kind = RelationKind.OPTIONAL_MANY if optional else RelationKind.MANY
        target = args[0]
    else:
        kind = RelationKind.OPTIONAL_ONE if optional else RelationKind.ONE
        target = hint
    if not (isinstance(target, type) and dataclasses.is_dataclass(target)):
        raise DescriptorError(f"{owner.__name__}.{name}: relation target {target!r} is not a dataclass")
    return kind, target


def _parse_reference(owner: type, name: str, raw: str, hints: dict) -> ReferenceValue:
    related, sep, key = raw.partition(".")
    related, key = related.strip(), key.strip()
    if not sep or not related or not key:
        raise DescriptorError(
            f"{owner.__name__}.{name}: ref_value must read '<field>.<key>', got {raw!r}"
        )
    if related not in {f.name for f in dataclasses.fields(owner)}:
        raise DescriptorError(f"{owner.__name__}.{name}: ref_value names unknown field {related!r}")
    target, _ = _unwrap_optional(hints.get(related))
    if isinstance(target, type) and dataclasses.is_dataclass(target):
        if key not in {f.name for f in dataclasses.fields(target)}:
            raise DescriptorError(
                f"{owner.__name__}.{name}: ref_value key {key!r} is not a field of {target.__name__}"
            )
    return ReferenceValue(related, key)


def build_descriptor(entity: type, table: Optional[str] = None, depth: Optional[int] = None) -> EntityDescriptor:
    """
    Inspect a dataclass's field annotations and build its descriptor.

    Args:
        entity: The dataclass type to map.
        table: Explicit table name; beats any ``table=`` field override.
        depth: Default relation depth; ``config.DEFAULT_DEPTH`` when omitted.

    Raises:
        DescriptorError: The type is not a dataclass, exposes no columns, or
            carries a malformed annotation.
    """
    if not (isinstance(entity, type) and dataclasses.is_dataclass(entity)):
        raise DescriptorError(f"{entity!r} is not a dataclass type")
    try:
        hints = get_type_hints(entity)
    except NameError as e:
        raise DescriptorError(f"{entity.__name__}: cannot resolve type hints: {e}") from e

    all_fields = dataclasses.fields(entity)
    field_names = {f.name for f in all_fields}

    columns: list = []
    column_to_field: dict = {}
    primary_key = None
    table_override = None
    relations: list = []
    references: dict = {}
    serial_names: dict = {}
    scalar_types: dict = {}

    for f in all_fields:
        meta = f.metadata
        if tags.COLUMN in meta:
            col = meta[tags.COLUMN]
            if col in column_to_field:
                raise DescriptorError(f"{entity.__name__}: column {col!r} is mapped twice")
            columns.append(col)
            column_to_field[col] = f.name
            if meta.get(tags.PRIMARY_KEY) and primary_key is None:
                primary_key = f.name
            if table_override is None and meta.get(tags.TABLE):
                table_override = meta[tags.TABLE]
            if tags.REF_VALUE in meta:
                references[col] = _parse_reference(entity, f.name, meta[tags.REF_VALUE], hints)
            scalar, _ = _unwrap_optional(hints.get(f.name))
            if scalar in _SCALARS:
                scalar_types[f.name] = scalar
        elif tags.RELATION in meta:
            kind, target = _relation_shape(entity, f.name, hints.get(f.name))
            params = meta.get(tags.RELATION_PARAMS, ())
            unknown = [p for p in params if p not in field_names]
            if unknown:
                raise DescriptorError(f"{entity.__name__}.{f.name}: unknown relation params {unknown}")
            relations.append(RelationSpec(f.name, kind, target, meta[tags.RELATION], tuple(params)))
        else:
            continue
        serial_names[f.name] = meta.get(tags.SERIAL_NAME, f.name)

    if not columns:
        raise DescriptorError(f"{entity.__name__} declares no columns")

    if primary_key is None and "id" in column_to_field.values():
        primary_key = "id"
    pk_column = None
    if primary_key is not None:
        pk_column = next(c for c, name in column_to_field.items() if name == primary_key)

    descriptor = EntityDescriptor(
        entity=entity,
        table=table or table_override or to_snake_case(entity.__name__),
        columns=tuple(columns),
        column_to_field=MappingProxyType(column_to_field),
        primary_key=primary_key,
        primary_key_column=pk_column,
        default_depth=config.DEFAULT_DEPTH if depth is None else depth,
        relations=tuple(relations),
        references=MappingProxyType(references),
        serial_names=MappingProxyType(serial_names),
        scalar_types=MappingProxyType(scalar_types),
    )
    logger.debug(
        f"Described {entity.__name__} -> {descriptor.table} "
        f"({len(columns)} columns, {len(relations)} relations)"
    )
    return descriptor


@lru_cache(maxsize=None)
def describe(entity: type, table: Optional[str] = None, depth: Optional[int] = None) -> EntityDescriptor:
    """Cached :func:`build_descriptor`; one descriptor per (type, table, depth)."""
    return build_descriptor(entity, table, depth)
