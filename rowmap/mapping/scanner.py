"""
rowmap/mapping/scanner.py
-------------------------
Decodes one result row into a freshly constructed entity.
"""

from typing import Any, Sequence

from rowmap.errors import RowDecodeError
from rowmap.mapping.descriptor import EntityDescriptor


def _coerce(scalar: type, value: Any) -> Any:
    if value is None or (isinstance(value, scalar) and not (scalar is int and isinstance(value, bool))):
        return value
    if scalar is str or isinstance(value, (bytes, bytearray, memoryview)):
        raise TypeError(f"{type(value).__name__} value for a {scalar.__name__} field")
    if scalar is bool and isinstance(value, str):
        return value.strip().lower() in ("1", "t", "true", "y", "yes")
    coerced = scalar(value)
    # int() truncates floats and decimals
    if scalar is int and not isinstance(value, str) and coerced != value:
        raise ValueError(f"{value!r} is not integral")
    return coerced


def scan_row(descriptor: EntityDescriptor, row: Sequence[Any]) -> Any:
    """
    Build an entity from a row whose values follow ``descriptor.columns``.

    Args:
        descriptor: Descriptor of the target entity.
        row: A DB-API row (tuple, ``sqlite3.Row`` ...), in descriptor order.

    Returns:
        A new entity with every column field populated. Relation fields keep
        their dataclass defaults.

    Raises:
        RowDecodeError: Column count or a declared scalar type does not match.
    """
    values = tuple(row)
    if len(values) != len(descriptor.columns):
        raise RowDecodeError(
            f"{descriptor.name}: expected {len(descriptor.columns)} columns, got {len(values)}"
        )

    kwargs = {}
    for column, value in zip(descriptor.columns, values):
        name = descriptor.column_to_field[column]
        scalar = descriptor.scalar_types.get(name)
        if scalar is not None:
            try:
                value = _coerce(scalar, value)
            except (TypeError, ValueError) as e:
                raise RowDecodeError(
                    f"{descriptor.name}.{name}: cannot read {value!r} as {scalar.__name__}"
                ) from e
        kwargs[name] = value

    try:
        return descriptor.entity(**kwargs)
    except TypeError as e:
        raise RowDecodeError(f"{descriptor.name}: cannot construct entity: {e}") from e
