"""
rowmap/mapping/relations.py
---------------------------
Hydrates relation fields from dependent queries.

Resolution is depth-bounded and strictly sequential: every dependent query
runs through the caller's execution context (and therefore its transaction
and cancellation token) one after another. There is no cycle detection;
mutually related types such as User -> Role -> User stop only because the
depth budget runs out.
"""

import re
from typing import Any

from rowmap.errors import (
    ConnectionAcquisitionError,
    QueryCancelledError,
    RollbackError,
    TransactionClosedError,
)
from rowmap.mapping.descriptor import EntityDescriptor, RelationSpec, describe
from rowmap.mapping.scanner import scan_row
from rowmap.mapping.statements import QueryPlan, projection
from rowmap.utils.logger import get_logger

logger = get_logger(__name__)

_SELECT = re.compile(r"^select\s", re.IGNORECASE)
_FROM = re.compile(r"^from\s", re.IGNORECASE)
_WHERE = re.compile(r"^where\s", re.IGNORECASE)
_BARE_KEY = re.compile(r"^[A-Za-z_][\w.]*$")


def expand_fragment(fragment: str, target: EntityDescriptor, placeholder: str) -> str:
    """
    Turn a relation fragment into a full statement over ``target``.

    Args:
        fragment: A complete SELECT (kept verbatim), a ``FROM ...`` or
            ``WHERE ...`` tail, a predicate, or a bare column name.
        target: Descriptor of the related entity; supplies the projection
            and the table.
        placeholder: The driver's positional marker.
    """
    text = fragment.strip()
    if _SELECT.match(text):
        return text
    if _BARE_KEY.match(text):
        text = f"{text} = {placeholder}"
    if _FROM.match(text):
        return f"SELECT {', '.join(target.columns)} {text}"
    if _WHERE.match(text):
        return f"{projection(target)} {text}"
    return f"{projection(target)} WHERE {text}"


def relation_plan(spec: RelationSpec, entity: Any, owner: EntityDescriptor, placeholder: str) -> QueryPlan:
    """Dependent query for one relation of ``entity``."""
    target = describe(spec.target)
    if spec.params:
        args = tuple(getattr(entity, name) for name in spec.params)
    else:
        args = (owner.key_of(entity),)
    return QueryPlan(expand_fragment(spec.fragment, target, placeholder), args)


def _resolve(spec: RelationSpec, entity: Any, owner: EntityDescriptor, context, depth: int):
    target = describe(spec.target)
    rows = context.run_query(relation_plan(spec, entity, owner, context.placeholder))
    if not spec.kind.is_collection:
        rows = rows[:1]
    related = []
    for row in rows:
        child = scan_row(target, row)
        hydrate(child, target, context, depth)
        related.append(child)
    return related


def hydrate(entity: Any, descriptor: EntityDescriptor, context, depth: int) -> Any:
    """
    Populate the relation fields of a freshly scanned entity.

    Related entities are hydrated in turn with ``depth - 1``; once that is no
    longer positive, relation fields keep their defaults. A relation that
    fails to resolve is logged and left unset, and the remaining relations
    are still resolved. Inside a transaction each relation runs under its
    own savepoint, so a failed one leaves the transaction usable.
    Cancellation and connection failures are never swallowed.

    Args:
        entity: The entity to complete.
        descriptor: Its descriptor.
        context: The execution context of the surrounding operation.
        depth: Remaining depth budget of ``entity`` itself.

    Returns:
        The same entity.
    """
    remaining = depth - 1
    if remaining <= 0:
        return entity
    for spec in descriptor.relations:
        try:
            with context.savepoint():
                related = _resolve(spec, entity, descriptor, context, remaining)
        except (QueryCancelledError, ConnectionAcquisitionError, TransactionClosedError, RollbackError):
            raise
        except Exception as e:
            logger.warning(f"Could not resolve {descriptor.name}.{spec.field}: {e}")
            continue
        if spec.kind.is_collection:
            setattr(entity, spec.field, related)
        elif related:
            setattr(entity, spec.field, related[0])
    return entity
