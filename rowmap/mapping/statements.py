"""
rowmap/mapping/statements.py
----------------------------
Synthesizes the canonical parameterized statements for a descriptor.

Statements are assembled once per repository and reused for its lifetime.
Column order always follows ``descriptor.columns`` so that select
projections, scanned values and bound write arguments line up.
"""

import re
from dataclasses import dataclass
from typing import Any, Optional, Tuple

from rowmap.errors import DescriptorError
from rowmap.mapping.descriptor import EntityDescriptor

_CLAUSE = re.compile(r"^(where|order\s+by|group\s+by|limit|offset)\b", re.IGNORECASE)


@dataclass(frozen=True)
class QueryPlan:
    """Literal SQL text plus its positional arguments."""

    sql: str
    args: Tuple[Any, ...] = ()


def projection(descriptor: EntityDescriptor) -> str:
    """``SELECT <columns> FROM <table>`` for a descriptor."""
    if not descriptor.columns:
        raise DescriptorError(f"{descriptor.name} has no columns to select")
    return f"SELECT {', '.join(descriptor.columns)} FROM {descriptor.table}"


def normalize_criteria(fragment: str) -> str:
    """Prefix a bare boolean expression with ``WHERE``; leave other clauses alone."""
    fragment = (fragment or "").strip()
    if not fragment:
        return ""
    if _CLAUSE.match(fragment):
        return fragment
    return f"WHERE {fragment}"


def write_value(descriptor: EntityDescriptor, entity: Any, column: str) -> Any:
    """
    Value bound for ``column`` on insert/update.

    Columns declared with ``ref_value`` take the related entity's key when the
    related entity is set, so callers may fill in either side of the link.
    """
    ref = descriptor.references.get(column)
    if ref is not None:
        related = getattr(entity, ref.related_field, None)
        if related is not None:
            return getattr(related, ref.related_key)
    return getattr(entity, descriptor.column_to_field[column])


@dataclass(frozen=True)
class Statements:
    """The prepared statement texts of one descriptor."""

    descriptor: EntityDescriptor
    placeholder: str
    select_all: str
    select_by_id: Optional[str]
    insert_columns: Tuple[str, ...]
    insert_sql: str
    insert_with_key_sql: str
    update_sql: Optional[str]
    delete_sql: Optional[str]

    def _keyed(self, sql: Optional[str]) -> str:
        self.descriptor.require_primary_key()
        if sql is None:
            raise DescriptorError(f"{self.descriptor.name} has no non-key columns to update")
        return sql

    # ── READ ──────────────────────────────────────────────

    def all(self) -> QueryPlan:
        return QueryPlan(self.select_all)

    def by_id(self, key: Any) -> QueryPlan:
        return QueryPlan(self._keyed(self.select_by_id), (key,))

    def criteria(self, fragment: str, *args: Any) -> QueryPlan:
        """Select-all base followed by the caller's predicate fragment."""
        clause = normalize_criteria(fragment)
        sql = f"{self.select_all} {clause}" if clause else self.select_all
        return QueryPlan(sql, tuple(args))

    # ── WRITE ─────────────────────────────────────────────

    def insert(self, entity: Any) -> QueryPlan:
        """
        Insert plan for an entity.

        An unset primary key is left out so the store generates it; both
        variants return the key through ``RETURNING``.
        """
        d = self.descriptor
        if d.primary_key is not None and getattr(entity, d.primary_key) is None:
            args = tuple(write_value(d, entity, c) for c in self.insert_columns)
            return QueryPlan(self.insert_sql, args)
        return QueryPlan(self.insert_with_key_sql, tuple(write_value(d, entity, c) for c in d.columns))

    def update(self, entity: Any) -> QueryPlan:
        d = self.descriptor
        sql = self._keyed(self.update_sql)
        args = [write_value(d, entity, c) for c in d.columns if c != d.primary_key_column]
        args.append(d.key_of(entity))
        return QueryPlan(sql, tuple(args))

    def delete(self, key: Any) -> QueryPlan:
        return QueryPlan(self._keyed(self.delete_sql), (key,))


def _insert(table: str, columns, placeholder: str, returning: Optional[str]) -> str:
    if not columns:
        raise DescriptorError(f"{table}: nothing to insert")
    marks = ", ".join([placeholder] * len(columns))
    sql = f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({marks})"
    if returning:
        sql += f" RETURNING {returning}"
    return sql


def build_statements(descriptor: EntityDescriptor, placeholder: str = "%s") -> Statements:
    """
    Build every canonical statement for a descriptor.

    Args:
        descriptor: The entity descriptor.
        placeholder: The driver's positional marker (``%s`` for psycopg2,
            ``?`` for sqlite3).
    """
    table = descriptor.table
    pk = descriptor.primary_key_column
    select_all = projection(descriptor)

    select_by_id = update_sql = delete_sql = None
    insert_columns = descriptor.columns
    if pk is not None:
        where_key = f"WHERE {pk} = {placeholder}"
        select_by_id = f"{select_all} {where_key}"
        delete_sql = f"DELETE FROM {table} {where_key}"
        assignments = [f"{c} = {placeholder}" for c in descriptor.columns if c != pk]
        if assignments:
            update_sql = f"UPDATE {table} SET {', '.join(assignments)} {where_key}"
            insert_columns = tuple(c for c in descriptor.columns if c != pk)

    return Statements(
        descriptor=descriptor,
        placeholder=placeholder,
        select_all=select_all,
        select_by_id=select_by_id,
        insert_columns=insert_columns,
        # A table whose only column is the key keeps it in the generated-key insert.
        insert_sql=_insert(table, insert_columns, placeholder, pk),
        insert_with_key_sql=_insert(table, descriptor.columns, placeholder, pk),
        update_sql=update_sql,
        delete_sql=delete_sql,
    )
