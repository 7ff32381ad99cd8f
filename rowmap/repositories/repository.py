"""
rowmap/repositories/repository.py
---------------------------------
Generic data access for any mapped dataclass.

A repository owns the descriptor and the prepared statements of one entity
type and runs them through an execution context. Every operation accepts
``ctx=`` to use an explicit context for that call only; otherwise the
repository's own context (set with ``set_transaction`` /
``set_execution_context``) is used.
"""

from typing import Any, Generic, List, Optional, Type, TypeVar

from rowmap.db.connection import Database
from rowmap.db.context import ExecutionContext, Transaction
from rowmap.errors import RowDecodeError
from rowmap.mapping.descriptor import describe
from rowmap.mapping.relations import hydrate
from rowmap.mapping.scanner import scan_row
from rowmap.mapping.statements import QueryPlan, build_statements
from rowmap.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def _check_depth(depth: int) -> int:
    if not isinstance(depth, int) or isinstance(depth, bool) or depth < 0:
        raise ValueError(f"depth must be a non-negative integer, got {depth!r}")
    return depth


class Repository(Generic[T]):
    """CRUD operations plus relation hydration for one entity type."""

    def __init__(
        self,
        entity: Type[T],
        database: Database,
        *,
        table: Optional[str] = None,
        depth: Optional[int] = None,
        context: Optional[ExecutionContext] = None,
    ):
        """
        Args:
            entity: The dataclass to map.
            database: Pool handle the statements run against.
            table: Explicit table name, beating annotations and the derived name.
            depth: Relation depth for reads (descriptor default when omitted).
            context: Initial execution context (a plain pooled one when omitted).
        """
        self.descriptor = describe(entity, table)
        self.database = database
        self.statements = build_statements(self.descriptor, database.placeholder)
        self._depth = self.descriptor.default_depth if depth is None else _check_depth(depth)
        self._context = context or ExecutionContext(database)

    def _ctx(self, ctx: Optional[ExecutionContext]) -> ExecutionContext:
        return ctx if ctx is not None else self._context

    # ── METADATA ──────────────────────────────────────────

    def get_table_name(self) -> str:
        return self.descriptor.table

    def get_columns(self) -> List[str]:
        return list(self.descriptor.columns)

    def set_depth(self, depth: int) -> "Repository[T]":
        """Override the relation depth for subsequent reads. Returns self."""
        self._depth = _check_depth(depth)
        return self

    def get_depth(self) -> int:
        return self._depth

    # ── CONTEXT / TRANSACTIONS ────────────────────────────

    def set_execution_context(self, ctx: ExecutionContext) -> "Repository[T]":
        self._context = ctx
        return self

    def get_execution_context(self) -> ExecutionContext:
        return self._context

    def set_transaction(self, tx: Optional[Transaction]) -> "Repository[T]":
        """Run subsequent operations inside ``tx`` (``None`` unbinds it)."""
        self._context = ExecutionContext(self.database, tx, self._context.token)
        return self

    def get_transaction(self) -> Optional[Transaction]:
        return self._context.transaction

    def begin(self) -> "Repository[T]":
        """Start a transaction on this repository. Returns self."""
        self._context = self._context.begin()
        return self

    def commit(self) -> None:
        """Commit the bound transaction and return to per-call connections."""
        try:
            self._context.commit()
        finally:
            self.set_transaction(None)

    def rollback(self) -> None:
        """
        Roll back the bound transaction and return to per-call connections.

        A transaction already rolled back after a failed write is simply
        unbound.
        """
        tx = self._context.transaction
        try:
            if tx is not None and tx.active:
                tx.rollback()
        finally:
            self.set_transaction(None)

    # ── READ ──────────────────────────────────────────────

    def _fetch_many(self, plan: QueryPlan, ctx: Optional[ExecutionContext]) -> List[T]:
        context = self._ctx(ctx)
        try:
            rows = context.run_query(plan)
        except Exception as e:
            logger.error(f"Failed to query {self.descriptor.table}: {e}")
            raise
        items = []
        for row in rows:
            try:
                item = scan_row(self.descriptor, row)
            except RowDecodeError as e:
                logger.error(f"Failed to scan {self.descriptor.table} row: {e}")
                raise
            items.append(hydrate(item, self.descriptor, context, self._depth))
        return items

    def get_all(self, *, ctx: Optional[ExecutionContext] = None) -> List[T]:
        """Fetch every row of the table."""
        return self._fetch_many(self.statements.all(), ctx)

    def get_by_criteria(self, criteria: str, *args: Any, ctx: Optional[ExecutionContext] = None) -> List[T]:
        """
        Fetch the rows matching a predicate fragment.

        Args:
            criteria: e.g. ``"first_name = ?"``; ``WHERE`` is added when missing.
            args: Positional values for the fragment's placeholders.
        """
        return self._fetch_many(self.statements.criteria(criteria, *args), ctx)

    def get_by_id(self, id: Any, *, ctx: Optional[ExecutionContext] = None) -> Optional[T]:
        """
        Fetch a single entity by primary key.

        Returns:
            The hydrated entity, or None if no row matched.
        """
        context = self._ctx(ctx)
        try:
            row = context.run_query_row(self.statements.by_id(id))
        except Exception as e:
            logger.error(f"Failed to fetch {self.descriptor.table} #{id}: {e}")
            raise
        if row is None:
            return None
        item = scan_row(self.descriptor, row)
        return hydrate(item, self.descriptor, context, self._depth)

    # ── CREATE ────────────────────────────────────────────

    def create(self, item: T, *, ctx: Optional[ExecutionContext] = None) -> Any:
        """
        Insert a new row.

        Returns:
            The generated primary key, also written back into ``item`` when
            its key was unset.
        """
        d = self.descriptor
        keyed = d.primary_key is not None
        try:
            result = self._ctx(ctx).run_exec(self.statements.insert(item), returning=keyed)
        except Exception as e:
            logger.error(f"Failed to create {d.name}: {e}")
            raise
        if keyed and getattr(item, d.primary_key) is None:
            setattr(item, d.primary_key, result.generated_id)
        logger.info(f"Created {d.name} #{result.generated_id} in {d.table}")
        return result.generated_id

    # ── UPDATE ────────────────────────────────────────────

    def update(self, item: T, *, ctx: Optional[ExecutionContext] = None) -> bool:
        """
        Update an existing row (the primary key must be set).

        Returns:
            True if a row was updated, False otherwise.
        """
        d = self.descriptor
        try:
            result = self._ctx(ctx).run_exec(self.statements.update(item))
        except Exception as e:
            logger.error(f"Failed to update {d.name}: {e}")
            raise
        return result.rowcount > 0

    # ── DELETE ────────────────────────────────────────────

    def delete(self, id: Any, *, ctx: Optional[ExecutionContext] = None) -> bool:
        """
        Delete a row by primary key.

        Returns:
            True if a row was deleted, False otherwise.
        """
        try:
            result = self._ctx(ctx).run_exec(self.statements.delete(id))
        except Exception as e:
            logger.error(f"Failed to delete {self.descriptor.name} #{id}: {e}")
            raise
        deleted = result.rowcount > 0
        if deleted:
            logger.info(f"Deleted {self.descriptor.name} #{id}")
        return deleted
