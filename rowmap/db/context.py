"""
rowmap/db/context.py
--------------------
Execution context: "a pooled connection or an active transaction, plus
cancellation". Every statement the engine issues goes through one, so call
sites never need to know whether they run inside a transaction.
"""

import threading
import time
from contextlib import closing, contextmanager
from dataclasses import dataclass
from typing import Any, Iterator, Optional

from rowmap import config
from rowmap.db.connection import Database
from rowmap.errors import (
    DeadlineExceededError,
    QueryCancelledError,
    RollbackError,
    TransactionClosedError,
)
from rowmap.mapping.statements import QueryPlan
from rowmap.utils.logger import get_logger

logger = get_logger(__name__)


class CancellationToken:
    """Cancellation flag with an optional deadline, checked before each statement."""

    def __init__(self, deadline: Optional[float] = None):
        """
        Args:
            deadline: Absolute ``time.monotonic()`` value after which
                statements are refused.
        """
        self.deadline = deadline
        self._cancelled = threading.Event()

    @classmethod
    def with_timeout(cls, seconds: float) -> "CancellationToken":
        return cls(time.monotonic() + seconds)

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None without one."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def check(self) -> None:
        if self.cancelled:
            raise QueryCancelledError("execution context was cancelled")
        if self.deadline is not None and time.monotonic() >= self.deadline:
            raise DeadlineExceededError("execution context deadline exceeded")


class Transaction:
    """One pooled connection held from ``begin()`` until commit or rollback."""

    def __init__(self, database: Database):
        self.database = database
        self._conn = None
        self._finished = False
        self._savepoints = 0

    def begin(self) -> "Transaction":
        if self._conn is not None or self._finished:
            raise TransactionClosedError("transaction already started")
        self._conn = self.database.get_connection()
        return self

    @property
    def active(self) -> bool:
        return self._conn is not None

    @property
    def connection(self):
        if self._conn is None:
            raise TransactionClosedError("transaction is not active")
        return self._conn

    def commit(self) -> None:
        conn = self.connection
        try:
            conn.commit()
        finally:
            self._finish()

    def rollback(self) -> None:
        conn = self.connection
        try:
            conn.rollback()
        finally:
            self._finish()

    def next_savepoint(self) -> str:
        self._savepoints += 1
        return f"rowmap_sp_{self._savepoints}"

    def _finish(self) -> None:
        conn, self._conn = self._conn, None
        self._finished = True
        self.database.release_connection(conn)

    def __enter__(self) -> "Transaction":
        if not self.active:
            self.begin()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if not self.active:
            return
        if exc_type is None:
            self.commit()
        else:
            self.rollback()


@dataclass(frozen=True)
class ExecResult:
    """Outcome of a write statement."""

    rowcount: int
    generated_id: Any = None


class ExecutionContext:
    """Routes statements to the bound transaction or to a per-call connection."""

    def __init__(
        self,
        database: Database,
        transaction: Optional[Transaction] = None,
        token: Optional[CancellationToken] = None,
    ):
        self.database = database
        self.transaction = transaction
        self.token = token

    @property
    def placeholder(self) -> str:
        return self.database.placeholder

    def with_token(self, token: Optional[CancellationToken]) -> "ExecutionContext":
        """Same connection routing, different cancellation token."""
        return ExecutionContext(self.database, self.transaction, token)

    # ── TRANSACTIONS ──────────────────────────────────────

    def begin(self) -> "ExecutionContext":
        """Start a transaction and return a context bound to it."""
        tx = Transaction(self.database).begin()
        return ExecutionContext(self.database, tx, self.token)

    def begin_shared(self, *repositories) -> "ExecutionContext":
        """
        Start one transaction and bind it to several repositories.

        Args:
            repositories: Objects exposing ``set_execution_context``.

        Returns:
            The transaction-bound context; commit or roll back through it
            or through any of the repositories.
        """
        ctx = self.begin()
        for repo in repositories:
            repo.set_execution_context(ctx)
        return ctx

    def commit(self) -> None:
        if self.transaction is None:
            raise TransactionClosedError("no transaction bound to this context")
        self.transaction.commit()

    def rollback(self) -> None:
        if self.transaction is None:
            raise TransactionClosedError("no transaction bound to this context")
        self.transaction.rollback()

    @contextmanager
    def savepoint(self) -> Iterator[None]:
        """
        Confine a failure of the enclosed statements to those statements.

        Inside a transaction the block runs under a ``SAVEPOINT``; when it
        raises, the transaction is rolled back to that savepoint and stays
        usable. Without a transaction this is a no-op.

        Raises:
            RollbackError: The block failed and restoring the savepoint failed too.
        """
        tx = self.transaction
        if tx is None:
            yield
            return
        conn = tx.connection
        name = tx.next_savepoint()
        self._run_plain(conn, f"SAVEPOINT {name}")
        try:
            yield
        except Exception as e:
            if tx.active:
                try:
                    self._run_plain(conn, f"ROLLBACK TO SAVEPOINT {name}")
                    self._run_plain(conn, f"RELEASE SAVEPOINT {name}")
                except Exception as rb:
                    logger.error(f"Restoring savepoint {name} failed: {rb}")
                    raise RollbackError(f"savepoint restore failed after: {e}", original=e) from rb
            raise
        self._run_plain(conn, f"RELEASE SAVEPOINT {name}")

    # ── EXECUTION ─────────────────────────────────────────

    @contextmanager
    def _connection(self) -> Iterator[Any]:
        if self.token is not None:
            self.token.check()
        if self.transaction is not None:
            yield self.transaction.connection
            return
        conn = self.database.get_connection()
        try:
            yield conn
        finally:
            self.database.release_connection(conn)

    @staticmethod
    def _execute(cur, plan: QueryPlan) -> None:
        if config.SQL_ECHO:
            logger.info(f"SQL: {plan.sql} | args={plan.args!r}")
        cur.execute(plan.sql, plan.args)

    def _run_plain(self, conn, sql: str) -> None:
        with closing(conn.cursor()) as cur:
            self._execute(cur, QueryPlan(sql))

    def run_query(self, plan: QueryPlan) -> list:
        """Execute a read and return all rows."""
        with self._connection() as conn:
            with closing(conn.cursor()) as cur:
                self._execute(cur, plan)
                return cur.fetchall()

    def run_query_row(self, plan: QueryPlan) -> Optional[Any]:
        """Execute a read and return its first row, or None when nothing matched."""
        with self._connection() as conn:
            with closing(conn.cursor()) as cur:
                self._execute(cur, plan)
                return cur.fetchone()

    def run_exec(self, plan: QueryPlan, returning: bool = False) -> ExecResult:
        """
        Execute a write.

        Outside a transaction the write is committed on its own connection.
        Inside one, a failure rolls the whole transaction back before the
        error propagates.

        Args:
            plan: The statement and its arguments.
            returning: Read the first column of the first returned row as
                the generated identity.

        Raises:
            RollbackError: The write failed and so did the rollback.
        """
        with self._connection() as conn:
            try:
                generated = None
                with closing(conn.cursor()) as cur:
                    self._execute(cur, plan)
                    rowcount = cur.rowcount
                    if returning:
                        rows = cur.fetchall()
                        generated = rows[0][0] if rows else None
                        rowcount = max(rowcount, len(rows))
                if self.transaction is None:
                    conn.commit()
            except Exception as e:
                self._rollback_after(conn, e)
                raise
            return ExecResult(rowcount, generated)

    def _rollback_after(self, conn, error: Exception) -> None:
        try:
            if self.transaction is not None:
                self.transaction.rollback()
                logger.warning(f"Transaction rolled back after failed write: {error}")
            else:
                conn.rollback()
        except Exception as rb:
            logger.error(f"Rollback after failed write failed: {rb}")
            raise RollbackError(f"rollback failed after write error: {error}", original=error) from rb
