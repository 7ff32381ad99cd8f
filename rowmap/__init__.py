"""
rowmap
======
Maps annotated dataclasses to relational tables: derives tables, columns and
parameterized SQL from field metadata, and hydrates rows (and their declared
relations, up to a bounded depth) back into entities.
"""

from rowmap.db.connection import Database
from rowmap.db.context import CancellationToken, ExecResult, ExecutionContext, Transaction
from rowmap.errors import (
    ConnectionAcquisitionError,
    DeadlineExceededError,
    DescriptorError,
    QueryCancelledError,
    RollbackError,
    RowDecodeError,
    RowmapError,
    TransactionClosedError,
)
from rowmap.mapping.descriptor import EntityDescriptor, RelationKind, describe
from rowmap.mapping.fields import column, relation
from rowmap.mapping.serialize import to_dict
from rowmap.repositories.repository import Repository

__version__ = "0.1.0"

__all__ = [
    "CancellationToken",
    "ConnectionAcquisitionError",
    "Database",
    "DeadlineExceededError",
    "DescriptorError",
    "EntityDescriptor",
    "ExecResult",
    "ExecutionContext",
    "QueryCancelledError",
    "RelationKind",
    "Repository",
    "RollbackError",
    "RowDecodeError",
    "RowmapError",
    "Transaction",
    "TransactionClosedError",
    "column",
    "describe",
    "relation",
    "to_dict",
]
