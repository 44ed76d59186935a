"""Database connectivity, transactions and result streaming."""

from sqlbridge.db.engine import ExecutionEngine, ResultSet
from sqlbridge.db.filters import (
    ALWAYS_FALSE,
    ALWAYS_TRUE,
    and_,
    eq,
    ge,
    gt,
    in_list,
    is_not_null,
    is_null,
    le,
    like,
    lt,
    ne,
    not_,
    or_,
)
from sqlbridge.db.formatter import MySqlFormatter, SqlFormatter
from sqlbridge.db.procedures import UNSET, SqlParameter, StoredProcedureInvoker
from sqlbridge.db.schema import ColumnDescriptor, TableDescriptor, TableDescriber
from sqlbridge.db.statements import StatementBuilder
from sqlbridge.db.streaming import ResultStream, ResultStreamer
from sqlbridge.db.transactions import (
    ISOLATION_LEVEL_CLAUSES,
    IsolationLevel,
    TransactionController,
    TransactionState,
)
from sqlbridge.db.sqlalchemy_engine import SQLAlchemyEngine
from sqlbridge.db.connection import (
    Connection,
    ConnectionManager,
    ConnectionState,
    get_connection_manager,
    reset_connection_manager,
    set_connection_manager,
)

__all__ = [
    # Engine contract
    "ExecutionEngine",
    "ResultSet",
    "SQLAlchemyEngine",
    # Connection management
    "Connection",
    "ConnectionManager",
    "ConnectionState",
    "get_connection_manager",
    "set_connection_manager",
    "reset_connection_manager",
    # Streaming
    "ResultStream",
    "ResultStreamer",
    # Transactions
    "IsolationLevel",
    "ISOLATION_LEVEL_CLAUSES",
    "TransactionController",
    "TransactionState",
    # Statements and procedures
    "StatementBuilder",
    "SqlParameter",
    "StoredProcedureInvoker",
    "UNSET",
    "MySqlFormatter",
    "SqlFormatter",
    # Schema
    "ColumnDescriptor",
    "TableDescriptor",
    "TableDescriber",
    # Filters
    "ALWAYS_TRUE",
    "ALWAYS_FALSE",
    "and_",
    "or_",
    "not_",
    "eq",
    "ne",
    "lt",
    "le",
    "gt",
    "ge",
    "like",
    "in_list",
    "is_null",
    "is_not_null",
]
