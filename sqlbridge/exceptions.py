"""Core exceptions for SQLBridge."""

from typing import Any, Dict, Optional


class SQLBridgeError(Exception):
    """Base exception for all SQLBridge errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(SQLBridgeError):
    """Raised when there's an error in configuration parsing or validation."""
    pass


class DatabaseError(SQLBridgeError):
    """Raised when there's an error connecting to or querying a database."""

    def __init__(
        self,
        message: str,
        database_type: Optional[str] = None,
        connection_string: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, details)
        self.database_type = database_type
        self.connection_string = connection_string


class ConnectionClosedError(DatabaseError):
    """Raised when a command or transaction is attempted on a closed connection."""
    pass


class OpenFailureError(DatabaseError):
    """Raised when the underlying engine connection cannot be opened."""
    pass


class SchemaSwitchError(DatabaseError):
    """Raised when the connection opened but the requested schema could not be selected."""
    pass


class EngineExecutionError(DatabaseError):
    """Raised when the execution engine fails running a command."""

    def __init__(
        self,
        message: str,
        sql: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, details=details)
        self.sql = sql


class ScriptExecutionError(DatabaseError):
    """Raised when a block of a multi-block script fails."""

    def __init__(self, message: str, block_index: int, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details=details)
        self.block_index = block_index


class TableNotFoundError(DatabaseError):
    """Raised when a schema lookup finds no table or view with the given name."""

    def __init__(self, message: str, table_name: Optional[str] = None):
        super().__init__(message)
        self.table_name = table_name


class TransactionError(SQLBridgeError):
    """Raised when a transaction operation is not allowed in the current state."""
    pass


class InvalidIsolationLevelError(TransactionError):
    """Raised when an unknown isolation level is requested."""

    def __init__(self, level: Any):
        super().__init__(f"{level} is not an allowed isolation level", {'level': level})
        self.level = level


class NoActiveTransactionError(TransactionError):
    """Raised on commit or rollback without a matching begin."""
    pass


class StatementError(SQLBridgeError):
    """Raised when a SQL statement cannot be composed from the given arguments."""
    pass


class MissingFilterError(StatementError):
    """Raised when a delete command is requested without a filter."""
    pass
