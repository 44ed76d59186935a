"""Connection façade and named connection registry."""

import logging
import time
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from sqlbridge.config.models import ConnectionConfig, SQLBridgeConfig
from sqlbridge.db.engine import ExecutionEngine
from sqlbridge.db.filters import Expression
from sqlbridge.db.formatter import MySqlFormatter, SqlFormatter
from sqlbridge.db.procedures import SqlParameter, StoredProcedureInvoker
from sqlbridge.db.schema import TableDescriber, TableDescriptor
from sqlbridge.db.script import ScriptRunner
from sqlbridge.db.sqlalchemy_engine import SQLAlchemyEngine
from sqlbridge.db.statements import StatementBuilder
from sqlbridge.db.streaming import ResultStream, ResultStreamer
from sqlbridge.db.transactions import IsolationLevel, TransactionController, TransactionState
from sqlbridge.exceptions import (
    ConnectionClosedError,
    DatabaseError,
    OpenFailureError,
    SchemaSwitchError,
)

logger = logging.getLogger(__name__)

Filter = Optional[Union[Expression, str]]


class ConnectionState(str, Enum):
    """Open/closed state of a connection."""
    OPEN = "open"
    CLOSED = "closed"


class Connection:
    """A single MySQL connection with transactions, statement building and streaming.

    A connection is not meant for concurrent use: callers must serialize
    the operations they run on it.

    Args:
        config: Connection configuration.
        engine: Execution engine; a SQLAlchemyEngine by default.
        formatter: Literal formatter; a MySqlFormatter by default.
        default_isolation_level: Level of transactions begun without one.
    """

    def __init__(
        self,
        config: ConnectionConfig,
        engine: Optional[ExecutionEngine] = None,
        formatter: Optional[SqlFormatter] = None,
        default_isolation_level: Union[IsolationLevel, str] = IsolationLevel.READ_COMMITTED,
    ) -> None:
        self.config = config
        self.engine = engine or SQLAlchemyEngine()
        self.formatter = formatter or MySqlFormatter()
        self.state = ConnectionState.CLOSED
        self._handle: Any = None

        # DBO is the default used for trusted connections
        self.default_schema = config.default_schema or config.user or 'DBO'
        self.schema = self.default_schema
        self.transaction = TransactionState()

        self.streamer = ResultStreamer(self.engine, self._get_handle)
        self.statements = StatementBuilder(self.formatter)
        self.transactions = TransactionController(
            self.streamer, self.transaction, lambda: self.is_open, default_isolation_level
        )
        self.procedures = StoredProcedureInvoker(self.streamer, self.statements)
        self._script_runner = ScriptRunner(self.streamer)
        self._describer = TableDescriber(self, config.database, self.formatter)

    def __repr__(self) -> str:
        target = self.config.path if self.config.is_sqlite else f"{self.config.server}/{self.config.database}"
        return f"<Connection {target} {self.state.value}>"

    @property
    def is_open(self) -> bool:
        return self.state == ConnectionState.OPEN

    @property
    def connection_string(self) -> str:
        """ADO-style description of the connection handed to the engine."""
        config = self.config
        if config.use_trusted_connection:
            credentials = "IntegratedSecurity=yes;uid=auth_windows;"
        else:
            credentials = f"uid={config.user};pwd={config.password};"
        return (
            f"Server={config.server};database={config.database};"
            f"{credentials}"
            f"Pooling=False;Connection Timeout={config.timeout};Allow User Variables=True;"
        )

    def _get_handle(self) -> Any:
        if not self.is_open or self._handle is None:
            raise ConnectionClosedError("Cannot run commands on a closed connection")
        return self._handle

    # Lifecycle

    async def open(self) -> "Connection":
        """Open the underlying connection and select the current schema.

        Opening an open connection returns it unchanged.

        Raises:
            OpenFailureError: If the engine cannot open the connection.
            SchemaSwitchError: If the schema cannot be selected; the connection is closed again.
        """
        if self.is_open:
            return self

        try:
            self._handle = await self.engine.open(self.connection_string, self.config)
        except Exception as e:
            raise OpenFailureError(f"open fail: {e}", database_type=self.config.driver) from e

        self.state = ConnectionState.OPEN
        logger.info("Connection opened: %r", self)

        if self.schema == self.default_schema:
            return self

        try:
            await self.use_schema(self.schema)
        except Exception as e:
            await self.close()
            raise SchemaSwitchError(f"schema fail: {e}", database_type=self.config.driver) from e
        return self

    async def close(self) -> None:
        """Close the underlying connection. Never raises; closing twice is harmless."""
        handle, self._handle = self._handle, None
        self.state = ConnectionState.CLOSED
        self.transaction.reset()
        if handle is None:
            return
        try:
            await self.engine.close(handle)
            logger.info("Connection closed: %r", self)
        except Exception as e:
            logger.warning("Error while closing %r: %s", self, e)

    async def destroy(self) -> None:
        """Close this connection and release the underlying handle."""
        await self.close()

    async def __aenter__(self) -> "Connection":
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def clone(self) -> "Connection":
        """Return a new, unopened connection with the same configuration."""
        return Connection(
            self.config, self.engine, self.formatter, self.transactions.default_isolation_level
        )

    async def use_schema(self, schema: str) -> None:
        """Record the schema in use; MySQL has no schemas to switch."""
        self.schema = schema

    async def check_login(self, login: str, password: Optional[str]) -> bool:
        """Return whether ``login``/``password`` can open a connection."""
        probe = Connection(self.config.with_credentials(login, password), self.engine, self.formatter)
        try:
            await probe.open()
        except Exception as e:
            logger.debug("Login check failed for %s: %s", login, e)
            return False
        await probe.destroy()
        return True

    # Query execution

    def query_batch(self, sql: str, raw: bool = False) -> ResultStream:
        return self.streamer.query_batch(sql, raw)

    def query_lines(self, sql: str, raw: bool = False) -> ResultStream:
        return self.streamer.query_lines(sql, raw)

    def query_packets(self, sql: str, raw: bool = False, packet_size: int = 0) -> ResultStream:
        return self.streamer.query_packets(sql, raw, packet_size)

    def update_batch(self, sql: str) -> ResultStream:
        return self.streamer.update_batch(sql)

    async def run(self, script: str) -> None:
        """Run a script made of blocks separated by ``GO`` lines."""
        await self._script_runner.run(script)

    # Transactions

    async def set_transaction_isolation_level(self, level: Union[IsolationLevel, str]) -> None:
        await self.transactions.set_isolation_level(level)

    async def begin_transaction(
        self,
        isolation_level: Optional[Union[IsolationLevel, str]] = None,
    ) -> None:
        await self.transactions.begin_transaction(isolation_level)

    async def commit(self) -> None:
        await self.transactions.commit()

    async def rollback(self) -> None:
        await self.transactions.rollback()

    def transaction_scope(
        self,
        isolation_level: Optional[Union[IsolationLevel, str]] = None,
    ):
        """``async with`` block committing on success and rolling back on error."""
        return self.transactions.transaction(isolation_level)

    # Stored procedures and schema

    def call_sp_with_named_params(
        self,
        sp_name: str,
        params: Sequence[SqlParameter],
        raw: bool = False,
        skip_select: bool = False,
    ) -> ResultStream:
        return self.procedures.call_sp_with_named_params(sp_name, params, raw, skip_select)

    async def table_descriptor(self, table_name: str) -> TableDescriptor:
        return await self._describer.describe(table_name)

    # Statement text

    def get_select_command(
        self,
        table_name: str,
        columns: Union[str, Sequence[str]] = '*',
        filter: Filter = None,
        order_by: Optional[str] = None,
        top: Optional[Union[int, str]] = None,
        environment: Optional[Mapping[str, Any]] = None,
    ) -> str:
        return self.statements.get_select_command(table_name, columns, filter, order_by, top, environment)

    def get_select_count(
        self,
        table_name: str,
        filter: Filter = None,
        environment: Optional[Mapping[str, Any]] = None,
    ) -> str:
        return self.statements.get_select_count(table_name, filter, environment)

    def get_delete_command(
        self,
        table_name: str,
        filter: Filter = None,
        environment: Optional[Mapping[str, Any]] = None,
    ) -> str:
        return self.statements.get_delete_command(table_name, filter, environment)

    def get_insert_command(self, table: str, columns: Sequence[str], values: Sequence[Any]) -> str:
        return self.statements.get_insert_command(table, columns, values)

    def get_update_command(
        self,
        table: str,
        columns: Sequence[str],
        values: Sequence[Any],
        filter: Filter = None,
        environment: Optional[Mapping[str, Any]] = None,
    ) -> str:
        return self.statements.get_update_command(table, columns, values, filter, environment)

    def get_call_sp_command(
        self,
        sp_name: str,
        params: Sequence[SqlParameter],
        skip_select: bool = False,
    ) -> str:
        return self.statements.get_call_sp_command(sp_name, params, skip_select)

    def append_commands(self, commands: Sequence[str]) -> str:
        return self.statements.append_commands(commands)

    def give_error_number_data_was_not_written(self, error_number: int) -> str:
        return self.statements.give_error_number_data_was_not_written(error_number)

    def give_constant(self, value: Any) -> str:
        return self.statements.give_constant(value)

    def get_formatter(self) -> SqlFormatter:
        return self.formatter


class ConnectionManager:
    """Manages the named connections of a configuration."""

    def __init__(self, config: SQLBridgeConfig, engine: Optional[ExecutionEngine] = None) -> None:
        """Initialize connection manager.

        Args:
            config: SQLBridge configuration.
            engine: Engine shared by every connection; a SQLAlchemyEngine by default.
        """
        self.config = config
        self.engine = engine or SQLAlchemyEngine()
        self._connections: Dict[str, Connection] = {}

    def _resolve_name(self, name: Optional[str]) -> str:
        if name is None:
            name = self.config.default_connection

        if not name:
            raise DatabaseError("No connection specified and no default connection configured")

        if name not in self.config.connections:
            available = list(self.config.connections.keys())
            raise DatabaseError(
                f"Connection '{name}' not found in configuration. "
                f"Available connections: {available}"
            )
        return name

    def get_connection(self, name: Optional[str] = None) -> Connection:
        """Get the (possibly unopened) connection registered under ``name``.

        Raises:
            DatabaseError: If the name is not configured.
        """
        name = self._resolve_name(name)
        if name not in self._connections:
            self._connections[name] = Connection(
                self.config.connections[name],
                self.engine,
                default_isolation_level=self.config.default_isolation_level,
            )
        return self._connections[name]

    async def open_connection(self, name: Optional[str] = None) -> Connection:
        return await self.get_connection(name).open()

    async def test_connection(self, name: Optional[str] = None) -> Dict[str, Any]:
        """Open a connection and run a probe query.

        Returns:
            Connection test result with timing and status information.
        """
        start_time = time.time()
        label = name or self.config.default_connection

        try:
            connection = await self.open_connection(name)
            await connection.query_batch("SELECT 1 AS test")
            return {
                'connection': label,
                'status': 'success',
                'message': 'Connection successful',
                'response_time': round((time.time() - start_time) * 1000, 2),
                'driver': connection.config.driver,
            }
        except DatabaseError as e:
            return {
                'connection': label,
                'status': 'failed',
                'message': str(e),
                'response_time': round((time.time() - start_time) * 1000, 2),
                'error': type(e).__name__,
            }

    async def test_all_connections(self) -> Dict[str, Dict[str, Any]]:
        results = {}
        for name in self.config.connections.keys():
            results[name] = await self.test_connection(name)
        return results

    async def close_connection(self, name: str) -> None:
        connection = self._connections.pop(name, None)
        if connection is not None:
            await connection.close()

    async def close_all_connections(self) -> None:
        for name in list(self._connections.keys()):
            await self.close_connection(name)

    def get_connection_status(self) -> Dict[str, Any]:
        """Get status of all configured connections."""
        status: Dict[str, Any] = {
            'total_configured': len(self.config.connections),
            'total_open': sum(1 for c in self._connections.values() if c.is_open),
            'default_connection': self.config.default_connection,
            'connections': {},
        }

        for name, config in self.config.connections.items():
            connection = self._connections.get(name)
            status['connections'][name] = {
                'open': connection is not None and connection.is_open,
                'driver': config.driver,
                'in_transaction': connection is not None and connection.transaction.is_active,
            }

        return status

    def list_connections(self) -> List[str]:
        return list(self.config.connections.keys())


# Global connection manager instance
_connection_manager: Optional[ConnectionManager] = None


def get_connection_manager(config: Optional[SQLBridgeConfig] = None) -> ConnectionManager:
    """Get the global connection manager instance.

    Args:
        config: SQLBridge configuration. If None, attempts to load the global config.

    Raises:
        DatabaseError: If no configuration is available.
    """
    global _connection_manager

    if _connection_manager is None:
        if config is None:
            try:
                from sqlbridge.config import get_config
                config = get_config()
            except Exception as e:
                raise DatabaseError("No configuration available for connection manager") from e

        _connection_manager = ConnectionManager(config)

    return _connection_manager


def set_connection_manager(manager: Optional[ConnectionManager]) -> None:
    """Set the global connection manager instance."""
    global _connection_manager
    _connection_manager = manager


def reset_connection_manager() -> None:
    """Forget the global connection manager."""
    set_connection_manager(None)
