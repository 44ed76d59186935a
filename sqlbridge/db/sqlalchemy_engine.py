"""Execution engine running SQL text over a SQLAlchemy-managed DBAPI connection."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from pymysql.constants import CLIENT
from sqlalchemy import create_engine
from sqlalchemy.engine import URL, Engine
from sqlalchemy.pool import NullPool

from sqlbridge.config.models import ConnectionConfig
from sqlbridge.db.engine import (
    ExecutionEngine,
    Packet,
    PacketCallback,
    ResultSet,
    meta_packet,
    resolve_packet,
    rows_packet,
)
from sqlbridge.exceptions import DatabaseError

logger = logging.getLogger(__name__)


@dataclass
class EngineHandle:
    """An open DBAPI connection and the SQLAlchemy engine that created it."""
    engine: Engine
    dbapi_connection: Any


class SQLAlchemyEngine(ExecutionEngine):
    """Runs statements through raw DBAPI cursors so every result set is reachable.

    Blocking driver calls run in the loop's default executor; streamed
    packets are handed back to the event loop in the order they were read.
    """

    def build_url(self, config: ConnectionConfig) -> URL:
        """Build the SQLAlchemy URL for ``config``."""
        if config.is_sqlite:
            return URL.create(config.driver, database=config.path)

        if config.use_trusted_connection:
            username, password = None, None
        else:
            username, password = config.user, config.password

        query = {k: str(v) for k, v in config.options.items() if k not in ('connect_timeout',)}
        return URL.create(
            config.driver,
            username=username,
            password=password,
            host=config.server,
            port=config.port,
            database=config.database,
            query=query,
        )

    def _get_connect_args(self, config: ConnectionConfig) -> Dict[str, Any]:
        """Get driver-specific connection arguments."""
        if config.is_sqlite:
            return {
                'check_same_thread': False,
                'timeout': config.timeout,
                'isolation_level': None,  # transactions are driven by explicit SQL
            }
        if config.driver.endswith('+pymysql'):
            return {
                'connect_timeout': config.options.get('connect_timeout', config.timeout),
                'autocommit': True,
                'client_flag': CLIENT.MULTI_STATEMENTS,
            }
        return {}

    def create_sqlalchemy_engine(self, config: ConnectionConfig) -> Engine:
        try:
            return create_engine(
                self.build_url(config),
                poolclass=NullPool,
                connect_args=self._get_connect_args(config),
            )
        except Exception as e:
            raise DatabaseError(
                f"Failed to create database engine: {e}", database_type=config.driver
            ) from e

    async def open(self, connection_string: str, config: ConnectionConfig) -> EngineHandle:
        engine = self.create_sqlalchemy_engine(config)
        loop = asyncio.get_running_loop()
        try:
            dbapi_connection = await loop.run_in_executor(None, engine.raw_connection)
        except Exception:
            engine.dispose()
            raise
        logger.debug("Opened %s connection to %s", config.driver, config.server or config.path)
        return EngineHandle(engine=engine, dbapi_connection=dbapi_connection)

    async def close(self, handle: EngineHandle) -> None:
        loop = asyncio.get_running_loop()

        def _close() -> None:
            try:
                handle.dbapi_connection.close()
            finally:
                handle.engine.dispose()

        await loop.run_in_executor(None, _close)

    async def query(
        self,
        sql: str,
        handle: EngineHandle,
        callback: Optional[PacketCallback] = None,
        packet_size: int = 0,
    ) -> Optional[List[ResultSet]]:
        loop = asyncio.get_running_loop()
        emit: Optional[Callable[[Packet], None]] = None
        if callback is not None:
            def emit(packet: Packet) -> None:
                loop.call_soon_threadsafe(callback, packet)

        result_sets = await loop.run_in_executor(
            None, self._run_query, sql, handle, emit, packet_size
        )
        return None if callback is not None else result_sets

    async def non_query(self, sql: str, handle: EngineHandle) -> int:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._run_non_query, sql, handle)

    @staticmethod
    def _next_set(cursor: Any) -> bool:
        nextset = getattr(cursor, 'nextset', None)
        if nextset is None:
            return False
        return bool(nextset())

    def _run_query(
        self,
        sql: str,
        handle: EngineHandle,
        emit: Optional[Callable[[Packet], None]],
        packet_size: int,
    ) -> List[ResultSet]:
        cursor = handle.dbapi_connection.cursor()
        result_sets: List[ResultSet] = []
        try:
            cursor.execute(sql)
            while True:
                if cursor.description is not None:
                    columns = [d[0] for d in cursor.description]
                    if emit is None:
                        rows = [list(row) for row in cursor.fetchall()]
                        result_sets.append(ResultSet(columns=columns, rows=rows))
                    else:
                        emit(meta_packet(columns))
                        self._stream_rows(cursor, emit, packet_size)
                if not self._next_set(cursor):
                    break
            if emit is not None:
                emit(resolve_packet())
            return result_sets
        finally:
            cursor.close()

    @staticmethod
    def _stream_rows(cursor: Any, emit: Callable[[Packet], None], packet_size: int) -> None:
        if packet_size <= 0:
            rows = cursor.fetchall()
            if rows:
                emit(rows_packet(rows))
            return
        while True:
            rows = cursor.fetchmany(packet_size)
            if not rows:
                break
            emit(rows_packet(rows))

    def _run_non_query(self, sql: str, handle: EngineHandle) -> int:
        cursor = handle.dbapi_connection.cursor()
        try:
            cursor.execute(sql)
            affected = max(cursor.rowcount, 0)
            while self._next_set(cursor):
                affected += max(cursor.rowcount, 0)
            return affected
        finally:
            cursor.close()
