"""Shared fixtures: a scripted execution engine and ready-made connections."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

import pytest
import pytest_asyncio

from sqlbridge.config.models import ConnectionConfig, SQLBridgeConfig
from sqlbridge.db.connection import Connection, reset_connection_manager
from sqlbridge.db.engine import (
    ExecutionEngine,
    ResultSet,
    meta_packet,
    resolve_packet,
    rows_packet,
)

Outcome = Union[List[ResultSet], Exception]


class FakeEngine(ExecutionEngine):
    """Engine that records every command and replays scripted results.

    ``results`` maps SQL text to the result sets (or exception) of a query,
    ``packets`` maps SQL text to a verbatim packet sequence for streaming
    calls, and ``affected`` maps SQL text to a row count (or exception) for
    non-queries. Unscripted SQL succeeds with no rows.
    """

    def __init__(self) -> None:
        self.executed: List[str] = []
        self.results: Dict[str, Outcome] = {}
        self.packets: Dict[str, List[Dict[str, Any]]] = {}
        self.affected: Dict[str, Union[int, Exception]] = {}
        self.open_error: Optional[Exception] = None
        self.close_error: Optional[Exception] = None
        self.opened: List[str] = []
        self.closed: List[Any] = []
        self.packet_sizes: List[int] = []

    async def open(self, connection_string: str, config: ConnectionConfig) -> Any:
        if self.open_error is not None:
            raise self.open_error
        self.opened.append(connection_string)
        return f"handle-{len(self.opened)}"

    async def close(self, handle: Any) -> None:
        self.closed.append(handle)
        if self.close_error is not None:
            raise self.close_error

    async def query(self, sql, handle, callback=None, packet_size=0):
        self.executed.append(sql)
        self.packet_sizes.append(packet_size)
        outcome = self.results.get(sql, [])
        if isinstance(outcome, Exception):
            raise outcome
        if callback is None:
            return outcome

        if sql in self.packets:
            for packet in self.packets[sql]:
                callback(packet)
            return None

        for result_set in outcome:
            callback(meta_packet(result_set.columns))
            rows = result_set.rows
            size = packet_size or len(rows)
            for start in range(0, len(rows), size or 1):
                callback(rows_packet(rows[start:start + size]))
        callback(resolve_packet())
        return None

    async def non_query(self, sql: str, handle: Any) -> int:
        self.executed.append(sql)
        outcome = self.affected.get(sql, 0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture(autouse=True)
def _reset_globals():
    """Forget the global connection manager between tests."""
    reset_connection_manager()
    yield
    reset_connection_manager()


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def mysql_config() -> ConnectionConfig:
    return ConnectionConfig(
        server="db.example.com",
        database="shop",
        user="app_user",
        password="secret",
    )


@pytest.fixture
def connection(mysql_config: ConnectionConfig, fake_engine: FakeEngine) -> Connection:
    """A closed connection backed by the fake engine."""
    return Connection(mysql_config, fake_engine)


@pytest_asyncio.fixture
async def open_connection(connection: Connection) -> Connection:
    """An open connection backed by the fake engine."""
    await connection.open()
    return connection


@pytest.fixture
def bridge_config(mysql_config: ConnectionConfig) -> SQLBridgeConfig:
    return SQLBridgeConfig(
        connections={
            "main": mysql_config,
            "reporting": mysql_config.model_copy(update={"database": "reports"}),
        },
        default_connection="main",
    )
