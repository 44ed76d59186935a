"""Execution engine contract consumed by the connection façade.

An engine accepts SQL text and either returns every result set at once or,
when a callback is given, streams packets to it:

    {"meta": [column names]}      once per statement, before its rows
    {"rows": [[values], ...]}     zero or more times, at most ``packet_size`` rows
    {"resolve": True}             exactly once, after the last statement
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

import pandas as pd

from sqlbridge.config.models import ConnectionConfig

Packet = Dict[str, Any]
PacketCallback = Callable[[Packet], None]


def objectify_row(columns: Sequence[str], row: Sequence[Any]) -> Dict[str, Any]:
    """Key one raw row by column name; a repeated column name keeps the last value."""
    record = {}
    for index, column in enumerate(columns):
        record[column] = row[index]
    return record


def objectify(columns: Sequence[str], rows: Sequence[Sequence[Any]]) -> List[Dict[str, Any]]:
    """Key every raw row by column name."""
    return [objectify_row(columns, row) for row in rows]


def meta_packet(columns: List[str]) -> Packet:
    return {'meta': list(columns)}


def rows_packet(rows: List[List[Any]]) -> Packet:
    return {'rows': [list(row) for row in rows]}


def resolve_packet() -> Packet:
    return {'resolve': True}


@dataclass
class ResultSet:
    """Column names plus raw row arrays for one statement."""

    columns: List[str] = field(default_factory=list)
    rows: List[List[Any]] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def to_records(self) -> List[Dict[str, Any]]:
        """Zip every row with the column names; later duplicate names win."""
        return objectify(self.columns, self.rows)

    def to_dataframe(self) -> pd.DataFrame:
        """Return the rows as a DataFrame, keeping an empty frame's columns."""
        if not self.rows:
            return pd.DataFrame(columns=self.columns)
        return pd.DataFrame(self.rows, columns=self.columns)


class ExecutionEngine(ABC):
    """Black box that opens physical connections and runs SQL text."""

    @abstractmethod
    async def open(self, connection_string: str, config: ConnectionConfig) -> Any:
        """Open a physical connection and return its handle."""
        pass

    @abstractmethod
    async def close(self, handle: Any) -> None:
        """Release a handle returned by ``open``."""
        pass

    @abstractmethod
    async def query(
        self,
        sql: str,
        handle: Any,
        callback: Optional[PacketCallback] = None,
        packet_size: int = 0,
    ) -> Optional[List[ResultSet]]:
        """Run one or more statements.

        Args:
            sql: SQL text, possibly several statements separated by ``;``.
            handle: Handle returned by ``open``.
            callback: When given, packets are streamed to it and None is returned.
            packet_size: Maximum rows per ``rows`` packet; 0 means unlimited.

        Returns:
            One ResultSet per statement that produced rows, or None when streaming.
        """
        pass

    @abstractmethod
    async def non_query(self, sql: str, handle: Any) -> int:
        """Run update/insert/delete commands and return the affected row count."""
        pass
